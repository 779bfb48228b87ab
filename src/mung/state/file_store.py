from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass

from ..filters import NO_FILTER, AlertFilter
from ..models import Alert
from .store import PersistenceError


logger = logging.getLogger(__name__)

ALERTS_SUBDIR = "alerts"
ALERT_SUFFIX = ".json"


def _is_safe_id(alert_id: str) -> bool:
    if not alert_id or alert_id.startswith("."):
        return False
    return "/" not in alert_id and "\\" not in alert_id and os.sep not in alert_id


@dataclass(slots=True)
class FileAlertStore:
    """
    默认记录存储：目录即数据库。

    目录结构：
    - <base_dir>/alerts/<id>.json，一条记录一个文件

    约束：
    - 写入走“同目录临时文件 + os.replace”，读方永远看不到写了一半的文件
    - 每次 list/count/clear 都是对目录的 O(n) 全量扫描；预期规模是几十条待处理告警
    - 解析失败的文件在扫描时静默跳过，单个坏文件不能让其他记录不可见
    - 不做跨进程加锁：两个进程并发写同一个 dedupe 通道时可能各留一条
    """

    base_dir: str

    @property
    def alerts_dir(self) -> str:
        return os.path.join(self.base_dir, ALERTS_SUBDIR)

    def path_for(self, alert_id: str) -> str:
        return os.path.join(self.alerts_dir, alert_id + ALERT_SUFFIX)

    def save(self, alert: Alert) -> str:
        if not _is_safe_id(alert.id):
            raise PersistenceError(f"invalid alert id: {alert.id!r}")

        target = self.path_for(alert.id)
        payload = json.dumps(alert.to_json_dict(), ensure_ascii=False, indent=2, sort_keys=True)
        tmp_path: str | None = None
        try:
            os.makedirs(self.alerts_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.alerts_dir, prefix=f".{alert.id}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(payload.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            raise PersistenceError(f"failed to write alert {alert.id}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.debug("temp file cleanup failed: path=%s", tmp_path)
        return target

    def load(self, alert_id: str) -> Alert | None:
        if not _is_safe_id(alert_id):
            return None
        return self._read(self.path_for(alert_id))

    def remove(self, alert_id: str) -> Alert | None:
        """先读出旧记录（调用方可能需要它的 on_click），再删除文件。"""
        if not _is_safe_id(alert_id):
            return None
        path = self.path_for(alert_id)
        alert = self._read(path)
        try:
            os.unlink(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"failed to delete alert {alert_id}: {e}") from e
        return alert

    def list(self, filters: AlertFilter | None = None) -> list[Alert]:
        filters = filters or NO_FILTER
        try:
            entries = list(os.scandir(self.alerts_dir))
        except (FileNotFoundError, NotADirectoryError):
            return []

        alerts: list[Alert] = []
        for entry in entries:
            if not entry.name.endswith(ALERT_SUFFIX) or entry.name.startswith("."):
                continue
            alert = self._read(entry.path)
            if alert is None:
                continue
            if filters.match(alert):
                alerts.append(alert)

        alerts.sort(key=lambda a: (a.created_at, a.id))
        return alerts

    def count(self, filters: AlertFilter | None = None) -> int:
        return len(self.list(filters))

    def clear(self, filters: AlertFilter | None = None) -> list[Alert]:
        """
        删除所有命中的记录，返回本次真正删除的记录。

        扫描与删除之间被其他进程删掉的记录不计入返回值。
        单条删除失败不会中断其余记录的删除；结束后抛出 PersistenceError，
        其 removed 带上本次已经删掉的记录。
        """
        removed: list[Alert] = []
        first_error: PersistenceError | None = None
        for alert in self.list(filters):
            try:
                if self.remove(alert.id) is not None:
                    removed.append(alert)
            except PersistenceError as e:
                logger.debug("clear remove failed: id=%s error=%s", alert.id, e)
                first_error = first_error or e
        if first_error is not None:
            raise PersistenceError(
                f"clear incomplete: removed={len(removed)} error={first_error}",
                removed=removed,
            ) from first_error
        return removed

    def _read(self, path: str) -> Alert | None:
        try:
            with open(path, "rb") as f:
                raw = json.loads(f.read().decode("utf-8"))
            return Alert.from_json_dict(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError) as e:
            logger.debug("skip malformed alert file: path=%s error=%s", path, e)
            return None
