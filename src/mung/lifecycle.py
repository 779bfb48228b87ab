from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable

from .config import AppConfig
from .filters import NO_FILTER, AlertFilter
from .http_utils import HttpClient
from .models import Alert, normalize_optional
from .notify.base import NotificationChannel
from .notify.desktop import DesktopNotifier
from .notify.fanout import FanoutNotifier
from .notify.webhook import WebhookNotifier
from .shell import ActionRunner, ShellRunner
from .state.file_store import FileAlertStore
from .state.store import AlertStore, PersistenceError


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CreateResult:
    alert_id: str | None
    replaced_ids: tuple[str, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.alert_id is not None


@dataclass(frozen=True, slots=True)
class DismissResult:
    alert_id: str
    found: bool
    ran_action: bool = False

    @property
    def ok(self) -> bool:
        return self.found


@dataclass(frozen=True, slots=True)
class ClearResult:
    removed_ids: tuple[str, ...]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        return len(self.removed_ids)


@dataclass(slots=True)
class Lifecycle:
    """
    生命周期编排：把记录存储、通知渠道、外部信号三者按固定顺序串起来。

    顺序约定（每个变更操作）：
    Store -> Notify -> Signal

    失败语义：
    - 存储失败（PersistenceError）是致命的，后续步骤一律不执行；
      例外是失败前已经删掉的记录：照样撤回其通知并触发信号，不留“有通知无状态”
    - 通知渠道 / 信号 / 动作执行失败只记日志，不影响操作结果
    - dismiss 不存在的 id 是正常的“未找到”结果，不触发任何外部调用
    """

    store: AlertStore
    notifications: NotificationChannel
    shell: ActionRunner

    def create(
        self,
        title: str,
        message: str,
        *,
        on_click: str | None = None,
        icon: str | None = None,
        tags: Iterable[str] = (),
        source: str | None = None,
        session: str | None = None,
        kind: str | None = None,
        dedupe_key: str | None = None,
        sound: str | None = None,
    ) -> CreateResult:
        """
        创建告警。

        执行顺序：
        - 请求通知权限（幂等）
        - 若带 dedupe_key：先删掉同通道的旧记录并撤回其通知；
          带 session 时只替换该 session 内的记录，否则 dedupe_key 全局生效
        - 生成新记录并落盘；落盘失败直接返回错误，不发通知、不触发信号
        - 发送通知（失败不回滚已落盘的记录）
        - 触发外部刷新信号
        """
        if not title or not message:
            raise ValueError("title and message are required")

        self._best_effort("request_permission", self.notifications.request_permission)

        tags = list(tags)
        session = normalize_optional(session)
        dedupe_key = normalize_optional(dedupe_key)
        logger.debug(
            "add source=%s session=%s kind=%s dedupe=%s tags=%d",
            normalize_optional(source) or "-",
            session or "-",
            normalize_optional(kind) or "-",
            dedupe_key or "-",
            len(tags),
        )

        replaced_ids: tuple[str, ...] = ()
        if dedupe_key:
            lane = AlertFilter.of(sessions=[session] if session else [], dedupe_keys=[dedupe_key])
            try:
                replaced_ids = tuple(a.id for a in self.store.clear(lane))
            except PersistenceError as e:
                replaced_ids = tuple(a.id for a in e.removed)
                self._retract(replaced_ids)
                logger.debug("add failed_dedupe replaced=%d error=%s", len(replaced_ids), e)
                return CreateResult(alert_id=None, replaced_ids=replaced_ids, error=str(e))
            if replaced_ids:
                self._best_effort("remove_many", self.notifications.remove_many, list(replaced_ids))
                logger.debug("add dedupe_replaced count=%d key=%s", len(replaced_ids), dedupe_key)

        try:
            alert = Alert.new(
                title=title,
                message=message,
                on_click=on_click,
                icon=icon,
                tags=tags,
                source=source,
                session=session,
                kind=kind,
                dedupe_key=dedupe_key,
                sound=sound,
            )
            self.store.save(alert)
        except PersistenceError as e:
            logger.debug("add failed_save error=%s", e)
            if replaced_ids:
                self._best_effort("fire_change_signal", self.shell.fire_change_signal)
            return CreateResult(alert_id=None, replaced_ids=replaced_ids, error=str(e))

        self._best_effort("send", self.notifications.send, alert)
        self._best_effort("fire_change_signal", self.shell.fire_change_signal)

        logger.debug("add saved id=%s", alert.id)
        return CreateResult(alert_id=alert.id, replaced_ids=replaced_ids)

    def dismiss(self, alert_id: str, *, run: bool = False) -> DismissResult:
        """
        关闭告警：CLI 的 done 与“点击已投递通知”共用这一条路径。

        执行顺序：
        - 删除记录；不存在则返回 found=False，不做任何外部调用
        - run=True 且记录带 on_click 时，后台执行该命令
        - 撤回通知（无论之前是否真正投递成功）
        - 触发外部刷新信号
        """
        alert = self.store.remove(alert_id)
        if alert is None:
            logger.debug("done missing id=%s", alert_id)
            return DismissResult(alert_id=alert_id, found=False)

        ran_action = False
        if run and (alert.on_click or "").strip():
            self._best_effort("execute", self.shell.execute, alert.on_click)
            ran_action = True
            logger.debug("done run_action id=%s", alert_id)

        self._best_effort("remove", self.notifications.remove, alert.id)
        self._best_effort("fire_change_signal", self.shell.fire_change_signal)

        logger.debug("done removed id=%s", alert_id)
        return DismissResult(alert_id=alert_id, found=True, ran_action=ran_action)

    def activate(self, alert_id: str) -> DismissResult:
        """用户点击已投递的通知：等价于 dismiss(alert_id, run=True)。"""
        return self.dismiss(alert_id, run=True)

    def list(self, filters: AlertFilter | None = None) -> list[Alert]:
        return self.store.list(filters or NO_FILTER)

    def count(self, filters: AlertFilter | None = None) -> int:
        return self.store.count(filters or NO_FILTER)

    def clear(self, filters: AlertFilter | None = None) -> ClearResult:
        """
        批量关闭：先由 store 完成“列出 + 删除”，再一次性撤回通知、触发一次信号。

        store 中途失败时，已经删掉的记录照样撤回通知并触发信号，
        失败信息放在 ClearResult.error 里返回。
        """
        filters = filters or NO_FILTER
        error: PersistenceError | None = None
        try:
            removed = self.store.clear(filters)
        except PersistenceError as e:
            removed, error = list(e.removed), e
        removed_ids = tuple(a.id for a in removed)

        self._best_effort("remove_many", self.notifications.remove_many, list(removed_ids))
        self._best_effort("fire_change_signal", self.shell.fire_change_signal)

        logger.debug(
            "clear removed=%d scope=%s error=%s",
            len(removed_ids),
            "all" if filters.is_empty() else filters.describe(),
            error or "-",
        )
        return ClearResult(removed_ids=removed_ids, error=str(error) if error else None)

    def _retract(self, alert_ids: tuple[str, ...]) -> None:
        if not alert_ids:
            return
        self._best_effort("remove_many", self.notifications.remove_many, list(alert_ids))
        self._best_effort("fire_change_signal", self.shell.fire_change_signal)

    def _best_effort(self, op: str, call: Callable[..., object], *args: object) -> None:
        try:
            call(*args)
        except Exception:  # noqa: BLE001
            logger.warning("collaborator call failed: op=%s", op, exc_info=True)


def build_notifications(config: AppConfig, environ: dict[str, str] | None = None) -> FanoutNotifier:
    channels: list[NotificationChannel] = []
    if config.webhook:
        webhook_url = config.resolve_env(config.webhook.webhook_env, environ)
        if webhook_url:
            http = HttpClient(timeout_seconds=config.webhook.timeout_seconds)
            channels.append(WebhookNotifier(webhook_url=webhook_url, http=http))

    if config.desktop:
        desktop = DesktopNotifier(executable=config.desktop.executable, urgency=config.desktop.urgency)
        if desktop.request_permission():
            channels.append(desktop)

    return FanoutNotifier(channels=tuple(channels))


def build_lifecycle(config: AppConfig, environ: dict[str, str] | None = None) -> Lifecycle:
    """
    根据配置装配 Lifecycle。

    统一在这里做“配置 -> 实例”，Lifecycle 内只关注流程编排；
    通知渠道与信号执行器都以接口值注入，便于测试替换。
    """
    env = dict(os.environ) if environ is None else environ
    return Lifecycle(
        store=FileAlertStore(config.mung_dir),
        notifications=build_notifications(config, env),
        shell=ShellRunner(
            signal_command=config.signal_command,
            preferred_shell=config.on_click_shell,
            working_directory=config.on_click_cwd,
            environ=env,
        ),
    )
