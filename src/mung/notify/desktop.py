from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Sequence

from ..models import Alert
from .base import NotificationChannel


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DesktopNotifier(NotificationChannel):
    """
    桌面通知：通过 freedesktop 的 `notify-send` 投递。

    说明：
    - notify-send 不提供按标识撤回的能力，remove/remove_many 只记 DEBUG 日志
    - icon 为图片路径或图标名时原样透传；sound 交给通知服务器决定，这里不处理
    - 调用是同步的，超时由 timeout_seconds 控制
    """

    executable: str = "notify-send"
    app_name: str = "mung"
    urgency: str = "normal"
    timeout_seconds: float = 5.0

    def channel(self) -> str:
        return "desktop"

    def request_permission(self) -> bool:
        return shutil.which(self.executable) is not None

    def send(self, alert: Alert) -> None:
        cmd = [
            self.executable,
            f"--app-name={self.app_name}",
            f"--urgency={self.urgency}",
        ]
        if alert.icon:
            cmd.append(f"--icon={alert.icon}")
        cmd.extend([alert.title, alert.message])
        subprocess.run(
            cmd,
            check=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=self.timeout_seconds,
        )

    def remove(self, alert_id: str) -> None:
        logger.debug("desktop notification removal unsupported: id=%s", alert_id)

    def remove_many(self, alert_ids: Sequence[str]) -> None:
        if alert_ids:
            logger.debug("desktop notification removal unsupported: ids=%d", len(alert_ids))
