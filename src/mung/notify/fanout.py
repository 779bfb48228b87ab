from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from ..models import Alert
from .base import NotificationChannel


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FanoutNotifier(NotificationChannel):
    """
    把一次通知操作分发给所有已配置的渠道。

    - 单个渠道失败只记录日志，不影响其他渠道
    - 没有任何渠道时所有操作都是 no-op，request_permission 返回 False
    """

    channels: tuple[NotificationChannel, ...] = ()

    def channel(self) -> str:
        return "+".join(c.channel() for c in self.channels) or "none"

    def request_permission(self) -> bool:
        granted = False
        for ch in self.channels:
            try:
                granted = bool(ch.request_permission()) or granted
            except Exception:  # noqa: BLE001
                logger.warning("notify permission failed: channel=%s", ch.channel(), exc_info=True)
        return granted

    def send(self, alert: Alert) -> None:
        self._each("send", lambda ch: ch.send(alert), alert_ids=(alert.id,))

    def remove(self, alert_id: str) -> None:
        self._each("remove", lambda ch: ch.remove(alert_id), alert_ids=(alert_id,))

    def remove_many(self, alert_ids: Sequence[str]) -> None:
        ids = list(alert_ids)
        if not ids:
            return
        self._each("remove_many", lambda ch: ch.remove_many(ids), alert_ids=ids)

    def _each(
        self,
        op: str,
        call: Callable[[NotificationChannel], None],
        *,
        alert_ids: Sequence[str],
    ) -> None:
        for ch in self.channels:
            try:
                call(ch)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "notify failed: op=%s channel=%s notifier_type=%s ids=%s",
                    op,
                    ch.channel(),
                    type(ch).__name__,
                    ",".join(alert_ids),
                    exc_info=True,
                )
