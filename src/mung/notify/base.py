from __future__ import annotations

from typing import Protocol, Sequence

from ..models import Alert


class NotificationChannel(Protocol):
    """
    通知渠道接口：投递 / 撤回某条告警对应的通知。

    约定：
    - 通知标识与 alert id 一致，撤回时只需要 id
    - 失败直接抛异常，由 lifecycle 统一按“尽力而为”捕获并记录
    - channel() 用于日志与 doctor 输出
    """

    def channel(self) -> str: ...

    def request_permission(self) -> bool: ...

    def send(self, alert: Alert) -> None: ...

    def remove(self, alert_id: str) -> None: ...

    def remove_many(self, alert_ids: Sequence[str]) -> None: ...
