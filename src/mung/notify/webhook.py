from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Sequence

from ..http_utils import HttpClient
from ..models import Alert
from .base import NotificationChannel
from .formatter import format_alert_text


MAX_TEXT_LENGTH = 2000


@dataclass(slots=True)
class WebhookNotifier(NotificationChannel):
    """
    Webhook 通知：把告警的创建与撤回都以 JSON POST 推给接收端。

    说明：
    - 创建：{"event": "alert.created", "alert": <落盘结构>, "text": ...}
    - 撤回：{"event": "alert.removed", "ids": [...]}，接收端据此收回已展示的消息
    - 每个请求都带 timeStamp（毫秒）与 uuid，便于接收端幂等
    - text 超过 MAX_TEXT_LENGTH 会被截断
    """

    webhook_url: str
    http: HttpClient

    def channel(self) -> str:
        return "webhook"

    def request_permission(self) -> bool:
        return bool(self.webhook_url)

    def send(self, alert: Alert) -> None:
        payload = self._build_payload("alert.created")
        payload["alert"] = alert.to_json_dict()
        payload["text"] = self._truncate(format_alert_text(alert))
        self._post(payload)

    def remove(self, alert_id: str) -> None:
        self.remove_many([alert_id])

    def remove_many(self, alert_ids: Sequence[str]) -> None:
        ids = [i for i in alert_ids if i]
        if not ids:
            return
        payload = self._build_payload("alert.removed")
        payload["ids"] = ids
        self._post(payload)

    def _post(self, payload: dict[str, Any]) -> None:
        resp = self.http.post_json(self.webhook_url, payload)
        if not resp.ok:
            raise RuntimeError(f"webhook failed: status={resp.status}, body={resp.body[:200]!r}")

    def _build_payload(self, event: str) -> dict[str, Any]:
        return {
            "event": event,
            "timeStamp": int(time.time() * 1000),
            "uuid": uuid.uuid4().hex,
        }

    @staticmethod
    def _truncate(text: str) -> str:
        text = (text or "").strip() or "-"
        if len(text) > MAX_TEXT_LENGTH:
            return text[: MAX_TEXT_LENGTH - 1] + "…"
        return text
