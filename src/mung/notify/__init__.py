from .base import NotificationChannel
from .desktop import DesktopNotifier
from .fanout import FanoutNotifier
from .formatter import format_alert_text
from .webhook import WebhookNotifier

__all__ = [
    "DesktopNotifier",
    "FanoutNotifier",
    "NotificationChannel",
    "WebhookNotifier",
    "format_alert_text",
]
