from __future__ import annotations

from ..models import Alert, format_rfc3339


def format_alert_text(alert: Alert) -> str:
    """
    webhook 推送里的纯文本正文：标题、内容、元数据、创建时间与 id。
    """
    lines = [
        alert.title,
        alert.message,
    ]
    meta = [
        ("tags", ",".join(alert.tags) if alert.tags else None),
        ("source", alert.source),
        ("session", alert.session),
        ("kind", alert.kind),
    ]
    meta_lines = [f"{k}: {v}" for k, v in meta if v]
    if meta_lines:
        lines.append("")
        lines.extend(meta_lines)
    lines.append(f"created_at: {format_rfc3339(alert.created_at)}")
    lines.append(f"id: {alert.id}")
    return "\n".join(lines)
