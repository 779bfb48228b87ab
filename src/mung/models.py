from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Iterable, Mapping


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_rfc3339_datetime(value: str) -> datetime:
    """
    解析常见的 RFC3339/ISO8601 时间串为带 tzinfo 的 datetime。

    兼容：
    - 2026-02-10T12:34:56Z
    - 2026-02-10T12:34:56+00:00
    - 2026-02-10T12:34:56.123Z
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_rfc3339(value: datetime) -> str:
    """
    统一落盘格式：UTC、Z 结尾（外部脚本最容易解析的形式）。

    整秒时间写成秒级精度；带亚秒部分时补上微秒，保证读回后与原值相等。
    """
    value = value.astimezone(UTC)
    if value.microsecond:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_alert_id(now: datetime | None = None) -> str:
    """
    生成 alert id：`{unix_seconds}_{8 位小写 hex}`。

    - 时间戳前缀保证 id 按创建时间可排序
    - 随机后缀保证同一秒内批量创建也不会冲突
    """
    ts = int((now or utc_now()).timestamp())
    return f"{ts}_{secrets.randbits(32):08x}"


def normalize_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _optional_str(d: Mapping[str, Any], key: str) -> str | None:
    v = d.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise ValueError(f"field {key!r} must be a string, got {type(v).__name__}")
    return v


def _required_str(d: Mapping[str, Any], key: str) -> str:
    v = d.get(key)
    if not isinstance(v, str):
        raise ValueError(f"field {key!r} is required and must be a string")
    return v


@dataclass(frozen=True, slots=True)
class Alert:
    """
    告警记录：系统中唯一需要持久化的实体，一条记录对应一个 JSON 文件。

    约定：
    - 记录不可原地修改；状态变化只有“整体替换（dedupe）”和“删除”两种
    - tags/source/session/kind/dedupe_key 是相互独立的过滤维度
    - dedupe_key 标识一条“替换通道”：同 (session, dedupe_key) 至多保留一条
    """

    id: str
    title: str
    message: str
    created_at: datetime
    on_click: str | None = None
    icon: str | None = None
    tags: tuple[str, ...] = ()
    source: str | None = None
    session: str | None = None
    kind: str | None = None
    dedupe_key: str | None = None
    sound: str | None = None

    @classmethod
    def new(
        cls,
        *,
        title: str,
        message: str,
        on_click: str | None = None,
        icon: str | None = None,
        tags: Iterable[str] = (),
        source: str | None = None,
        session: str | None = None,
        kind: str | None = None,
        dedupe_key: str | None = None,
        sound: str | None = None,
        now: datetime | None = None,
    ) -> "Alert":
        """创建新记录：分配 id 与 created_at，并归一化元数据字段。"""
        created_at = (now or utc_now()).astimezone(UTC).replace(microsecond=0)
        return cls(
            id=generate_alert_id(created_at),
            title=title,
            message=message,
            created_at=created_at,
            on_click=on_click or None,
            icon=icon or None,
            tags=tuple(t for t in (x.strip() for x in tags) if t),
            source=normalize_optional(source),
            session=normalize_optional(session),
            kind=normalize_optional(kind),
            dedupe_key=normalize_optional(dedupe_key),
            sound=sound or None,
        )

    def age(self, now: datetime | None = None) -> str:
        """人类可读的存活时长，例如 "30s" / "2m" / "1h" / "3d"。"""
        seconds = max(0, int(((now or utc_now()) - self.created_at).total_seconds()))
        if seconds < 60:
            return f"{seconds}s"
        if seconds < 3600:
            return f"{seconds // 60}m"
        if seconds < 86400:
            return f"{seconds // 3600}h"
        return f"{seconds // 86400}d"

    def to_json_dict(self) -> dict[str, Any]:
        """
        序列化为落盘 JSON 结构。

        可选字段缺省时整体省略（不写 null），tags 总是输出。
        """
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "tags": list(self.tags),
            "created_at": format_rfc3339(self.created_at),
        }
        optional = {
            "on_click": self.on_click,
            "icon": self.icon,
            "source": self.source,
            "session": self.session,
            "kind": self.kind,
            "dedupe_key": self.dedupe_key,
            "sound": self.sound,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> "Alert":
        """
        从落盘 JSON 反序列化。

        兼容旧格式：没有 tags 但有单值 group 时，视为 tags=[group]。
        结构不合法时抛 ValueError（由 store 层按“损坏文件”跳过）。
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"alert must be a JSON object, got {type(data).__name__}")

        raw_tags = data.get("tags")
        if raw_tags is None:
            group = _optional_str(data, "group")
            tags: tuple[str, ...] = (group,) if group else ()
        elif isinstance(raw_tags, list) and all(isinstance(t, str) for t in raw_tags):
            tags = tuple(raw_tags)
        else:
            raise ValueError("field 'tags' must be a list of strings")

        return cls(
            id=_required_str(data, "id"),
            title=_required_str(data, "title"),
            message=_required_str(data, "message"),
            created_at=parse_rfc3339_datetime(_required_str(data, "created_at")),
            on_click=_optional_str(data, "on_click"),
            icon=_optional_str(data, "icon"),
            tags=tags,
            source=_optional_str(data, "source"),
            session=_optional_str(data, "session"),
            kind=_optional_str(data, "kind"),
            dedupe_key=_optional_str(data, "dedupe_key"),
            sound=_optional_str(data, "sound"),
        )
