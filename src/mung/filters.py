from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import Alert


def _normalize_values(values: Iterable[str] | None) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for v in values or ():
        v = (v or "").strip()
        if v:
            seen.setdefault(v, None)
    return tuple(seen)


@dataclass(frozen=True, slots=True)
class AlertFilter:
    """
    多维过滤条件：维度内 OR，维度间 AND。

    - 某维度为空元组表示“该维度不做约束”
    - tags 在记录侧是多值：与过滤集合有交集即视为命中
    - 记录缺失某元数据字段时，永远不命中该维度的非空过滤
    """

    tags: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    sessions: tuple[str, ...] = ()
    kinds: tuple[str, ...] = ()
    dedupe_keys: tuple[str, ...] = ()

    @classmethod
    def of(
        cls,
        *,
        tags: Iterable[str] | None = None,
        sources: Iterable[str] | None = None,
        sessions: Iterable[str] | None = None,
        kinds: Iterable[str] | None = None,
        dedupe_keys: Iterable[str] | None = None,
    ) -> "AlertFilter":
        return cls(
            tags=_normalize_values(tags),
            sources=_normalize_values(sources),
            sessions=_normalize_values(sessions),
            kinds=_normalize_values(kinds),
            dedupe_keys=_normalize_values(dedupe_keys),
        )

    def is_empty(self) -> bool:
        return not (self.tags or self.sources or self.sessions or self.kinds or self.dedupe_keys)

    def match(self, alert: Alert) -> bool:
        if self.tags and not set(alert.tags).intersection(self.tags):
            return False

        scalar_dimensions = (
            (self.sources, alert.source),
            (self.sessions, alert.session),
            (self.kinds, alert.kind),
            (self.dedupe_keys, alert.dedupe_key),
        )
        for accepted, value in scalar_dimensions:
            if accepted and (value is None or value not in accepted):
                return False
        return True

    def describe(self) -> str:
        return (
            f"tags={len(self.tags)} sources={len(self.sources)} sessions={len(self.sessions)} "
            f"kinds={len(self.kinds)} dedupe={len(self.dedupe_keys)}"
        )


NO_FILTER = AlertFilter()
