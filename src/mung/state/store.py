from __future__ import annotations

from typing import Iterable, Protocol

from ..filters import AlertFilter
from ..models import Alert


class PersistenceError(RuntimeError):
    """
    写入/删除记录文件失败。对所在操作是致命的，调用方不得继续后续步骤。

    removed：批量删除（clear）中途失败时，失败前已经真正删掉的记录；
    调用方据此撤回这些记录的通知，避免“通知还在、状态已无”。
    """

    def __init__(self, message: str, *, removed: Iterable[Alert] = ()) -> None:
        super().__init__(message)
        self.removed: tuple[Alert, ...] = tuple(removed)


class AlertStore(Protocol):
    """
    记录存储层接口：
    - save/load/remove：单条记录 CRUD（不存在原地更新）
    - list/count/clear：按 AlertFilter 过滤，list 按 created_at 升序

    load/remove 对不存在或损坏的记录返回 None，而不是抛异常。
    """

    def save(self, alert: Alert) -> str: ...

    def load(self, alert_id: str) -> Alert | None: ...

    def remove(self, alert_id: str) -> Alert | None: ...

    def list(self, filters: AlertFilter | None = None) -> list[Alert]: ...

    def count(self, filters: AlertFilter | None = None) -> int: ...

    def clear(self, filters: AlertFilter | None = None) -> list[Alert]: ...
