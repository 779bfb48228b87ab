import logging
from dataclasses import dataclass, field
from typing import Sequence

import pytest

from mung.filters import AlertFilter
from mung.lifecycle import Lifecycle
from mung.models import Alert
from mung.state.file_store import FileAlertStore
from mung.state.store import PersistenceError


@dataclass
class CallLog:
    calls: list[tuple] = field(default_factory=list)

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


@dataclass
class FakeNotifier:
    """
    纯内存通知渠道：按顺序记录所有调用，fail_on 中的操作会抛异常。
    """

    log: CallLog
    fail_on: frozenset[str] = frozenset()

    def channel(self) -> str:
        return "fake"

    def request_permission(self) -> bool:
        self._record("request_permission")
        return True

    def send(self, alert: Alert) -> None:
        self._record("send", alert.id)

    def remove(self, alert_id: str) -> None:
        self._record("remove", alert_id)

    def remove_many(self, alert_ids: Sequence[str]) -> None:
        self._record("remove_many", tuple(alert_ids))

    def _record(self, name: str, *args) -> None:  # noqa: ANN002
        self.log.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} boom")


@dataclass
class FakeShell:
    log: CallLog
    fail_on: frozenset[str] = frozenset()

    def fire_change_signal(self) -> None:
        self.log.calls.append(("signal",))
        if "signal" in self.fail_on:
            raise RuntimeError("signal boom")

    def execute(self, command: str) -> None:
        self.log.calls.append(("execute", command))


@dataclass
class _ReadOnlyStore(FileAlertStore):
    def save(self, alert: Alert) -> str:  # noqa: ARG002
        raise PersistenceError("disk full")


@dataclass
class _FlakyRemoveStore(FileAlertStore):
    """第 fail_on 次 remove 抛 PersistenceError，其余照常删除。"""

    fail_on: int = 2
    remove_calls: int = 0

    def remove(self, alert_id: str) -> Alert | None:
        self.remove_calls += 1
        if self.remove_calls == self.fail_on:
            raise PersistenceError("permission denied")
        return FileAlertStore.remove(self, alert_id)


def _lifecycle(tmp_path, *, notify_fail=(), shell_fail=(), store=None):  # noqa: ANN001, ANN202
    log = CallLog()
    lc = Lifecycle(
        store=store or FileAlertStore(str(tmp_path)),
        notifications=FakeNotifier(log=log, fail_on=frozenset(notify_fail)),
        shell=FakeShell(log=log, fail_on=frozenset(shell_fail)),
    )
    return lc, log


def test_create_persists_then_notifies_then_signals(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    result = lc.create("Build", "done")

    assert result.ok
    assert lc.count() == 1
    assert lc.list()[0].title == "Build"
    assert lc.list()[0].id == result.alert_id
    assert log.calls == [("request_permission",), ("send", result.alert_id), ("signal",)]


def test_create_requires_title_and_message(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    with pytest.raises(ValueError):
        lc.create("", "m")
    assert log.calls == []
    assert lc.count() == 0


def test_dedupe_replaces_within_same_session(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    first = lc.create("A", "m", session="s1", dedupe_key="k")
    log.calls.clear()
    second = lc.create("B", "m", session="s1", dedupe_key="k")

    lane = lc.list(AlertFilter.of(sessions=["s1"], dedupe_keys=["k"]))
    assert len(lane) == 1
    assert lane[0].title == "B"
    assert second.replaced_ids == (first.alert_id,)
    assert log.calls == [
        ("request_permission",),
        ("remove_many", (first.alert_id,)),
        ("send", second.alert_id),
        ("signal",),
    ]


def test_dedupe_does_not_replace_across_sessions(tmp_path) -> None:  # noqa: ANN001
    lc, _ = _lifecycle(tmp_path)
    lc.create("A", "m", session="s1", dedupe_key="k")
    result = lc.create("B", "m", session="s2", dedupe_key="k")

    assert result.replaced_ids == ()
    assert {a.title for a in lc.list()} == {"A", "B"}


def test_dedupe_without_session_is_global(tmp_path) -> None:  # noqa: ANN001
    lc, _ = _lifecycle(tmp_path)
    lc.create("A", "m", session="s1", dedupe_key="k")
    lc.create("B", "m", session="s2", dedupe_key="k")
    lc.create("Other", "m", dedupe_key="other")
    result = lc.create("C", "m", dedupe_key="k")

    assert len(result.replaced_ids) == 2
    assert {a.title for a in lc.list()} == {"C", "Other"}


def test_create_persistence_failure_aborts_before_notify(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path, store=_ReadOnlyStore(str(tmp_path)))
    result = lc.create("T", "m")

    assert not result.ok
    assert result.alert_id is None
    assert "disk full" in (result.error or "")
    assert "send" not in log.names()
    assert "signal" not in log.names()


def test_create_notify_failure_keeps_record(tmp_path, caplog) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path, notify_fail={"send", "request_permission"}, shell_fail={"signal"})
    caplog.set_level(logging.WARNING, logger="mung.lifecycle")

    result = lc.create("T", "m")

    assert result.ok
    assert lc.count() == 1
    assert log.names() == ["request_permission", "send", "signal"]
    assert "collaborator call failed: op=send" in caplog.text
    assert "collaborator call failed: op=fire_change_signal" in caplog.text


def test_dismiss_runs_action_then_removes_notification(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    alert_id = lc.create("T", "m", on_click="open .").alert_id
    log.calls.clear()

    result = lc.dismiss(alert_id, run=True)

    assert result.found and result.ran_action
    assert lc.count() == 0
    assert log.calls == [("execute", "open ."), ("remove", alert_id), ("signal",)]


def test_dismiss_without_run_skips_action(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    alert_id = lc.create("T", "m", on_click="open .").alert_id
    log.calls.clear()

    result = lc.dismiss(alert_id)

    assert result.found and not result.ran_action
    assert "execute" not in log.names()


def test_dismiss_run_without_on_click_does_not_execute(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    alert_id = lc.create("T", "m").alert_id
    log.calls.clear()

    result = lc.dismiss(alert_id, run=True)
    assert result.found and not result.ran_action
    assert log.calls == [("remove", alert_id), ("signal",)]


def test_dismiss_unknown_id_makes_no_collaborator_calls(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    lc.create("Keep", "m")
    log.calls.clear()

    result = lc.dismiss("nonexistent")

    assert not result.found
    assert not result.ok
    assert log.calls == []
    assert lc.count() == 1


def test_activate_shares_the_dismiss_path(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    alert_id = lc.create("T", "m", on_click="open .").alert_id
    log.calls.clear()

    result = lc.activate(alert_id)

    assert result.found and result.ran_action
    assert log.calls == [("execute", "open ."), ("remove", alert_id), ("signal",)]


def test_clear_batches_notification_removal_and_signals_once(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    a = lc.create("A", "m").alert_id
    b = lc.create("B", "m").alert_id
    log.calls.clear()

    result = lc.clear()

    assert result.count == 2
    assert set(result.removed_ids) == {a, b}
    assert lc.count() == 0
    assert log.names() == ["remove_many", "signal"]
    assert set(log.calls[0][1]) == {a, b}


def test_clear_scoped_by_filters(tmp_path) -> None:  # noqa: ANN001
    lc, _ = _lifecycle(tmp_path)
    lc.create("A", "m", source="x", kind="update")
    lc.create("B", "m", source="x", kind="action")
    lc.create("C", "m", source="y", kind="update")

    f = AlertFilter.of(sources=["x"], kinds=["update"])
    expected = {a.id for a in lc.list(f)}
    result = lc.clear(f)

    assert set(result.removed_ids) == expected
    assert {a.title for a in lc.list()} == {"B", "C"}


def test_list_and_count_have_no_side_effects(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    lc.create("A", "m", tags=["ci"])
    lc.create("B", "m", tags=["dev"])
    lc.create("C", "m", tags=["ci", "dev"])
    log.calls.clear()

    assert {a.title for a in lc.list(AlertFilter.of(tags=["ci", "dev"]))} == {"A", "B", "C"}
    assert {a.title for a in lc.list(AlertFilter.of(tags=["ci"]))} == {"A", "C"}
    assert lc.count(AlertFilter.of(tags=["dev"])) == 2
    assert log.calls == []


def test_dismiss_run_with_blank_on_click_reports_no_action(tmp_path) -> None:  # noqa: ANN001
    lc, log = _lifecycle(tmp_path)
    alert_id = lc.create("T", "m", on_click="   ").alert_id
    log.calls.clear()

    result = lc.dismiss(alert_id, run=True)

    assert result.found and not result.ran_action
    assert "execute" not in log.names()


def test_clear_partial_failure_still_retracts_removed(tmp_path) -> None:  # noqa: ANN001
    store = _FlakyRemoveStore(str(tmp_path), fail_on=2)
    lc, log = _lifecycle(tmp_path, store=store)
    for title in ("A", "B", "C"):
        lc.create(title, "m")
    log.calls.clear()

    result = lc.clear()

    assert not result.ok
    assert "permission denied" in (result.error or "")
    assert result.count == 2
    assert lc.count() == 1
    assert log.names() == ["remove_many", "signal"]
    assert set(log.calls[0][1]) == set(result.removed_ids)
    assert {a.id for a in lc.list()}.isdisjoint(result.removed_ids)


def test_create_dedupe_partial_failure_retracts_and_aborts(tmp_path) -> None:  # noqa: ANN001
    store = _FlakyRemoveStore(str(tmp_path), fail_on=1)
    lc, log = _lifecycle(tmp_path, store=store)
    lc.create("A", "m", session="s1", dedupe_key="k")
    lc.create("B", "m", session="s2", dedupe_key="k")
    log.calls.clear()

    result = lc.create("C", "m", dedupe_key="k")

    assert not result.ok
    assert result.alert_id is None
    assert len(result.replaced_ids) == 1
    assert log.calls == [
        ("request_permission",),
        ("remove_many", result.replaced_ids),
        ("signal",),
    ]
    assert {a.title for a in lc.list()} <= {"A", "B"}
    assert lc.count() == 1


def test_clear_trace_names_scope(tmp_path, caplog) -> None:  # noqa: ANN001
    lc, _ = _lifecycle(tmp_path)
    lc.create("A", "m", tags=["ci"])
    caplog.set_level(logging.DEBUG, logger="mung.lifecycle")

    lc.clear(AlertFilter.of(tags=["ci"]))
    lc.clear()

    assert "clear removed=1 scope=tags=1" in caplog.text
    assert "clear removed=0 scope=all" in caplog.text
