"""
tests/test_audit_sink.py -- Tests for the fire-and-forget audit sink.

Covers:
  - record() returns immediately and the background writer persists entries
  - a failing store never propagates out of record(); failures are counted
  - drop-oldest overflow when the writer is not running
  - read failures yield [] / an all-zero summary
  - summary counts, UNKNOWN role bucket, top-10 cut and tie order
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from audit.models import AuditAction, AuditLogEntry, AuditSummary
from audit.sink import AuditSink
from audit.store import AuditStore
from core.errors import AuditWriteFailure


def _denial(route: str = "/api/v1/courses", role: str | None = "CUSTOMER", user_id: int | None = 1) -> AuditLogEntry:
    return AuditLogEntry(
        route=route,
        action=AuditAction.DENIED_ACCESS,
        reason="Insufficient role",
        user_id=user_id,
        user_role=role,
    )


@pytest.fixture()
def store(tmp_path) -> AuditStore:
    s = AuditStore(f"sqlite:///{tmp_path / 'audit.db'}")
    yield s
    s.close()


@pytest.fixture()
def sink(store: AuditStore) -> AuditSink:
    s = AuditSink(store)
    s.start()
    yield s
    s.close()


class TestWriteSide:
    def test_entries_are_persisted_by_the_writer(self, store, sink) -> None:
        sink.record(_denial())
        sink.record(_denial(route="/api/v1/products"))
        assert sink.flush(timeout=5.0)
        assert store.count(AuditAction.DENIED_ACCESS) == 2

    def test_failing_store_never_propagates(self, caplog) -> None:
        broken = MagicMock()
        broken.append.side_effect = AuditWriteFailure("database is locked")
        sink = AuditSink(broken)
        sink.start()
        try:
            with caplog.at_level(logging.ERROR, logger="cornerstone.audit"):
                sink.record(_denial())
                sink.record(_denial())
                assert sink.flush(timeout=5.0)
        finally:
            sink.close()

        assert broken.append.call_count == 2
        assert sink.failed == 2
        assert "Audit write failed" in caplog.text

    def test_each_entry_is_attempted_once(self) -> None:
        broken = MagicMock()
        broken.append.side_effect = RuntimeError("boom")
        sink = AuditSink(broken)
        sink.start()
        sink.record(_denial())
        sink.flush(timeout=5.0)
        sink.close()
        assert broken.append.call_count == 1

    def test_drop_oldest_on_overflow(self) -> None:
        target = MagicMock()
        sink = AuditSink(target, max_queue=2)
        first, second, third = _denial(route="/a"), _denial(route="/b"), _denial(route="/c")

        sink.record(first)
        sink.record(second)
        sink.record(third)
        assert sink.dropped == 1

        sink.start()
        assert sink.flush(timeout=5.0)
        sink.close()
        written = [c.args[0].route for c in target.append.call_args_list]
        assert written == ["/b", "/c"]

    def test_record_after_close_is_dropped_quietly(self) -> None:
        target = MagicMock()
        sink = AuditSink(target)
        sink.start()
        sink.close()
        sink.record(_denial())
        target.append.assert_not_called()

    def test_queue_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            AuditSink(MagicMock(), max_queue=0)


class TestReadSide:
    def test_list_by_user_filters_action_and_user(self, sink) -> None:
        sink.record(_denial(user_id=7))
        sink.record(_denial(user_id=8))
        sink.record(
            AuditLogEntry(route="/x", action=AuditAction.ALLOWED_ACCESS, reason="ok", user_id=7, user_role="ADMIN")
        )
        sink.flush()

        denied = sink.list_by_user(7)
        assert [e.user_id for e in denied] == [7]
        assert denied[0].action is AuditAction.DENIED_ACCESS

        everything = sink.list_by_user(7, action=None)
        assert len(everything) == 2

    def test_list_by_role_and_route(self, sink) -> None:
        sink.record(_denial(route="/api/v1/courses", role="LEARNER"))
        sink.record(_denial(route="/api/v1/products", role="CUSTOMER"))
        sink.flush()
        assert [e.route for e in sink.list_by_role("LEARNER")] == ["/api/v1/courses"]
        assert [e.user_role for e in sink.list_by_route("/api/v1/products")] == ["CUSTOMER"]

    def test_read_failure_returns_empty(self, caplog) -> None:
        broken = MagicMock()
        broken.list_entries.side_effect = RuntimeError("no such table")
        broken.list_in_insertion_order.side_effect = RuntimeError("no such table")
        sink = AuditSink(broken)

        with caplog.at_level(logging.ERROR, logger="cornerstone.audit"):
            assert sink.list_by_user(1) == []
            assert sink.list_by_role("ADMIN") == []
            assert sink.list_by_route("/x") == []
            assert sink.summarize() == AuditSummary()
        assert "Audit read failed" in caplog.text


class TestSummary:
    def test_counts_and_unknown_role(self, sink) -> None:
        sink.record(_denial(route="/a", role="CUSTOMER"))
        sink.record(_denial(route="/a", role=None, user_id=None))
        sink.record(_denial(route="/b", role="CUSTOMER"))
        sink.flush()

        summary = sink.summarize()
        assert summary.total_denials == 3
        assert summary.counts_by_role == {"CUSTOMER": 2, "UNKNOWN": 1}
        assert summary.counts_by_route == {"/a": 2, "/b": 1}
        assert summary.top_routes[0].key == "/a"

    def test_ties_keep_insertion_order(self, sink) -> None:
        for route in ("/first", "/second", "/third", "/second", "/first", "/third"):
            sink.record(_denial(route=route))
        sink.flush()
        assert [r.key for r in sink.summarize().top_routes] == ["/first", "/second", "/third"]

    def test_top_lists_hold_at_most_ten(self, sink) -> None:
        for i in range(12):
            sink.record(_denial(route=f"/r{i}"))
        sink.flush()
        summary = sink.summarize()
        assert len(summary.top_routes) == 10
        assert len(summary.counts_by_route) == 12
