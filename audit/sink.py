"""
audit/sink.py -- Fire-and-forget audit writer with failure-safe reads.

The guard and the credential verifier call AuditSink.record() on the request
path. record() never blocks on the database and never raises: entries are
appended to a bounded in-memory queue and persisted by one background writer
thread. When the queue is full the OLDEST pending entry is dropped so the most
recent decisions are kept.

A write that fails is logged (logger "cornerstone.audit") and discarded. The
access decision it describes has already been returned to the caller and is
never changed by the outcome of its audit write.

Reads go straight to the store on the caller's thread. Any failure yields an
empty result (or an all-zero summary) plus an error log line, so a broken
audit table cannot take down the admin dashboard.

Lifecycle (owned by the API lifespan in api/main.py):
    sink = AuditSink(AuditStore(url), max_queue=1000)
    sink.start()
    ...
    sink.flush()   # wait for pending writes (tests, shutdown)
    sink.close()
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Optional

from audit.models import AuditAction, AuditLogEntry, AuditSummary, RankedCount
from audit.store import AuditStore

logger = logging.getLogger("cornerstone.audit")

DEFAULT_WINDOW_DAYS = 30
DEFAULT_LIST_LIMIT = 100
TOP_N = 10
UNKNOWN_ROLE = "UNKNOWN"


def window_start(days: int) -> datetime:
    """Start of a look-back window of `days` days ending now (UTC)."""
    return datetime.now(timezone.utc) - timedelta(days=days)


def _ranked(counts: dict[str, int]) -> list[RankedCount]:
    # sorted() is stable: equal counts keep first-seen order.
    ordered = sorted(counts.items(), key=lambda kv: -kv[1])
    return [RankedCount(key=k, count=v) for k, v in ordered[:TOP_N]]


def summarize_entries(entries: list[AuditLogEntry]) -> AuditSummary:
    """Count denials by role and route. entries must be in insertion order."""
    by_role: dict[str, int] = {}
    by_route: dict[str, int] = {}
    for entry in entries:
        role = entry.user_role or UNKNOWN_ROLE
        by_role[role] = by_role.get(role, 0) + 1
        by_route[entry.route] = by_route.get(entry.route, 0) + 1

    return AuditSummary(
        total_denials=len(entries),
        counts_by_role=by_role,
        counts_by_route=by_route,
        top_routes=_ranked(by_route),
        top_roles=_ranked(by_role),
    )


class AuditSink:
    """Bounded, drop-oldest queue in front of an AuditStore."""

    def __init__(self, store: AuditStore, max_queue: int = 1000) -> None:
        if max_queue < 1:
            raise ValueError("max_queue must be at least 1")
        self._store = store
        self._queue: deque[AuditLogEntry] = deque(maxlen=max_queue)
        self._cond = threading.Condition()
        self._in_flight = 0
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0
        self.failed = 0

    @property
    def store(self) -> AuditStore:
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._cond:
            if self._thread is not None:
                return
            self._closed = False
            self._thread = threading.Thread(target=self._run, name="audit-writer", daemon=True)
            self._thread.start()
        logger.debug("Audit writer started (queue size %d)", self._queue.maxlen)

    def flush(self, timeout: float = 5.0) -> bool:
        """Block until every queued entry has been attempted. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._queue and self._in_flight == 0, timeout)

    def close(self, timeout: float = 5.0) -> None:
        """Stop accepting entries, drain what is queued, and stop the writer."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            self._thread = None
        if self._queue:
            logger.warning("Audit writer stopped with %d entries unwritten", len(self._queue))

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def record(self, entry: AuditLogEntry) -> None:
        """Enqueue one entry. Never raises and never waits on storage."""
        try:
            with self._cond:
                if self._closed:
                    logger.warning("Audit sink closed; dropping %s for %s", entry.action.value, entry.route)
                    return
                if len(self._queue) == self._queue.maxlen:
                    self.dropped += 1
                    logger.warning("Audit queue full; dropping oldest pending entry")
                self._queue.append(entry)
                self._cond.notify_all()
        except Exception:
            logger.exception("Failed to enqueue audit entry for %s", entry.route)

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._closed:
                    self._cond.wait()
                if not self._queue:
                    return
                entry = self._queue.popleft()
                self._in_flight += 1
            try:
                self._write(entry)
            finally:
                with self._cond:
                    self._in_flight -= 1
                    self._cond.notify_all()

    def _write(self, entry: AuditLogEntry) -> None:
        try:
            self._store.append(entry)
        except Exception as exc:
            self.failed += 1
            logger.error(
                "Audit write failed (%s %s user=%s): %s",
                entry.action.value,
                entry.route,
                entry.user_id,
                exc,
            )

    # ------------------------------------------------------------------
    # Read side (failure-safe)
    # ------------------------------------------------------------------

    def list_by_user(
        self,
        user_id: int,
        since_days: int = DEFAULT_WINDOW_DAYS,
        action: Optional[AuditAction] = AuditAction.DENIED_ACCESS,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[AuditLogEntry]:
        return self._safe_list(user_id=user_id, action=action, since=window_start(since_days), limit=limit)

    def list_by_role(
        self,
        role: str,
        since_days: int = DEFAULT_WINDOW_DAYS,
        action: Optional[AuditAction] = AuditAction.DENIED_ACCESS,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[AuditLogEntry]:
        return self._safe_list(role=role, action=action, since=window_start(since_days), limit=limit)

    def list_by_route(
        self,
        route: str,
        since_days: int = DEFAULT_WINDOW_DAYS,
        action: Optional[AuditAction] = AuditAction.DENIED_ACCESS,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[AuditLogEntry]:
        return self._safe_list(route=route, action=action, since=window_start(since_days), limit=limit)

    def summarize(self, since_days: int = DEFAULT_WINDOW_DAYS) -> AuditSummary:
        """Aggregate DENIED_ACCESS entries in the window into counts and top-10 rankings."""
        try:
            entries = self._store.list_in_insertion_order(
                action=AuditAction.DENIED_ACCESS, since=window_start(since_days)
            )
        except Exception as exc:
            logger.error("Audit summary read failed: %s", exc)
            return AuditSummary()
        return summarize_entries(entries)

    def _safe_list(self, **filters) -> list[AuditLogEntry]:
        try:
            return self._store.list_entries(**filters)
        except Exception as exc:
            logger.error("Audit read failed (%s): %s", filters, exc)
            return []
