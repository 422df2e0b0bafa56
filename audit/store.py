"""
audit/store.py -- SQLAlchemy Core persistence for audit log entries.

Pattern: Repository + Data Mapper (same as auth/store.py and catalog/store.py).
AuditStore is the repository; _row_to_entry is the mapper.

The store is deliberately strict: every failure raises. Absorbing failures
is the sink's job (audit/sink.py), so this class stays usable from the CLI
where an error should be visible.

Ordering:
  seq is an autoincrement insertion counter. Newest-first reads order by
  (timestamp DESC, seq DESC) so entries with identical timestamps still come
  back in a deterministic order. Summary reads order by seq ASC so ties in
  the ranking resolve to insertion order.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditAction, AuditLogEntry
from core.db import create_store_engine, now_iso, to_iso
from core.errors import AuditWriteFailure

_MAX_LIMIT = 1000

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(32), nullable=False, unique=True),  # uuid4 hex
    Column("user_id", Integer),  # NULL when the caller was not identified
    Column("user_role", String(30)),  # role at decision time
    Column("route", String(2048), nullable=False),
    Column("action", String(40), nullable=False),
    Column("reason", Text, nullable=False),
    Column("created_by", Integer),  # always equals user_id
    Column("timestamp", String(32), nullable=False),
    Column("deleted_at", String(32)),  # retention soft-delete
    Index("ix_audit_log_action_timestamp", "action", "timestamp"),
    Index("ix_audit_log_user_id", "user_id"),
)


class AuditStore:
    """Repository for AuditLogEntry records.

    Usage:
        store = AuditStore("sqlite:///cornerstone.db")
        store.append(entry)
        recent = store.list_entries(user_id=7, action=AuditAction.DENIED_ACCESS)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, entry: AuditLogEntry) -> None:
        """Insert one entry. Raises AuditWriteFailure on any database error."""
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _audit_log.insert().values(
                        id=entry.id,
                        user_id=entry.user_id,
                        user_role=entry.user_role,
                        route=entry.route,
                        action=entry.action.value,
                        reason=entry.reason,
                        created_by=entry.created_by,
                        timestamp=to_iso(entry.timestamp),
                    )
                )
                conn.commit()
        except SQLAlchemyError as exc:
            raise AuditWriteFailure(f"Failed to append audit entry {entry.id}: {exc}") from exc

    def soft_delete_older_than(self, days: int) -> int:
        """Mark entries older than `days` as deleted. Returns the number of rows marked.

        This is the only UPDATE the table ever sees. Rows already marked are
        left alone so the original deletion time is preserved.
        """
        cutoff = to_iso(datetime.now(timezone.utc) - timedelta(days=days))
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit_log.update()
                .where((_audit_log.c.timestamp < cutoff) & (_audit_log.c.deleted_at.is_(None)))
                .values(deleted_at=now_iso())
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads (soft-deleted rows are always excluded)
    # ------------------------------------------------------------------

    def list_entries(
        self,
        *,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
        route: Optional[str] = None,
        action: Optional[AuditAction] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Return matching entries, newest first. None filters are not applied."""
        if limit <= 0:
            return []
        query = _audit_log.select().where(_audit_log.c.deleted_at.is_(None))
        if user_id is not None:
            query = query.where(_audit_log.c.user_id == user_id)
        if role is not None:
            query = query.where(_audit_log.c.user_role == role)
        if route is not None:
            query = query.where(_audit_log.c.route == route)
        if action is not None:
            query = query.where(_audit_log.c.action == action.value)
        if since is not None:
            query = query.where(_audit_log.c.timestamp >= to_iso(since))
        query = query.order_by(_audit_log.c.timestamp.desc(), _audit_log.c.seq.desc()).limit(min(limit, _MAX_LIMIT))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_in_insertion_order(self, *, action: AuditAction, since: datetime) -> list[AuditLogEntry]:
        """Return every live entry of one action since a cutoff, oldest insert first."""
        query = (
            _audit_log.select()
            .where(
                (_audit_log.c.deleted_at.is_(None))
                & (_audit_log.c.action == action.value)
                & (_audit_log.c.timestamp >= to_iso(since))
            )
            .order_by(_audit_log.c.seq)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self, action: Optional[AuditAction] = None) -> int:
        """Count live entries, optionally for one action."""
        query = select(func.count()).select_from(_audit_log).where(_audit_log.c.deleted_at.is_(None))
        if action is not None:
            query = query.where(_audit_log.c.action == action.value)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        user_id=row.user_id,
        user_role=row.user_role,
        route=row.route,
        action=AuditAction(row.action),
        reason=row.reason,
        timestamp=datetime.fromisoformat(row.timestamp),
        deleted_at=datetime.fromisoformat(row.deleted_at) if row.deleted_at else None,
    )
