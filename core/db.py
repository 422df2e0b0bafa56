"""
core/db.py -- Engine construction shared by every SQLAlchemy-backed store.

Each store (auth/store.py, audit/store.py, catalog/store.py) owns its own
tables and its own Engine, built here so SQLite tuning is applied the same
way everywhere. Swapping SQLite for PostgreSQL is a DATABASE_URL change.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes -- the audit writer thread appends while request threads
    read. Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    """Render a timestamp as fixed-width UTC ISO 8601.

    Fixed width (always microseconds, always +00:00) keeps stored strings
    lexicographically ordered, so range filters and ORDER BY on the text
    column agree with chronological order.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
