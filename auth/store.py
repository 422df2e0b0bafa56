"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper (same as audit/store.py and catalog/store.py).
IdentityStore is the repository; _row_to_identity is the mapper.
Route, guard and verifier code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are stored lower-cased and looked up lower-cased, so
  "Alice@Example.com" and "alice@example.com" are the same account.

  Identities are never hard-deleted. soft_delete() stamps deleted_at; the
  guard and the credential verifier treat a stamped row as absent.

  Demotions and deletes can be made conditional on another live ADMIN
  existing (keep_an_admin=True). The check and the write are one UPDATE
  statement, so two concurrent requests cannot both remove an admin.

  The role column is plain text. The store does not interpret it -- the
  guard validates the stored value against the Role enumeration on every
  decision, so a row edited outside the application cannot grant access.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Identity
from core.db import create_store_engine, now_iso
from core.roles import Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # lower-cased
    Column("username", String(50), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL = no password login
    Column("role", String(30), nullable=False, server_default=Role.CUSTOMER.value),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("level", Integer, nullable=False, server_default="1"),
    Column("points", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("deleted_at", String(32)),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity entities.

    Usage:
        store = IdentityStore("sqlite:///cornerstone.db")
        store.create_identity(Identity(email="a@example.com", username="a", hashed_password=hash_password("...")))
        identity = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username already
        exists. The register route turns that into a 409.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.insert().values(
                    email=identity.email.strip().lower(),
                    username=identity.username,
                    hashed_password=identity.hashed_password,
                    role=identity.role,
                    is_verified=1 if identity.is_verified else 0,
                    level=identity.level,
                    points=identity.points,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_role(self, identity_id: int, role: Role, *, keep_an_admin: bool = False) -> bool:
        """Set the role of a live identity.

        Returns False if the identity is missing or deleted, or, with
        keep_an_admin, if the change would leave no live ADMIN.
        """
        condition = (_identities.c.id == identity_id) & (_identities.c.deleted_at.is_(None))
        if keep_an_admin and role is not Role.ADMIN:
            condition = condition & _leaves_an_admin(identity_id)
        with self.engine.begin() as conn:
            result = conn.execute(_identities.update().where(condition).values(role=role.value))
        return result.rowcount > 0

    def soft_delete(self, identity_id: int, *, keep_an_admin: bool = False) -> bool:
        """Stamp deleted_at. Returns False if not found or already deleted.

        With keep_an_admin, also returns False when the target is the last
        live ADMIN.
        """
        condition = (_identities.c.id == identity_id) & (_identities.c.deleted_at.is_(None))
        if keep_an_admin:
            condition = condition & _leaves_an_admin(identity_id)
        with self.engine.begin() as conn:
            result = conn.execute(_identities.update().where(condition).values(deleted_at=now_iso()))
        return result.rowcount > 0

    def update_last_login(self, identity_id: int) -> None:
        """Stamp the current UTC timestamp as last_login after a successful login."""
        with self.engine.connect() as conn:
            conn.execute(_identities.update().where(_identities.c.id == identity_id).values(last_login=now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, identity_id: int) -> Identity | None:
        """Look up an identity by primary key, deleted or not. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email.strip().lower())).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self, include_deleted: bool = False) -> list[Identity]:
        """Return identities ordered by id. Admin-only operation."""
        query = _identities.select()
        if not include_deleted:
            query = query.where(_identities.c.deleted_at.is_(None))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_identities.c.id)).fetchall()
        return [_row_to_identity(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def _leaves_an_admin(identity_id: int):
    # Aliased so the subquery is not correlated to the table being updated.
    others = _identities.alias("other_admins")
    other_admins = (
        select(func.count())
        .select_from(others)
        .where(
            (others.c.role == Role.ADMIN.value)
            & (others.c.deleted_at.is_(None))
            & (others.c.id != identity_id)
        )
        .scalar_subquery()
    )
    return or_(_identities.c.role != Role.ADMIN.value, other_admins > 0)


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        role=row.role,
        is_verified=bool(row.is_verified),
        level=row.level,
        points=row.points,
        created_at=row.created_at,
        last_login=row.last_login,
        deleted_at=row.deleted_at,
    )
