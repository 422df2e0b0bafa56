"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in catalog/models.py and audit/models.py -- dataclasses own domain shape;
stores, the guard and routes do the work.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from core.roles import Role


@dataclass
class Identity:
    """A registered principal as stored in the identities table.

    role is kept as the raw stored string. The guard converts it with
    core.roles.parse_role on every decision, so a row holding a value outside
    the enumeration is denied instead of crashing the mapper.

    hashed_password is None for identities created through a non-password
    channel; they cannot log in with the credential verifier.

    level and points are gamification counters with no security meaning.
    deleted_at is the soft-delete flag: identities are never hard-deleted.
    """

    email: str
    username: str
    role: str = Role.CUSTOMER.value
    id: int | None = None
    hashed_password: str | None = None  # None = no password login
    is_verified: bool = False
    level: int = 1
    points: int = 0
    created_at: str | None = None
    last_login: str | None = None
    deleted_at: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded identity token. A plain data carrier.

    advisory_role is the role at the time the token was issued. It is a
    display cache (e.g. for the navigation bar) and is never consulted for an
    access decision -- the guard re-reads the stored role by subject_id.
    """

    subject_id: int
    email: str
    expires_at: datetime
    advisory_role: str | None = None


@dataclass(frozen=True)
class AuthorizedIdentity:
    """What the guard hands to a route after an allow decision.

    role is the value read from storage during that decision.
    """

    id: int
    email: str
    username: str
    role: Role


@dataclass(frozen=True)
class VerifiedIdentity:
    """Result of a successful password login; used to seed a new token."""

    id: int
    email: str
    display_name: str
    role: Role
