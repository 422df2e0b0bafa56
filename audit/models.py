"""
audit/models.py -- Domain dataclasses for the audit trail.

Pure data containers. AuditLogEntry is built synchronously at decision time
(so its timestamp is the decision time, not the write time) and then handed
to the sink. Entries are never updated; deleted_at exists only so retention
jobs can hide old rows without destroying them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class AuditAction(str, Enum):
    DENIED_ACCESS = "DENIED_ACCESS"
    ALLOWED_ACCESS = "ALLOWED_ACCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    ROLE_VALIDATION_FAILED = "ROLE_VALIDATION_FAILED"
    FEATURE_DENIED = "FEATURE_DENIED"


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditLogEntry:
    """One access decision or authentication event.

    user_id and user_role are None when the caller could not be identified.
    created_by always equals user_id: the actor is the author of its own
    audit record.
    """

    route: str
    action: AuditAction
    reason: str
    user_id: Optional[int] = None
    user_role: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)
    deleted_at: Optional[datetime] = None

    @property
    def created_by(self) -> Optional[int]:
        return self.user_id


@dataclass(frozen=True)
class RankedCount:
    key: str
    count: int


@dataclass(frozen=True)
class AuditSummary:
    """Denial totals for the security-review dashboard."""

    total_denials: int = 0
    counts_by_role: dict[str, int] = field(default_factory=dict)
    counts_by_route: dict[str, int] = field(default_factory=dict)
    top_routes: list[RankedCount] = field(default_factory=list)
    top_roles: list[RankedCount] = field(default_factory=list)
