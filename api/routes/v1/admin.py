"""
api/routes/v1/admin.py -- Identity management and audit review (ADMIN).

Routes:
  GET    /api/v1/admin/users                  -- list live identities
  PATCH  /api/v1/admin/users/{id}/role        -- change an identity's role
  DELETE /api/v1/admin/users/{id}             -- soft-delete an identity
  GET    /api/v1/admin/audit/users/{id}       -- entries for one identity
  GET    /api/v1/admin/audit/roles/{role}     -- denials by role
  GET    /api/v1/admin/audit/routes?route=... -- denials on one route
  GET    /api/v1/admin/audit/summary          -- denial totals and top-10s

Security:
  Identity routes use capability users:manage; audit routes use audit:review.
  Audit reads are allow-logged too (sensitive=True), so every look at the
  trail is itself on the trail.
  Role changes and deletes refuse to remove the last live ADMIN (checked in
  the same UPDATE that writes the change), and an admin cannot delete their
  own identity.
  A role change takes effect on the target's next request: the guard reads
  the stored role, so outstanding tokens carry no elevated or stale rights.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.body import json_body, schema
from api.models import AuditEntryOut, AuditSummaryOut, IdentityAdminRow, success_response
from audit.models import AuditAction
from audit.sink import AuditSink
from auth.dependencies import require_capability
from auth.models import AuthorizedIdentity
from auth.store import IdentityStore
from core.errors import NotFoundError, ValidationError

logger = logging.getLogger("cornerstone.api")

router = APIRouter()

_manage_users = require_capability("users:manage")
_review_audit = require_capability("audit:review", sensitive=True)

_Days = Query(30, ge=1, le=365, description="Look-back window in days.")
_Limit = Query(100, ge=1, le=1000, description="Maximum entries returned.")


# ---------------------------------------------------------------------------
# Identity management
# ---------------------------------------------------------------------------


def _refuse_last_admin(store: IdentityStore, identity_id: int, path: list, message: str) -> None:
    """Explain a conditional write that matched no row."""
    current = store.get_by_id(identity_id)
    if current is None or current.is_deleted:
        raise NotFoundError("Identity not found.")
    raise ValidationError([{"path": path, "message": message, "code": "last_admin"}])


@router.get("/admin/users")
def list_identities(request: Request, who: AuthorizedIdentity = Depends(_manage_users)) -> dict:
    store: IdentityStore = request.app.state.identity_store
    return success_response([IdentityAdminRow.from_identity(i) for i in store.list_identities()])


@router.patch("/admin/users/{identity_id}/role")
def update_role(
    request: Request,
    identity_id: int,
    who: AuthorizedIdentity = Depends(_manage_users),
    body: Any = Depends(json_body),
) -> dict:
    """Set the target's role. The change applies from the target's next request."""
    data = schema(request, "role_update").check(body)
    store: IdentityStore = request.app.state.identity_store

    if not store.update_role(identity_id, data.role, keep_an_admin=True):
        _refuse_last_admin(store, identity_id, ["role"], "Cannot demote the last active admin")

    logger.info("Identity %s role set to %s by identity %s", identity_id, data.role.value, who.id)
    updated = store.get_by_id(identity_id)
    return success_response(IdentityAdminRow.from_identity(updated))


@router.delete("/admin/users/{identity_id}")
def delete_identity(request: Request, identity_id: int, who: AuthorizedIdentity = Depends(_manage_users)) -> dict:
    """Soft-delete the target. Its tokens stop working on the next request."""
    store: IdentityStore = request.app.state.identity_store

    if identity_id == who.id:
        raise ValidationError([{"path": [], "message": "You cannot delete your own account", "code": "self_delete"}])

    if not store.soft_delete(identity_id, keep_an_admin=True):
        _refuse_last_admin(store, identity_id, [], "Cannot delete the last active admin")

    logger.info("Identity %s soft-deleted by identity %s", identity_id, who.id)
    return success_response({"id": identity_id, "deleted": True})


# ---------------------------------------------------------------------------
# Audit review
# ---------------------------------------------------------------------------


@router.get("/admin/audit/users/{user_id}")
def audit_by_user(
    request: Request,
    user_id: int,
    who: AuthorizedIdentity = Depends(_review_audit),
    days: int = _Days,
    limit: int = _Limit,
    action: Optional[AuditAction] = Query(AuditAction.DENIED_ACCESS),
) -> dict:
    sink: AuditSink = request.app.state.audit_sink
    entries = sink.list_by_user(user_id, since_days=days, action=action, limit=limit)
    return success_response([AuditEntryOut.from_entry(e) for e in entries])


@router.get("/admin/audit/roles/{role}")
def audit_by_role(
    request: Request,
    role: str,
    who: AuthorizedIdentity = Depends(_review_audit),
    days: int = _Days,
    limit: int = _Limit,
) -> dict:
    sink: AuditSink = request.app.state.audit_sink
    entries = sink.list_by_role(role, since_days=days, limit=limit)
    return success_response([AuditEntryOut.from_entry(e) for e in entries])


@router.get("/admin/audit/routes")
def audit_by_route(
    request: Request,
    who: AuthorizedIdentity = Depends(_review_audit),
    route: str = Query(..., min_length=1, max_length=2048),
    days: int = _Days,
    limit: int = _Limit,
) -> dict:
    sink: AuditSink = request.app.state.audit_sink
    entries = sink.list_by_route(route, since_days=days, limit=limit)
    return success_response([AuditEntryOut.from_entry(e) for e in entries])


@router.get("/admin/audit/summary")
def audit_summary(
    request: Request,
    who: AuthorizedIdentity = Depends(_review_audit),
    days: int = _Days,
) -> dict:
    sink: AuditSink = request.app.state.audit_sink
    return success_response(AuditSummaryOut.from_summary(sink.summarize(since_days=days), since_days=days))
