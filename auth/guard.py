"""
auth/guard.py -- Server-side, storage-authoritative authorization.

The edge gate (auth/edge.py) only answers "is there a valid token?". This
guard answers "may this identity do this, right now?" and it answers from
storage, never from the token:

  1. required roles are validated (empty or non-Role -> ConfigurationError)
  2. the token is decoded (or already-decoded claims are accepted)
  3. the identity is re-read by id; its stored role is the only role used
  4. the stored role must be a member of the Role enumeration
  5. the stored role must be in the required set (OR semantics)

A role change or soft delete therefore takes effect on the very next request,
even while an old token with a stale role claim is still in circulation.
TokenClaims.advisory_role is not read anywhere in this module.

Every decision produces exactly one audit entry (allows only when the caller
asks for it) handed to the sink without waiting. The guard performs zero
writes to the identities table.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditAction, AuditLogEntry
from audit.sink import AuditSink
from auth.models import AuthorizedIdentity, Identity, TokenClaims
from auth.store import IdentityStore
from auth.tokens import decode_access_token
from core.errors import ConfigurationError, Forbidden, Unauthenticated
from core.roles import DEFAULT_REGISTRY, Role, RoleRegistry, format_roles, parse_role

logger = logging.getLogger("cornerstone.guard")

TokenInput = Union[str, TokenClaims, None]


class AuthorizationGuard:
    """Role and feature checks backed by the identity store and the audit sink.

    Usage:
        guard = AuthorizationGuard(identity_store, audit_sink)
        who = guard.authorize(token, {Role.ADMIN, Role.WRITER}, route="/api/v1/courses")
    """

    def __init__(
        self,
        identities: IdentityStore,
        sink: AuditSink,
        registry: RoleRegistry = DEFAULT_REGISTRY,
        disabled_features: Iterable[str] = (),
    ) -> None:
        self._identities = identities
        self._sink = sink
        self._registry = registry
        self._disabled_features = frozenset(disabled_features)

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public checks
    # ------------------------------------------------------------------

    def authorize(
        self,
        token: TokenInput,
        required_roles: Iterable[Role],
        *,
        route: str,
        log_on_success: bool = False,
    ) -> AuthorizedIdentity:
        """Allow if the identity's current stored role is one of required_roles.

        Raises:
            ConfigurationError: required_roles is empty or holds a non-Role.
            Unauthenticated:    no valid token, or the identity is gone.
            Forbidden:          stored role invalid or not in required_roles.
        """
        required = _validate_required(required_roles, route)
        return self._decide(
            token,
            required,
            route=route,
            log_on_success=log_on_success,
        )

    def authorize_capability(
        self,
        token: TokenInput,
        capability: str,
        *,
        route: str,
        log_on_success: bool = False,
    ) -> AuthorizedIdentity:
        """Like authorize(), with the role set looked up in the registry.

        A capability is a named role set, so a miss is recorded as DENIED_ACCESS
        with the capability name in the reason.
        """
        try:
            required = self._registry.roles_for(capability)
        except KeyError:
            logger.error("Route %s asks for unknown capability %r", route, capability)
            raise ConfigurationError(f"Unknown capability {capability!r}.") from None
        return self._decide(
            token,
            required,
            route=route,
            log_on_success=log_on_success,
            capability=capability,
        )

    def require_feature(self, identity: AuthorizedIdentity, feature: str, *, route: str) -> None:
        """Raise Forbidden if feature is switched off (Settings.disabled_features)."""
        if not self.is_feature_enabled(feature):
            self._record(
                route,
                AuditAction.FEATURE_DENIED,
                f"Feature '{feature}' is disabled",
                user_id=identity.id,
                user_role=identity.role.value,
            )
            logger.info("Feature %s denied for identity %s on %s", feature, identity.id, route)
            raise Forbidden("This feature is not available.")

    def authorize_feature(
        self,
        token: TokenInput,
        capability: str,
        feature: str,
        *,
        route: str,
        log_on_success: bool = False,
    ) -> AuthorizedIdentity:
        """Capability check followed by the feature switch.

        The allow is recorded only once both checks pass.
        """
        identity = self.authorize_capability(token, capability, route=route)
        self.require_feature(identity, feature, route=route)
        if log_on_success:
            self._record(
                route,
                AuditAction.ALLOWED_ACCESS,
                f"Authorized: {identity.role.value} role has access",
                user_id=identity.id,
                user_role=identity.role.value,
            )
        return identity

    def is_feature_enabled(self, feature: str) -> bool:
        return feature not in self._disabled_features

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def _decide(
        self,
        token: TokenInput,
        required: frozenset[Role],
        *,
        route: str,
        log_on_success: bool,
        capability: Optional[str] = None,
    ) -> AuthorizedIdentity:
        identity = self._resolve_identity(token, route)

        role = parse_role(identity.role)
        if role is None:
            self._record(
                route,
                AuditAction.ROLE_VALIDATION_FAILED,
                f"Stored role {identity.role!r} is not a recognised role",
                user_id=identity.id,
                user_role=identity.role,
            )
            logger.warning("Identity %s has unrecognised stored role on %s", identity.id, route)
            raise Forbidden()

        if role not in required:
            reason = f"Insufficient role: {role.value} is not in [{format_roles(required)}]"
            if capability is not None:
                reason += f" (capability {capability})"
            self._record(route, AuditAction.DENIED_ACCESS, reason, user_id=identity.id, user_role=role.value)
            logger.info("Denied %s for identity %s (%s)", route, identity.id, role.value)
            raise Forbidden()

        if log_on_success:
            self._record(
                route,
                AuditAction.ALLOWED_ACCESS,
                f"Authorized: {role.value} role has access",
                user_id=identity.id,
                user_role=role.value,
            )
        return AuthorizedIdentity(id=identity.id, email=identity.email, username=identity.username, role=role)

    def _resolve_identity(self, token: TokenInput, route: str) -> Identity:
        """Return the live stored identity behind token, or raise Unauthenticated."""
        claims = token if isinstance(token, TokenClaims) else decode_access_token(token)
        if claims is None:
            self._record(route, AuditAction.AUTH_FAILURE, "Missing or invalid token")
            raise Unauthenticated()
        if claims.expires_at <= datetime.now(timezone.utc):
            self._record(route, AuditAction.AUTH_FAILURE, "Token expired")
            raise Unauthenticated()

        try:
            identity = self._identities.get_by_id(claims.subject_id)
        except SQLAlchemyError as exc:
            logger.error("Identity lookup failed on %s: %s", route, exc)
            self._record(route, AuditAction.AUTH_FAILURE, "Identity lookup failed")
            raise Unauthenticated() from exc

        if identity is None:
            self._record(route, AuditAction.AUTH_FAILURE, "Token subject does not exist")
            raise Unauthenticated()
        if identity.is_deleted:
            self._record(route, AuditAction.AUTH_FAILURE, "Identity is deleted", user_id=identity.id)
            raise Unauthenticated()
        return identity

    def _record(
        self,
        route: str,
        action: AuditAction,
        reason: str,
        *,
        user_id: Optional[int] = None,
        user_role: Optional[str] = None,
    ) -> None:
        self._sink.record(
            AuditLogEntry(route=route, action=action, reason=reason, user_id=user_id, user_role=user_role)
        )


def _validate_required(required_roles: Iterable[Role], route: str) -> frozenset[Role]:
    if required_roles is None or isinstance(required_roles, (str, bytes)):
        logger.error("Route %s passed %r as required roles", route, required_roles)
        raise ConfigurationError("required_roles must be a collection of Role members.")
    try:
        required = frozenset(required_roles)
    except TypeError:
        raise ConfigurationError("required_roles must be a collection of Role members.") from None
    if not required:
        logger.error("Route %s passed an empty required role set", route)
        raise ConfigurationError("required_roles must not be empty.")
    if not all(isinstance(r, Role) for r in required):
        logger.error("Route %s passed non-Role values in required roles: %r", route, required)
        raise ConfigurationError("required_roles must contain only Role members.")
    return required
