"""
auth/verifier.py -- Email/password login with timing equalization.

CredentialVerifier.login() is the only place a password is checked. It runs
once per login; the resulting VerifiedIdentity seeds a new token.

Order of operations:
  1. Validate the payload against the login schema. A malformed payload
     raises ValidationError before storage is touched.
  2. Look up the identity by lower-cased email.
  3. Always run bcrypt -- against the stored digest, or against a dummy
     digest when there is nothing to compare with -- so response time does
     not reveal whether the email is registered.
  4. On success stamp last_login and return the role currently in storage.

Every CredentialError carries an internal reason for the audit trail. The
client sees the same message for all of them.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

import logging
from typing import Any

from audit.models import AuditAction, AuditLogEntry
from audit.sink import AuditSink
from auth.models import VerifiedIdentity
from auth.store import IdentityStore
from auth.tokens import burn_dummy_hash, verify_password
from core.errors import CredentialError, Forbidden
from core.roles import parse_role
from core.schemas import LOGIN
from core.validation import Schema

logger = logging.getLogger("cornerstone.auth")

NOT_FOUND_OR_PASSWORDLESS = "not_found_or_passwordless"
INVALID_PASSWORD = "invalid_password"


class CredentialVerifier:
    """Usage:
    verifier = CredentialVerifier(identity_store, audit_sink)
    who = verifier.login({"email": "a@example.com", "password": "..."})
    """

    def __init__(self, identities: IdentityStore, sink: AuditSink, schema: Schema = LOGIN) -> None:
        self._identities = identities
        self._sink = sink
        self._schema = schema

    def login(self, raw: Any, *, route: str = "/api/v1/auth/login") -> VerifiedIdentity:
        """Verify credentials and return the identity behind them.

        Raises:
            ValidationError: payload fails the login schema (no lookup made).
            CredentialError: unknown email, deleted or password-less identity,
                             or wrong password.
            Forbidden:       credentials are right but the stored role is not
                             a recognised role.
        """
        creds = self._schema.check(raw)

        identity = self._identities.get_by_email(creds.email)
        if identity is None or identity.is_deleted or identity.hashed_password is None:
            burn_dummy_hash(creds.password)
            self._fail(route, NOT_FOUND_OR_PASSWORDLESS, identity.id if identity else None)

        if not verify_password(creds.password, identity.hashed_password):
            self._fail(route, INVALID_PASSWORD, identity.id)

        role = parse_role(identity.role)
        if role is None:
            self._sink.record(
                AuditLogEntry(
                    route=route,
                    action=AuditAction.ROLE_VALIDATION_FAILED,
                    reason=f"Stored role {identity.role!r} is not a recognised role",
                    user_id=identity.id,
                    user_role=identity.role,
                )
            )
            raise Forbidden()

        self._identities.update_last_login(identity.id)
        logger.info("Login succeeded for identity %s", identity.id)
        return VerifiedIdentity(
            id=identity.id,
            email=identity.email,
            display_name=identity.username,
            role=role,
        )

    def _fail(self, route: str, reason: str, user_id: int | None) -> None:
        self._sink.record(
            AuditLogEntry(
                route=route,
                action=AuditAction.AUTH_FAILURE,
                reason=f"Login failed: {reason}",
                user_id=user_id,
            )
        )
        logger.info("Login failed (%s)", reason)
        raise CredentialError(reason)
