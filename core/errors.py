"""
core/errors.py -- Closed error taxonomy shared by every layer.

Each class carries only what its HTTP mapping needs (status_code, a stable
machine-readable code, a client-safe message). api/main.py turns these into
the uniform error envelope; web/routes.py turns the auth ones into redirects.

Internal detail (the reason a credential check failed, the exact roles a
route requires) stays on the exception as a separate attribute and goes to
the audit trail -- it is never part of `message`.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
or catalog/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for expected, boundary-handled errors."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or out-of-constraint input. Carries every issue found."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request payload."

    def __init__(self, issues: list[dict], message: str | None = None) -> None:
        super().__init__(message)
        self.issues = issues


class Unauthenticated(AppError):
    """Missing, invalid or expired token, or the identity no longer exists."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class Forbidden(AppError):
    """Authenticated, but the current stored role is not permitted."""

    status_code = 403
    code = "forbidden"
    default_message = "You do not have access to this resource."


class CredentialError(AppError):
    """Login-time mismatch.

    `reason` distinguishes "not_found_or_passwordless" from "invalid_password"
    for the audit trail only. The client-facing message is identical for both
    so responses cannot be used to enumerate accounts.
    """

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid email or password."

    def __init__(self, reason: str) -> None:
        super().__init__()
        self.reason = reason


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class ConfigurationError(AppError):
    """A guard or registry was wired incorrectly (e.g. empty required roles).

    This is a programming error. It maps to a generic 500 and is never turned
    into an "allow".
    """


class AuditWriteFailure(Exception):
    """Raised inside the audit sink when a write fails. Never leaves the sink."""
