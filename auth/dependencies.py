"""
auth/dependencies.py -- FastAPI Depends() factories around the guard.

Routes declare what they need; the guard (app.state.guard) decides:

    @router.post("/courses")
    def create_course(request: Request, who=Depends(require_roles(Role.ADMIN, Role.WRITER))): ...

    @router.post("/products")
    def create_product(request: Request, who=Depends(require_capability("catalog:manage"))): ...

Dependencies resolve before the handler body runs, so an unauthorized caller
is rejected before its payload is parsed or validated.

ALLOWED_ACCESS logging: `sensitive=None` (default) means "log the allow when
the request method changes state" (anything but GET/HEAD/OPTIONS). Pass
sensitive=True to log allows on reads too (used by audit-review routes).

The token is taken from the access_token cookie, then from an
Authorization: Bearer header (auth.tokens.extract_token).

Layer rule: no imports from web/ or catalog/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Request

from auth.guard import AuthorizationGuard
from auth.models import AuthorizedIdentity
from auth.tokens import extract_token
from core.roles import Role

_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def get_guard(request: Request) -> AuthorizationGuard:
    return request.app.state.guard


def _log_allow(request: Request, sensitive: Optional[bool]) -> bool:
    if sensitive is not None:
        return sensitive
    return request.method not in _SAFE_METHODS


def require_roles(*roles: Role, sensitive: Optional[bool] = None) -> Callable[[Request], AuthorizedIdentity]:
    """Dependency factory: the caller's stored role must be one of `roles`.

    The role tuple is passed to the guard unchanged, so an empty call
    (require_roles()) fails with ConfigurationError on first use rather than
    allowing everyone.
    """

    def dependency(request: Request) -> AuthorizedIdentity:
        return get_guard(request).authorize(
            extract_token(request),
            roles,
            route=request.url.path,
            log_on_success=_log_allow(request, sensitive),
        )

    return dependency


def require_capability(name: str, sensitive: Optional[bool] = None) -> Callable[[Request], AuthorizedIdentity]:
    """Dependency factory: the caller's stored role must satisfy capability `name`."""

    def dependency(request: Request) -> AuthorizedIdentity:
        return get_guard(request).authorize_capability(
            extract_token(request),
            name,
            route=request.url.path,
            log_on_success=_log_allow(request, sensitive),
        )

    return dependency


def require_feature(
    feature: str, capability: str, sensitive: Optional[bool] = None
) -> Callable[[Request], AuthorizedIdentity]:
    """Dependency factory: capability check, then the feature switch."""

    def dependency(request: Request) -> AuthorizedIdentity:
        return get_guard(request).authorize_feature(
            extract_token(request),
            capability,
            feature,
            route=request.url.path,
            log_on_success=_log_allow(request, sensitive),
        )

    return dependency


# Any live identity, whatever its role.
require_identity = require_roles(*Role)
