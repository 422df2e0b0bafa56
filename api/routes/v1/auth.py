"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; sets JWT cookie
  POST /api/v1/auth/register  -- self-service signup; always role CUSTOMER
  POST /api/v1/auth/logout    -- clears cookie; 200
  GET  /api/v1/auth/me        -- current identity (any role)

Security:
  POST /login and POST /register are rate-limited (Settings.login_rate_limit).
  CredentialVerifier.login() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  Register ignores any role in the payload; elevation is an ADMIN action.
  /me reports the role read from storage on this request, not the token's claim.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.body import json_body, schema
from api.limiter import limiter, login_limit
from api.models import IdentityOut, LoginData, success_response
from auth.dependencies import require_identity
from auth.models import AuthorizedIdentity, Identity
from auth.store import IdentityStore
from auth.tokens import clear_auth_cookie, create_access_token, hash_password, set_auth_cookie, token_lifetime
from auth.verifier import CredentialVerifier
from core.errors import ConflictError
from core.roles import DEFAULT_ROLE

logger = logging.getLogger("cornerstone.api")

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/logout:    public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:        any live identity (require_identity)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login")
def login(request: Request, body: Any = Depends(json_body)) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Unknown email and wrong password return the same 401 body so responses
    cannot be used to enumerate accounts.
    """
    verifier: CredentialVerifier = request.app.state.verifier
    who = verifier.login(body, route=request.url.path)

    token = create_access_token(who.id, who.email, who.role.value)
    resp = JSONResponse(
        status_code=200,
        content=success_response(
            LoginData(
                access_token=token,
                token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
                expires_in=token_lifetime(),
                identity=IdentityOut.from_verified(who),
            )
        ),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_limit)
@router.post("/auth/register", status_code=201)
def register(request: Request, body: Any = Depends(json_body)) -> JSONResponse:
    """Create a CUSTOMER identity. 409 if the email or username is taken."""
    data = schema(request, "register").check(body)
    store: IdentityStore = request.app.state.identity_store

    identity = Identity(
        email=data.email,
        username=data.username,
        role=DEFAULT_ROLE.value,
        hashed_password=hash_password(data.password),
    )
    try:
        identity_id = store.create_identity(identity)
    except IntegrityError as exc:
        raise ConflictError("An account with that email or username already exists.") from exc

    logger.info("Registered identity %s", identity_id)
    return JSONResponse(
        status_code=201,
        content=success_response(
            IdentityOut(id=identity_id, email=data.email, username=data.username, role=DEFAULT_ROLE.value)
        ),
    )


@router.post("/auth/logout")
def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content=success_response({"message": "Logged out."}))
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me")
def me(who: AuthorizedIdentity = Depends(require_identity)) -> dict:
    """Return identity information for the currently authenticated caller."""
    return success_response(IdentityOut.from_authorized(who))
