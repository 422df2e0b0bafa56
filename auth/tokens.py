"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the identity id (sub), email, an advisory role and expiry. Decoding
       returns None on any failure -- callers turn that into a redirect (edge
       gate) or a 401 (guard).

       The role claim is advisory only. It lets the UI render a navigation
       bar without a database read; every access decision re-reads the
       stored role (auth/guard.py).

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in CredentialVerifier.login() so response time does not
       reveal whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to
       start without a key of at least 32 characters.

Layer rule: no imports from api/, web/, or catalog/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenClaims
from core.config import get_settings

logger = logging.getLogger("cornerstone.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

COOKIE_NAME = "access_token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only accepts 72 bytes of input. The password schema caps length at
    72 UTF-8 bytes, so every password that passes validation hashes as given.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long input: treat as a mismatch.
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always call verify_password() even when the
# email is unknown -- bcrypt's constant work factor equalizes timing and
# prevents account enumeration via response-time differences.
_DUMMY_HASH: str = hash_password("cornerstone_timing_dummy")


def burn_dummy_hash(plain: str) -> None:
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def token_lifetime(expire_seconds: int = 0) -> int:
    return expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds


def create_access_token(identity_id: int, email: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for an identity.

    Args:
        identity_id:    Numeric identity ID, stored as the sub claim.
        email:          Login email at issue time.
        role:           Role at issue time. Advisory: never used for access.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    expire = datetime.now(timezone.utc) + timedelta(seconds=token_lifetime(expire_seconds))
    payload = {
        "sub": str(identity_id),
        "email": email,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str | None) -> TokenClaims | None:
    """Decode and verify a JWT. Returns TokenClaims or None on any failure.

    Signature and expiry are checked by python-jose. A token whose sub is not
    an integer id is rejected the same way as a forged one.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    try:
        subject_id = int(payload["sub"])
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError):
        return None
    return TokenClaims(
        subject_id=subject_id,
        email=str(payload.get("email", "")),
        expires_at=expires_at,
        advisory_role=payload.get("role"),
    )


def extract_token(request) -> str | None:
    """Return the raw token from the access_token cookie or a Bearer header.

    A cookie that decodes wins. A stale or invalid cookie gives way to a
    Bearer header, and is only returned when there is no header to use.
    """
    cookie = request.cookies.get(COOKIE_NAME)
    if cookie and decode_access_token(cookie) is not None:
        return cookie
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return cookie or None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and GET cross-site
        links, but not on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=token_lifetime(expire_seconds),
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="lax", secure=_settings.secure_cookies)
