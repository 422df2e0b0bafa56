"""
auth/edge.py -- Edge authentication gate (authentication only, never roles).

Runs as HTTP middleware in front of every route (mounted in api/main.py).
For paths matching Settings.gated_paths it answers one question: does the
request carry a token whose signature and expiry are valid? If not, the
browser is redirected to /login?callbackUrl=<path>. If so, the request passes
through untouched and the page's own guard check decides on the role.

The token's role claim is never read here. A forged or stale claim therefore
cannot open a page: the guard re-reads the stored role behind the token.

Path patterns (same syntax as the gated_paths setting):
  /dashboard            literal segments
  /users/:id            :name   -- exactly one segment
  /files/:path?         :name?  -- zero or one segment
  /docs/:path+          :name+  -- one or more segments
  /dashboard/:path*     :name*  -- zero or more segments (matches /dashboard too)

Denials here are operational events (logger "cornerstone.edge"), not audit
entries: the audit trail records access decisions about identities, and an
absent token has no identity.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Optional
from urllib.parse import quote

from starlette.requests import Request
from starlette.responses import RedirectResponse

from auth.tokens import decode_access_token, extract_token

logger = logging.getLogger("cornerstone.edge")

LOGIN_PATH = "/login"

_SEGMENT = r"/[^/]+"
_QUANTIFIERS = {"": "", "?": "?", "+": "+", "*": "*"}
_PARAM_RE = re.compile(r"^:([A-Za-z_][A-Za-z0-9_]*)([?+*]?)$")


def compile_pattern(pattern: str) -> re.Pattern:
    """Translate a gated-path pattern into an anchored regular expression.

    Raises ValueError for a pattern that does not start with "/" or has a
    malformed parameter segment.
    """
    if not pattern.startswith("/"):
        raise ValueError(f"Gated path pattern must start with '/': {pattern!r}")
    parts = []
    for segment in pattern.strip("/").split("/"):
        if not segment:
            continue
        if segment.startswith(":"):
            match = _PARAM_RE.match(segment)
            if match is None:
                raise ValueError(f"Malformed parameter segment {segment!r} in {pattern!r}")
            quantifier = _QUANTIFIERS[match.group(2)]
            parts.append(f"(?:{_SEGMENT}){quantifier}" if quantifier else _SEGMENT)
        else:
            parts.append("/" + re.escape(segment))
    return re.compile("^" + "".join(parts) + "/?$")


def login_redirect_url(path: str) -> str:
    return f"{LOGIN_PATH}?callbackUrl={quote(path, safe='/')}"


class EdgeGate:
    """Usage:
    gate = EdgeGate(settings.gated_paths)
    redirect = gate.check(request)   # None -> let the request through
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self._raw = tuple(patterns)
        self._patterns = tuple(compile_pattern(p) for p in self._raw)

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._raw

    def is_gated(self, path: str) -> bool:
        return any(p.match(path) for p in self._patterns)

    def check(self, request: Request) -> Optional[RedirectResponse]:
        """Return a login redirect for an unauthenticated gated request, else None."""
        path = request.url.path
        if not self.is_gated(path):
            return None
        if decode_access_token(extract_token(request)) is not None:
            logger.debug("Authenticated request to %s", path)
            return None
        logger.info("Unauthenticated access to %s, redirecting to login", path)
        return RedirectResponse(login_redirect_url(path), status_code=302)
