"""
web/routes.py -- Jinja2 template routes for the Cornerstone web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same stores, guard and verifier) but return HTML instead of JSON.

Two layers protect every dashboard page:
  1. The edge gate (auth/edge.py, mounted in api/main.py) redirects requests
     without a valid token to /login?callbackUrl=<path> before they get here.
  2. Each page calls the guard with the roles it admits. The guard reads the
     stored role; Unauthenticated becomes a login redirect and Forbidden
     becomes a redirect to /403.

The navigation bar shows the token's advisory role claim. That claim is a
display cache only and never decides what a page renders.

Routes:
  GET  /                    -- landing page (public)
  GET  /login               -- login form
  POST /login               -- handle password login
  POST /logout              -- clear cookie, redirect /login
  GET  /dashboard           -- redirect to the caller's role dashboard
  GET  /dashboard/admin     -- ADMIN
  GET  /dashboard/writer    -- ADMIN, WRITER
  GET  /dashboard/seller    -- ADMIN, SELLER
  GET  /dashboard/learner   -- ADMIN, LEARNER
  GET  /dashboard/customer  -- any role
  GET  /403                 -- forbidden page
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, login_limit
from auth.edge import login_redirect_url
from auth.models import AuthorizedIdentity, TokenClaims
from auth.tokens import clear_auth_cookie, create_access_token, decode_access_token, extract_token, set_auth_cookie
from core.errors import CredentialError, Forbidden, Unauthenticated, ValidationError
from core.roles import Role

logger = logging.getLogger("cornerstone.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def nav_claims(request: Request) -> Optional[TokenClaims]:
    """Decoded token for the navigation bar, or None. Display only."""
    return decode_access_token(extract_token(request))


# Expose nav_claims as a Jinja2 global so layout.html can call it without
# every route handler adding it to the template context.
templates.env.globals["nav_claims"] = nav_claims
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "signed_out": "You have been signed out.",
}

# Dashboard page -> registry capability naming the roles it admits.
_DASHBOARD_CAPABILITIES: dict[str, str] = {
    "admin": "users:manage",
    "writer": "courses:author",
    "seller": "catalog:manage",
    "learner": "learning:access",
    "customer": "orders:place",
}


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirect attacks where an attacker crafts a URL like:
      /login?callbackUrl=https://attacker.com  or  /login?callbackUrl=//attacker.com

    Both would redirect off-site after login. We only allow paths that:
    - Start with "/" (relative, server-local)
    - Do NOT start with "//" or "/\\" (protocol-relative URL, redirects off-site)
    """
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return None


def _guard_page(
    request: Request, roles: frozenset[Role], log_on_success: bool = False
) -> tuple[Optional[AuthorizedIdentity], Optional[RedirectResponse]]:
    """Run the guard for a page. Returns (identity, None) or (None, redirect)."""
    try:
        who = request.app.state.guard.authorize(
            extract_token(request), roles, route=request.url.path, log_on_success=log_on_success
        )
    except Unauthenticated:
        return None, RedirectResponse(login_redirect_url(request.url.path), status_code=302)
    except Forbidden:
        return None, RedirectResponse("/403", status_code=302)
    return who, None


def _login_error_url(callback_url: Optional[str]) -> str:
    params = {"error": "bad_credentials"}
    if callback_url:
        params["callbackUrl"] = callback_url
    return "/login?" + urlencode(params, safe="/")


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {})


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page. Callers with a valid token go to /dashboard."""
    if nav_claims(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)

    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": error_msg,
            "callback_url": _safe_next(request.query_params.get("callbackUrl")) or "",
        },
    )


@limiter.limit(login_limit)  # brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    callback_url: str = Form(""),
) -> RedirectResponse:
    """Handle the login form. Every failure lands on the same error message."""
    callback = _safe_next(callback_url or request.query_params.get("callbackUrl"))
    try:
        who = request.app.state.verifier.login({"email": email, "password": password}, route=request.url.path)
    except (ValidationError, CredentialError, Forbidden):
        return RedirectResponse(_login_error_url(callback), status_code=302)

    token = create_access_token(who.id, who.email, who.role.value)
    target = callback or request.app.state.registry.dashboard_for(who.role)
    resp = RedirectResponse(target, status_code=302)
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Clear the JWT cookie and redirect to the login page."""
    resp = RedirectResponse("/login?error=signed_out", status_code=302)
    clear_auth_cookie(resp)
    return resp


@router.get("/403", response_class=HTMLResponse)
def forbidden(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "forbidden.html", {}, status_code=403)


# ---------------------------------------------------------------------------
# Dashboards (registered most-specific first)
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard_home(request: Request) -> RedirectResponse:
    """Send the caller to the dashboard for their current stored role."""
    who, redirect = _guard_page(request, frozenset(Role))
    if redirect:
        return redirect
    return RedirectResponse(request.app.state.registry.dashboard_for(who.role), status_code=302)


@router.get("/dashboard/{page}", response_class=HTMLResponse)
def dashboard_page(request: Request, page: str) -> HTMLResponse:
    capability = _DASHBOARD_CAPABILITIES.get(page)
    if capability is None:
        return templates.TemplateResponse(request, "not_found.html", {}, status_code=404)

    # The admin page shows the audit summary; reading the trail is itself logged.
    who, redirect = _guard_page(
        request, request.app.state.registry.roles_for(capability), log_on_success=(page == "admin")
    )
    if redirect:
        return redirect

    context: dict = {"who": who, "page": page}
    catalog = request.app.state.catalog
    if page == "admin":
        context["identities"] = request.app.state.identity_store.list_identities()
        context["summary"] = request.app.state.audit_sink.summarize()
    elif page in ("writer", "learner"):
        context["courses"] = catalog.list_courses()
    elif page == "seller":
        context["products"] = catalog.list_products()
    else:
        context["orders"] = catalog.list_orders_for(who.id)
    return templates.TemplateResponse(request, f"dashboard_{page}.html", context)
