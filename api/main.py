"""
api/main.py -- FastAPI application entry point for Cornerstone.

Run with:      uvicorn asgi:app --reload

Middleware stack:
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. edge_gate             -- redirects unauthenticated requests on gated paths
  5. log_requests          -- one line per request with status and latency

Lifespan builds the stores, starts the audit writer and wires the guard and
credential verifier onto app.state; shutdown flushes pending audit entries
before closing anything.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse, error_response
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.courses import router as courses_router
from api.routes.v1.orders import router as orders_router
from api.routes.v1.products import router as products_router
from audit.sink import AuditSink
from audit.store import AuditStore
from auth.dependencies import require_roles
from auth.edge import EdgeGate
from auth.guard import AuthorizationGuard
from auth.store import IdentityStore
from auth.verifier import CredentialVerifier
from catalog.store import CatalogStore
from core.config import Settings, get_settings
from core.errors import AppError, ConfigurationError
from core.roles import DEFAULT_REGISTRY, Role
from core.schemas import SCHEMAS
from core.validation import issues_from_errors

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cornerstone.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(
    app: FastAPI,
    identity_store: IdentityStore,
    catalog: CatalogStore,
    audit_sink: AuditSink,
    settings: Settings,
) -> None:
    """Attach stores and the decision services to app.state.

    The role registry and schema registry are immutable module-level objects;
    they are published on app.state so routes, the guard and the verifier all
    read the same instances. Shared by the real lifespan and the test lifespan.
    """
    app.state.identity_store = identity_store
    app.state.catalog = catalog
    app.state.audit_sink = audit_sink
    app.state.registry = DEFAULT_REGISTRY
    app.state.schemas = SCHEMAS
    app.state.guard = AuthorizationGuard(
        identity_store,
        audit_sink,
        registry=DEFAULT_REGISTRY,
        disabled_features=settings.disabled_features,
    )
    app.state.verifier = CredentialVerifier(identity_store, audit_sink, schema=SCHEMAS["login"])


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- they create their tables on construction.
      2. Audit writer second -- it must be running before the first decision.
      3. Guard and verifier last -- they hold references to both.

    Shutdown flushes the audit queue before closing the stores so decisions
    made during the last requests are not lost.
    """
    logger.info("Cornerstone API starting up")
    identity_store = IdentityStore(settings.database_url)
    catalog = CatalogStore(settings.database_url)
    audit_sink = AuditSink(AuditStore(settings.database_url), max_queue=settings.audit_queue_size)
    audit_sink.start()
    wire_services(app, identity_store, catalog, audit_sink, settings)
    logger.info(
        "Services initialized (gated paths=%s, disabled features=%s)",
        settings.gated_paths,
        settings.disabled_features,
    )

    yield

    if not audit_sink.flush(timeout=5.0):
        logger.warning("Audit queue not drained before shutdown")
    audit_sink.close()
    audit_sink.store.close()
    catalog.close()
    identity_store.close()
    logger.info("Cornerstone API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Cornerstone API",
    description="Authentication, role-based authorization, validation and audit logging starter backend.",
    version=VERSION,
    lifespan=lifespan,
    # /docs and /redoc are registered below behind the ADMIN guard.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware finds the limiter on app.state.limiter.
app.state.limiter = limiter

# Built from settings at import time: the gated path list is static config.
app.state.edge_gate = EdgeGate(settings.gated_paths)


# ---------------------------------------------------------------------------
# Edge authentication gate
#
# Authentication only. Gated paths without a valid token are redirected to
# /login?callbackUrl=<path>; everything else passes through. Role checks are
# the page's job (auth/guard.py via web/routes.py).
# ---------------------------------------------------------------------------


@app.middleware("http")
async def edge_gate(request: Request, call_next):
    redirect = request.app.state.edge_gate.check(request)
    if redirect is not None:
        return redirect
    return await call_next(request)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# One line per request: method, path, status, latency and client host. Never
# headers or bodies, so tokens and passwords stay out of the log.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(courses_router, prefix="/api/v1", tags=["Courses"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])
app.include_router(orders_router, prefix="/api/v1", tags=["Orders"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Auth-protected API documentation (ADMIN only)
# ---------------------------------------------------------------------------

_require_admin = require_roles(Role.ADMIN)


@app.get("/docs", include_in_schema=False)
def docs(who=Depends(_require_admin)):
    """Swagger UI -- requires an ADMIN identity."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Cornerstone API")


@app.get("/redoc", include_in_schema=False)
def redoc(who=Depends(_require_admin)):
    """ReDoc UI -- requires an ADMIN identity."""
    return get_redoc_html(openapi_url="/openapi.json", title="Cornerstone API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same failure envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map the core.errors taxonomy onto status codes and the error envelope.

    ConfigurationError is a wiring bug: it is logged with its traceback and
    the client sees only the generic 500 message.
    """
    if isinstance(exc, ConfigurationError):
        logger.error(
            "Configuration error on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "An unexpected error occurred."),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, getattr(exc, "issues", None)),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=error_response("rate_limited", "Too many requests."),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with every issue when path or query parameters fail validation."""
    return JSONResponse(
        status_code=400,
        content=error_response("validation_error", "Invalid request payload.", issues_from_errors(exc.errors())),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use its code and message
    rather than stringifying it -- str(dict) produces a Python repr, not JSON.
    """
    if isinstance(exc.detail, dict):
        content = error_response(
            str(exc.detail.get("code", f"http_{exc.status_code}")),
            str(exc.detail.get("message", "")),
        )
    else:
        content = error_response(f"http_{exc.status_code}", str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_error", "An unexpected error occurred."),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited and not enveloped: load balancers poll it and read
# status directly. The database component is a SELECT 1 round trip.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    db_ok = request.app.state.identity_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
