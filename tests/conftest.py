"""
tests/conftest.py -- Shared test fixtures for Cornerstone integration tests.

This module provides:
  - _make_test_stores(): file-backed SQLite stores in a temp dir
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - make_identity(): creates an identity with a role and returns (id, token)
  - api_client: TestClient for API integration tests
  - web_client: TestClient with follow_redirects=False for web route tests

Design: file-backed SQLite (not :memory:) because TestClient runs sync route
handlers in a thread pool and the audit sink writes from its own thread. A
plain :memory: DB is per-connection and would present a blank schema to each
of them.

SECRET_KEY and DATABASE_URL must be set before any app import: get_settings()
refuses to build Settings without them, and auth.tokens reads the settings at
module load.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: required settings must exist before any core/auth/api import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "cornerstone-test.db"))
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import wire_services
from asgi import app
from audit.sink import AuditSink
from audit.store import AuditStore
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import create_access_token, hash_password
from catalog.store import CatalogStore
from core.config import get_settings
from core.roles import Role

TEST_PASSWORD = "correct-horse-battery"


@dataclass
class Harness:
    """Everything a route test needs: the client and the stores behind it."""

    client: TestClient
    identities: IdentityStore
    catalog: CatalogStore
    sink: AuditSink
    admin_id: int
    admin_token: str

    def make_identity(self, role: Role | str, name: str) -> tuple[int, str]:
        return make_identity(self.identities, role, name)

    def bearer(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(directory: str) -> tuple[IdentityStore, CatalogStore, AuditSink]:
    """Create isolated stores backed by one SQLite file under `directory`."""
    url = "sqlite:///" + os.path.join(directory, "cornerstone.db")
    return IdentityStore(url), CatalogStore(url), AuditSink(AuditStore(url))


def make_identity(store: IdentityStore, role: Role | str, name: str) -> tuple[int, str]:
    """Insert an identity with the given stored role; return (id, token).

    The token's advisory role claim matches the stored role at creation.
    Tests that need a stale claim mint their own token.
    """
    role_value = role.value if isinstance(role, Role) else role
    identity_id = store.create_identity(
        Identity(
            email=f"{name}@example.com",
            username=name,
            role=role_value,
            hashed_password=hash_password(TEST_PASSWORD),
        )
    )
    token = create_access_token(identity_id, f"{name}@example.com", role_value, expire_seconds=3600)
    return identity_id, token


def _patch_lifespan(identities: IdentityStore, catalog: CatalogStore, sink: AuditSink):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state through the same
    wire_services() the production lifespan uses, so the guard, verifier and
    registries are built exactly as in production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        sink.start()
        wire_services(app, identities, catalog, sink, get_settings())
        yield
        sink.flush(timeout=5.0)
        sink.close()

    return test_lifespan


def _harness(tmp_dir: str, **client_kwargs) -> Generator[Harness, None, None]:
    identities, catalog, sink = _make_test_stores(tmp_dir)
    admin_id, admin_token = make_identity(identities, Role.ADMIN, "rootadmin")

    app.router.lifespan_context = _patch_lifespan(identities, catalog, sink)

    with TestClient(app, raise_server_exceptions=True, **client_kwargs) as client:
        yield Harness(client, identities, catalog, sink, admin_id, admin_token)

    sink.store.close()
    catalog.close()
    identities.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[Harness, None, None]:
    """Yield a Harness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, the real guard and a running audit sink, backed
    by an isolated SQLite file. An ADMIN identity is created up front.
    """
    yield from _harness(str(tmp_path_factory.mktemp("api")))


@pytest.fixture(scope="module")
def web_client(tmp_path_factory) -> Generator[Harness, None, None]:
    """Yield a Harness for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    yield from _harness(str(tmp_path_factory.mktemp("web")), follow_redirects=False)


@pytest.fixture(autouse=True)
def _fresh_cookies(request) -> None:
    """Drop cookies left by a previous login so each test authenticates explicitly."""
    for name in ("api_client", "web_client"):
        if name in request.fixturenames:
            request.getfixturevalue(name).client.cookies.clear()
