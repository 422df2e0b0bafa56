"""
tests/test_edge_gate.py -- Tests for the edge authentication gate.

Pattern compilation is tested directly; redirect behaviour is tested through
the real ASGI stack with the web_client fixture (follow_redirects=False) so
the Location header is visible.

Covers:
  - :name, :name?, :name+, :name* segment semantics
  - gated paths without a token -> 302 /login?callbackUrl=<path>
  - a forged role claim does not matter to the gate (it never reads roles)
  - non-gated paths are untouched
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.edge import EdgeGate, compile_pattern, login_redirect_url
from core.config import get_settings
from core.roles import Role


class TestPatterns:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/dashboard", True),
            ("/dashboard/", True),
            ("/dashboard/admin", True),
            ("/dashboard/admin/users/3", True),
            ("/dashboards", False),
            ("/api/v1/courses", False),
            ("/", False),
        ],
    )
    def test_zero_or_more(self, path, expected) -> None:
        assert bool(compile_pattern("/dashboard/:path*").match(path)) is expected

    def test_single_segment(self) -> None:
        pattern = compile_pattern("/users/:id")
        assert pattern.match("/users/7")
        assert not pattern.match("/users")
        assert not pattern.match("/users/7/edit")

    def test_optional_and_one_or_more(self) -> None:
        optional = compile_pattern("/files/:name?")
        assert optional.match("/files") and optional.match("/files/a")
        assert not optional.match("/files/a/b")
        plus = compile_pattern("/docs/:path+")
        assert plus.match("/docs/a/b")
        assert not plus.match("/docs")

    def test_literal_segments_are_escaped(self) -> None:
        assert not compile_pattern("/a.b").match("/aXb")

    @pytest.mark.parametrize("bad", ["dashboard", "/x/:", "/x/:1abc", "/x/:name!"])
    def test_malformed_patterns(self, bad) -> None:
        with pytest.raises(ValueError):
            compile_pattern(bad)

    def test_gate_reports_patterns(self) -> None:
        gate = EdgeGate(["/dashboard/:path*", "/account"])
        assert gate.patterns == ("/dashboard/:path*", "/account")
        assert gate.is_gated("/account")
        assert not gate.is_gated("/login")


def test_login_redirect_url_keeps_slashes() -> None:
    assert login_redirect_url("/dashboard/admin") == "/login?callbackUrl=/dashboard/admin"


class TestGateRedirects:
    def test_unauthenticated_dashboard_redirects_to_login(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/admin")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?callbackUrl=/dashboard/admin"

    def test_bare_dashboard_is_gated(self, web_client) -> None:
        resp = web_client.client.get("/dashboard")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?callbackUrl=/dashboard"

    def test_unknown_dashboard_page_is_gated_before_404(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/nowhere")
        assert resp.status_code == 302

    def test_garbage_token_redirects(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/customer", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 302

    def test_expired_token_redirects(self, web_client) -> None:
        settings = get_settings()
        expired = jwt.encode(
            {
                "sub": str(web_client.admin_id),
                "email": "rootadmin@example.com",
                "role": "ADMIN",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            },
            settings.secret_key,
            algorithm="HS256",
        )
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(expired))
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("/login?callbackUrl=")

    def test_valid_token_passes_the_gate(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(web_client.admin_token))
        assert resp.status_code == 200

    @pytest.mark.parametrize("claims", [{"role": "NOT_A_ROLE"}, {}])
    def test_role_claim_is_ignored_by_the_gate(self, web_client, claims) -> None:
        payload = {
            "sub": str(web_client.admin_id),
            "email": "rootadmin@example.com",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            **claims,
        }
        token = jwt.encode(payload, get_settings().secret_key, algorithm="HS256")
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(token))
        assert resp.status_code == 200

    def test_bogus_claim_on_wrong_role_reaches_the_guard(self, web_client) -> None:
        uid, _ = web_client.make_identity(Role.CUSTOMER, "edgeclaim")
        payload = {
            "sub": str(uid),
            "email": "edgeclaim@example.com",
            "role": "NOT_A_ROLE",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        }
        token = jwt.encode(payload, get_settings().secret_key, algorithm="HS256")
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(token))
        assert resp.status_code == 302
        assert resp.headers["location"] == "/403"

    def test_non_gated_paths_untouched(self, web_client) -> None:
        assert web_client.client.get("/").status_code == 200
        assert web_client.client.get("/api/v1/courses").status_code == 200
