"""
tests/test_web_pages.py -- Integration tests for the server-rendered pages.

Uses the web_client fixture (follow_redirects=False) and asserts on redirect
Location headers directly -- following the redirect would hide them.

Coverage:
  - login form: success redirects to the callback or the role dashboard and
    sets the cookie; failures land on one generic error message
  - open-redirect prevention for callbackUrl
  - /dashboard sends each role to its own page
  - wrong role -> /403; stale token claims do not open pages
  - unknown dashboard page -> 404 page
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from auth.models import Identity
from auth.tokens import create_access_token, hash_password
from core.roles import Role

PASSWORD = "web-pass-1234"


def _account(h, name: str, role: Role) -> int:
    return h.identities.create_identity(
        Identity(email=f"{name}@example.com", username=name, role=role.value, hashed_password=hash_password(PASSWORD))
    )


class TestLoginPage:
    def test_form_renders(self, web_client) -> None:
        resp = web_client.client.get("/login", params={"callbackUrl": "/dashboard/writer"})
        assert resp.status_code == 200
        assert 'value="/dashboard/writer"' in resp.text

    def test_error_param_is_whitelisted(self, web_client) -> None:
        resp = web_client.client.get("/login", params={"error": "<script>alert(1)</script>"})
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text

    def test_signed_in_visitor_is_sent_to_dashboard(self, web_client) -> None:
        resp = web_client.client.get("/login", headers=web_client.bearer(web_client.admin_token))
        assert resp.status_code == 302
        assert resp.headers["location"] == "/dashboard"

    def test_login_redirects_to_role_dashboard(self, web_client) -> None:
        _account(web_client, "webwriter", Role.WRITER)
        resp = web_client.client.post("/login", data={"email": "webwriter@example.com", "password": PASSWORD})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/dashboard/writer"
        assert "access_token" in resp.cookies

    def test_login_honours_safe_callback(self, web_client) -> None:
        _account(web_client, "webcallback", Role.CUSTOMER)
        resp = web_client.client.post(
            "/login",
            data={"email": "webcallback@example.com", "password": PASSWORD, "callback_url": "/dashboard/customer"},
        )
        assert resp.headers["location"] == "/dashboard/customer"

    def test_login_ignores_offsite_callback(self, web_client) -> None:
        _account(web_client, "webevil", Role.CUSTOMER)
        resp = web_client.client.post(
            "/login",
            data={"email": "webevil@example.com", "password": PASSWORD, "callback_url": "//attacker.example/phish"},
        )
        assert resp.headers["location"] == "/dashboard/customer"

    def test_bad_credentials_redirect_back_with_generic_error(self, web_client) -> None:
        resp = web_client.client.post(
            "/login",
            data={"email": "nobody@example.com", "password": PASSWORD, "callback_url": "/dashboard/seller"},
        )
        assert resp.status_code == 302
        location = urlparse(resp.headers["location"])
        assert location.path == "/login"
        query = parse_qs(location.query)
        assert query["error"] == ["bad_credentials"]
        assert query["callbackUrl"] == ["/dashboard/seller"]
        assert "access_token" not in resp.cookies

    def test_malformed_form_is_treated_as_bad_credentials(self, web_client) -> None:
        resp = web_client.client.post("/login", data={"email": "nope", "password": "x"})
        assert resp.status_code == 302
        assert "error=bad_credentials" in resp.headers["location"]

    def test_logout(self, web_client) -> None:
        resp = web_client.client.post("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=signed_out"


class TestDashboards:
    def test_dashboard_redirects_by_stored_role(self, web_client) -> None:
        uid = _account(web_client, "webseller", Role.SELLER)
        token = create_access_token(uid, "webseller@example.com", Role.SELLER.value, expire_seconds=600)
        resp = web_client.client.get("/dashboard", headers=web_client.bearer(token))
        assert resp.status_code == 302
        assert resp.headers["location"] == "/dashboard/seller"

    def test_each_role_sees_its_page(self, web_client) -> None:
        for role in Role:
            uid = _account(web_client, f"page{role.value.lower()}", role)
            token = create_access_token(uid, f"page{role.value.lower()}@example.com", role.value, expire_seconds=600)
            resp = web_client.client.get(f"/dashboard/{role.value.lower()}", headers=web_client.bearer(token))
            assert resp.status_code == 200, f"{role.value}: {resp.status_code}"

    def test_wrong_role_goes_to_403(self, web_client) -> None:
        uid = _account(web_client, "weblearner", Role.LEARNER)
        token = create_access_token(uid, "weblearner@example.com", Role.LEARNER.value, expire_seconds=600)
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(token))
        assert resp.status_code == 302
        assert resp.headers["location"] == "/403"

    def test_forged_admin_claim_does_not_open_admin_page(self, web_client) -> None:
        uid = _account(web_client, "webforger", Role.CUSTOMER)
        forged = create_access_token(uid, "webforger@example.com", Role.ADMIN.value, expire_seconds=600)
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(forged))
        assert resp.headers["location"] == "/403"

    def test_admin_page_lists_identities(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/admin", headers=web_client.bearer(web_client.admin_token))
        assert resp.status_code == 200
        assert "rootadmin" in resp.text
        assert "Access denials" in resp.text

    def test_unknown_page_is_404(self, web_client) -> None:
        resp = web_client.client.get("/dashboard/nowhere", headers=web_client.bearer(web_client.admin_token))
        assert resp.status_code == 404

    def test_forbidden_page(self, web_client) -> None:
        assert web_client.client.get("/403").status_code == 403
