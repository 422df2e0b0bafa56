"""
tests/test_tokens.py -- Tests for token extraction precedence in auth/tokens.py.

extract_token only reads request.cookies and request.headers, so a
SimpleNamespace stands in for the Starlette request.
"""

from __future__ import annotations

from types import SimpleNamespace

from auth.tokens import COOKIE_NAME, create_access_token, decode_access_token, extract_token


def _request(cookie: str | None = None, header: str | None = None) -> SimpleNamespace:
    cookies = {COOKIE_NAME: cookie} if cookie is not None else {}
    headers = {"Authorization": header} if header is not None else {}
    return SimpleNamespace(cookies=cookies, headers=headers)


def _token(identity_id: int = 1) -> str:
    return create_access_token(identity_id, "t@example.com", "CUSTOMER", expire_seconds=600)


def test_valid_cookie_wins_over_header() -> None:
    cookie, header = _token(1), _token(2)
    assert extract_token(_request(cookie, f"Bearer {header}")) == cookie


def test_invalid_cookie_falls_back_to_bearer() -> None:
    header = _token(2)
    token = extract_token(_request("stale.cookie.value", f"Bearer {header}"))
    assert token == header
    assert decode_access_token(token).subject_id == 2


def test_invalid_cookie_without_header_is_returned() -> None:
    assert extract_token(_request("stale.cookie.value")) == "stale.cookie.value"


def test_bearer_only() -> None:
    header = _token(3)
    assert extract_token(_request(header=f"bearer  {header}")) == header


def test_nothing_usable() -> None:
    assert extract_token(_request()) is None
    assert extract_token(_request(header="Basic dXNlcjpwYXNz")) is None
    assert extract_token(_request(header="Bearer ")) is None
