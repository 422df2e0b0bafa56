"""
tests/test_verifier.py -- Unit tests for CredentialVerifier.login().

Covers:
  - malformed payloads raise ValidationError with zero storage lookups
  - unknown email, soft-deleted and password-less identities share one
    public failure and still burn a bcrypt comparison
  - wrong password is distinguished only in the audit reason
  - success stamps last_login and returns the stored role
  - an unrecognised stored role is refused
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from audit.models import AuditAction
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import hash_password
from auth.verifier import INVALID_PASSWORD, NOT_FOUND_OR_PASSWORDLESS, CredentialVerifier
from core.errors import CredentialError, Forbidden, ValidationError
from core.roles import Role

PASSWORD = "s3cret-enough"


@pytest.fixture()
def store(tmp_path) -> IdentityStore:
    s = IdentityStore(f"sqlite:///{tmp_path / 'verifier.db'}")
    yield s
    s.close()


@pytest.fixture()
def sink() -> MagicMock:
    return MagicMock()


def _add(store: IdentityStore, name: str, role: str = Role.WRITER.value, password: str | None = PASSWORD) -> int:
    return store.create_identity(
        Identity(
            email=f"{name}@example.com",
            username=name,
            role=role,
            hashed_password=hash_password(password) if password else None,
        )
    )


class TestMalformedPayload:
    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"email": "not-an-email", "password": PASSWORD},
            {"email": "a@example.com", "password": "short"},
            {"email": "a@example.com"},
            "email=a@example.com",
            None,
        ],
    )
    def test_no_storage_lookup(self, sink, raw) -> None:
        stub = MagicMock(spec=IdentityStore)
        verifier = CredentialVerifier(stub, sink)

        with pytest.raises(ValidationError):
            verifier.login(raw)

        assert stub.method_calls == []
        sink.record.assert_not_called()


class TestFailures:
    def test_unknown_email_burns_dummy_hash(self, store, sink) -> None:
        verifier = CredentialVerifier(store, sink)
        with patch("auth.verifier.burn_dummy_hash") as burn:
            with pytest.raises(CredentialError) as exc_info:
                verifier.login({"email": "nobody@example.com", "password": PASSWORD})
        burn.assert_called_once_with(PASSWORD)
        assert exc_info.value.reason == NOT_FOUND_OR_PASSWORDLESS

    def test_passwordless_identity(self, store, sink) -> None:
        _add(store, "oauthonly", password=None)
        with pytest.raises(CredentialError) as exc_info:
            CredentialVerifier(store, sink).login({"email": "oauthonly@example.com", "password": PASSWORD})
        assert exc_info.value.reason == NOT_FOUND_OR_PASSWORDLESS

    def test_soft_deleted_identity(self, store, sink) -> None:
        uid = _add(store, "removed")
        store.soft_delete(uid)
        with pytest.raises(CredentialError) as exc_info:
            CredentialVerifier(store, sink).login({"email": "removed@example.com", "password": PASSWORD})
        assert exc_info.value.reason == NOT_FOUND_OR_PASSWORDLESS

    def test_wrong_password(self, store, sink) -> None:
        uid = _add(store, "writer")
        with pytest.raises(CredentialError) as exc_info:
            CredentialVerifier(store, sink).login({"email": "writer@example.com", "password": "wrong-password"})

        assert exc_info.value.reason == INVALID_PASSWORD
        (call,) = sink.record.call_args_list
        entry = call.args[0]
        assert entry.action is AuditAction.AUTH_FAILURE
        assert entry.user_id == uid
        assert entry.reason == f"Login failed: {INVALID_PASSWORD}"

    def test_public_message_is_identical(self, store, sink) -> None:
        _add(store, "same")
        verifier = CredentialVerifier(store, sink)
        messages = set()
        for email, password in (("same@example.com", "wrong-password"), ("absent@example.com", PASSWORD)):
            with pytest.raises(CredentialError) as exc_info:
                verifier.login({"email": email, "password": password})
            messages.add(exc_info.value.message)
        assert messages == {"Invalid email or password."}

    def test_unrecognised_stored_role(self, store, sink) -> None:
        _add(store, "odd", role="ROOT")
        with pytest.raises(Forbidden):
            CredentialVerifier(store, sink).login({"email": "odd@example.com", "password": PASSWORD})
        assert sink.record.call_args.args[0].action is AuditAction.ROLE_VALIDATION_FAILED


class TestSuccess:
    def test_returns_stored_role_and_stamps_last_login(self, store, sink) -> None:
        uid = _add(store, "seller", role=Role.SELLER.value)
        assert store.get_by_id(uid).last_login is None

        who = CredentialVerifier(store, sink).login({"email": "Seller@Example.com", "password": PASSWORD})

        assert who.id == uid
        assert who.role is Role.SELLER
        assert who.display_name == "seller"
        assert store.get_by_id(uid).last_login is not None
        sink.record.assert_not_called()
