"""
tests/test_roles.py -- Unit tests for the Role enumeration and capability registry.
"""

from __future__ import annotations

import pytest

from core.roles import DEFAULT_REGISTRY, DEFAULT_ROLE, Role, RoleRegistry, format_roles, parse_role


class TestParseRole:
    def test_accepts_exact_values(self) -> None:
        assert parse_role("ADMIN") is Role.ADMIN
        assert parse_role(Role.SELLER) is Role.SELLER

    @pytest.mark.parametrize("value", ["admin", "SUPERUSER", "", None, 3])
    def test_rejects_everything_else(self, value) -> None:
        assert parse_role(value) is None


def test_default_role_is_customer() -> None:
    assert DEFAULT_ROLE is Role.CUSTOMER


def test_format_roles_is_alphabetical() -> None:
    assert format_roles({Role.WRITER, Role.ADMIN}) == "ADMIN, WRITER"


class TestRegistry:
    def test_roles_are_not_hierarchical(self) -> None:
        """ADMIN is listed explicitly wherever it is allowed; nothing is implied."""
        assert DEFAULT_REGISTRY.roles_for("courses:author") == frozenset({Role.ADMIN, Role.WRITER})
        assert Role.ADMIN not in RoleRegistry({"write": {Role.WRITER}}).roles_for("write")

    def test_unknown_capability_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            DEFAULT_REGISTRY.roles_for("no:such")

    def test_empty_capability_rejected(self) -> None:
        with pytest.raises(ValueError, match="has no roles"):
            RoleRegistry({"nobody": set()})

    def test_registry_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            DEFAULT_REGISTRY.capabilities["extra"] = frozenset({Role.ADMIN})

    def test_capabilities_of(self) -> None:
        caps = DEFAULT_REGISTRY.capabilities_of(Role.CUSTOMER)
        assert caps == frozenset({"orders:place"})
        assert "audit:review" in DEFAULT_REGISTRY.capabilities_of(Role.ADMIN)

    def test_every_role_has_a_dashboard(self) -> None:
        for role in Role:
            assert DEFAULT_REGISTRY.dashboard_for(role) == f"/dashboard/{role.value.lower()}"
