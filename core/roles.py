"""
core/roles.py -- The closed role enumeration and the capability registry.

Roles are not hierarchical: ADMIN does not implicitly satisfy WRITER. Every
guard call names the exact set of roles permitted, either directly or through
a capability defined here.

The registry is built once at import time and is read-only afterwards
(frozen dataclass over MappingProxyType). The app wires DEFAULT_REGISTRY into
the guard via app.state; tests can build their own RoleRegistry instance.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
or catalog/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    LEARNER = "LEARNER"
    WRITER = "WRITER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


DEFAULT_ROLE = Role.CUSTOMER


def parse_role(value: object) -> Role | None:
    """Return the Role for value, or None if value is not in the enumeration.

    Accepts Role members and their exact string values. Anything else --
    lowercase spellings, unknown names, None -- is not a role.
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def format_roles(roles: Iterable[Role]) -> str:
    """Render a role set as a stable, alphabetical, comma-separated string."""
    return ", ".join(sorted(r.value for r in roles))


@dataclass(frozen=True)
class RoleRegistry:
    """Capability name -> the roles that satisfy it.

    Capabilities group roles for operations that several routes share
    (e.g. everything that edits the product catalog). A capability with an
    empty role set is rejected at construction: it could never be satisfied
    and usually means a typo in the wiring.
    """

    capabilities: Mapping[str, frozenset[Role]] = field(default_factory=dict)
    dashboards: Mapping[Role, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        caps = {}
        for name, roles in self.capabilities.items():
            members = frozenset(roles)
            if not members:
                raise ValueError(f"Capability {name!r} has no roles.")
            caps[name] = members
        object.__setattr__(self, "capabilities", MappingProxyType(caps))
        object.__setattr__(self, "dashboards", MappingProxyType(dict(self.dashboards)))

    def roles_for(self, capability: str) -> frozenset[Role]:
        """Return the roles that satisfy capability. Raises KeyError if unknown."""
        return self.capabilities[capability]

    def capabilities_of(self, role: Role) -> frozenset[str]:
        return frozenset(name for name, roles in self.capabilities.items() if role in roles)

    def dashboard_for(self, role: Role) -> str:
        return self.dashboards.get(role, "/")


_ALL_ROLES = frozenset(Role)

DEFAULT_REGISTRY = RoleRegistry(
    capabilities={
        "courses:author": frozenset({Role.ADMIN, Role.WRITER}),
        "catalog:manage": frozenset({Role.ADMIN, Role.SELLER}),
        "learning:access": frozenset({Role.ADMIN, Role.LEARNER}),
        "orders:place": _ALL_ROLES,
        "users:manage": frozenset({Role.ADMIN}),
        "audit:review": frozenset({Role.ADMIN}),
    },
    dashboards={
        Role.ADMIN: "/dashboard/admin",
        Role.WRITER: "/dashboard/writer",
        Role.SELLER: "/dashboard/seller",
        Role.LEARNER: "/dashboard/learner",
        Role.CUSTOMER: "/dashboard/customer",
    },
)
