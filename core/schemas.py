"""
core/schemas.py -- Input models and the named schema registry.

Pattern: one Pydantic model per input shape, wrapped in a core.validation.Schema
and published through the read-only SCHEMAS mapping. Constraints are
declarative per field; the few rules that need a specific client-facing
message raise PydanticCustomError so the message is returned verbatim
(a plain ValueError would be prefixed with "Value error, ").

JSON field names are camelCase on the wire (productId, isPaid, imageUrl) via
to_camel; snake_case names are accepted too (populate_by_name) so Python
callers can build models directly.

Money is always an integer count of minor currency units (cents). Floats are
rejected by StrictInt rather than rounded.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
or catalog/.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from core.roles import Role
from core.validation import Schema

PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes and current releases refuse longer input.
PASSWORD_MAX_BYTES = 72

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ---------------------------------------------------------------------------
# Reusable field types
# ---------------------------------------------------------------------------


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if len(normalized) > 254 or not _EMAIL_RE.match(normalized):
        raise PydanticCustomError("invalid_email", "Invalid email address")
    return normalized


def _check_password(value: str) -> str:
    if len(value) < PASSWORD_MIN_LENGTH:
        raise PydanticCustomError("password_too_short", f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PydanticCustomError("password_too_long", f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return value


def _required(message: str) -> AfterValidator:
    def check(value: str) -> str:
        if not value:
            raise PydanticCustomError("required", message)
        return value

    return AfterValidator(check)


def _at_least(minimum: int, message: str) -> AfterValidator:
    def check(value: int) -> int:
        if value < minimum:
            raise PydanticCustomError("too_small", message)
        return value

    return AfterValidator(check)


Email = Annotated[str, AfterValidator(_normalize_email)]
Password = Annotated[str, AfterValidator(_check_password)]
Cents = Annotated[StrictInt, _at_least(0, "Price must be a non-negative integer (cents)")]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginInput(BaseModel):
    email: Email
    password: Password


class RegisterInput(BaseModel):
    email: Email
    username: Annotated[str, Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")]
    password: Password


class RoleUpdateInput(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ProductInput(_WireModel):
    name: Annotated[str, Field(max_length=255), _required("Name is required")]
    slug: Annotated[str, Field(max_length=255), _required("Slug is required")]
    description: Optional[str] = None
    price: Cents
    sku: Optional[str] = Field(default=None, max_length=64)
    stock: Annotated[StrictInt, Field(ge=0)] = 0
    status: Optional[Literal["ACTIVE", "INACTIVE", "DISCONTINUED"]] = None


class OrderItemInput(_WireModel):
    product_id: Annotated[str, _required("productId is required")]
    quantity: Annotated[StrictInt, _at_least(1, "quantity must be at least 1")]


class OrderInput(_WireModel):
    """Order submission.

    user_id is accepted for wire compatibility but ignored by the orders
    route: the order always belongs to the authorized identity.
    """

    user_id: Optional[str] = None
    items: list[OrderItemInput] = Field(max_length=100)
    shipping_address: Optional[str] = Field(default=None, max_length=1000)
    payment_method: Optional[str] = Field(default=None, max_length=50)

    @field_validator("items")
    @classmethod
    def require_items(cls, items: list[OrderItemInput]) -> list[OrderItemInput]:
        if not items:
            raise PydanticCustomError("too_short", "At least one order item is required")
        return items


class CourseInput(_WireModel):
    title: Annotated[str, Field(max_length=255), _required("Title is required")]
    description: Optional[str] = None
    content: Optional[str] = None
    is_paid: bool = False
    price: Optional[Cents] = None
    image_url: Optional[str] = Field(default=None, max_length=2048)

    @model_validator(mode="after")
    def paid_courses_need_price(self) -> "CourseInput":
        if self.is_paid and self.price is None:
            raise PydanticCustomError("missing_price", "Price is required for paid courses")
        return self


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

LOGIN: Schema[LoginInput] = Schema("login", LoginInput)
REGISTER: Schema[RegisterInput] = Schema("register", RegisterInput)
ROLE_UPDATE: Schema[RoleUpdateInput] = Schema("role_update", RoleUpdateInput)
PRODUCT: Schema[ProductInput] = Schema("product", ProductInput)
ORDER: Schema[OrderInput] = Schema("order", OrderInput)
COURSE: Schema[CourseInput] = Schema("course", CourseInput)

SCHEMAS: Mapping[str, Schema] = MappingProxyType(
    {s.name: s for s in (LOGIN, REGISTER, ROLE_UPDATE, PRODUCT, ORDER, COURSE)}
)
