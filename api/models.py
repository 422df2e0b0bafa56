"""
API response models and envelope helpers for the Cornerstone REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
audit/models.py and catalog/models.py, which own the internal domain
representation. Route handlers map between the two with the from_* factories.

Request bodies are validated by the named schemas in core/schemas.py, not by
models declared here.

Every response uses one of two envelopes:
  success: {"success": true,  "data": ...}
  failure: {"success": false, "error": {"code", "message", "issues"?}}
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict

from audit.models import AuditLogEntry, AuditSummary, RankedCount
from auth.models import AuthorizedIdentity, Identity, VerifiedIdentity
from catalog.models import Course, Order, OrderItem, Product

# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    issues: Optional[list[dict]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error: ErrorDetail


def success_response(data: Any) -> dict:
    """Wrap a payload in the success envelope.

    Pydantic models in data are dumped to JSON-compatible dicts first.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return {"success": True, "data": data}


def error_response(code: str, message: str, issues: Optional[list[dict]] = None) -> dict:
    return ErrorResponse(error=ErrorDetail(code=code, message=message, issues=issues)).model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


class IdentityOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: str
    role: str

    @classmethod
    def from_authorized(cls, who: AuthorizedIdentity) -> "IdentityOut":
        return cls(id=who.id, email=who.email, username=who.username, role=who.role.value)

    @classmethod
    def from_verified(cls, who: VerifiedIdentity) -> "IdentityOut":
        return cls(id=who.id, email=who.email, username=who.display_name, role=who.role.value)


class IdentityAdminRow(BaseModel):
    """One row in GET /admin/users. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: str
    role: str
    is_verified: bool
    level: int
    points: int
    created_at: Optional[str]
    last_login: Optional[str]

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityAdminRow":
        return cls(
            id=identity.id,
            email=identity.email,
            username=identity.username,
            role=identity.role,
            is_verified=identity.is_verified,
            level=identity.level,
            points=identity.points,
            created_at=identity.created_at,
            last_login=identity.last_login,
        )


class LoginData(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    identity: IdentityOut


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CourseOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str]
    content: Optional[str]
    is_paid: bool
    price: Optional[int]
    image_url: Optional[str]
    created_by: int
    created_at: Optional[str]

    @classmethod
    def from_course(cls, course: Course) -> "CourseOut":
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            content=course.content,
            is_paid=course.is_paid,
            price=course.price,
            image_url=course.image_url,
            created_by=course.created_by,
            created_at=course.created_at,
        )


class ProductOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str
    description: Optional[str]
    price: int
    sku: Optional[str]
    stock: int
    status: str
    created_by: int
    created_at: Optional[str]

    @classmethod
    def from_product(cls, product: Product) -> "ProductOut":
        return cls(
            id=product.id,
            name=product.name,
            slug=product.slug,
            description=product.description,
            price=product.price,
            sku=product.sku,
            stock=product.stock,
            status=product.status,
            created_by=product.created_by,
            created_at=product.created_at,
        )


class OrderItemOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    quantity: int
    unit_price: int

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemOut":
        return cls(id=item.id, product_id=item.product_id, quantity=item.quantity, unit_price=item.unit_price)


class OrderOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: int
    status: str
    total: int
    shipping_address: Optional[str]
    payment_method: Optional[str]
    items: list[OrderItemOut]
    created_by: int
    created_at: Optional[str]

    @classmethod
    def from_order(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            total=order.total,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            items=[OrderItemOut.from_item(i) for i in order.items],
            created_by=order.created_by,
            created_at=order.created_at,
        )


# ---------------------------------------------------------------------------
# Audit review
# ---------------------------------------------------------------------------


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: Optional[int]
    user_role: Optional[str]
    route: str
    action: str
    reason: str
    created_by: Optional[int]
    timestamp: str

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditEntryOut":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            user_role=entry.user_role,
            route=entry.route,
            action=entry.action.value,
            reason=entry.reason,
            created_by=entry.created_by,
            timestamp=entry.timestamp.isoformat(),
        )


class RankedCountOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    count: int

    @classmethod
    def from_ranked(cls, ranked: RankedCount) -> "RankedCountOut":
        return cls(key=ranked.key, count=ranked.count)


class AuditSummaryOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    since_days: int
    total_denials: int
    counts_by_role: dict[str, int]
    counts_by_route: dict[str, int]
    top_routes: list[RankedCountOut]
    top_roles: list[RankedCountOut]

    @classmethod
    def from_summary(cls, summary: AuditSummary, since_days: int) -> "AuditSummaryOut":
        return cls(
            since_days=since_days,
            total_denials=summary.total_denials,
            counts_by_role=summary.counts_by_role,
            counts_by_route=summary.counts_by_route,
            top_routes=[RankedCountOut.from_ranked(r) for r in summary.top_routes],
            top_roles=[RankedCountOut.from_ranked(r) for r in summary.top_roles],
        )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health. Not wrapped in the success envelope."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
