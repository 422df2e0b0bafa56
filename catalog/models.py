"""
catalog/models.py -- Domain dataclasses for courses, products and orders.

Pure data containers. Ids are uuid4 hex strings assigned at construction so a
caller holds the id before the row is written. Money is integer cents.

created_by is the id of the identity whose request created the row. It is
set by the route from the guard's AuthorizedIdentity, never from the payload.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Course:
    title: str
    created_by: int
    description: Optional[str] = None
    content: Optional[str] = None
    is_paid: bool = False
    price: Optional[int] = None  # cents; required when is_paid
    image_url: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


@dataclass
class Product:
    name: str
    slug: str
    price: int  # cents
    created_by: int
    description: Optional[str] = None
    sku: Optional[str] = None
    stock: int = 0
    status: str = "ACTIVE"
    id: str = field(default_factory=_new_id)
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


@dataclass
class OrderItem:
    product_id: str
    quantity: int
    unit_price: int  # cents, copied from the product at order time
    id: str = field(default_factory=_new_id)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class Order:
    user_id: int
    created_by: int
    items: list[OrderItem] = field(default_factory=list)
    status: str = "PENDING"
    shipping_address: Optional[str] = None
    payment_method: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(item.line_total for item in self.items)
