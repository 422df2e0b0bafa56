"""
catalog/store.py -- SQLAlchemy Core persistence for courses, products and orders.

Pattern: Repository + Data Mapper (same as auth/store.py and audit/store.py).
CatalogStore is the repository; the _row_to_* functions are the mappers.

Every insert carries created_by. Courses and products are never hard-deleted;
list reads exclude soft-deleted rows and return newest first. An order and
its items are written in one transaction so a failed item insert never
leaves a header row behind.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, web/, auth/, or audit/.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from catalog.models import Course, Order, OrderItem, Product
from core.db import create_store_engine, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_courses = Table(
    "courses",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("content", Text),
    Column("is_paid", Boolean, nullable=False, default=False),
    Column("price", Integer),  # cents
    Column("image_url", String(2048)),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

_products = Table(
    "products",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("slug", String(255), nullable=False, unique=True),
    Column("description", Text),
    Column("price", Integer, nullable=False),  # cents
    Column("sku", String(64)),
    Column("stock", Integer, nullable=False, default=0),
    Column("status", String(20), nullable=False, default="ACTIVE"),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

_orders = Table(
    "orders",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", Integer, nullable=False),
    Column("status", String(20), nullable=False),
    Column("total", Integer, nullable=False),  # cents
    Column("shipping_address", Text),
    Column("payment_method", String(50)),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_orders_user_id", "user_id"),
)

_order_items = Table(
    "order_items",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("order_id", String(32), ForeignKey("orders.id"), nullable=False),
    Column("product_id", String(32), ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Integer, nullable=False),  # cents
    Index("ix_order_items_order_id", "order_id"),
)


class CatalogStore:
    """Repository for Course, Product and Order entities.

    Usage:
        store = CatalogStore("sqlite:///cornerstone.db")
        store.create_course(Course(title="Intro", created_by=1))
        courses = store.list_courses()
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def create_course(self, course: Course) -> Course:
        course.created_at = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _courses.insert().values(
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
            )
            conn.commit()
        return course

    def list_courses(self) -> list[Course]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _courses.select().where(_courses.c.deleted_at.is_(None)).order_by(_courses.c.created_at.desc())
            ).fetchall()
        return [_row_to_course(r) for r in rows]

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(self, product: Product) -> Product:
        """Insert a product. Raises sqlalchemy.exc.IntegrityError on a duplicate slug."""
        product.created_at = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _products.insert().values(
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
            )
            conn.commit()
        return product

    def get_product(self, product_id: str) -> Optional[Product]:
        """Return a live product by id, or None if unknown or soft-deleted."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _products.select().where((_products.c.id == product_id) & (_products.c.deleted_at.is_(None)))
            ).fetchone()
        return _row_to_product(row) if row is not None else None

    def list_products(self) -> list[Product]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _products.select().where(_products.c.deleted_at.is_(None)).order_by(_products.c.created_at.desc())
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, order: Order) -> Order:
        """Insert the order header and its items in a single transaction."""
        order.created_at = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _orders.insert().values(
                    id=order.id,
                    user_id=order.user_id,
                    status=order.status,
                    total=order.total,
                    shipping_address=order.shipping_address,
                    payment_method=order.payment_method,
                    created_by=order.created_by,
                    created_at=order.created_at,
                )
            )
            for item in order.items:
                conn.execute(
                    _order_items.insert().values(
                        id=item.id,
                        order_id=order.id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                    )
                )
        return order

    def list_orders_for(self, user_id: int) -> list[Order]:
        """Return an identity's orders, newest first, items included."""
        with self.engine.connect() as conn:
            order_rows = conn.execute(
                _orders.select().where(_orders.c.user_id == user_id).order_by(_orders.c.created_at.desc())
            ).fetchall()
            if not order_rows:
                return []
            item_rows = conn.execute(
                _order_items.select().where(_order_items.c.order_id.in_([r.id for r in order_rows]))
            ).fetchall()
        items_by_order: dict[str, list[OrderItem]] = {}
        for r in item_rows:
            items_by_order.setdefault(r.order_id, []).append(_row_to_order_item(r))
        return [_row_to_order(r, items_by_order.get(r.id, [])) for r in order_rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_course(row) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        description=row.description,
        content=row.content,
        is_paid=bool(row.is_paid),
        price=row.price,
        image_url=row.image_url,
        created_by=row.created_by,
        created_at=row.created_at,
        deleted_at=row.deleted_at,
    )


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        price=row.price,
        sku=row.sku,
        stock=row.stock,
        status=row.status,
        created_by=row.created_by,
        created_at=row.created_at,
        deleted_at=row.deleted_at,
    )


def _row_to_order_item(row) -> OrderItem:
    return OrderItem(id=row.id, product_id=row.product_id, quantity=row.quantity, unit_price=row.unit_price)


def _row_to_order(row, items: list[OrderItem]) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        status=row.status,
        shipping_address=row.shipping_address,
        payment_method=row.payment_method,
        created_by=row.created_by,
        created_at=row.created_at,
        items=items,
    )
