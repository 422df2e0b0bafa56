"""
api/routes/v1/orders.py -- Order placement and history.

Routes:
  POST /api/v1/orders  -- place an order (capability orders:place, feature "shop")
  GET  /api/v1/orders  -- the caller's own orders (same checks)

The order always belongs to the authorized caller; a userId in the payload
does not change ownership. Each item must name a live product. Unit prices
are copied from the product at order time.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.body import json_body, schema
from api.models import OrderOut, success_response
from auth.dependencies import require_feature
from auth.models import AuthorizedIdentity
from catalog.models import Order, OrderItem
from catalog.store import CatalogStore
from core.errors import ValidationError

logger = logging.getLogger("cornerstone.api")

router = APIRouter()

_require_shop = require_feature("shop", "orders:place")


@router.post("/orders", status_code=201)
def place_order(
    request: Request,
    who: AuthorizedIdentity = Depends(_require_shop),
    body: Any = Depends(json_body),
) -> JSONResponse:
    data = schema(request, "order").check(body)
    catalog: CatalogStore = request.app.state.catalog

    items: list[OrderItem] = []
    issues: list[dict] = []
    for index, line in enumerate(data.items):
        product = catalog.get_product(line.product_id)
        if product is None:
            issues.append(
                {"path": ["items", index, "productId"], "message": "Unknown product", "code": "unknown_product"}
            )
            continue
        items.append(OrderItem(product_id=product.id, quantity=line.quantity, unit_price=product.price))
    if issues:
        raise ValidationError(issues)

    order = catalog.create_order(
        Order(
            user_id=who.id,
            created_by=who.id,
            items=items,
            shipping_address=data.shipping_address,
            payment_method=data.payment_method,
        )
    )
    logger.info("Order %s placed by identity %s (%d items)", order.id, who.id, len(items))
    return JSONResponse(status_code=201, content=success_response(OrderOut.from_order(order)))


@router.get("/orders")
def list_orders(request: Request, who: AuthorizedIdentity = Depends(_require_shop)) -> dict:
    catalog: CatalogStore = request.app.state.catalog
    return success_response([OrderOut.from_order(o) for o in catalog.list_orders_for(who.id)])
