"""
api/routes/v1/products.py -- Product catalog endpoints.

Routes:
  GET  /api/v1/products  -- public list of live products, newest first
  POST /api/v1/products  -- create a product (capability catalog:manage)

Prices are integer cents in and out; a float or negative price is a 400.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.body import json_body, schema
from api.models import ProductOut, success_response
from auth.dependencies import require_capability
from auth.models import AuthorizedIdentity
from catalog.models import Product
from catalog.store import CatalogStore
from core.errors import ConflictError

logger = logging.getLogger("cornerstone.api")

router = APIRouter()


@router.get("/products")
def list_products(request: Request) -> dict:
    """Return all live products. Public."""
    catalog: CatalogStore = request.app.state.catalog
    return success_response([ProductOut.from_product(p) for p in catalog.list_products()])


@router.post("/products", status_code=201)
def create_product(
    request: Request,
    who: AuthorizedIdentity = Depends(require_capability("catalog:manage")),
    body: Any = Depends(json_body),
) -> JSONResponse:
    """Create a product. 409 if the slug is already used."""
    data = schema(request, "product").check(body)
    catalog: CatalogStore = request.app.state.catalog
    try:
        product = catalog.create_product(
            Product(
                name=data.name,
                slug=data.slug,
                description=data.description,
                price=data.price,
                sku=data.sku,
                stock=data.stock,
                status=data.status or "ACTIVE",
                created_by=who.id,
            )
        )
    except IntegrityError as exc:
        raise ConflictError("A product with that slug already exists.") from exc
    logger.info("Product %s created by identity %s", product.id, who.id)
    return JSONResponse(status_code=201, content=success_response(ProductOut.from_product(product)))
