"""
Ad-hoc product creation for purchase-order lines.

A line submitted with ``product_id == 0`` names a product that does not
exist yet; it is created in the store owning the order's location (or the
organization's first store) before the line is inserted.
"""

from __future__ import annotations

import re
import threading
import time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from poledger.app.db.models.core_types import ProductState
from poledger.app.db.models.models_v1 import Location, Product, Store
from poledger.app.logging_config import get_logger
from poledger.app.schemas.purchase_order import PurchaseOrderItemCreate
from poledger.services.errors import InvalidRequest, flush_or_raise

logger = get_logger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")

_stamp_lock = threading.Lock()
_last_stamp = 0


def _unique_stamp() -> int:
    """Millisecond timestamp, strictly increasing within the process."""
    global _last_stamp
    with _stamp_lock:
        now = int(time.time() * 1000)
        if now <= _last_stamp:
            now = _last_stamp + 1
        _last_stamp = now
        return now


def slugify(name: str) -> str:
    return _NON_SLUG.sub("-", name.lower()).strip("-")


def resolve_store_id(db: Session, *, organization_id: int, location_id: int | None) -> int:
    if location_id is not None:
        store_id = db.execute(
            select(Location.store_id).where(Location.id == location_id)
        ).scalar_one_or_none()
        if store_id is not None:
            return store_id

    store_id = db.execute(
        select(Store.id)
        .where(Store.organization_id == organization_id)
        .order_by(Store.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    if store_id is None:
        raise InvalidRequest("Cannot create new product: No store found for this organization.")
    return store_id


def create_adhoc_product(
    db: Session,
    *,
    organization_id: int,
    location_id: int | None,
    name: str,
    sku: str | None = None,
    description: str | None = None,
) -> Product:
    store_id = resolve_store_id(db, organization_id=organization_id, location_id=location_id)
    stamp = _unique_stamp()

    base = slugify(name)
    slug = f"{base}-{stamp}" if base else str(stamp)

    product = Product(
        store_id=store_id,
        name=name,
        slug=slug,
        sku=sku or f"GEN-{stamp}",
        description=description,
        base_price=Decimal("0"),
        stock_quantity=0,
        state=ProductState.active,
    )
    db.add(product)
    flush_or_raise(db)

    logger.info(
        "adhoc_product_created",
        extra={"product_id": product.id, "store_id": store_id, "slug": slug},
    )
    return product


def resolve_product_id(
    db: Session,
    *,
    organization_id: int,
    location_id: int | None,
    item: PurchaseOrderItemCreate,
) -> int:
    if item.product_id:
        return item.product_id

    name = (item.product_name or "").strip()
    if not name:
        raise InvalidRequest("product_name is required when product_id is 0")

    product = create_adhoc_product(
        db,
        organization_id=organization_id,
        location_id=location_id,
        name=name,
        sku=item.sku,
        description=item.product_description,
    )
    return product.id
