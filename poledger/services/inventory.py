"""
Stock ledger.

The only code allowed to mutate ``stock_levels``. Every quantity change is
expressed as a delta against the natural key
``(product_id, product_variant_id, location_id)``; movements are appended
separately by the workflow that caused the change.

Rules:
    quantity_on_hand   = max(0, quantity_on_hand + delta)
    quantity_reserved  only moved by reserve/release, never below 0
    quantity_available = max(0, on_hand - reserved)   (derived, not stored)
"""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from poledger.app.db import immutability  # noqa: F401  (registers append-only listeners)
from poledger.app.db.models.core_types import MovementType, SourceOrderType
from poledger.app.db.models.models_v1 import (
    InventoryMovement,
    Location,
    Product,
    StockLevel,
)
from poledger.app.logging_config import get_logger
from poledger.services.errors import InsufficientStock, InvalidRequest, flush_or_raise

logger = get_logger(__name__)


def _find_stock_level(
    db: Session,
    *,
    product_id: int,
    location_id: int,
    variant_id: int | None,
    lock: bool,
) -> StockLevel | None:
    # first match rather than a unique lookup: a NULL variant leg is never
    # "equal" to another NULL for the unique constraint
    stmt = (
        select(StockLevel)
        .where(StockLevel.product_id == product_id)
        .where(StockLevel.location_id == location_id)
    )
    if variant_id is None:
        stmt = stmt.where(StockLevel.product_variant_id.is_(None))
    else:
        stmt = stmt.where(StockLevel.product_variant_id == variant_id)
    stmt = stmt.order_by(StockLevel.id.asc()).limit(1)
    if lock:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


def get_stock_level(
    db: Session,
    *,
    product_id: int,
    location_id: int,
    variant_id: int | None = None,
) -> StockLevel | None:
    return _find_stock_level(
        db,
        product_id=product_id,
        location_id=location_id,
        variant_id=variant_id or None,
        lock=False,
    )


def apply_delta(
    db: Session,
    *,
    product_id: int,
    location_id: int,
    delta: int,
    variant_id: int | None = None,
) -> StockLevel:
    """
    Apply ``delta`` to the on-hand quantity of one stock key.

    Not idempotent: two calls apply the delta twice. The row is created on
    first use and locked (FOR UPDATE) otherwise. Quantities are floored at
    zero whatever the delta.
    """
    variant_id = variant_id or None
    sl = _find_stock_level(
        db,
        product_id=product_id,
        location_id=location_id,
        variant_id=variant_id,
        lock=True,
    )

    if sl is None:
        target = delta
        sl = StockLevel(
            product_id=product_id,
            product_variant_id=variant_id,
            location_id=location_id,
            quantity_on_hand=max(0, delta),
            quantity_reserved=0,
        )
        db.add(sl)
    else:
        target = sl.quantity_on_hand + delta
        sl.quantity_on_hand = max(0, target)

    if target < 0:
        logger.warning(
            "stock_clamped_at_zero",
            extra={
                "product_id": product_id,
                "product_variant_id": variant_id,
                "location_id": location_id,
                "delta": delta,
                "shortfall": -target,
            },
        )

    flush_or_raise(db)
    sync_product_stock(db, product_id=product_id)

    logger.debug(
        "stock_delta_applied",
        extra={
            "product_id": product_id,
            "product_variant_id": variant_id,
            "location_id": location_id,
            "delta": delta,
            "quantity_on_hand": sl.quantity_on_hand,
        },
    )
    return sl


def record_movement(
    db: Session,
    *,
    organization_id: int,
    product_id: int,
    quantity: int,
    movement_type: MovementType,
    variant_id: int | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    source_order_type: SourceOrderType | None = None,
    source_order_id: int | None = None,
    reason: str | None = None,
    user_id: int | None = None,
) -> InventoryMovement:
    """Append one movement. ``quantity`` is always positive; the type gives the direction."""
    if quantity <= 0:
        raise InvalidRequest(f"Movement quantity must be positive (got {quantity})")

    mv = InventoryMovement(
        organization_id=organization_id,
        product_id=product_id,
        product_variant_id=variant_id or None,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        movement_type=movement_type,
        quantity=quantity,
        source_order_type=source_order_type,
        source_order_id=source_order_id,
        reason=reason,
        user_id=user_id,
    )
    db.add(mv)
    flush_or_raise(db)
    return mv


def sync_product_stock(db: Session, *, product_id: int) -> None:
    """Keep products.stock_quantity equal to the on-hand total over all locations."""
    total = db.execute(
        select(func.coalesce(func.sum(StockLevel.quantity_on_hand), 0)).where(
            StockLevel.product_id == product_id
        )
    ).scalar_one()
    product = db.get(Product, product_id)
    if product is not None:
        product.stock_quantity = int(total)
        flush_or_raise(db)


# ---------- RESERVATIONS ----------
def reserve_stock(
    db: Session,
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    variant_id: int | None = None,
) -> StockLevel:
    if quantity <= 0:
        raise InvalidRequest(f"Reservation quantity must be positive (got {quantity})")

    variant_id = variant_id or None
    sl = _find_stock_level(
        db,
        product_id=product_id,
        location_id=location_id,
        variant_id=variant_id,
        lock=True,
    )
    available = sl.quantity_available if sl else 0
    if available < quantity:
        raise InsufficientStock(requested=quantity, available=available)

    sl.quantity_reserved += quantity
    flush_or_raise(db)
    return sl


def release_stock(
    db: Session,
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    variant_id: int | None = None,
) -> StockLevel | None:
    if quantity <= 0:
        raise InvalidRequest(f"Release quantity must be positive (got {quantity})")

    sl = _find_stock_level(
        db,
        product_id=product_id,
        location_id=location_id,
        variant_id=variant_id or None,
        lock=True,
    )
    if sl is None:
        return None

    sl.quantity_reserved = max(0, sl.quantity_reserved - quantity)
    flush_or_raise(db)
    return sl


# ---------- READ ----------
def list_stock_levels(
    db: Session,
    *,
    organization_id: int | None = None,
    location_id: int | None = None,
    product_id: int | None = None,
    variant_id: int | None = None,
) -> list[StockLevel]:
    stmt = (
        select(StockLevel)
        .join(Location, Location.id == StockLevel.location_id)
        .order_by(StockLevel.location_id, StockLevel.product_id, StockLevel.id)
    )

    if organization_id is not None:
        stmt = stmt.where(Location.organization_id == organization_id)

    if location_id is not None:
        stmt = stmt.where(StockLevel.location_id == location_id)

    if product_id is not None:
        stmt = stmt.where(StockLevel.product_id == product_id)

    if variant_id is not None:
        stmt = stmt.where(StockLevel.product_variant_id == variant_id)

    return list(db.execute(stmt).scalars().all())


def list_movements(
    db: Session,
    *,
    organization_id: int | None = None,
    product_id: int | None = None,
    location_id: int | None = None,
    source_order_type: SourceOrderType | None = None,
    source_order_id: int | None = None,
) -> list[InventoryMovement]:
    stmt = select(InventoryMovement).order_by(InventoryMovement.created_at, InventoryMovement.id)

    if organization_id is not None:
        stmt = stmt.where(InventoryMovement.organization_id == organization_id)

    if product_id is not None:
        stmt = stmt.where(InventoryMovement.product_id == product_id)

    if location_id is not None:
        stmt = stmt.where(
            or_(
                InventoryMovement.to_location_id == location_id,
                InventoryMovement.from_location_id == location_id,
            )
        )

    if source_order_type is not None:
        stmt = stmt.where(InventoryMovement.source_order_type == source_order_type)

    if source_order_id is not None:
        stmt = stmt.where(InventoryMovement.source_order_id == source_order_id)

    return list(db.execute(stmt).scalars().all())
