"""
Purchase-order engine.

Owns the purchase order lifecycle:

    draft --> approved --> received
      |          |
      +----------+--> cancelled

and drives the stock ledger when goods are received. Functions here only
flush; the caller owns the transaction and commits or rolls back once per
operation, so a failure never leaves a partial order, increment or stock
mutation behind.

Stock rules live in poledger.services.inventory.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from poledger.app.config import settings
from poledger.app.db.models.core_types import MovementType, POStatus, SourceOrderType
from poledger.app.db.models.models_v1 import (
    InventoryMovement,
    Location,
    OrderNumberSequence,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
)
from poledger.app.logging_config import get_logger
from poledger.app.schemas.purchase_order import (
    PurchaseOrderCreate,
    PurchaseOrderItemCreate,
    PurchaseOrderUpdate,
    ReceiveItem,
)
from poledger.services.audit import log_audit
from poledger.services.context import RequestContext
from poledger.services.errors import InvalidRequest, NotFound, flush_or_raise
from poledger.services.inventory import apply_delta, record_movement
from poledger.services.products import resolve_product_id
from poledger.services.purchase_order_queries import find_purchase_order

logger = get_logger(__name__)

CENT = Decimal("0.01")
MONEY_FIELDS = ("discount_amount", "tax_amount", "shipping_cost")

RECEIPT_REASON = "Purchase order receipt"
CANCELLATION_REASON = "Purchase order cancellation"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReceiptLine:
    item_id: int
    requested: int
    applied: int

    @property
    def clamped(self) -> int:
        return self.requested - self.applied


@dataclass
class ReceiptResult:
    order: PurchaseOrder
    lines: list[ReceiptLine] = field(default_factory=list)


# ---------- TOTALS ----------
def compute_totals(
    lines: Iterable[tuple[int, Decimal]],
    *,
    discount_amount: Decimal = Decimal("0"),
    tax_amount: Decimal = Decimal("0"),
    shipping_cost: Decimal = Decimal("0"),
) -> tuple[Decimal, Decimal]:
    """
    Return ``(subtotal, total)`` for ``(quantity, unit_price)`` lines.

        subtotal = sum(quantity * unit_price)
        total    = subtotal - discount + tax + shipping

    Both are rounded to the cent. A negative total is rejected.
    """
    subtotal = sum((Decimal(qty) * Decimal(price) for qty, price in lines), Decimal("0"))
    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)

    total = subtotal - Decimal(discount_amount) + Decimal(tax_amount) + Decimal(shipping_cost)
    total = total.quantize(CENT, rounding=ROUND_HALF_UP)

    if total < 0:
        raise InvalidRequest(f"Order total cannot be negative (subtotal={subtotal}, discount={discount_amount})")
    return subtotal, total


# ---------- ORDER NUMBER ----------
def generate_order_number(db: Session, *, prefix: str | None = None, day: date | None = None) -> str:
    """``PO-YYYYMMDD-NNN`` from a per-day counter row locked for the rest of the transaction."""
    prefix = prefix or settings.order_number_prefix
    day = day or _now().date()

    seq = (
        db.execute(
            select(OrderNumberSequence)
            .where(OrderNumberSequence.day == day)
            .with_for_update()
        )
        .scalars()
        .first()
    )
    if seq is None:
        seq = OrderNumberSequence(day=day, last_value=0)
        db.add(seq)

    seq.last_value += 1
    flush_or_raise(db)
    return f"{prefix}-{day:%Y%m%d}-{seq.last_value:03d}"


# ---------- HELPERS ----------
def _require_organization(ctx: RequestContext) -> int:
    if ctx.organization_id is None:
        raise InvalidRequest("Organization ID not found in context")
    return ctx.organization_id


def _validate_scope(
    db: Session,
    *,
    organization_id: int,
    location_id: int | None = None,
    supplier_id: int | None = None,
) -> None:
    if location_id is not None:
        loc = db.get(Location, location_id)
        if loc is None or loc.organization_id != organization_id:
            raise InvalidRequest(
                f"Location with ID {location_id} not found or does not belong to your organization"
            )

    if supplier_id is not None:
        sup = db.get(Supplier, supplier_id)
        if sup is None or sup.organization_id != organization_id:
            raise InvalidRequest(
                f"Supplier with ID {supplier_id} not found or does not belong to your organization"
            )


def _lock_purchase_order(db: Session, po_id: int, organization_id: int | None = None) -> PurchaseOrder:
    stmt = select(PurchaseOrder).where(PurchaseOrder.id == po_id)
    if organization_id is not None:
        stmt = stmt.where(PurchaseOrder.organization_id == organization_id)
    po = (
        db.execute(
            stmt
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if po is None:
        raise NotFound("Purchase order", po_id)
    return po


def _lock_items(db: Session, po_id: int) -> list[PurchaseOrderItem]:
    return list(
        db.execute(
            select(PurchaseOrderItem)
            .where(PurchaseOrderItem.purchase_order_id == po_id)
            .order_by(PurchaseOrderItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )


def _build_items(
    db: Session,
    *,
    organization_id: int,
    location_id: int,
    items: list[PurchaseOrderItemCreate],
) -> list[PurchaseOrderItem]:
    built = []
    for item in items:
        product_id = resolve_product_id(
            db,
            organization_id=organization_id,
            location_id=location_id,
            item=item,
        )
        built.append(
            PurchaseOrderItem(
                product_id=product_id,
                product_variant_id=item.product_variant_id or None,
                quantity_ordered=item.quantity,
                quantity_received=0,
                unit_cost=item.unit_price,
                notes=item.notes,
                batch_number=item.batch_number,
                manufacturing_date=item.manufacturing_date,
                expiration_date=item.expiration_date,
            )
        )
    return built


# ---------- CREATE ----------
def create_purchase_order(
    db: Session,
    payload: PurchaseOrderCreate,
    *,
    ctx: RequestContext,
    order_number_prefix: str | None = None,
) -> PurchaseOrder:
    organization_id = _require_organization(ctx)

    # validation before any write
    _validate_scope(
        db,
        organization_id=organization_id,
        location_id=payload.location_id,
        supplier_id=payload.supplier_id,
    )
    subtotal, total = compute_totals(
        ((it.quantity, it.unit_price) for it in payload.items),
        discount_amount=payload.discount_amount,
        tax_amount=payload.tax_amount,
        shipping_cost=payload.shipping_cost,
    )

    items = _build_items(
        db,
        organization_id=organization_id,
        location_id=payload.location_id,
        items=payload.items,
    )

    po = PurchaseOrder(
        organization_id=organization_id,
        order_number=generate_order_number(db, prefix=order_number_prefix),
        supplier_id=payload.supplier_id,
        location_id=payload.location_id,
        status=payload.status or POStatus.draft,
        subtotal_amount=subtotal,
        discount_amount=payload.discount_amount,
        tax_amount=payload.tax_amount,
        shipping_cost=payload.shipping_cost,
        total_amount=total,
        order_date=_now(),
        expected_date=payload.expected_date,
        internal_reference=payload.internal_reference,
        supplier_reference=payload.supplier_reference,
        payment_terms=payload.payment_terms,
        notes=payload.notes,
        created_by_user_id=ctx.user_id,
        items=items,
    )
    db.add(po)
    flush_or_raise(db)

    log_audit(
        db,
        organization_id=organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.create",
        entity_type="purchase_order",
        entity_id=po.id,
        metadata={"order_number": po.order_number, "total_amount": str(total), "items": len(items)},
    )
    flush_or_raise(db)

    logger.info(
        "purchase_order_created",
        extra={
            "purchase_order_id": po.id,
            "order_number": po.order_number,
            "supplier_id": po.supplier_id,
            "location_id": po.location_id,
            "total_amount": total,
            "item_count": len(items),
        },
    )
    return find_purchase_order(db, po.id)


# ---------- UPDATE ----------
_NON_NULLABLE = {"supplier_id", "location_id", "status", *MONEY_FIELDS}


def update_purchase_order(
    db: Session,
    po_id: int,
    payload: PurchaseOrderUpdate,
    *,
    ctx: RequestContext,
) -> PurchaseOrder:
    """
    Apply only the fields present in ``payload``.

    Replacement items go through the product resolver and replace every
    existing item. Totals are recomputed whenever items or a money field
    change. Received and cancelled orders are not protected.
    """
    po = _lock_purchase_order(db, po_id, ctx.organization_id)

    changes = payload.model_dump(exclude_unset=True, exclude={"items"})
    changes = {k: v for k, v in changes.items() if not (k in _NON_NULLABLE and v is None)}

    if "location_id" in changes or "supplier_id" in changes:
        _validate_scope(
            db,
            organization_id=po.organization_id,
            location_id=changes.get("location_id"),
            supplier_id=changes.get("supplier_id"),
        )

    for key, value in changes.items():
        setattr(po, key, value)

    replace_items = "items" in payload.model_fields_set and payload.items is not None
    if replace_items:
        po.items = _build_items(
            db,
            organization_id=po.organization_id,
            location_id=po.location_id,
            items=payload.items,
        )

    if replace_items or any(k in changes for k in MONEY_FIELDS):
        subtotal, total = compute_totals(
            ((it.quantity_ordered, it.unit_cost) for it in po.items),
            discount_amount=po.discount_amount,
            tax_amount=po.tax_amount,
            shipping_cost=po.shipping_cost,
        )
        po.subtotal_amount = subtotal
        po.total_amount = total

    flush_or_raise(db)

    changed_fields = sorted(changes) + (["items"] if replace_items else [])
    log_audit(
        db,
        organization_id=po.organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.update",
        entity_type="purchase_order",
        entity_id=po.id,
        metadata={"fields": changed_fields},
    )
    flush_or_raise(db)

    logger.info("purchase_order_updated", extra={"purchase_order_id": po.id, "fields": changed_fields})
    return find_purchase_order(db, po.id)


# ---------- STATUS TRANSITIONS ----------
def approve_purchase_order(db: Session, po_id: int, *, ctx: RequestContext) -> PurchaseOrder:
    # no source-state precondition: re-approval is allowed
    po = _lock_purchase_order(db, po_id, ctx.organization_id)
    previous = po.status

    po.status = POStatus.approved
    po.approved_date = _now()
    if ctx.user_id is not None:
        po.approved_by_user_id = ctx.user_id
    flush_or_raise(db)

    log_audit(
        db,
        organization_id=po.organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.approve",
        entity_type="purchase_order",
        entity_id=po.id,
        metadata={"from_status": previous.value},
    )
    flush_or_raise(db)

    logger.info(
        "purchase_order_approved",
        extra={"purchase_order_id": po.id, "from_status": previous.value},
    )
    return find_purchase_order(db, po.id)


def _reverse_receipts(db: Session, po: PurchaseOrder, items: list[PurchaseOrderItem], *, ctx: RequestContext) -> int:
    """Post stock_out movements for whatever was received and not reversed yet."""
    received: dict[tuple[int, int | None], int] = defaultdict(int)
    for item in items:
        if item.quantity_received > 0:
            received[(item.product_id, item.product_variant_id)] += item.quantity_received

    reversed_rows = db.execute(
        select(
            InventoryMovement.product_id,
            InventoryMovement.product_variant_id,
            func.coalesce(func.sum(InventoryMovement.quantity), 0),
        )
        .where(InventoryMovement.source_order_type == SourceOrderType.purchase)
        .where(InventoryMovement.source_order_id == po.id)
        .where(InventoryMovement.movement_type == MovementType.stock_out)
        .group_by(InventoryMovement.product_id, InventoryMovement.product_variant_id)
    ).all()
    already = {(pid, vid): int(qty) for pid, vid, qty in reversed_rows}

    total = 0
    for (product_id, variant_id), qty in received.items():
        outstanding = qty - already.get((product_id, variant_id), 0)
        if outstanding <= 0:
            continue
        record_movement(
            db,
            organization_id=po.organization_id,
            product_id=product_id,
            variant_id=variant_id,
            from_location_id=po.location_id,
            movement_type=MovementType.stock_out,
            quantity=outstanding,
            source_order_type=SourceOrderType.purchase,
            source_order_id=po.id,
            reason=CANCELLATION_REASON,
            user_id=ctx.user_id,
        )
        apply_delta(
            db,
            product_id=product_id,
            location_id=po.location_id,
            delta=-outstanding,
            variant_id=variant_id,
        )
        total += outstanding
    return total


def cancel_purchase_order(
    db: Session,
    po_id: int,
    *,
    ctx: RequestContext,
    reverse_on_cancel: bool | None = None,
) -> PurchaseOrder:
    """
    Move the order to ``cancelled``.

    By default stock already received stays where it is. With
    ``reverse_on_cancel`` the received quantities are taken back out of
    the receiving location, at most once per received unit.
    """
    if reverse_on_cancel is None:
        reverse_on_cancel = settings.reverse_on_cancel

    po = _lock_purchase_order(db, po_id, ctx.organization_id)
    items = _lock_items(db, po.id)
    previous = po.status

    po.status = POStatus.cancelled
    po.cancelled_date = _now()
    flush_or_raise(db)

    reversed_qty = 0
    if reverse_on_cancel:
        reversed_qty = _reverse_receipts(db, po, items, ctx=ctx)

    log_audit(
        db,
        organization_id=po.organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.cancel",
        entity_type="purchase_order",
        entity_id=po.id,
        metadata={"from_status": previous.value, "reversed_quantity": reversed_qty},
    )
    flush_or_raise(db)

    logger.info(
        "purchase_order_cancelled",
        extra={
            "purchase_order_id": po.id,
            "from_status": previous.value,
            "reverse_on_cancel": reverse_on_cancel,
            "reversed_quantity": reversed_qty,
        },
    )
    return find_purchase_order(db, po.id)


# ---------- RECEIVE ----------
def receive_purchase_order(
    db: Session,
    po_id: int,
    items: Iterable[ReceiveItem],
    *,
    ctx: RequestContext,
    clamp_over_receipt: bool | None = None,
) -> ReceiptResult:
    """
    Record goods arriving against an order.

    Order of operations:
        1. lock the order and its items
        2. validate every line and work out the applied quantity
        3. atomic ``quantity_received = quantity_received + applied``
        4. re-read the order from the database
        5. one stock_in movement + stock delta per line with applied > 0
        6. status -> received when every item is fully received

    Lines over the outstanding quantity are clamped (and reported in the
    result) or rejected, depending on ``clamp_over_receipt``.
    """
    if clamp_over_receipt is None:
        clamp_over_receipt = settings.clamp_over_receipt

    entries = list(items)
    po = _lock_purchase_order(db, po_id, ctx.organization_id)
    locked = {item.id: item for item in _lock_items(db, po.id)}

    pending: dict[int, int] = defaultdict(int)
    lines: list[ReceiptLine] = []
    for entry in entries:
        item = locked.get(entry.id)
        if item is None:
            raise InvalidRequest(f"Item {entry.id} does not belong to purchase order {po_id}")
        if entry.quantity_received < 0:
            raise InvalidRequest(f"Received quantity for item {entry.id} cannot be negative")

        outstanding = max(0, item.quantity_ordered - item.quantity_received - pending[item.id])
        applied = min(entry.quantity_received, outstanding)
        if applied < entry.quantity_received:
            if not clamp_over_receipt:
                raise InvalidRequest(
                    f"Cannot receive {entry.quantity_received} of item {entry.id}: "
                    f"only {outstanding} outstanding"
                )
            logger.warning(
                "over_receipt_clamped",
                extra={
                    "purchase_order_id": po.id,
                    "item_id": item.id,
                    "requested": entry.quantity_received,
                    "applied": applied,
                },
            )

        pending[item.id] += applied
        lines.append(ReceiptLine(item_id=item.id, requested=entry.quantity_received, applied=applied))

    for item_id, applied in pending.items():
        if applied <= 0:
            continue
        db.execute(
            update(PurchaseOrderItem)
            .where(PurchaseOrderItem.id == item_id)
            .values(quantity_received=PurchaseOrderItem.quantity_received + applied)
            .execution_options(synchronize_session=False)
        )

    # the increments bypassed the identity map
    for item in locked.values():
        db.expire(item)
    order = find_purchase_order(db, po.id)
    by_id = {item.id: item for item in order.items}

    for line in lines:
        if line.applied <= 0:
            continue
        item = by_id[line.item_id]
        record_movement(
            db,
            organization_id=order.organization_id,
            product_id=item.product_id,
            variant_id=item.product_variant_id,
            to_location_id=order.location_id,
            movement_type=MovementType.stock_in,
            quantity=line.applied,
            source_order_type=SourceOrderType.purchase,
            source_order_id=order.id,
            reason=RECEIPT_REASON,
            user_id=ctx.user_id,
        )
        apply_delta(
            db,
            product_id=item.product_id,
            location_id=order.location_id,
            delta=line.applied,
            variant_id=item.product_variant_id,
        )

    all_received = all(item.quantity_received >= item.quantity_ordered for item in order.items)
    if all_received:
        order.status = POStatus.received
        order.received_date = _now()
    flush_or_raise(db)

    applied_total = sum(line.applied for line in lines)
    log_audit(
        db,
        organization_id=order.organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.receive",
        entity_type="purchase_order",
        entity_id=order.id,
        metadata={
            "lines": [
                {"item_id": line.item_id, "requested": line.requested, "applied": line.applied}
                for line in lines
            ],
            "fully_received": all_received,
        },
    )
    flush_or_raise(db)

    logger.info(
        "purchase_order_receipt_posted",
        extra={"purchase_order_id": order.id, "applied_quantity": applied_total, "lines": len(lines)},
    )
    if all_received:
        logger.info("purchase_order_fully_received", extra={"purchase_order_id": order.id})

    return ReceiptResult(order=order, lines=lines)


# ---------- REMOVE ----------
def remove_purchase_order(db: Session, po_id: int, *, ctx: RequestContext) -> None:
    """Hard delete. Movements already posted for the order are kept."""
    po = _lock_purchase_order(db, po_id, ctx.organization_id)

    movement_count = db.execute(
        select(func.count(InventoryMovement.id))
        .where(InventoryMovement.source_order_type == SourceOrderType.purchase)
        .where(InventoryMovement.source_order_id == po.id)
    ).scalar_one()
    if movement_count:
        logger.warning(
            "purchase_order_removed_with_movements",
            extra={"purchase_order_id": po.id, "movement_count": movement_count},
        )

    organization_id = po.organization_id
    order_number = po.order_number
    db.delete(po)
    flush_or_raise(db)

    log_audit(
        db,
        organization_id=organization_id,
        actor_id=ctx.user_id,
        action="purchase_order.remove",
        entity_type="purchase_order",
        entity_id=po_id,
        metadata={"order_number": order_number, "movement_count": movement_count},
    )
    flush_or_raise(db)

    logger.info("purchase_order_removed", extra={"purchase_order_id": po_id, "order_number": order_number})
