"""
Read side of the purchase-order engine.

Every read goes through ``hydration_options()`` so callers always get the
order with its supplier, location and items (with product and variant)
loaded.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload, selectinload

from poledger.app.db.models.core_types import POStatus
from poledger.app.db.models.models_v1 import (
    Location,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
)
from poledger.app.schemas.purchase_order import PurchaseOrderQuery
from poledger.services.errors import NotFound


def hydration_options() -> list:
    return [
        joinedload(PurchaseOrder.supplier),
        joinedload(PurchaseOrder.location),
        selectinload(PurchaseOrder.items).options(
            joinedload(PurchaseOrderItem.product),
            joinedload(PurchaseOrderItem.product_variant),
        ),
    ]


def find_purchase_order(db: Session, po_id: int, organization_id: int | None = None) -> PurchaseOrder:
    stmt = select(PurchaseOrder).where(PurchaseOrder.id == po_id)
    if organization_id is not None:
        # another organization's order reads as missing
        stmt = stmt.where(PurchaseOrder.organization_id == organization_id)
    po = (
        db.execute(
            stmt
            .options(*hydration_options())
            .execution_options(populate_existing=True)
        )
        .unique()
        .scalars()
        .first()
    )
    if po is None:
        raise NotFound("Purchase order", po_id)
    return po


def _range_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _range_end(value: date | datetime) -> datetime:
    # a bare date includes the whole day
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


def build_query(query: PurchaseOrderQuery):
    stmt = select(PurchaseOrder)

    if query.organization_id is not None:
        stmt = stmt.where(PurchaseOrder.organization_id == query.organization_id)

    if query.store_id is not None:
        stmt = stmt.where(
            PurchaseOrder.location_id.in_(
                select(Location.id).where(Location.store_id == query.store_id)
            )
        )

    if query.supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == query.supplier_id)

    if query.location_id is not None:
        stmt = stmt.where(PurchaseOrder.location_id == query.location_id)

    if query.status is not None:
        stmt = stmt.where(PurchaseOrder.status == query.status)

    if query.start_date is not None:
        stmt = stmt.where(PurchaseOrder.order_date >= _range_start(query.start_date))

    if query.end_date is not None:
        stmt = stmt.where(PurchaseOrder.order_date <= _range_end(query.end_date))

    if query.min_total is not None:
        stmt = stmt.where(PurchaseOrder.total_amount >= query.min_total)

    if query.max_total is not None:
        stmt = stmt.where(PurchaseOrder.total_amount <= query.max_total)

    if query.search:
        term = query.search
        stmt = stmt.where(
            or_(
                PurchaseOrder.internal_reference.contains(term, autoescape=True),
                PurchaseOrder.supplier_reference.contains(term, autoescape=True),
                PurchaseOrder.notes.contains(term, autoescape=True),
                PurchaseOrder.supplier.has(Supplier.name.contains(term, autoescape=True)),
            )
        )

    # sort_by / sort_order are accepted but ordering is fixed
    return stmt.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())


def find_all(db: Session, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    stmt = build_query(query or PurchaseOrderQuery()).options(*hydration_options())
    return list(db.execute(stmt).unique().scalars().all())


# ---------- PRESETS ----------
def find_by_status(db: Session, status: POStatus, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    base = query or PurchaseOrderQuery()
    return find_all(db, base.model_copy(update={"status": status}))


def find_drafts(db: Session, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    return find_by_status(db, POStatus.draft, query)


def find_approved(db: Session, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    return find_by_status(db, POStatus.approved, query)


def find_pending(db: Session, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    """'Pending' means approved and waiting for goods; there is no separate status."""
    return find_by_status(db, POStatus.approved, query)


def find_by_supplier(db: Session, supplier_id: int, query: PurchaseOrderQuery | None = None) -> list[PurchaseOrder]:
    base = query or PurchaseOrderQuery()
    return find_all(db, base.model_copy(update={"supplier_id": supplier_id}))
