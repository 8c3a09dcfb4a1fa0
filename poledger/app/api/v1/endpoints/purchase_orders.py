from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from poledger.app.api.deps import get_db, get_request_context, unit_of_work
from poledger.app.db.models.core_types import POStatus
from poledger.app.schemas.purchase_order import (
    PurchaseOrderCreate,
    PurchaseOrderQuery,
    PurchaseOrderRead,
    PurchaseOrderReceive,
    PurchaseOrderUpdate,
    ReceiptRead,
)
from poledger.services import procurement, purchase_order_queries as queries
from poledger.services.context import RequestContext

router = APIRouter(prefix="/purchase-orders")


# ---------- Helpers ----------
def get_query(
    store_id: int | None = None,
    supplier_id: int | None = None,
    location_id: int | None = None,
    status: POStatus | None = None,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
    search: str | None = None,
    min_total: Decimal | None = None,
    max_total: Decimal | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    sort_by: str | None = None,
    sort_order: Literal["asc", "desc"] = "desc",
    ctx: RequestContext = Depends(get_request_context),
) -> PurchaseOrderQuery:
    return PurchaseOrderQuery(
        organization_id=ctx.organization_id,
        store_id=store_id,
        supplier_id=supplier_id,
        location_id=location_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        min_total=min_total,
        max_total=max_total,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def _page(rows, query: PurchaseOrderQuery) -> list[PurchaseOrderRead]:
    start = (query.page - 1) * query.limit
    return [PurchaseOrderRead.model_validate(po) for po in rows[start : start + query.limit]]


# ---------- Endpoints ----------
@router.post("", response_model=PurchaseOrderRead, status_code=201)
def create_purchase_order(
    payload: PurchaseOrderCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        po = procurement.create_purchase_order(db, payload, ctx=ctx)
        return PurchaseOrderRead.model_validate(po)


@router.get("", response_model=list[PurchaseOrderRead])
def list_purchase_orders(
    query: PurchaseOrderQuery = Depends(get_query),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return _page(queries.find_all(db, query), query)


@router.get("/drafts", response_model=list[PurchaseOrderRead])
def list_drafts(
    query: PurchaseOrderQuery = Depends(get_query),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return _page(queries.find_drafts(db, query), query)


@router.get("/approved", response_model=list[PurchaseOrderRead])
def list_approved(
    query: PurchaseOrderQuery = Depends(get_query),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return _page(queries.find_approved(db, query), query)


@router.get("/pending", response_model=list[PurchaseOrderRead])
def list_pending(
    query: PurchaseOrderQuery = Depends(get_query),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return _page(queries.find_pending(db, query), query)


@router.get("/supplier/{supplier_id}", response_model=list[PurchaseOrderRead])
def list_by_supplier(
    supplier_id: int,
    query: PurchaseOrderQuery = Depends(get_query),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return _page(queries.find_by_supplier(db, supplier_id, query), query)


@router.get("/{po_id}", response_model=PurchaseOrderRead)
def get_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        return PurchaseOrderRead.model_validate(queries.find_purchase_order(db, po_id, ctx.organization_id))


@router.patch("/{po_id}", response_model=PurchaseOrderRead)
def update_purchase_order(
    po_id: int,
    payload: PurchaseOrderUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        po = procurement.update_purchase_order(db, po_id, payload, ctx=ctx)
        return PurchaseOrderRead.model_validate(po)


@router.patch("/{po_id}/approve", response_model=PurchaseOrderRead)
def approve_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        po = procurement.approve_purchase_order(db, po_id, ctx=ctx)
        return PurchaseOrderRead.model_validate(po)


@router.patch("/{po_id}/cancel", response_model=PurchaseOrderRead)
def cancel_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        po = procurement.cancel_purchase_order(db, po_id, ctx=ctx)
        return PurchaseOrderRead.model_validate(po)


@router.patch("/{po_id}/receive", response_model=ReceiptRead)
def receive_purchase_order(
    po_id: int,
    payload: PurchaseOrderReceive,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        result = procurement.receive_purchase_order(db, po_id, payload.items, ctx=ctx)
        return ReceiptRead.model_validate(result)


@router.delete("/{po_id}")
def delete_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        procurement.remove_purchase_order(db, po_id, ctx=ctx)
        return {"id": po_id, "deleted": True}
