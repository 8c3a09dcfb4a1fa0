from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from poledger.app.api.deps import get_db, get_request_context, unit_of_work
from poledger.app.db.models.core_types import SourceOrderType
from poledger.app.schemas.stock_level import InventoryMovementRead, StockLevelRead
from poledger.services import inventory
from poledger.services.context import RequestContext

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockLevelRead],
)
def get_stock(
    location_id: int | None = None,
    product_id: int | None = None,
    variant_id: int | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Stock (READ ONLY)
    - quantity_available is derived, never stored
    - scoped to the caller's organization through the location
    """
    with unit_of_work(db, ctx):
        rows = inventory.list_stock_levels(
            db,
            organization_id=ctx.organization_id,
            location_id=location_id,
            product_id=product_id,
            variant_id=variant_id,
        )
        return [StockLevelRead.model_validate(sl) for sl in rows]


@router.get(
    "/movements",
    response_model=list[InventoryMovementRead],
)
def get_movements(
    product_id: int | None = None,
    location_id: int | None = None,
    source_order_type: SourceOrderType | None = None,
    source_order_id: int | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    with unit_of_work(db, ctx):
        rows = inventory.list_movements(
            db,
            organization_id=ctx.organization_id,
            product_id=product_id,
            location_id=location_id,
            source_order_type=source_order_type,
            source_order_id=source_order_id,
        )
        return [InventoryMovementRead.model_validate(mv) for mv in rows]
