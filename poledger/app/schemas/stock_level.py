from datetime import datetime

from pydantic import BaseModel, ConfigDict

from poledger.app.db.models.core_types import MovementType, SourceOrderType


class StockLevelRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_variant_id: int | None
    location_id: int

    quantity_on_hand: int
    quantity_reserved: int
    quantity_available: int  # READ ONLY: on_hand - reserved, floored at 0
    updated_at: datetime


class InventoryMovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    product_id: int
    product_variant_id: int | None
    from_location_id: int | None
    to_location_id: int | None
    movement_type: MovementType
    quantity: int
    source_order_type: SourceOrderType | None
    source_order_id: int | None
    reason: str | None
    user_id: int | None
    created_at: datetime
