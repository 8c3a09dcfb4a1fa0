from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from poledger.app.db.models.core_types import POStatus


# ---------- INPUT ----------
class PurchaseOrderItemCreate(BaseModel):
    # 0 (or absent) means "create an ad-hoc product from product_name"
    product_id: int = Field(default=0, ge=0)
    product_variant_id: int | None = None

    # ad-hoc product fields, never persisted on the item itself
    product_name: str | None = Field(default=None, max_length=255)
    sku: str | None = Field(default=None, max_length=64)
    product_description: str | None = None

    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    notes: str | None = None

    batch_number: str | None = Field(default=None, max_length=64)
    manufacturing_date: date | None = None
    expiration_date: date | None = None


class PurchaseOrderCreate(BaseModel):
    supplier_id: int
    location_id: int
    status: POStatus | None = None
    expected_date: date | None = None
    internal_reference: str | None = Field(default=None, max_length=128)
    supplier_reference: str | None = Field(default=None, max_length=128)
    payment_terms: str | None = Field(default=None, max_length=128)
    notes: str | None = None

    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)

    items: list[PurchaseOrderItemCreate] = Field(default_factory=list)


class PurchaseOrderUpdate(BaseModel):
    """Partial update; only the fields actually sent are applied."""

    supplier_id: int | None = None
    location_id: int | None = None
    status: POStatus | None = None
    expected_date: date | None = None
    internal_reference: str | None = Field(default=None, max_length=128)
    supplier_reference: str | None = Field(default=None, max_length=128)
    payment_terms: str | None = Field(default=None, max_length=128)
    notes: str | None = None

    discount_amount: Decimal | None = Field(default=None, ge=0)
    tax_amount: Decimal | None = Field(default=None, ge=0)
    shipping_cost: Decimal | None = Field(default=None, ge=0)

    items: list[PurchaseOrderItemCreate] | None = None


class ReceiveItem(BaseModel):
    id: int
    quantity_received: int = Field(ge=0)


class PurchaseOrderReceive(BaseModel):
    items: list[ReceiveItem] = Field(min_length=1)


class PurchaseOrderQuery(BaseModel):
    organization_id: int | None = None
    store_id: int | None = None
    supplier_id: int | None = None
    location_id: int | None = None
    status: POStatus | None = None

    start_date: date | datetime | None = None
    end_date: date | datetime | None = None
    search: str | None = None
    min_total: Decimal | None = None
    max_total: Decimal | None = None

    # applied by the HTTP layer, not by the query service
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=500)
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] = "desc"


# ---------- OUTPUT ----------
class SupplierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str | None = None


class LocationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    store_id: int | None = None


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    sku: str | None = None


class ProductVariantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sku: str | None = None


class PurchaseOrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_variant_id: int | None
    quantity_ordered: int
    quantity_received: int
    unit_cost: Decimal
    notes: str | None
    batch_number: str | None
    manufacturing_date: date | None
    expiration_date: date | None

    product: ProductRead | None = None
    product_variant: ProductVariantRead | None = None


class PurchaseOrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    order_number: str
    supplier_id: int
    location_id: int
    status: POStatus

    subtotal_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal

    order_date: datetime
    expected_date: date | None
    approved_date: datetime | None
    cancelled_date: datetime | None
    received_date: datetime | None

    internal_reference: str | None
    supplier_reference: str | None
    payment_terms: str | None
    notes: str | None
    created_by_user_id: int | None
    approved_by_user_id: int | None

    supplier: SupplierRead | None = None
    location: LocationRead | None = None
    items: list[PurchaseOrderItemRead] = Field(default_factory=list)


class ReceiptLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: int
    requested: int
    applied: int


class ReceiptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order: PurchaseOrderRead
    lines: list[ReceiptLineRead]
