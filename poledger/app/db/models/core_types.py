import enum


class POStatus(str, enum.Enum):
    draft = "draft"
    approved = "approved"
    received = "received"
    cancelled = "cancelled"


class MovementType(str, enum.Enum):
    stock_in = "stock_in"
    stock_out = "stock_out"
    transfer = "transfer"
    adjustment = "adjustment"


class SourceOrderType(str, enum.Enum):
    purchase = "purchase"
    sale = "sale"
    transfer = "transfer"
    return_ = "return"


class ProductState(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    archived = "archived"
