"""
Typed errors raised by the procurement and stock ledger services.

    LedgerError
    +-- InvalidRequest         bad input, missing context, cross-tenant ids
    +-- NotFound               unknown purchase order
    +-- ConstraintViolation    storage-level integrity failure (FK, unique)
    +-- InsufficientStock      reservation larger than what is available
    +-- ImmutableRecordError   update/delete of an append-only record

Every class carries a machine-readable ``code``. The HTTP layer maps them
to status codes; services never catch their own errors.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError


class LedgerError(Exception):
    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(LedgerError, ValueError):
    code = "INVALID_REQUEST"


class NotFound(LedgerError, LookupError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ConstraintViolation(LedgerError):
    code = "CONSTRAINT_VIOLATION"


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock available (requested={requested}, available={available})")


class ImmutableRecordError(LedgerError):
    code = "IMMUTABLE_RECORD"

    def __init__(self, entity: str, entity_id: int | None, operation: str):
        self.entity = entity
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"{entity} {entity_id} is append-only: {operation} rejected")


def flush_or_raise(db) -> None:
    """Flush, turning storage integrity failures into ConstraintViolation."""
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConstraintViolation(str(exc.orig)) from exc
