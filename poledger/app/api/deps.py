from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Generator, Iterator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from poledger.app.db.session import SessionLocal
from poledger.app.logging_config import LogContext, get_logger
from poledger.services.context import RequestContext
from poledger.services.errors import (
    ConstraintViolation,
    InsufficientStock,
    InvalidRequest,
    LedgerError,
    NotFound,
)

logger = get_logger(__name__)

_STATUS_BY_ERROR = (
    (InvalidRequest, 400),
    (InsufficientStock, 400),
    (NotFound, 404),
    (ConstraintViolation, 409),
)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_request_context(
    organization_id: int | None = Header(default=None, alias="X-Organization-Id"),
    user_id: int | None = Header(default=None, alias="X-User-Id"),
) -> RequestContext:
    return RequestContext(organization_id=organization_id, user_id=user_id)


def _status_for(exc: LedgerError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


@contextmanager
def unit_of_work(db: Session, ctx: RequestContext) -> Iterator[Session]:
    """
    One transaction per request.

    Commits when the block exits normally; rolls back and turns ledger
    errors into HTTPException otherwise. Response models must be built
    inside the block, before the commit expires the ORM objects.
    """
    with LogContext.bind(
        organization_id=ctx.organization_id,
        user_id=ctx.user_id,
        request_id=uuid.uuid4().hex,
    ):
        try:
            yield db
            db.commit()
        except LedgerError as exc:
            db.rollback()
            status = _status_for(exc)
            if status == 500:
                logger.exception("request_failed", extra={"error_code": exc.code})
                raise HTTPException(status_code=500, detail="Internal error") from exc
            logger.info("request_rejected", extra={"error_code": exc.code, "status": status})
            raise HTTPException(status_code=status, detail=exc.message) from exc
        except HTTPException:
            db.rollback()
            raise
        except Exception as exc:
            db.rollback()
            logger.exception("request_failed")
            raise HTTPException(status_code=500, detail="Internal error") from exc
