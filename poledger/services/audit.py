from __future__ import annotations

from sqlalchemy.orm import Session

from poledger.app.db.models.models_v1 import AuditLog


def log_audit(
    db: Session,
    *,
    organization_id: int | None,
    actor_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | str,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            organization_id=organization_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            meta=metadata or {},
        )
    )
