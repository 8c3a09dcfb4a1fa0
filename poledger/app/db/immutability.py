"""
ORM-level append-only enforcement for the inventory movement ledger.

Movements are the audit trail of every stock change: once flushed they are
never updated nor deleted. Corrections are new movements in the opposite
direction.

Listeners are registered when this module is imported (the stock ledger
imports it) and fire before the SQL reaches the database:

    session.flush()
         |
         v
    [before_update] --> ImmutableRecordError
    [before_delete] --> ImmutableRecordError

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events; the ledger only
ever issues INSERTs for this table.
"""

from __future__ import annotations

from sqlalchemy import event

from poledger.app.db.models.models_v1 import InventoryMovement
from poledger.app.logging_config import get_logger
from poledger.services.errors import ImmutableRecordError

logger = get_logger(__name__)


def _reject_movement_update(mapper, connection, target: InventoryMovement) -> None:
    logger.error("inventory_movement_update_blocked", extra={"movement_id": target.id})
    raise ImmutableRecordError("InventoryMovement", target.id, "update")


def _reject_movement_delete(mapper, connection, target: InventoryMovement) -> None:
    logger.error("inventory_movement_delete_blocked", extra={"movement_id": target.id})
    raise ImmutableRecordError("InventoryMovement", target.id, "delete")


def register_immutability_listeners() -> None:
    if not event.contains(InventoryMovement, "before_update", _reject_movement_update):
        event.listen(InventoryMovement, "before_update", _reject_movement_update)
    if not event.contains(InventoryMovement, "before_delete", _reject_movement_delete):
        event.listen(InventoryMovement, "before_delete", _reject_movement_delete)


def unregister_immutability_listeners() -> None:
    """Detach the ledger listeners; ``register_immutability_listeners`` restores them."""
    if event.contains(InventoryMovement, "before_update", _reject_movement_update):
        event.remove(InventoryMovement, "before_update", _reject_movement_update)
    if event.contains(InventoryMovement, "before_delete", _reject_movement_delete):
        event.remove(InventoryMovement, "before_delete", _reject_movement_delete)


register_immutability_listeners()
