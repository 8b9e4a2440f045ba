# Overview: ORM listeners that refuse UPDATE/DELETE on append-only records.

"""
Append-only record enforcement.

WHY: The stock ledger, settled sales and the security log are history.
Corrections are new rows (a 'return' or 'adjustment' movement), never edits.

Listeners fire before the SQL reaches the database, so a forbidden change
aborts the flush and the transaction rolls back untouched.

Protected:
- InventoryMovement   always
- Sale / SaleItem     always (created settled)
- SecurityEvent       always
"""

from sqlalchemy import event

from .models import InventoryMovement, Sale, SaleItem, SecurityEvent


IMMUTABLE_MODELS = (InventoryMovement, Sale, SaleItem, SecurityEvent)

_registered = False


class ImmutableRecordError(Exception):
    """Raised when code tries to update or delete an append-only record."""
    pass


def _refuse_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} id={target.id} is append-only and cannot be modified"
    )


def _refuse_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} id={target.id} is append-only and cannot be deleted"
    )


def register_immutability_listeners() -> None:
    """Install listeners once per process (create_app may run many times in tests)."""
    global _registered
    if _registered:
        return
    for model in IMMUTABLE_MODELS:
        event.listen(model, "before_update", _refuse_update)
        event.listen(model, "before_delete", _refuse_delete)
    _registered = True
