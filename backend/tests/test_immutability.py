"""
Append-only record tests.

Ledger movements, settled sales and security events are history: the ORM
refuses to UPDATE or DELETE them, and the refused flush leaves stock as it was.
"""

import pytest

from pharmapos.immutability import ImmutableRecordError
from pharmapos.models import InventoryMovement, Sale, SaleItem, SecurityEvent
from pharmapos.services import sales_service, inventory_service, permission_service


@pytest.fixture
def settled_sale(db_session, cashier, batch):
    return sales_service.settle_sale(
        cashier_id=cashier.id,
        items=[{"batch_id": batch.id, "quantity": 2}],
        payment_method="cash",
    )


def test_movement_cannot_be_edited(db_session, batch):
    movement = db_session.query(InventoryMovement).filter_by(batch_id=batch.id).one()
    movement.quantity_delta = 500
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    db_session.refresh(movement)
    assert movement.quantity_delta == 10
    assert inventory_service.verify_ledger() == []


def test_movement_cannot_be_deleted(db_session, batch):
    movement = db_session.query(InventoryMovement).filter_by(batch_id=batch.id).one()
    db_session.delete(movement)
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()
    assert db_session.query(InventoryMovement).count() == 1


def test_sale_cannot_be_edited(db_session, settled_sale):
    sale = db_session.get(Sale, settled_sale.id)
    sale.total_cents = 1
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()


def test_sale_item_cannot_be_deleted(db_session, settled_sale):
    item = db_session.query(SaleItem).filter_by(sale_id=settled_sale.id).one()
    db_session.delete(item)
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()
    assert db_session.query(SaleItem).count() == 1


def test_security_event_cannot_be_edited(db_session, cashier):
    permission_service.log_security_event(
        user_id=cashier.id,
        event_type="PERMISSION_DENIED",
        success=False,
        action="MANAGE_USERS",
    )
    event = db_session.query(SecurityEvent).one()
    event.success = True
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()
