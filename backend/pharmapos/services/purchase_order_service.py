# Overview: Purchase order lifecycle and atomic receipt into batch stock.

"""
Purchase Orders

LIFECYCLE (forward only):
    Pending -> Sent -> Received
    Pending -> Received
    Pending | Sent -> Cancelled
Received and Cancelled are terminal; any transition out of them raises
PurchaseOrderStateError.

RECEIPT: for each item not yet received
  - find the batch (product, batch_number) or create an empty one with
    cost = unit cost and selling price = unit cost x PURCHASE_MARKUP
  - apply a 'purchase' movement of +quantity through apply_movement
  - stamp the item received_at
then mark the order Received. One transaction: a failure on any item leaves
the order, its items and all batches untouched.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Product, Supplier
from ..money import to_cents, MoneyError
from ..validation import ValidationError, NotFoundError, coerce_int, coerce_quantity, coerce_date
from . import document_service
from .concurrency import run_with_retry, lock_for_update
from .inventory_service import apply_movement, find_batch, new_batch, selling_price_for_cost, business_today
from pharmapos.time_utils import utcnow


STATUS_PENDING = "Pending"
STATUS_SENT = "Sent"
STATUS_RECEIVED = "Received"
STATUS_CANCELLED = "Cancelled"

# Allowed transitions: from-status -> set of to-statuses
TRANSITIONS = {
    STATUS_PENDING: {STATUS_SENT, STATUS_RECEIVED, STATUS_CANCELLED},
    STATUS_SENT: {STATUS_RECEIVED, STATUS_CANCELLED},
    STATUS_RECEIVED: set(),
    STATUS_CANCELLED: set(),
}


class PurchaseOrderStateError(Exception):
    """Raised for transitions the lifecycle does not allow (409)."""
    pass


def _require_transition(order: PurchaseOrder, target: str) -> None:
    if target not in TRANSITIONS[order.status]:
        raise PurchaseOrderStateError(
            f"Purchase order {order.order_number} is {order.status}; cannot move to {target}"
        )


def parse_order_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A purchase order needs at least one item")
    return [parse_order_item(raw, idx) for idx, raw in enumerate(items, start=1)]


def parse_order_item(raw, idx: int = 1) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")
    product_id = coerce_int(raw.get("product_id"), f"items[{idx}].product_id")
    quantity = coerce_quantity(raw.get("quantity"), f"items[{idx}].quantity")
    try:
        unit_cost = to_cents(raw.get("unit_cost"), f"items[{idx}].unit_cost")
    except MoneyError as e:
        raise ValidationError(str(e))
    batch_number = (raw.get("batch_number") or "").strip() or None
    if batch_number and len(batch_number) > 64:
        raise ValidationError(f"items[{idx}].batch_number exceeds max length 64")
    return {
        "product_id": product_id,
        "quantity": quantity,
        "unit_cost_cents": unit_cost,
        "batch_number": batch_number,
        "expiry_date": coerce_date(raw.get("expiry_date"), f"items[{idx}].expiry_date"),
    }


def _require_product(product_id: int) -> None:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    if not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive")


def get_order(order_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Purchase order not found")
    return order


def create_order(
    *,
    supplier_id: int,
    items,
    created_by_user_id: int,
    order_date: date | None = None,
    expected_date: date | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    parsed = parse_order_items(items)
    order_date = order_date or business_today()
    if expected_date is not None and expected_date < order_date:
        raise ValidationError("expected_date cannot be before order_date")

    def _op() -> PurchaseOrder:
        supplier = db.session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError("Supplier not found")
        if not supplier.is_active:
            raise ValidationError("Supplier is inactive")
        for item in parsed:
            _require_product(item["product_id"])

        order = PurchaseOrder(
            order_number=document_service.next_purchase_order_number(),
            supplier_id=supplier_id,
            created_by_user_id=created_by_user_id,
            status=STATUS_PENDING,
            order_date=order_date,
            expected_date=expected_date,
            notes=(notes or "").strip() or None,
            items=[PurchaseOrderItem(**item) for item in parsed],
        )
        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Created purchase order %s (%d item(s))", order.order_number, len(parsed))
    return order


def list_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    total = query.count()
    orders = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(min(limit, 500))
        .all()
    )
    return orders, total


def add_item(*, order_id: int, item) -> PurchaseOrder:
    parsed = parse_order_item(item)

    def _op() -> PurchaseOrder:
        order = get_order(order_id, lock=True)
        if order.status != STATUS_PENDING:
            raise PurchaseOrderStateError(f"Items can only be changed while {STATUS_PENDING}")
        _require_product(parsed["product_id"])
        order.items.append(PurchaseOrderItem(**parsed))
        db.session.commit()
        return order

    return run_with_retry(_op)


def remove_item(*, order_id: int, item_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        order = get_order(order_id, lock=True)
        if order.status != STATUS_PENDING:
            raise PurchaseOrderStateError(f"Items can only be changed while {STATUS_PENDING}")
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Purchase order item not found")
        if len(order.items) == 1:
            raise ValidationError("A purchase order needs at least one item")
        order.items.remove(item)
        db.session.commit()
        return order

    return run_with_retry(_op)


def mark_sent(*, order_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        order = get_order(order_id, lock=True)
        _require_transition(order, STATUS_SENT)
        order.status = STATUS_SENT
        order.sent_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(*, order_id: int, user_id: int, reason: str | None = None) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        order = get_order(order_id, lock=True)
        _require_transition(order, STATUS_CANCELLED)
        order.status = STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by_user_id = user_id
        order.cancellation_reason = (reason or "").strip() or None
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Cancelled purchase order %s", order.order_number)
    return order


def default_batch_number(order: PurchaseOrder, item: PurchaseOrderItem) -> str:
    return f"{order.order_number}-{item.id}"


def receive_order(*, order_id: int, user_id: int) -> PurchaseOrder:
    """
    Book every not-yet-received item into stock and mark the order Received.

    Raises PurchaseOrderStateError when the order is already Received or
    Cancelled. Items that already carry received_at are skipped.
    """
    def _op() -> PurchaseOrder:
        order = get_order(order_id, lock=True)
        _require_transition(order, STATUS_RECEIVED)

        now = utcnow()
        for item in order.items:
            if item.received_at is not None:
                continue

            batch_number = item.batch_number or default_batch_number(order, item)
            batch = find_batch(item.product_id, batch_number)
            if batch is None:
                batch = new_batch(
                    product_id=item.product_id,
                    batch_number=batch_number,
                    expiry_date=item.expiry_date,
                    cost_price_cents=item.unit_cost_cents,
                    selling_price_cents=selling_price_for_cost(item.unit_cost_cents),
                    supplier_id=order.supplier_id,
                    purchase_order_item_id=item.id,
                )

            apply_movement(
                batch_id=batch.id,
                quantity_delta=item.quantity,
                change_type="purchase",
                user_id=user_id,
                purchase_order_id=order.id,
                remarks=order.order_number,
            )
            item.received_at = now

        order.status = STATUS_RECEIVED
        order.received_at = now
        order.received_by_user_id = user_id
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Received purchase order %s by user %s", order.order_number, user_id)
    return order
