# Overview: Batch stock ledger; the single stock-changing primitive plus stock queries.

"""
Inventory Invariants (authoritative)

Stock model:
- Stock is held per ProductBatch. A product's quantity on hand is the sum
  of its batch quantities; Product has no quantity column.
- Every change to ProductBatch.quantity goes through apply_movement, which
  appends exactly one InventoryMovement with the same signed delta in the
  same transaction. Hence: batch.quantity == SUM(movement.quantity_delta).

Non-negativity under concurrency:
- apply_movement issues one conditional UPDATE:
      quantity = quantity + :delta WHERE id = :id AND quantity + :delta >= 0
  The database evaluates the guard and the write atomically, so two sales
  racing for the last units cannot both succeed. Zero affected rows means
  the guard failed: InsufficientStockError, never a clamp.
- The CHECK (quantity >= 0) constraint is a second line, not the mechanism.

Transactions:
- apply_movement never commits. Callers (sale settlement, purchase order
  receipt, manual adjustment) own the unit of work and commit once.

Time:
- All datetimes UTC-naive; "today" for expiry is in BUSINESS_TIMEZONE.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..models import Product, ProductBatch, InventoryMovement, Supplier, MOVEMENT_CAUSES
from ..money import apply_rate_cents
from ..validation import ValidationError, ConflictError, NotFoundError, MAX_QUANTITY, coerce_quantity
from .concurrency import run_with_retry
from pharmapos.time_utils import utcnow, local_today


BATCH_MUTABLE_FIELDS = {"expiry_date", "selling_price_cents", "cost_price_cents", "is_active"}

# Widest expiry look-ahead window, ten years
MAX_EXPIRY_WINDOW_DAYS = 3650

# Manual adjustment causes and their sign rule
ADJUSTMENT_CAUSES = {
    "adjustment": lambda d: d != 0,
    "damage": lambda d: d < 0,
    "return": lambda d: d > 0,
}


class InventoryError(Exception):
    """Base error for ledger operations."""
    pass


class InsufficientStockError(InventoryError):
    """
    Raised when a movement would take a batch below zero.

    Carries the offending batch so the caller can report which line failed.
    """

    def __init__(self, batch_id: int, requested: int, available: int):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock in batch {batch_id}: requested {requested}, available {available}"
        )

    def to_dict(self) -> dict:
        return {
            "error": "Insufficient stock",
            "batch_id": self.batch_id,
            "requested": self.requested,
            "available": self.available,
        }


def business_today() -> date:
    return local_today(current_app.config["BUSINESS_TIMEZONE"])


def get_batch(batch_id: int) -> ProductBatch:
    batch = db.session.get(ProductBatch, batch_id)
    if not batch:
        raise NotFoundError("Batch not found")
    return batch


# =============================================================================
# The stock-changing primitive
# =============================================================================

def apply_movement(
    *,
    batch_id: int,
    quantity_delta: int,
    change_type: str,
    user_id: int | None = None,
    remarks: str | None = None,
    sale_id: int | None = None,
    purchase_order_id: int | None = None,
) -> InventoryMovement:
    """
    Atomically change a batch quantity and append the matching movement.

    Does not commit. Raises:
        NotFoundError: unknown batch
        InventoryError: bad cause or zero delta
        InsufficientStockError: quantity + delta would be negative
    """
    if change_type not in MOVEMENT_CAUSES:
        raise InventoryError(f"Unknown movement cause: {change_type}")
    if not isinstance(quantity_delta, int) or isinstance(quantity_delta, bool) or quantity_delta == 0:
        raise InventoryError("quantity_delta must be a non-zero integer")

    batch = get_batch(batch_id)

    stmt = (
        update(ProductBatch)
        .where(
            ProductBatch.id == batch_id,
            ProductBatch.quantity + quantity_delta >= 0,
        )
        .values(quantity=ProductBatch.quantity + quantity_delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    # The identity-map copy is stale either way
    db.session.expire(batch, ["quantity", "updated_at"])

    if result.rowcount != 1:
        raise InsufficientStockError(batch_id, abs(quantity_delta), batch.quantity)

    movement = InventoryMovement(
        product_id=batch.product_id,
        batch_id=batch_id,
        quantity_delta=quantity_delta,
        change_type=change_type,
        user_id=user_id,
        remarks=remarks,
        sale_id=sale_id,
        purchase_order_id=purchase_order_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# Batches
# =============================================================================

def selling_price_for_cost(cost_cents: int) -> int:
    """Default selling price: unit cost times PURCHASE_MARKUP, nearest cent."""
    return apply_rate_cents(cost_cents, current_app.config["PURCHASE_MARKUP"])


def find_batch(product_id: int, batch_number: str) -> ProductBatch | None:
    return db.session.query(ProductBatch).filter_by(
        product_id=product_id, batch_number=batch_number
    ).first()


def new_batch(
    *,
    product_id: int,
    batch_number: str,
    expiry_date: date | None,
    cost_price_cents: int,
    selling_price_cents: int,
    supplier_id: int | None = None,
    purchase_order_item_id: int | None = None,
) -> ProductBatch:
    """Insert an empty batch (quantity 0). Stock arrives via apply_movement. No commit."""
    batch = ProductBatch(
        product_id=product_id,
        batch_number=batch_number,
        expiry_date=expiry_date,
        cost_price_cents=cost_price_cents,
        selling_price_cents=selling_price_cents,
        quantity=0,
        supplier_id=supplier_id,
        purchase_order_item_id=purchase_order_item_id,
        is_active=True,
    )
    db.session.add(batch)
    db.session.flush()
    return batch


def create_batch(
    *,
    product_id: int,
    batch_number: str,
    quantity: int,
    cost_price_cents: int,
    selling_price_cents: int | None = None,
    expiry_date: date | None = None,
    supplier_id: int | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Record a batch received outside a purchase order (opening stock, direct delivery).

    The opening quantity is booked as a 'purchase' movement so the ledger
    explains every unit.
    """
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise ValidationError("batch_number is required")
    if quantity < 0:
        raise ValidationError("quantity must be >= 0")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY} units")

    def _op():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        if supplier_id is not None and not db.session.get(Supplier, supplier_id):
            raise NotFoundError("Supplier not found")
        if find_batch(product_id, batch_number):
            raise ConflictError("Batch number already exists for this product")

        price = selling_price_cents
        if price is None:
            price = selling_price_for_cost(cost_price_cents)

        batch = new_batch(
            product_id=product_id,
            batch_number=batch_number,
            expiry_date=expiry_date,
            cost_price_cents=cost_price_cents,
            selling_price_cents=price,
            supplier_id=supplier_id,
        )
        if quantity > 0:
            apply_movement(
                batch_id=batch.id,
                quantity_delta=quantity,
                change_type="purchase",
                user_id=user_id,
                remarks="Batch entered manually",
            )
        db.session.commit()
        return batch

    batch = run_with_retry(_op)
    return batch.to_dict()


def update_batch(*, batch_id: int, patch: dict) -> dict:
    """
    Edit descriptive batch fields. Quantity is not writable here; stock only
    moves through adjustments so the ledger stays complete.
    """
    if "quantity" in patch:
        raise ValidationError("quantity cannot be edited; record an adjustment instead")
    unknown = set(patch) - BATCH_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    batch = get_batch(batch_id)
    for k, v in patch.items():
        setattr(batch, k, v)
    db.session.commit()
    return batch.to_dict()


def list_batches(
    *,
    product_id: int | None = None,
    in_stock_only: bool = False,
    include_expired: bool = True,
    active_only: bool = False,
) -> list[ProductBatch]:
    """
    Batches ordered first-expiry-first-out (no expiry last, then oldest first).
    """
    query = db.session.query(ProductBatch)
    if product_id is not None:
        query = query.filter(ProductBatch.product_id == product_id)
    if in_stock_only:
        query = query.filter(ProductBatch.quantity > 0)
    if active_only:
        query = query.filter(ProductBatch.is_active.is_(True))
    if not include_expired:
        query = query.filter(db.or_(
            ProductBatch.expiry_date.is_(None),
            ProductBatch.expiry_date >= business_today(),
        ))
    return query.order_by(
        case((ProductBatch.expiry_date.is_(None), 1), else_=0),
        ProductBatch.expiry_date.asc(),
        ProductBatch.id.asc(),
    ).all()


# =============================================================================
# Manual adjustments
# =============================================================================

def adjust_stock(
    *,
    batch_id: int,
    quantity_delta,
    change_type: str = "adjustment",
    user_id: int | None = None,
    remarks: str | None = None,
) -> InventoryMovement:
    """
    Record a manual stock change on one batch.

    Sign rules:
    - adjustment: any non-zero delta (count corrections)
    - damage:     negative (breakage, expiry write-off)
    - return:     positive (customer return to stock)
    """
    delta = coerce_quantity(quantity_delta, "quantity_delta", allow_negative=True)

    rule = ADJUSTMENT_CAUSES.get(change_type)
    if rule is None:
        raise ValidationError("change_type must be one of: adjustment, damage, return")
    if not rule(delta):
        raise ValidationError(f"quantity_delta has the wrong sign for {change_type}")

    def _op():
        movement = apply_movement(
            batch_id=batch_id,
            quantity_delta=delta,
            change_type=change_type,
            user_id=user_id,
            remarks=(remarks or "").strip() or None,
        )
        db.session.commit()
        return movement

    movement = run_with_retry(_op)
    current_app.logger.info(
        "Stock %s on batch %s: %+d by user %s", change_type, batch_id, delta, user_id
    )
    return movement


# =============================================================================
# Queries
# =============================================================================

def get_quantity_on_hand(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(ProductBatch.quantity), 0)
    ).filter(ProductBatch.product_id == product_id)
    return int(q.scalar() or 0)


def list_movements(
    *,
    product_id: int | None = None,
    batch_id: int | None = None,
    change_type: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[InventoryMovement], int]:
    query = db.session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if batch_id is not None:
        query = query.filter(InventoryMovement.batch_id == batch_id)
    if change_type:
        query = query.filter(InventoryMovement.change_type == change_type)

    total = query.count()
    movements = (
        query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .offset(offset)
        .limit(min(limit, 1000))
        .all()
    )
    return movements, total


def _low_stock_query():
    on_hand = func.coalesce(func.sum(ProductBatch.quantity), 0)
    threshold = case(
        (Product.min_stock > 0, Product.min_stock),
        else_=current_app.config["LOW_STOCK_THRESHOLD"],
    )
    return (
        db.session.query(Product, on_hand.label("on_hand"), threshold.label("threshold"))
        .outerjoin(ProductBatch, ProductBatch.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .group_by(Product.id)
        .having(on_hand <= threshold)
    )


def low_stock_products() -> list[dict]:
    """
    Active products at or below their threshold.

    Threshold is the product's min_stock, or LOW_STOCK_THRESHOLD when
    min_stock is 0.
    """
    rows = _low_stock_query().order_by(Product.name.asc()).all()
    out = []
    for product, on_hand, threshold in rows:
        d = product.to_dict()
        d["quantity_on_hand"] = int(on_hand)
        d["threshold"] = int(threshold)
        out.append(d)
    return out


def count_low_stock_products() -> int:
    subq = _low_stock_query().with_entities(Product.id).subquery()
    return int(db.session.query(func.count()).select_from(subq).scalar() or 0)


def _expiring_query(days: int):
    if not 0 <= days <= MAX_EXPIRY_WINDOW_DAYS:
        raise ValidationError(f"days must be between 0 and {MAX_EXPIRY_WINDOW_DAYS}")
    today = business_today()
    return db.session.query(ProductBatch).filter(
        ProductBatch.quantity > 0,
        ProductBatch.is_active.is_(True),
        ProductBatch.expiry_date.isnot(None),
        ProductBatch.expiry_date >= today,
        ProductBatch.expiry_date <= today + timedelta(days=days),
    )


def expiring_batches(days: int | None = None) -> list[ProductBatch]:
    """In-stock batches whose expiry falls within the next `days` days (inclusive)."""
    if days is None:
        days = current_app.config["EXPIRY_WARNING_DAYS"]
    return _expiring_query(days).order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc()).all()


def count_expiring_batches(days: int | None = None) -> int:
    if days is None:
        days = current_app.config["EXPIRY_WARNING_DAYS"]
    return _expiring_query(days).count()


def stock_summary() -> list[dict]:
    """Per-product stock rollup for the inventory screen."""
    on_hand = func.coalesce(func.sum(ProductBatch.quantity), 0)
    batch_count = func.count(ProductBatch.id)
    default_threshold = current_app.config["LOW_STOCK_THRESHOLD"]

    rows = (
        db.session.query(Product, on_hand, batch_count, func.min(ProductBatch.expiry_date))
        .outerjoin(ProductBatch, db.and_(
            ProductBatch.product_id == Product.id,
            ProductBatch.quantity > 0,
        ))
        .group_by(Product.id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    out = []
    for product, qty, batches, next_expiry in rows:
        threshold = product.min_stock or default_threshold
        out.append({
            "product_id": product.id,
            "name": product.name,
            "is_active": product.is_active,
            "quantity_on_hand": int(qty),
            "batches_in_stock": int(batches),
            "next_expiry": next_expiry.isoformat() if next_expiry else None,
            "threshold": threshold,
            "is_low_stock": int(qty) <= threshold,
        })
    return out


def verify_ledger(product_id: int | None = None) -> list[dict]:
    """
    Compare each batch quantity against the sum of its movements.

    Returns the discrepancies; an empty list means the ledger is consistent.
    """
    ledger_sum = func.coalesce(func.sum(InventoryMovement.quantity_delta), 0)
    query = (
        db.session.query(ProductBatch.id, ProductBatch.product_id, ProductBatch.quantity, ledger_sum)
        .outerjoin(InventoryMovement, InventoryMovement.batch_id == ProductBatch.id)
        .group_by(ProductBatch.id, ProductBatch.product_id, ProductBatch.quantity)
    )
    if product_id is not None:
        query = query.filter(ProductBatch.product_id == product_id)

    problems = []
    for batch_id, pid, quantity, total in query.all():
        if int(quantity) != int(total):
            problems.append({
                "batch_id": batch_id,
                "product_id": pid,
                "quantity": int(quantity),
                "ledger_sum": int(total),
            })
    return problems
