# Overview: Atomic sale settlement against batch stock, plus sale and customer reads.

"""
Sale Settlement

settle_sale is one unit of work:
  1. validate every line (batch exists, sellable, not expired, priced)
  2. compute subtotal, discount, tax and total in integer cents
  3. allocate a receipt number
  4. insert the Sale and its SaleItems
  5. apply one 'sale' movement per line (conditional decrement)
  6. commit

If any line's batch lacks stock at step 5, InsufficientStockError propagates,
the whole transaction rolls back (no sale, no items, no movements, no
receipt number consumed), and the error names the batch.

Row-level rule: a user without VIEW_ALL_SALES only sees sales they settled.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Sale, SaleItem, Customer, Product, PAYMENT_METHODS
from ..money import to_cents, apply_basis_points, MoneyError
from ..validation import ValidationError, NotFoundError, coerce_int, coerce_quantity
from . import document_service, settings_service
from .concurrency import run_with_retry
from .inventory_service import apply_movement, get_batch, business_today
from pharmapos.time_utils import utcnow, local_day_bounds


class SaleError(Exception):
    """Raised when a sale cannot be settled for a business reason (400)."""
    pass


class PriceOverrideError(Exception):
    """Raised when a line price differs from the batch price without permission."""

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Price override on batch {batch_id} requires OVERRIDE_PRICE")


def _money(value, field: str) -> int:
    try:
        return to_cents(value, field)
    except MoneyError as e:
        raise ValidationError(str(e))


def parse_sale_lines(items) -> list[dict]:
    """
    Normalize raw line input to {batch_id, quantity, unit_price_cents|None, discount_cents}.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "batch_id" not in raw:
            raise ValidationError(f"items[{idx}].batch_id is required")
        batch_id = coerce_int(raw["batch_id"], f"items[{idx}].batch_id")
        quantity = coerce_quantity(raw.get("quantity"), f"items[{idx}].quantity")

        unit_price = raw.get("unit_price")
        lines.append({
            "batch_id": batch_id,
            "quantity": quantity,
            "unit_price_cents": None if unit_price is None else _money(unit_price, f"items[{idx}].unit_price"),
            "discount_cents": _money(raw.get("discount") or 0, f"items[{idx}].discount"),
        })
    return lines


def _price_lines(lines: list[dict], *, allow_price_override: bool, today: date) -> list[dict]:
    priced = []
    for line in lines:
        batch = get_batch(line["batch_id"])
        product = db.session.get(Product, batch.product_id)

        if not batch.is_active or not product.is_active:
            raise SaleError(f"Batch {batch.id} is not available for sale")
        if batch.expiry_date is not None and batch.expiry_date < today:
            raise SaleError(f"Batch {batch.id} expired on {batch.expiry_date.isoformat()}")

        unit_price = line["unit_price_cents"]
        if unit_price is None:
            unit_price = batch.selling_price_cents
        elif unit_price != batch.selling_price_cents and not allow_price_override:
            raise PriceOverrideError(batch.id)

        line_total = line["quantity"] * unit_price - line["discount_cents"]
        if line_total < 0:
            raise SaleError(f"Discount exceeds line amount for batch {batch.id}")

        priced.append({
            **line,
            "product_id": batch.product_id,
            "unit_price_cents": unit_price,
            "line_total_cents": line_total,
        })
    return priced


def settle_sale(
    *,
    cashier_id: int,
    items,
    payment_method: str,
    customer_id: int | None = None,
    discount=0,
    allow_price_override: bool = False,
) -> Sale:
    """
    Settle a sale atomically. See module docstring for the unit of work.

    Raises:
        ValidationError: malformed input
        NotFoundError: unknown batch or customer
        SaleError: expired / inactive stock, discount larger than amount
        PriceOverrideError: explicit price differs and override not allowed
        InsufficientStockError: a batch cannot cover its line
    """
    lines = parse_sale_lines(items)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    sale_discount = _money(discount or 0, "discount")
    if customer_id is not None:
        customer_id = coerce_int(customer_id, "customer_id")

    tax_bps = settings_service.get_tax_rate_bps()
    today = business_today()

    def _op() -> Sale:
        if customer_id is not None and not db.session.get(Customer, customer_id):
            raise NotFoundError("Customer not found")

        priced = _price_lines(lines, allow_price_override=allow_price_override, today=today)

        subtotal = sum(p["line_total_cents"] for p in priced)
        if sale_discount > subtotal:
            raise SaleError("Discount exceeds sale subtotal")
        taxable = subtotal - sale_discount
        tax = apply_basis_points(taxable, tax_bps)

        now = utcnow()
        sale = Sale(
            receipt_number=document_service.next_receipt_number(),
            cashier_id=cashier_id,
            customer_id=customer_id,
            subtotal_cents=subtotal,
            discount_cents=sale_discount,
            tax_cents=tax,
            total_cents=taxable + tax,
            payment_method=payment_method,
            created_at=now,
            items=[
                SaleItem(
                    batch_id=p["batch_id"],
                    product_id=p["product_id"],
                    quantity=p["quantity"],
                    unit_price_cents=p["unit_price_cents"],
                    discount_cents=p["discount_cents"],
                    line_total_cents=p["line_total_cents"],
                    created_at=now,
                )
                for p in priced
            ],
        )
        db.session.add(sale)
        db.session.flush()

        for p in priced:
            apply_movement(
                batch_id=p["batch_id"],
                quantity_delta=-p["quantity"],
                change_type="sale",
                user_id=cashier_id,
                sale_id=sale.id,
                remarks=sale.receipt_number,
            )

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Settled sale %s by user %s: %d line(s), total %s cents",
        sale.receipt_number, cashier_id, len(lines), sale.total_cents,
    )
    return sale


# =============================================================================
# Reads
# =============================================================================

def _visible(query, *, viewer_id: int, can_view_all: bool):
    if not can_view_all:
        query = query.filter(Sale.cashier_id == viewer_id)
    return query


def get_sale(sale_id: int, *, viewer_id: int, can_view_all: bool) -> Sale:
    """Sales outside the viewer's scope are reported as not found."""
    sale = _visible(
        db.session.query(Sale).filter(Sale.id == sale_id),
        viewer_id=viewer_id, can_view_all=can_view_all,
    ).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def get_sale_by_receipt(receipt_number: str, *, viewer_id: int, can_view_all: bool) -> Sale:
    sale = _visible(
        db.session.query(Sale).filter(Sale.receipt_number == (receipt_number or "").strip()),
        viewer_id=viewer_id, can_view_all=can_view_all,
    ).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    viewer_id: int,
    can_view_all: bool,
    start_date: date | None = None,
    end_date: date | None = None,
    cashier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    """
    List sales, newest first. start_date / end_date are inclusive business days.
    """
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    query = _visible(db.session.query(Sale), viewer_id=viewer_id, can_view_all=can_view_all)

    if start_date is not None:
        query = query.filter(Sale.created_at >= local_day_bounds(start_date, tz_name)[0])
    if end_date is not None:
        query = query.filter(Sale.created_at < local_day_bounds(end_date, tz_name)[1])
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(min(limit, 500))
        .all()
    )
    return sales, total


# =============================================================================
# Customers
# =============================================================================

def create_customer(*, name: str, email: str | None = None, phone: str | None = None,
                    created_by_user_id: int | None = None) -> Customer:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 255:
        raise ValidationError("name exceeds max length 255")
    email = (email or "").strip().lower() or None
    if email is not None and "@" not in email:
        raise ValidationError("email must be a valid email address")

    customer = Customer(
        name=name,
        email=email,
        phone=(phone or "").strip() or None,
        created_by_user_id=created_by_user_id,
        created_at=utcnow(),
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def list_customers(*, search: str | None = None, limit: int = 100, offset: int = 0) -> tuple[list[Customer], int]:
    query = db.session.query(Customer)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Customer.name).like(term),
            func.lower(Customer.email).like(term),
            Customer.phone.like(term),
        ))
    total = query.count()
    customers = query.order_by(Customer.name.asc(), Customer.id.asc()).offset(offset).limit(limit).all()
    return customers, total


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer
