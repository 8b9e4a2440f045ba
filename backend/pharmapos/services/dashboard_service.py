# Overview: Read-only dashboard rollups and the daily sales report.

"""
Dashboard Aggregation

Every figure comes from a live query; nothing is cached or stored. The
rollup is all-or-nothing: if any sub-query fails the whole summary raises
DashboardError and the route answers 503, so the screen never shows a mix
of fresh and missing numbers.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Sale, PurchaseOrder
from ..money import format_cents
from .inventory_service import count_low_stock_products, count_expiring_batches, business_today
from pharmapos.time_utils import local_day_bounds, to_iso_date


MAX_REPORT_DAYS = 366


class DashboardError(Exception):
    """Raised when any part of the rollup cannot be computed."""
    pass


def _sales_between(start, end) -> tuple[int, int]:
    total, count = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(Sale.id),
    ).filter(Sale.created_at >= start, Sale.created_at < end).one()
    return int(total), int(count)


def _pending_order_count() -> int:
    return int(
        db.session.query(func.count(PurchaseOrder.id))
        .filter(PurchaseOrder.status == "Pending")
        .scalar() or 0
    )


def dashboard_summary(today: date | None = None) -> dict:
    """
    Today's sales (total and count), low-stock product count, pending
    purchase order count and in-stock batches expiring soon.
    """
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    expiry_days = current_app.config["EXPIRY_WARNING_DAYS"]

    try:
        day = today or business_today()
        start, end = local_day_bounds(day, tz_name)
        sales_total, sales_count = _sales_between(start, end)
        low_stock = count_low_stock_products()
        pending_orders = _pending_order_count()
        expiring = count_expiring_batches(expiry_days)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Dashboard rollup failed")
        raise DashboardError("Dashboard data is temporarily unavailable") from exc

    return {
        "date": to_iso_date(day),
        "today_sales_total": format_cents(sales_total),
        "today_sales_count": sales_count,
        "low_stock_count": low_stock,
        "pending_purchase_orders": pending_orders,
        "expiring_batches": expiring,
        "expiry_window_days": expiry_days,
    }


def daily_sales_report(start_date: date, end_date: date) -> list[dict]:
    """
    Sales total and count per business day, inclusive range, zero-filled.
    """
    if end_date < start_date:
        raise ValueError("end_date must be on or after start_date")
    if (end_date - start_date).days + 1 > MAX_REPORT_DAYS:
        raise ValueError(f"Range cannot exceed {MAX_REPORT_DAYS} days")

    tz_name = current_app.config["BUSINESS_TIMEZONE"]

    # Bucket in Python: day boundaries depend on the business time zone
    range_start = local_day_bounds(start_date, tz_name)[0]
    range_end = local_day_bounds(end_date, tz_name)[1]
    rows = (
        db.session.query(Sale.created_at, Sale.total_cents)
        .filter(Sale.created_at >= range_start, Sale.created_at < range_end)
        .all()
    )

    days = []
    bounds = []
    day = start_date
    while day <= end_date:
        days.append({"date": to_iso_date(day), "total_cents": 0, "count": 0})
        bounds.append(local_day_bounds(day, tz_name))
        day += timedelta(days=1)

    for created_at, total_cents in rows:
        for bucket, (lo, hi) in zip(days, bounds):
            if lo <= created_at < hi:
                bucket["total_cents"] += total_cents
                bucket["count"] += 1
                break

    return [
        {"date": b["date"], "total": format_cents(b["total_cents"]), "count": b["count"]}
        for b in days
    ]
