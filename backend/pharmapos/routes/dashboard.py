# Overview: Flask API routes for the dashboard rollup and daily sales report.

from flask import Blueprint, request, jsonify

from ..services import dashboard_service
from ..services.dashboard_service import DashboardError
from ..validation import ValidationError, coerce_date
from ..decorators import require_auth, require_permission


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
@require_permission("VIEW_DASHBOARD")
def summary_route():
    """
    Today's sales, low stock, pending purchase orders and expiring batches.

    503 when any figure cannot be computed; partial numbers are never shown.
    """
    try:
        return jsonify(dashboard_service.dashboard_summary()), 200
    except DashboardError as e:
        return jsonify({"error": str(e)}), 503


@dashboard_bp.get("/daily-sales")
@require_auth
@require_permission("VIEW_REPORTS")
def daily_sales_route():
    """Query params: start_date, end_date (required, inclusive, YYYY-MM-DD)."""
    try:
        start = coerce_date(request.args.get("start_date"), "start_date")
        end = coerce_date(request.args.get("end_date"), "end_date")
        if start is None or end is None:
            raise ValidationError("start_date and end_date are required")
        days = dashboard_service.daily_sales_report(start, end)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"start_date": start.isoformat(), "end_date": end.isoformat(), "days": days}), 200
