# Overview: Flask API routes for store expenses.

from flask import Blueprint, request, jsonify, g

from ..services import expense_service
from ..validation import ValidationError, NotFoundError, coerce_date
from ..decorators import require_auth, require_permission


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission("VIEW_EXPENSES")
def list_expenses_route():
    """Query params: start_date, end_date (inclusive), category."""
    try:
        start = coerce_date(request.args.get("start_date"), "start_date")
        end = coerce_date(request.args.get("end_date"), "end_date")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(expense_service.list_expenses(
        start_date=start,
        end_date=end,
        category=request.args.get("category"),
    )), 200


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_permission("VIEW_EXPENSES")
def get_expense_route(expense_id: int):
    try:
        return jsonify({"expense": expense_service.get_expense(expense_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@expenses_bp.post("")
@require_auth
@require_permission("MANAGE_EXPENSES")
def create_expense_route():
    """Body: description, amount, category?, expense_date? (defaults to today)."""
    try:
        expense = expense_service.create_expense(
            payload=request.get_json(silent=True) or {},
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.patch("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def update_expense_route(expense_id: int):
    try:
        expense = expense_service.update_expense(
            expense_id=expense_id,
            payload=request.get_json(silent=True) or {},
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id=expense_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Expense deleted"}), 200
