# Overview: Flask API routes for batches, stock adjustments and stock queries.

"""
Inventory routes.

Stock never changes through a plain field edit: batches are created with
an opening movement, and later changes go through /adjustments.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError, InventoryError
from ..money import to_cents, MoneyError
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    coerce_int,
    coerce_date,
    parse_bool_param,
)
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _cents(data: dict, field: str, required: bool = True) -> int | None:
    if field not in data or data[field] is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return to_cents(data[field], field)
    except MoneyError as e:
        raise ValidationError(str(e))


@inventory_bp.get("/batches")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_batches_route():
    """
    Query params:
    - product_id: int
    - in_stock: bool (only batches with quantity > 0)
    - include_expired: bool (default true)
    """
    try:
        in_stock = parse_bool_param(request.args.get("in_stock"))
        include_expired = parse_bool_param(request.args.get("include_expired"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    batches = inventory_service.list_batches(
        product_id=request.args.get("product_id", type=int),
        in_stock_only=bool(in_stock),
        include_expired=include_expired is not False,
    )
    return jsonify({"items": [b.to_dict() for b in batches], "count": len(batches)}), 200


@inventory_bp.get("/batches/<int:batch_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_batch_route(batch_id: int):
    try:
        return jsonify({"batch": inventory_service.get_batch(batch_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@inventory_bp.post("/batches")
@require_auth
@require_permission("MANAGE_BATCHES")
def create_batch_route():
    """
    Body: product_id, batch_number, quantity, cost_price, selling_price?,
    expiry_date?, supplier_id?

    selling_price defaults to cost_price x PURCHASE_MARKUP.
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = coerce_int(data.get("product_id"), "product_id")
        quantity = coerce_int(data.get("quantity", 0), "quantity")
        cost = _cents(data, "cost_price")
        price = _cents(data, "selling_price", required=False)
        expiry = coerce_date(data.get("expiry_date"), "expiry_date")
        supplier_id = data.get("supplier_id")
        if supplier_id is not None:
            supplier_id = coerce_int(supplier_id, "supplier_id")

        batch = inventory_service.create_batch(
            product_id=product_id,
            batch_number=data.get("batch_number"),
            quantity=quantity,
            cost_price_cents=cost,
            selling_price_cents=price,
            expiry_date=expiry,
            supplier_id=supplier_id,
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"batch": batch}), 201


@inventory_bp.patch("/batches/<int:batch_id>")
@require_auth
@require_permission("MANAGE_BATCHES")
def update_batch_route(batch_id: int):
    """Body (any of): expiry_date, cost_price, selling_price, is_active."""
    data = request.get_json(silent=True) or {}

    allowed = {"expiry_date", "cost_price", "selling_price", "is_active"}
    if "quantity" in data:
        return jsonify({"error": "quantity cannot be edited; record an adjustment instead"}), 400
    for k in data:
        if k not in allowed:
            return jsonify({"error": f"Field not allowed: {k}"}), 400

    try:
        patch = {}
        if "expiry_date" in data:
            patch["expiry_date"] = coerce_date(data["expiry_date"], "expiry_date")
        if "cost_price" in data:
            patch["cost_price_cents"] = _cents(data, "cost_price")
        if "selling_price" in data:
            patch["selling_price_cents"] = _cents(data, "selling_price")
        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean")
            patch["is_active"] = data["is_active"]

        batch = inventory_service.update_batch(batch_id=batch_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"batch": batch}), 200


@inventory_bp.post("/adjustments")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_route():
    """
    Record a manual stock change.

    Body: batch_id, quantity_delta (signed), change_type
    (adjustment | damage | return), remarks?
    """
    data = request.get_json(silent=True) or {}

    try:
        batch_id = coerce_int(data.get("batch_id"), "batch_id")
        movement = inventory_service.adjust_stock(
            batch_id=batch_id,
            quantity_delta=data.get("quantity_delta"),
            change_type=data.get("change_type") or "adjustment",
            user_id=g.current_user.id,
            remarks=data.get("remarks"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify(e.to_dict()), 409
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"movement": movement.to_dict()}), 201


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """Query params: product_id, batch_id, change_type, limit, offset."""
    movements, total = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        batch_id=request.args.get("batch_id", type=int),
        change_type=request.args.get("change_type"),
        limit=request.args.get("limit", 200, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [m.to_dict() for m in movements], "total": total}), 200


@inventory_bp.get("/products/<int:product_id>/on-hand")
@require_auth
@require_permission("VIEW_INVENTORY")
def on_hand_route(product_id: int):
    return jsonify({
        "product_id": product_id,
        "quantity_on_hand": inventory_service.get_quantity_on_hand(product_id),
    }), 200


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    items = inventory_service.low_stock_products()
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.get("/expiring")
@require_auth
@require_permission("VIEW_INVENTORY")
def expiring_route():
    """Query params: days (default EXPIRY_WARNING_DAYS)."""
    days = request.args.get("days", type=int)
    try:
        batches = inventory_service.expiring_batches(days)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [b.to_dict() for b in batches], "count": len(batches)}), 200


@inventory_bp.get("/summary")
@require_auth
@require_permission("VIEW_INVENTORY")
def summary_route():
    return jsonify({"items": inventory_service.stock_summary()}), 200


@inventory_bp.get("/verify")
@require_auth
@require_permission("MANAGE_BATCHES")
def verify_route():
    """Compare batch quantities against the movement ledger."""
    problems = inventory_service.verify_ledger(request.args.get("product_id", type=int))
    return jsonify({"consistent": not problems, "discrepancies": problems}), 200
