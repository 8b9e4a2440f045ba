# Overview: Flask API routes for the purchase order lifecycle and receipt.

"""
Purchase order routes.

All routes require MANAGE_PURCHASE_ORDERS (Stock Manager, Super Admin).
Lifecycle violations (receiving twice, cancelling a received order) are 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_order_service
from ..services.purchase_order_service import PurchaseOrderStateError
from ..services.inventory_service import InsufficientStockError, InventoryError
from ..models import PO_STATUSES
from ..validation import ValidationError, NotFoundError, coerce_int, coerce_date
from ..decorators import require_auth, require_permission


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def create_order_route():
    """
    Body:
        supplier_id: int
        items: [{product_id, quantity, unit_cost, batch_number?, expiry_date?}, ...]
        order_date?, expected_date?: YYYY-MM-DD
        notes?: str
    """
    data = request.get_json(silent=True) or {}

    try:
        order = purchase_order_service.create_order(
            supplier_id=coerce_int(data.get("supplier_id"), "supplier_id"),
            items=data.get("items"),
            created_by_user_id=g.current_user.id,
            order_date=coerce_date(data.get("order_date"), "order_date"),
            expected_date=coerce_date(data.get("expected_date"), "expected_date"),
            notes=data.get("notes"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 201


@purchase_orders_bp.get("")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def list_orders_route():
    """Query params: status, supplier_id, limit, offset."""
    status = request.args.get("status")
    if status and status not in PO_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(PO_STATUSES)}"}), 400

    orders, total = purchase_order_service.list_orders(
        status=status,
        supplier_id=request.args.get("supplier_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "total": total}), 200


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def get_order_route(order_id: int):
    try:
        order = purchase_order_service.get_order(order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200


@purchase_orders_bp.post("/<int:order_id>/items")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def add_item_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.add_item(order_id=order_id, item=data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PurchaseOrderStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 201


@purchase_orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def remove_item_route(order_id: int, item_id: int):
    try:
        order = purchase_order_service.remove_item(order_id=order_id, item_id=item_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PurchaseOrderStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200


@purchase_orders_bp.post("/<int:order_id>/send")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def send_order_route(order_id: int):
    try:
        order = purchase_order_service.mark_sent(order_id=order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PurchaseOrderStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"purchase_order": order.to_dict()}), 200


@purchase_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def cancel_order_route(order_id: int):
    """Body: reason?"""
    data = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.cancel_order(
            order_id=order_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PurchaseOrderStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"purchase_order": order.to_dict()}), 200


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
@require_permission("MANAGE_PURCHASE_ORDERS")
def receive_order_route(order_id: int):
    """
    Receive every open item into batch stock and mark the order Received.

    One transaction: on any failure nothing is booked.
    """
    try:
        order = purchase_order_service.receive_order(order_id=order_id, user_id=g.current_user.id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PurchaseOrderStateError as e:
        return jsonify({"error": str(e)}), 409
    except InsufficientStockError as e:
        return jsonify(e.to_dict()), 409
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200
