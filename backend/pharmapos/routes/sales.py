# Overview: Flask API routes for sale settlement, sale lookups and customers.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service, permission_service
from ..services.sales_service import SaleError, PriceOverrideError
from ..services.inventory_service import InsufficientStockError, InventoryError
from ..validation import ValidationError, NotFoundError, coerce_date
from ..decorators import require_auth, require_permission, require_any_permission


sales_bp = Blueprint("sales", __name__, url_prefix="/api")


def _can_view_all() -> bool:
    return g.session_context.has_permission("VIEW_ALL_SALES")


@sales_bp.post("/sales")
@require_auth
@require_permission("CREATE_SALE")
def settle_sale_route():
    """
    Settle a sale in one request.

    Body:
        items: [{batch_id, quantity, unit_price?, discount?}, ...]
        payment_method: cash | card | insurance | other
        customer_id?: int
        discount?: sale-level discount amount

    Responses:
        201 sale with items
        400 invalid input, expired or inactive batch
        403 explicit unit_price differs without OVERRIDE_PRICE
        404 unknown batch or customer
        409 a batch cannot cover its line; nothing was recorded
    """
    data = request.get_json(silent=True) or {}
    ctx = g.session_context

    try:
        sale = sales_service.settle_sale(
            cashier_id=ctx.user.id,
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            customer_id=data.get("customer_id"),
            discount=data.get("discount", 0),
            allow_price_override=ctx.has_permission("OVERRIDE_PRICE"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PriceOverrideError as e:
        permission_service.log_security_event(
            user_id=ctx.user.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=request.path,
            action="OVERRIDE_PRICE",
            reason=str(e),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({
            "error": "Permission denied",
            "required_permission": "OVERRIDE_PRICE",
            "batch_id": e.batch_id,
        }), 403
    except InsufficientStockError as e:
        return jsonify(e.to_dict()), 409
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("/sales")
@require_auth
@require_any_permission("VIEW_OWN_SALES", "VIEW_ALL_SALES")
def list_sales_route():
    """
    Query params: start_date, end_date (inclusive, YYYY-MM-DD), cashier_id,
    limit, offset.

    Cashiers only ever see their own sales.
    """
    try:
        start = coerce_date(request.args.get("start_date"), "start_date")
        end = coerce_date(request.args.get("end_date"), "end_date")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    sales, total = sales_service.list_sales(
        viewer_id=g.current_user.id,
        can_view_all=_can_view_all(),
        start_date=start,
        end_date=end,
        cashier_id=request.args.get("cashier_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [s.to_dict() for s in sales], "total": total}), 200


@sales_bp.get("/sales/<int:sale_id>")
@require_auth
@require_any_permission("VIEW_OWN_SALES", "VIEW_ALL_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, viewer_id=g.current_user.id, can_view_all=_can_view_all())
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


@sales_bp.get("/sales/receipt/<string:receipt_number>")
@require_auth
@require_any_permission("VIEW_OWN_SALES", "VIEW_ALL_SALES")
def get_sale_by_receipt_route(receipt_number: str):
    try:
        sale = sales_service.get_sale_by_receipt(
            receipt_number, viewer_id=g.current_user.id, can_view_all=_can_view_all()
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


# =============================================================================
# Customers
# =============================================================================

@sales_bp.post("/customers")
@require_auth
@require_permission("CREATE_CUSTOMER")
def create_customer_route():
    data = request.get_json(silent=True) or {}
    try:
        customer = sales_service.create_customer(
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            created_by_user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"customer": customer.to_dict()}), 201


@sales_bp.get("/customers")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    customers, total = sales_service.list_customers(
        search=request.args.get("q"),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [c.to_dict() for c in customers], "total": total}), 200


@sales_bp.get("/customers/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": sales_service.get_customer(customer_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
