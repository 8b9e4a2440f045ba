# Overview: Flask API routes for supplier master data.

from flask import Blueprint, request

from ..services import supplier_service
from ..models import Supplier
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_supplier,
    parse_bool_param,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth, require_permission

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "payment_terms", "is_active"},
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_suppliers():
    try:
        active = parse_bool_param(request.args.get("active"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return supplier_service.list_suppliers(search=request.args.get("q"), active=active)


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_supplier(supplier_id: int):
    try:
        return supplier_service.get_supplier(supplier_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        enforce_rules_supplier(patch)
        created = supplier_service.create_supplier(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return created, 201


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        enforce_rules_supplier(patch)
        return supplier_service.update_supplier(supplier_id=supplier_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except NotFoundError as e:
        return {"error": str(e)}, 404


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def deactivate_supplier_route(supplier_id: int):
    try:
        return supplier_service.deactivate_supplier(supplier_id=supplier_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
