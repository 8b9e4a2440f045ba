# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

"""
Catalog routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS (every role)
- Write operations require MANAGE_PRODUCTS (Stock Manager, Super Admin)
"""
from flask import Blueprint, request

from ..services import products_service
from ..models import Product, Category
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_bool_param,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth, require_permission

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "generic_name", "brand_name", "barcode", "category_id",
        "description", "image_url", "min_stock", "is_active",
    },
    required_on_create={"name"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


# =============================================================================
# Products
# =============================================================================

@products_bp.get("/products")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    Query params:
    - q: search name / generic / brand, or exact barcode
    - category_id: int
    - active: bool
    - page, per_page: optional pagination (max 100 per page)
    """
    try:
        active = parse_bool_param(request.args.get("active"))
    except ValidationError as e:
        return {"error": str(e)}, 400

    return products_service.list_products(
        search=request.args.get("q"),
        category_id=request.args.get("category_id", type=int),
        active=active,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/products/barcode/<string:barcode>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def lookup_barcode(barcode: str):
    try:
        return products_service.find_by_barcode(barcode)
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.get("/products/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product(product_id: int):
    try:
        return products_service.get_product_detail(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.post("/products")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return created, 201


@products_bp.patch("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.delete("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def deactivate_product_route(product_id: int):
    """Soft delete: batches and sales keep referencing the product."""
    try:
        return products_service.deactivate_product(product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404


# =============================================================================
# Categories
# =============================================================================

@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_categories():
    try:
        active = parse_bool_param(request.args.get("active"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return products_service.list_categories(active=active)


@products_bp.post("/categories")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        created = products_service.create_category(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return created, 201


@products_bp.patch("/categories/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        return products_service.update_category(category_id=category_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def deactivate_category_route(category_id: int):
    try:
        return products_service.deactivate_category(category_id=category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
