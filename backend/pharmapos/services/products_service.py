# Overview: Catalog service for products and categories; search, create, patch, deactivate.

"""
Products Service

Products carry identity and descriptive data only. Stock lives in batches,
so every product dict can be enriched with its derived quantity on hand.

Products and categories are never hard-deleted: batches, sale items and
purchase order items reference them. Deactivation hides them from the POS.
"""
from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Category, ProductBatch
from ..validation import ConflictError, NotFoundError

PRODUCT_MUTABLE_FIELDS = {
    "name", "generic_name", "brand_name", "barcode", "category_id",
    "description", "image_url", "min_stock", "is_active",
}
CATEGORY_MUTABLE_FIELDS = {"name", "description", "is_active"}


def _paginate(base_query, serialize, page: int | None, per_page: int | None) -> dict:
    if page is None:
        rows = base_query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _on_hand_by_product(product_ids: list[int]) -> dict[int, int]:
    if not product_ids:
        return {}
    rows = (
        db.session.query(ProductBatch.product_id, func.coalesce(func.sum(ProductBatch.quantity), 0))
        .filter(ProductBatch.product_id.in_(product_ids))
        .group_by(ProductBatch.product_id)
        .all()
    )
    return {pid: int(qty) for pid, qty in rows}


def _with_stock(products: list[Product]) -> list[dict]:
    on_hand = _on_hand_by_product([p.id for p in products])
    out = []
    for p in products:
        d = p.to_dict()
        d["quantity_on_hand"] = on_hand.get(p.id, 0)
        out.append(d)
    return out


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if not db.session.get(Category, category_id):
        raise NotFoundError("Category not found")


def _check_barcode_free(barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("Barcode already exists")


# =============================================================================
# Products
# =============================================================================

def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List products with optional search and pagination.

    search matches name, generic name, brand name (case-insensitive substring)
    or an exact barcode.
    """
    query = db.session.query(Product)

    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            func.lower(Product.generic_name).like(term),
            func.lower(Product.brand_name).like(term),
            Product.barcode == search.strip(),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active is not None:
        query = query.filter(Product.is_active.is_(active))

    query = query.order_by(Product.name.asc(), Product.id.asc())

    result = _paginate(query, lambda p: p, page, per_page)
    result["items"] = _with_stock(result["items"])
    return result


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_product_detail(product_id: int) -> dict:
    return _with_stock([get_product(product_id)])[0]


def find_by_barcode(barcode: str) -> dict:
    """POS scan lookup. Only active products resolve."""
    code = (barcode or "").strip()
    product = db.session.query(Product).filter(
        Product.barcode == code,
        Product.is_active.is_(True),
    ).first()
    if not product:
        raise NotFoundError("Product not found")
    return _with_stock([product])[0]


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        NotFoundError: unknown category_id
        ConflictError: barcode already in use
    """
    _require_category(patch.get("category_id"))
    _check_barcode_free(patch.get("barcode"))

    product = Product(**{k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS})
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists")

    return _with_stock([product])[0]


def update_product(*, product_id: int, patch: dict) -> dict:
    product = get_product(product_id)

    if "category_id" in patch:
        _require_category(patch["category_id"])
    if "barcode" in patch:
        _check_barcode_free(patch["barcode"], exclude_id=product.id)

    for k, v in patch.items():
        if k in PRODUCT_MUTABLE_FIELDS:
            setattr(product, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists")

    return _with_stock([product])[0]


def deactivate_product(*, product_id: int) -> dict:
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()
    return product.to_dict()


# =============================================================================
# Categories
# =============================================================================

def list_categories(*, active: bool | None = None) -> dict:
    query = db.session.query(Category)
    if active is not None:
        query = query.filter(Category.is_active.is_(active))
    categories = query.order_by(Category.name.asc()).all()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _check_category_name_free(name: str | None, exclude_id: int | None = None) -> None:
    if not name:
        return
    q = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first():
        raise ConflictError("Category name already exists")


def create_category(*, patch: dict) -> dict:
    _check_category_name_free(patch.get("name"))
    category = Category(**{k: v for k, v in patch.items() if k in CATEGORY_MUTABLE_FIELDS})
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category name already exists")
    return category.to_dict()


def update_category(*, category_id: int, patch: dict) -> dict:
    category = get_category(category_id)
    if "name" in patch:
        _check_category_name_free(patch["name"], exclude_id=category.id)
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category name already exists")
    return category.to_dict()


def deactivate_category(*, category_id: int) -> dict:
    category = get_category(category_id)
    category.is_active = False
    db.session.commit()
    return category.to_dict()
