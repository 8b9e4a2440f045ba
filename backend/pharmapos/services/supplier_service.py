# Overview: Supplier master data used by purchase orders and batches.

from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Supplier
from ..validation import ConflictError, NotFoundError

SUPPLIER_MUTABLE_FIELDS = {
    "name", "contact_person", "email", "phone", "address", "payment_terms", "is_active",
}


def _normalize(patch: dict) -> dict:
    data = {k: v for k, v in patch.items() if k in SUPPLIER_MUTABLE_FIELDS}
    if data.get("email"):
        data["email"] = data["email"].lower()
    return data


def _check_email_free(email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    q = db.session.query(Supplier.id).filter(Supplier.email == email)
    if exclude_id is not None:
        q = q.filter(Supplier.id != exclude_id)
    if q.first():
        raise ConflictError("Supplier email already exists")


def list_suppliers(*, search: str | None = None, active: bool | None = None) -> dict:
    query = db.session.query(Supplier)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Supplier.name).like(term),
            func.lower(Supplier.contact_person).like(term),
            func.lower(Supplier.email).like(term),
        ))
    if active is not None:
        query = query.filter(Supplier.is_active.is_(active))
    suppliers = query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()
    return {"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def create_supplier(*, patch: dict) -> dict:
    data = _normalize(patch)
    _check_email_free(data.get("email"))

    supplier = Supplier(**data)
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Supplier email already exists")
    return supplier.to_dict()


def update_supplier(*, supplier_id: int, patch: dict) -> dict:
    supplier = get_supplier(supplier_id)
    data = _normalize(patch)
    if "email" in data:
        _check_email_free(data["email"], exclude_id=supplier.id)

    for k, v in data.items():
        setattr(supplier, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Supplier email already exists")
    return supplier.to_dict()


def deactivate_supplier(*, supplier_id: int) -> dict:
    supplier = get_supplier(supplier_id)
    supplier.is_active = False
    db.session.commit()
    return supplier.to_dict()
