# Overview: Store expense records (Super Admin writes, Stock Manager reads).

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Expense
from ..money import to_cents, format_cents, MoneyError
from ..validation import ValidationError, NotFoundError, coerce_date
from .inventory_service import business_today


EXPENSE_FIELDS = {"description", "amount", "category", "expense_date"}


def _apply(expense: Expense, payload: dict, *, creating: bool) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - EXPENSE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    if creating:
        missing = sorted(f for f in ("description", "amount") if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    if "description" in payload:
        description = (payload["description"] or "").strip()
        if not description:
            raise ValidationError("description cannot be blank")
        expense.description = description
    if "amount" in payload:
        try:
            cents = to_cents(payload["amount"], "amount")
        except MoneyError as e:
            raise ValidationError(str(e))
        if cents <= 0:
            raise ValidationError("amount must be greater than zero")
        expense.amount_cents = cents
    if "category" in payload:
        category = (payload["category"] or "").strip() or None
        if category and len(category) > 120:
            raise ValidationError("category exceeds max length 120")
        expense.category = category
    if "expense_date" in payload:
        expense.expense_date = coerce_date(payload["expense_date"], "expense_date")
    if expense.expense_date is None:
        expense.expense_date = business_today()


def create_expense(*, payload: dict, user_id: int) -> Expense:
    expense = Expense(created_by_user_id=user_id)
    _apply(expense, payload, creating=True)
    db.session.add(expense)
    db.session.commit()
    return expense


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def update_expense(*, expense_id: int, payload: dict) -> Expense:
    expense = get_expense(expense_id)
    _apply(expense, payload, creating=False)
    db.session.commit()
    return expense


def delete_expense(*, expense_id: int) -> None:
    expense = get_expense(expense_id)
    db.session.delete(expense)
    db.session.commit()


def list_expenses(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    category: str | None = None,
) -> dict:
    query = db.session.query(Expense)
    if start_date is not None:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date is not None:
        query = query.filter(Expense.expense_date <= end_date)
    if category:
        query = query.filter(Expense.category == category)

    total = query.with_entities(func.coalesce(func.sum(Expense.amount_cents), 0)).scalar()
    expenses = query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
    return {
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_amount": format_cents(int(total or 0)),
    }
