# Overview: Atomic allocation of human-readable document numbers (receipts, purchase orders).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


RECEIPT = ("SALE", "RCPT", 6)
PURCHASE_ORDER = ("PURCHASE_ORDER", "PO", 4)


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _bump(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    The increment is a single UPDATE, so two transactions cannot receive the
    same number. Does not commit: the number is only consumed if the caller's
    document commits. The first allocation for a type inserts the sequence row
    inside a savepoint so a concurrent first insert does not poison the
    caller's transaction.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    number = _bump(document_type)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump(document_type)
            if number is None:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")

    return f"{prefix}-{number:0{pad}d}"


def next_receipt_number() -> str:
    document_type, prefix, pad = RECEIPT
    return next_document_number(document_type=document_type, prefix=prefix, pad=pad)


def next_purchase_order_number() -> str:
    document_type, prefix, pad = PURCHASE_ORDER
    return next_document_number(document_type=document_type, prefix=prefix, pad=pad)
