# Overview: The single store settings row (company details, tax rate, currency).

from __future__ import annotations

from ..extensions import db
from ..models import StoreSettings
from ..money import to_decimal, MoneyError
from ..validation import ValidationError

SETTINGS_MUTABLE_FIELDS = {"company_name", "address", "tax_rate", "currency"}


def get_settings() -> StoreSettings:
    """Return the settings row, creating the default row on first use."""
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if settings is None:
        settings = StoreSettings(company_name="PharmaPOS", tax_rate_bps=0, currency="USD")
        db.session.add(settings)
        db.session.commit()
    return settings


def get_tax_rate_bps() -> int:
    return get_settings().tax_rate_bps


def tax_rate_to_bps(value) -> int:
    """
    Convert a percentage ("16", "7.25") to basis points.

    At most two decimal places, between 0 and 100.
    """
    try:
        rate = to_decimal(value, "tax_rate")
    except MoneyError as e:
        raise ValidationError(str(e))
    if rate < 0 or rate > 100:
        raise ValidationError("tax_rate must be between 0 and 100")
    bps = rate * 100
    if bps != bps.to_integral_value():
        raise ValidationError("tax_rate must have at most two decimal places")
    return int(bps)


def update_settings(*, payload: dict, user_id: int) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - SETTINGS_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    settings = get_settings()

    if "company_name" in payload:
        name = (payload["company_name"] or "").strip()
        if not name:
            raise ValidationError("company_name cannot be blank")
        if len(name) > 255:
            raise ValidationError("company_name exceeds max length 255")
        settings.company_name = name
    if "address" in payload:
        settings.address = (payload["address"] or "").strip() or None
    if "tax_rate" in payload:
        settings.tax_rate_bps = tax_rate_to_bps(payload["tax_rate"])
    if "currency" in payload:
        currency = (payload["currency"] or "").strip().upper()
        if not (3 <= len(currency) <= 8):
            raise ValidationError("currency must be a 3-8 character code")
        settings.currency = currency

    settings.updated_by_user_id = user_id
    db.session.commit()
    return settings.to_dict()

