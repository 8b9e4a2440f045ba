# Overview: Flask API routes for the store settings row.

from flask import Blueprint, request, jsonify, g

from ..services import settings_service
from ..validation import ValidationError
from ..decorators import require_auth, require_permission


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_permission("VIEW_SETTINGS")
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings().to_dict()}), 200


@settings_bp.patch("")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_settings_route():
    """
    Body (any of): company_name, address, tax_rate (percent, e.g. "16" or
    "7.25"), currency.

    The new tax rate applies to sales settled after the change.
    """
    try:
        settings = settings_service.update_settings(
            payload=request.get_json(silent=True) or {},
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"settings": settings}), 200
