# Overview: Flask API routes for user administration and the security audit log.

"""
Admin routes for user and role management.

Provides endpoints for:
- User management (list, create, change role, deactivate, reactivate)
- Role catalog (roles with their permissions and permitted routes)
- Security event log

All endpoints require authentication; writes require MANAGE_USERS (Super Admin).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service, user_service, permission_service
from ..services.auth_service import PasswordValidationError, SignUpError, EmailAlreadyRegisteredError
from ..permissions import (
    ALL_ROLES,
    DEFAULT_ROLE,
    ROLE_PERMISSIONS,
    is_valid_role,
    get_all_permission_codes,
    get_permission_definition,
)
from ..navigation import permitted_routes
from ..validation import ValidationError, ConflictError, NotFoundError, parse_bool_param
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    """
    List users with their profiles.

    Query params:
    - role: Super Admin | Stock Manager | Cashier
    - active: bool
    """
    role = request.args.get("role")
    if role and not is_valid_role(role):
        return jsonify({"error": f"Unknown role: {role}"}), 400
    try:
        active = parse_bool_param(request.args.get("active"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    users = user_service.list_users(role=role, active=active)
    return jsonify({"users": users, "count": len(users)})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def get_user(user_id: int):
    try:
        return jsonify({"user": user_service.get_user_detail(user_id)})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create a staff account with any role.

    Request body:
    - email: str (required)
    - password: str (required)
    - role: str (default Cashier)
    - full_name: str
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return jsonify({"error": "email and password required"}), 400

    role = data.get("role") or DEFAULT_ROLE
    if not is_valid_role(role):
        return jsonify({"error": f"Unknown role: {role}"}), 400

    try:
        user = auth_service.create_user(
            data["email"],
            data["password"],
            role=role,
            full_name=data.get("full_name"),
            avatar_url=data.get("avatar_url"),
        )
    except (PasswordValidationError, SignUpError) as e:
        return jsonify({"error": str(e)}), 400
    except EmailAlreadyRegisteredError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="USER_CREATED",
        success=True,
        resource=f"user:{user.id}",
        action=role,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"user": user_service.get_user_detail(user.id)}), 201


@admin_bp.patch("/users/<int:user_id>/role")
@require_auth
@require_permission("MANAGE_USERS")
def change_role(user_id: int):
    """Body: role. The target's sessions are revoked."""
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return jsonify({"error": "role required"}), 400

    try:
        user = user_service.change_role(user_id=user_id, role=data["role"], actor_id=g.current_user.id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"user": user})


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    """
    Deactivate a user and revoke their sessions.

    You cannot deactivate yourself or the last active Super Admin.
    """
    try:
        user = user_service.set_active(user_id=user_id, active=False, actor_id=g.current_user.id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"user": user, "message": "User deactivated"})


@admin_bp.post("/users/<int:user_id>/reactivate")
@require_auth
@require_permission("MANAGE_USERS")
def reactivate_user(user_id: int):
    try:
        user = user_service.set_active(user_id=user_id, active=True, actor_id=g.current_user.id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"user": user, "message": "User reactivated"})


# =============================================================================
# ROLES
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_permission("MANAGE_USERS")
def list_roles():
    roles = [
        {
            "name": role,
            "permissions": sorted(ROLE_PERMISSIONS[role]),
            "routes": permitted_routes(role),
        }
        for role in ALL_ROLES
    ]
    return jsonify({"roles": roles})


@admin_bp.get("/permissions")
@require_auth
@require_permission("MANAGE_USERS")
def list_permissions():
    """Permission catalog grouped by category, for the role matrix screen."""
    categories: dict[str, list] = {}
    for code in get_all_permission_codes():
        definition = get_permission_definition(code)
        categories.setdefault(definition["category"], []).append(definition)
    return jsonify({"categories": categories})


# =============================================================================
# SECURITY EVENTS
# =============================================================================

@admin_bp.get("/security-events")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_security_events():
    """Query params: user_id, event_type, limit (max 500), offset."""
    events, total = permission_service.list_security_events(
        user_id=request.args.get("user_id", type=int),
        event_type=request.args.get("event_type"),
        limit=min(request.args.get("limit", 100, type=int), 500),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [e.to_dict() for e in events], "total": total})
