# Overview: Flask API routes for sign-up, sign-in/out, session, password reset and own profile.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on sign-up and reset
- Password confirmation checked before any database work
- Sign-in throttling to slow brute-force attempts
- Self-registered accounts are always Cashier; a "role" field in the
  request body is ignored
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import permission_service
from ..services import user_service
from ..services.auth_service import (
    PasswordValidationError,
    SignUpError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    PasswordResetError,
)
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _passwords_match(data: dict, field: str = "password") -> bool:
    return data.get(field) == data.get("confirm_password")


@auth_bp.post("/sign-up")
def sign_up_route():
    """
    Create an account with a linked Cashier profile.

    Body: email, password, confirm_password, full_name?, avatar_url?
    """
    data = request.get_json(silent=True) or {}

    if not data.get("email") or not data.get("password"):
        return jsonify({"error": "email and password required"}), 400
    if not _passwords_match(data):
        return jsonify({"error": "Passwords do not match"}), 400

    try:
        user = auth_service.sign_up(
            data.get("email"),
            data.get("password"),
            full_name=data.get("full_name"),
            avatar_url=data.get("avatar_url"),
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SignUpError as e:
        return jsonify({"error": str(e)}), 400
    except EmailAlreadyRegisteredError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to sign up user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": user.to_dict(),
        "profile": user.profile.to_dict(),
        "message": "Account created"
    }), 201


@auth_bp.post("/sign-in")
def sign_in_route():
    """
    Authenticate and create a session token.

    The token must be sent as "Authorization: Bearer <token>".
    The response carries the capability set (permissions and routes)
    computed once for this session.
    """
    try:
        data = request.get_json(silent=True) or {}
        raw_email = data.get("email")
        password = data.get("password")
        if not isinstance(raw_email, str) or not isinstance(password, str):
            return jsonify({"error": "email and password must be strings"}), 400

        email = auth_service.normalize_email(raw_email)
        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            return jsonify({
                "error": "Account temporarily locked due to too many failed sign-in attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
            }), 429

        user = auth_service.authenticate(email, password)

        if not user:
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            remaining = login_throttle_service.MAX_FAILED_ATTEMPTS - failed_count
            if remaining <= 0:
                return jsonify({
                    "error": "Account locked due to too many failed sign-in attempts",
                    "locked": True,
                }), 429
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        context = session_service.build_context(user, session)
        if context is None:
            session_service.revoke_session(token, reason="Missing profile")
            return jsonify({"error": "Account has no profile"}), 403

        return jsonify({
            **context.to_dict(),
            "token": token,
            "message": "Sign-in successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to sign in user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/sign-out")
def sign_out_route():
    """Revoke the presented session token."""
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Signed out"}), 200

    except Exception:
        current_app.logger.exception("Failed to sign out user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/session")
@require_auth
def session_route():
    """Current SessionContext: user, profile, role, permissions and permitted routes."""
    return jsonify(g.session_context.to_dict()), 200


@auth_bp.post("/password-reset/request")
def password_reset_request_route():
    """
    Start a password reset. Always 202 so the response does not reveal
    whether the email is registered.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    if not email or not isinstance(email, str):
        return jsonify({"error": "email required"}), 400

    try:
        token = auth_service.request_password_reset(email)
    except Exception:
        current_app.logger.exception("Failed to create password reset token")
        return jsonify({"error": "Internal server error"}), 500

    if token:
        permission_service.log_security_event(
            user_id=None,
            event_type="PASSWORD_RESET_REQUESTED",
            success=True,
            action=auth_service.normalize_email(email),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )

    body = {"message": "If the account exists, reset instructions have been sent"}
    if token and current_app.config.get("EXPOSE_RESET_TOKENS"):
        body["reset_token"] = token
    return jsonify(body), 202


@auth_bp.post("/password-reset/confirm")
def password_reset_confirm_route():
    """Body: token, password, confirm_password."""
    data = request.get_json(silent=True) or {}

    if not data.get("token") or not data.get("password"):
        return jsonify({"error": "token and password required"}), 400
    if not _passwords_match(data):
        return jsonify({"error": "Passwords do not match"}), 400

    try:
        user = auth_service.reset_password(data["token"], data["password"])
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PasswordResetError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500

    permission_service.log_security_event(
        user_id=user.id,
        event_type="PASSWORD_RESET",
        success=True,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"message": "Password updated. Please sign in again."}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """Body: current_password, new_password, confirm_password."""
    data = request.get_json(silent=True) or {}

    if not data.get("current_password") or not data.get("new_password"):
        return jsonify({"error": "current_password and new_password required"}), 400
    if not _passwords_match(data, "new_password"):
        return jsonify({"error": "Passwords do not match"}), 400

    try:
        auth_service.change_password(g.current_user, data["current_password"], data["new_password"])
    except InvalidCredentialsError as e:
        return jsonify({"error": str(e)}), 400
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Password changed"}), 200


@auth_bp.get("/profile")
@require_auth
def get_own_profile_route():
    return jsonify({"profile": g.session_context.profile.to_dict()}), 200


@auth_bp.patch("/profile")
@require_auth
def update_own_profile_route():
    """Owner may change full_name and avatar_url. role is rejected."""
    payload = request.get_json(silent=True) or {}
    try:
        profile = user_service.update_own_profile(user=g.current_user, payload=payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"profile": profile}), 200


@auth_bp.get("/profiles/<int:user_id>")
@require_auth
def get_profile_route(user_id: int):
    """Readable by the owner, Stock Managers and Super Admins."""
    ctx = g.session_context
    if not permission_service.can_view_profile(ctx.user.id, ctx.role, user_id):
        permission_service.log_security_event(
            user_id=ctx.user.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=request.path,
            action="VIEW_PROFILES",
            reason="Profile belongs to another user",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"error": "Permission denied", "required_permission": "VIEW_PROFILES"}), 403

    try:
        user = user_service.get_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    if user.profile is None:
        return jsonify({"error": "Profile not found"}), 404
    return jsonify({"profile": user.profile.to_dict()}), 200
