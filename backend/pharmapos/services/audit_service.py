# Overview: Security audit receivers subscribed to the session-change signals.

from __future__ import annotations

from ..signals import session_started, session_ended, profile_changed
from . import permission_service


def _on_session_started(user, session=None, ip_address=None, user_agent=None, **extra):
    permission_service.log_security_event(
        user_id=user.id,
        event_type="SIGNED_IN",
        success=True,
        resource="/api/auth/sign-in",
        action=user.email,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def _on_session_ended(user, reason=None, session_count=1, **extra):
    if user is None:
        return
    event_type = "SIGNED_OUT" if reason == "User logout" else "SESSIONS_REVOKED"
    permission_service.log_security_event(
        user_id=user.id,
        event_type=event_type,
        success=True,
        reason=f"{reason} ({session_count} session(s))",
    )


def _on_profile_changed(user, profile=None, changes=None, actor_id=None, **extra):
    changes = changes or {}
    if "role" in changes:
        old, new = changes["role"]
        event_type, reason = "ROLE_CHANGED", f"{old} -> {new}"
    elif "is_active" in changes:
        _, active = changes["is_active"]
        event_type = "USER_REACTIVATED" if active else "USER_DEACTIVATED"
        reason = None
    else:
        event_type, reason = "PROFILE_UPDATED", ", ".join(sorted(changes))
    permission_service.log_security_event(
        user_id=actor_id if actor_id is not None else user.id,
        event_type=event_type,
        success=True,
        resource=f"user:{user.id}",
        reason=reason,
    )


def connect_audit_receivers() -> None:
    """Subscribe the audit log to session changes. Safe to call repeatedly."""
    session_started.connect(_on_session_started)
    session_ended.connect(_on_session_ended)
    profile_changed.connect(_on_profile_changed)
