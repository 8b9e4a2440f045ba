# Overview: Role-based permission checks and the security event audit trail.

"""
Permission Checking and Security Event Logging

WHY: Every stock-changing or administrative route is policy-checked on the
server. The client-side route map only hides screens; it is never trusted.

DESIGN PRINCIPLES:
- Fail closed: unknown roles and missing profiles have no permissions
- Log denials only: permission grants are not logged
- Permissions derive from the profile role (see permissions.roles)
"""

from ..extensions import db
from ..models import Profile, SecurityEvent
from ..permissions import permissions_for_role, ROLE_STOCK_MANAGER, ROLE_SUPER_ADMIN
from pharmapos.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit it.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED / SIGNED_IN / SIGNED_OUT
    - SESSIONS_REVOKED
    - ROLE_CHANGED / PROFILE_UPDATED
    - USER_DEACTIVATED / USER_REACTIVATED
    - PASSWORD_RESET_REQUESTED / PASSWORD_RESET
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_role(user_id: int) -> str | None:
    return db.session.query(Profile.role).filter_by(user_id=user_id).scalar()


def get_user_permissions(user_id: int) -> set[str]:
    """Permission codes for a user, resolved from their profile role."""
    return set(permissions_for_role(get_user_role(user_id)))


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    permissions: set[str] | frozenset[str] | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    permissions may be passed in when the caller already holds the session's
    capability set, which avoids a second role lookup per request.
    """
    if permissions is None:
        permissions = get_user_permissions(user_id)

    if permission_code not in permissions:
        log_security_event(
            user_id=user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Missing permission: {permission_code}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}")


def can_view_profile(viewer_id: int, viewer_role: str | None, target_user_id: int) -> bool:
    """Profiles are readable by their owner, Stock Managers and Super Admins."""
    if viewer_id == target_user_id:
        return True
    return viewer_role in (ROLE_STOCK_MANAGER, ROLE_SUPER_ADMIN)


def list_security_events(
    *,
    user_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SecurityEvent], int]:
    query = db.session.query(SecurityEvent)
    if user_id is not None:
        query = query.filter(SecurityEvent.user_id == user_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    total = query.count()
    events = (
        query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total
