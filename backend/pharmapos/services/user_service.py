# Overview: Super Admin user administration; roles, activation and profile edits.

"""
User Administration

- Role changes and deactivation revoke the target's sessions, so the next
  request re-authenticates and receives a capability set computed from the
  new role.
- The last active Super Admin can be neither demoted nor deactivated. The
  demotion or deactivation is one conditional UPDATE that only matches while
  another active Super Admin exists, taken after locking the Super Admin
  rows, so two admins removing each other cannot both succeed.
- Nobody deactivates their own account.
"""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import User, Profile
from ..permissions import ROLE_SUPER_ADMIN, is_valid_role
from ..signals import profile_changed
from ..validation import ValidationError, ConflictError, NotFoundError
from . import session_service
from .concurrency import lock_for_update, run_with_retry


PROFILE_SELF_FIELDS = {"full_name", "avatar_url"}


def _serialize(user: User) -> dict:
    data = user.to_dict()
    data["profile"] = user.profile.to_dict() if user.profile else None
    return data


def get_user(user_id: int, *, lock: bool = False) -> User:
    query = db.session.query(User).filter(User.id == user_id)
    if lock:
        query = lock_for_update(query)
    user = query.first()
    if not user:
        raise NotFoundError("User not found")
    return user


def get_user_detail(user_id: int) -> dict:
    return _serialize(get_user(user_id))


def list_users(*, role: str | None = None, active: bool | None = None) -> list[dict]:
    query = db.session.query(User).join(Profile, Profile.user_id == User.id)
    if role:
        query = query.filter(Profile.role == role)
    if active is not None:
        query = query.filter(User.is_active.is_(active))
    return [_serialize(u) for u in query.order_by(User.email.asc()).all()]


def _lock_active_super_admins() -> None:
    query = (
        db.session.query(User.id, Profile.id)
        .join(Profile, Profile.user_id == User.id)
        .filter(Profile.role == ROLE_SUPER_ADMIN, User.is_active.is_(True))
    )
    lock_for_update(query).all()


def _remove_super_admin(stmt) -> None:
    """
    Run an UPDATE that demotes or deactivates a Super Admin.

    stmt must carry _another_super_admin_remains() in its WHERE clause; zero
    affected rows means it was the last one. Does not commit.
    """
    _lock_active_super_admins()
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        raise ConflictError("Cannot remove the last active Super Admin")


def _another_super_admin_remains(user_id: int):
    other = aliased(User)
    other_profile = aliased(Profile)
    remaining = (
        select(func.count(other.id))
        .join(other_profile, other_profile.user_id == other.id)
        .where(
            other_profile.role == ROLE_SUPER_ADMIN,
            other.is_active.is_(True),
            other.id != user_id,
        )
        .scalar_subquery()
    )
    return remaining > 0


def _is_active_super_admin(user: User) -> bool:
    return bool(user.is_active and user.profile and user.profile.role == ROLE_SUPER_ADMIN)


def change_role(*, user_id: int, role: str, actor_id: int | None = None) -> dict:
    if not is_valid_role(role):
        raise ValidationError(f"Unknown role: {role}")

    def _op():
        user = get_user(user_id, lock=True)
        profile = user.profile
        if profile is None:
            raise NotFoundError("Profile not found")

        old_role = profile.role
        if old_role == role:
            return user, old_role

        if _is_active_super_admin(user):
            _remove_super_admin(
                update(Profile)
                .where(
                    Profile.id == profile.id,
                    Profile.role == ROLE_SUPER_ADMIN,
                    _another_super_admin_remains(user.id),
                )
                .values(role=role, version_id=Profile.version_id + 1)
            )
        else:
            profile.role = role
        db.session.commit()
        return user, old_role

    user, old_role = run_with_retry(_op)
    if old_role == role:
        return _serialize(user)
    profile = user.profile

    session_service.revoke_all_user_sessions(user.id, reason="Role changed")
    profile_changed.send(user, profile=profile, changes={"role": (old_role, role)}, actor_id=actor_id)
    return _serialize(user)


def set_active(*, user_id: int, active: bool, actor_id: int | None = None) -> dict:
    if not active and actor_id is not None and actor_id == user_id:
        raise ConflictError("You cannot deactivate your own account")

    def _op():
        user = get_user(user_id, lock=True)
        if user.is_active == active:
            return user, False
        if not active and _is_active_super_admin(user):
            _remove_super_admin(
                update(User)
                .where(
                    User.id == user.id,
                    User.is_active.is_(True),
                    _another_super_admin_remains(user.id),
                )
                .values(is_active=False)
            )
        else:
            user.is_active = active
        db.session.commit()
        return user, True

    user, changed = run_with_retry(_op)
    if not changed:
        return _serialize(user)

    if not active:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    profile_changed.send(user, profile=user.profile, changes={"is_active": (not active, active)}, actor_id=actor_id)
    return _serialize(user)


def update_own_profile(*, user: User, payload: dict) -> dict:
    """Owner edits display fields. role is never writable here."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    for k in payload:
        if k not in PROFILE_SELF_FIELDS:
            raise ValidationError(f"Field not allowed: {k}")

    profile = user.profile
    if profile is None:
        raise NotFoundError("Profile not found")

    changes = {}
    for k, raw in payload.items():
        if raw is not None and not isinstance(raw, str):
            raise ValidationError(f"{k} must be a string")
        value = (raw or "").strip() or None
        limit = 255 if k == "full_name" else 512
        if value and len(value) > limit:
            raise ValidationError(f"{k} exceeds max length {limit}")
        old = getattr(profile, k)
        if old != value:
            setattr(profile, k, value)
            changes[k] = (old, value)

    if changes:
        db.session.commit()
        profile_changed.send(user, profile=profile, changes=changes)
    return profile.to_dict()
