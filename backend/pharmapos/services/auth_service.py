# Overview: Sign-up, credential checks, password hashing and password reset.

"""
Authentication Service

WHY: Every stock movement and sale is attributed to a user. Uses bcrypt for
password hashing and validates password strength.

SIGN-UP RULE: a self-registered account always receives the Cashier role.
Roles are only changed by a Super Admin (see user_service.change_role), so a
client can never grant itself Super Admin by tampering with the request.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character required
- Reset tokens are single-use, hashed and time-limited
- A password reset revokes every session of the user
"""

import bcrypt
import re
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, Profile, PasswordResetToken
from ..permissions import DEFAULT_ROLE, is_valid_role
from . import session_service
from pharmapos.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class SignUpError(ValueError):
    """Raised when sign-up input is invalid (400)."""
    pass


class EmailAlreadyRegisteredError(ValueError):
    """Raised when the email already belongs to an account (409)."""
    pass


class InvalidCredentialsError(Exception):
    """Raised when a current password check fails."""
    pass


class PasswordResetError(Exception):
    """Raised for unknown, expired or already-used reset tokens."""
    pass


def normalize_email(email: str | None) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def validate_email(email: str) -> str:
    normalized = normalize_email(email)
    if not normalized or not EMAIL_RE.match(normalized):
        raise SignUpError("A valid email address is required")
    if len(normalized) > 255:
        raise SignUpError("Email exceeds max length 255")
    return normalized


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor BCRYPT_LOG_ROUNDS, default 12).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch rather than an error.
    """
    if not isinstance(password, str) or not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    *,
    role: str = DEFAULT_ROLE,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Create a User and its Profile in one transaction.

    Internal entry point used by sign_up (always Cashier) and by the CLI
    bootstrap. Raises EmailAlreadyRegisteredError, SignUpError or
    PasswordValidationError.
    """
    if not is_valid_role(role):
        raise SignUpError(f"Unknown role: {role}")

    normalized = validate_email(email)

    if db.session.query(User.id).filter_by(email=normalized).first():
        raise EmailAlreadyRegisteredError("An account with this email already exists")

    password_hash = hash_password(password)

    user = User(email=normalized, password_hash=password_hash, is_active=True)
    user.profile = Profile(
        full_name=(full_name or "").strip() or None,
        avatar_url=(avatar_url or "").strip() or None,
        role=role,
    )

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise EmailAlreadyRegisteredError("An account with this email already exists")

    current_app.logger.info("Created user id=%s role=%s", user.id, role)
    return user


def sign_up(
    email: str,
    password: str,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Self-registration: creates the account with exactly one Cashier profile.

    There is deliberately no role parameter.
    """
    return create_user(
        email,
        password,
        role=DEFAULT_ROLE,
        full_name=full_name,
        avatar_url=avatar_url,
    )


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate an active user by email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def change_password(user: User, current_password: str, new_password: str) -> None:
    """Change a signed-in user's password. Other sessions stay valid."""
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()


def request_password_reset(email: str) -> str | None:
    """
    Create a reset token for a known, active email.

    Returns the plaintext token (None when the email is unknown). Callers
    must not reveal to the client whether the email exists.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    token = session_service.generate_token()
    ttl = timedelta(minutes=current_app.config["PASSWORD_RESET_TTL_MINUTES"])
    now = utcnow()

    db.session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=session_service.hash_token(token),
        created_at=now,
        expires_at=now + ttl,
    ))
    db.session.commit()
    return token


def reset_password(token: str, new_password: str) -> User:
    """
    Consume a reset token and set a new password.

    Every session of the user is revoked afterwards.
    """
    if not isinstance(token, str) or not token:
        raise PasswordResetError("Reset token is required")

    reset = db.session.query(PasswordResetToken).filter_by(
        token_hash=session_service.hash_token(token)
    ).first()

    now = utcnow()
    if not reset or reset.used_at is not None or reset.expires_at < now:
        raise PasswordResetError("Reset token is invalid or has expired")

    user = reset.user
    if not user.is_active:
        raise PasswordResetError("Reset token is invalid or has expired")

    user.password_hash = hash_password(new_password)
    reset.used_at = now
    db.session.commit()

    session_service.revoke_all_user_sessions(user.id, reason="Password reset")
    return user
