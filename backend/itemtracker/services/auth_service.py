# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Passwords are hashed with bcrypt. Accounts self-register; an email
verification token is generated and stored on the user. Delivering it is
outside this service (the issue is logged so operators can pick it up).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower and digit required
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import User
from ..validation import ConflictError, NotFoundError, ValidationError
from itemtracker.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Password reset links stop working after this long
RESET_TOKEN_TTL = timedelta(hours=1)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    Accounts created through external auth have no hash and never match.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def register_user(
    *,
    email: str,
    username: str,
    password: str,
    full_name: str | None = None,
) -> User:
    """
    Create a new unverified user.

    Raises ValidationError for malformed input, PasswordValidationError for
    weak passwords, ConflictError when username or email is taken
    (case-insensitive).
    """
    email = (email or "").strip().lower()
    username = (username or "").strip()
    full_name = (full_name or "").strip() or None

    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if len(username) < 3 or len(username) > 100:
        raise ValidationError("Username must be between 3 and 100 characters")

    password_hash = hash_password(password or "")

    existing = db.session.query(User).filter(
        or_(
            func.lower(User.email) == email,
            func.lower(User.username) == username.lower(),
        )
    ).first()
    if existing:
        if existing.email.lower() == email:
            raise ConflictError("Email already registered")
        raise ConflictError("Username already taken")

    user = User(
        email=email,
        username=username,
        full_name=full_name,
        password_hash=password_hash,
        is_verified=False,
        verification_token=secrets.token_urlsafe(32),
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info(
        "Issued email verification token for user %s (%s)", user.id, user.email
    )
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Look up an active user by email or username and check the password.

    Returns None on any mismatch; callers must not reveal which part failed.
    """
    identifier = (identifier or "").strip()
    if not identifier or not password:
        return None

    user = db.session.query(User).filter(
        or_(
            func.lower(User.email) == identifier.lower(),
            func.lower(User.username) == identifier.lower(),
        )
    ).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def verify_email(token: str) -> User:
    """Mark the user owning `token` as verified. Raises NotFoundError."""
    token = (token or "").strip()
    if not token:
        raise ValidationError("Verification token is required")

    user = db.session.query(User).filter_by(verification_token=token).first()
    if not user:
        raise NotFoundError("Invalid or expired verification token")

    user.is_verified = True
    user.verification_token = None
    db.session.commit()
    return user


def update_profile(user: User, *, full_name: str | None = None, email: str | None = None) -> User:
    """Edit profile fields. Changing email resets verification."""
    if full_name is not None:
        user.full_name = full_name.strip() or None

    if email is not None:
        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("A valid email is required")
        if email != user.email:
            taken = db.session.query(User).filter(
                func.lower(User.email) == email,
                User.id != user.id,
            ).first()
            if taken:
                raise ConflictError("Email already registered")
            user.email = email
            user.is_verified = False
            user.verification_token = secrets.token_urlsafe(32)
            current_app.logger.info(
                "Issued email verification token for user %s (%s)", user.id, user.email
            )

    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password or "", user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password or "")
    db.session.commit()


def request_password_reset(email: str) -> User | None:
    """
    Issue a reset token for the account registered under `email`.

    Returns the user, or None when there is nothing to reset (unknown email,
    inactive account, or an account without a local password). Callers
    answer the same way in every case.
    """
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")

    user = db.session.query(User).filter(func.lower(User.email) == email).first()
    if not user or not user.is_active or not user.password_hash:
        return None

    user.reset_password_token = secrets.token_urlsafe(32)
    user.reset_password_expires = utcnow() + RESET_TOKEN_TTL
    db.session.commit()

    current_app.logger.info(
        "Issued password reset token for user %s (%s)", user.id, user.email
    )
    return user


def reset_password(token: str, new_password: str) -> User:
    """
    Set a new password using a reset token and consume the token.

    Raises ValidationError for a missing, unknown or expired token and
    PasswordValidationError for a weak password.
    """
    token = (token or "").strip()
    if not token:
        raise ValidationError("Reset token is required")

    user = db.session.query(User).filter_by(reset_password_token=token).first()
    if (
        not user
        or not user.reset_password_expires
        or user.reset_password_expires < utcnow()
    ):
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = hash_password(new_password or "")
    user.reset_password_token = None
    user.reset_password_expires = None
    db.session.commit()
    return user
