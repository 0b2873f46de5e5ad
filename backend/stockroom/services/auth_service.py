# Overview: Service-layer operations for auth; staff accounts and password hashing.

"""
Authentication Service

Staff accounts. Every sale is attributed to the staff member who recorded it
(transactions.created_by). Uses bcrypt for password hashing.

Roles:
- admin: may create users, change anyone's password, delete products
- manager: day-to-day catalogue and sales work
"""

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import atomic_unit


ROLES = ("admin", "manager")
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost factor from BCRYPT_ROUNDS, default 12)."""
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def _validate_password(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def create_user(username: str, password: str, role: str | None = None) -> User:
    """
    Create a staff account.

    Raises ValidationError for bad input, ConflictError when the username
    already exists.
    """
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("Username and password required")
    _validate_password(password)
    role = role or "manager"
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    try:
        with atomic_unit():
            if db.session.query(User.id).filter_by(username=username).first():
                raise ConflictError("Username already exists")
            user = User(username=username, password_hash=hash_password(password), role=role)
            db.session.add(user)
            db.session.flush()
    except IntegrityError:
        raise ConflictError("Username already exists")

    current_app.logger.info("Created user %s (%s)", username, role)
    return user


def change_password(username: str, new_password: str) -> User:
    if not username or not new_password:
        raise ValidationError("Username and newPassword required")
    _validate_password(new_password)

    with atomic_unit():
        user = db.session.query(User).filter_by(username=username).first()
        if user is None:
            raise NotFoundError("User not found")
        user.password_hash = hash_password(new_password)
    return user


def authenticate(username: str, password: str) -> User | None:
    """Return the user for valid credentials, else None."""
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def ensure_bootstrap_admin(username: str | None, password: str | None) -> User | None:
    """
    Create the first admin from configuration when no users exist yet.

    Idempotent: does nothing once any account exists.
    """
    if db.session.query(User.id).first() is not None:
        return None
    if not username or not password:
        current_app.logger.warning(
            "No users found. Set ADMIN_USERNAME and ADMIN_PASSWORD to create an admin."
        )
        return None
    return create_user(username, password, role="admin")
