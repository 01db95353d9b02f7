# Overview: Password hashing, user creation and credential checks.

"""
Authentication Service

WHY: Every ticket mutation must be attributable to a user. Uses bcrypt for
secure password hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one home store. Username uniqueness is
store-scoped, so login takes an optional store_id to disambiguate.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special character
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt

from ..extensions import db
from ..errors import ValidationError
from ..models import Store, User
from ..models.auth import VALID_ORG_ROLES, VALID_ROLES, ROLE_TECHNICIAN
from repairdesk.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 after a strength check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    store_id: int,
    username: str,
    password: str,
    name: str,
    role: str = ROLE_TECHNICIAN,
    org_role: str | None = None,
    email: str | None = None,
) -> User:
    """
    Create new staff user in a store.

    Raises ValidationError for an unknown store, role or duplicate username.
    """
    store = db.session.get(Store, store_id)
    if not store:
        raise ValidationError("Store not found")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if org_role is not None and org_role not in VALID_ORG_ROLES:
        raise ValidationError(f"Invalid organization role: {org_role}")
    if org_role is not None and store.org_id is None:
        raise ValidationError("Organization roles require a store that belongs to an organization")

    existing = db.session.query(User).filter_by(store_id=store_id, username=username).first()
    if existing:
        raise ValidationError("Username already exists in this store")

    user = User(
        store_id=store_id,
        username=username,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        org_role=org_role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, store_id: int | None = None) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if store_id is not None:
        query = query.filter(User.store_id == store_id)

    user = query.first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
