# Overview: Service-layer operations for auth; password hashing, signup and credential checks.

"""
Authentication service.

Uses bcrypt for password hashing. Self-service signup always creates a
CUSTOMER account; admins are made through promotion or the
`flask users create-admin` command.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, ROLE_ADMIN, ROLE_CUSTOMER
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValidationError("A valid email address is required")
    return value


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12. Strength is validated first."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    role: str = ROLE_CUSTOMER,
) -> User:
    """
    Create a user. Does not commit.

    Raises:
        ValidationError: malformed email or weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    if role not in (ROLE_ADMIN, ROLE_CUSTOMER):
        raise ValidationError(f"Unknown role: {role}")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        role=role,
    )
    db.session.add(user)
    db.session.flush()
    return user


def signup(email: str, password: str, first_name: str | None = None, last_name: str | None = None) -> User:
    """Self-service registration. Always a CUSTOMER."""
    return create_user(email, password, first_name=first_name, last_name=last_name, role=ROLE_CUSTOMER)


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Updates last_login_at on success (caller commits).
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    """
    Raises:
        ValidationError: current password wrong or new password too weak
    """
    if not current_password or not new_password:
        raise ValidationError("Current and new password are required")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
