# Overview: Service-layer operations for auth; password hashing and user management.

"""
Authentication and user management.

WHY: Every sale, movement and payment is attributed to a user, so accounts are
personal and created only by an ADMIN (or the CLI bootstrap).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with at least one letter and one digit
- Login is case-insensitive on username and email
- Sessions are signed tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ROLES, CreditPayment, PhoneMovement, Sale, StockMovement, User
from shoppos.time_utils import utcnow


USERNAME_PATTERN = re.compile(r"^[a-z0-9_.-]{3,64}$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash is treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_login(login: str) -> str:
    return (login or "").strip().lower()


def _normalize_username(username) -> str:
    if not isinstance(username, str):
        raise ValidationError("username is required")
    value = username.strip().lower()
    if not USERNAME_PATTERN.match(value):
        raise ValidationError(
            "username must be 3-64 characters of letters, digits, '.', '_' or '-'"
        )
    return value


def _normalize_email(email, username: str) -> str:
    if email is None or (isinstance(email, str) and not email.strip()):
        return f"{username}@local"
    if not isinstance(email, str) or "@" not in email:
        raise ValidationError("email must be a valid address")
    return email.strip().lower()


def _validate_role(role) -> str:
    value = (role or "STAFF")
    if not isinstance(value, str) or value.upper() not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return value.upper()


def find_user_by_login(login: str) -> User | None:
    """
    Resolve a login to a user.

    Tries username, then email, then '<login>@local' for bare logins so that
    accounts created without an email can sign in by name.
    """
    value = normalize_login(login)
    if not value:
        return None
    candidates = [value]
    if "@" not in value:
        candidates.append(f"{value}@local")
    return db.session.query(User).filter(
        db.or_(
            db.func.lower(User.username) == value,
            db.func.lower(User.email).in_(candidates),
        )
    ).first()


def authenticate(login: str, password: str) -> User | None:
    """
    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not login or not password:
        return None
    user = find_user_by_login(login)
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def create_user(username, password, role="STAFF", email=None) -> User:
    """
    Create a user with a bcrypt-hashed password.

    Raises ValidationError for bad input and ConflictError when the username
    or email is already taken.
    """
    username = _normalize_username(username)
    email = _normalize_email(email, username)
    role = _validate_role(role)
    password_hash = hash_password(password)

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(username=username, email=email, password_hash=password_hash, role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")
    return user


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)

    # Validate everything before touching the row
    changes = {}
    if "username" in data:
        changes["username"] = _normalize_username(data["username"])
    if "email" in data:
        changes["email"] = _normalize_email(data["email"], changes.get("username", user.username))
    if "role" in data:
        changes["role"] = _validate_role(data["role"])
    if data.get("password"):
        changes["password_hash"] = hash_password(data["password"])

    for key, value in changes.items():
        setattr(user, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")
    return user


def _is_referenced(user_id: int) -> bool:
    for model in (Sale, StockMovement, CreditPayment, PhoneMovement):
        if db.session.query(model.id).filter(model.user_id == user_id).first():
            return True
    return False


def delete_user(user_id: int, *, acting_user_id: int) -> None:
    """
    Delete a user account.

    Users who recorded sales, movements or payments keep the audit trail
    intact: deleting them is a conflict.
    """
    if user_id == acting_user_id:
        raise ValidationError("You cannot delete your own account")
    user = get_user(user_id)
    if _is_referenced(user.id):
        raise ConflictError("User has recorded activity and cannot be deleted")

    db.session.delete(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User has recorded activity and cannot be deleted")


def ensure_default_admin(username: str, password: str) -> tuple[User, bool]:
    """
    Create the bootstrap ADMIN if no user with that name exists.

    Returns (user, created).
    """
    username = _normalize_username(username)
    user = db.session.query(User).filter_by(username=username).first()
    if user:
        return user, False
    return create_user(username, password, role="ADMIN"), True
