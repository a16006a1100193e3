# Overview: Service-layer operations for auth; accounts, password hashing and credential checks.

"""
Authentication Service

WHY: Every order, stock entry and status change must be attributable to an
account (or explicitly to a guest). Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Usernames 6-50 characters, unique; emails unique when present
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re
from datetime import date

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import SessionToken, StockEntry, User
from ..models.auth import ROLE_CUSTOMER, VALID_ROLES
from ..time_utils import parse_iso_date, utcnow
from .session_service import revoke_all_user_sessions


MIN_PASSWORD_LENGTH = 8
USERNAME_MIN_LENGTH = 6
USERNAME_MAX_LENGTH = 50

BCRYPT_ROUNDS = 12

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PROFILE_FIELDS = ("firstname", "lastname", "gender")


def validate_password(password: str | None) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def validate_username(username: str | None) -> str:
    username = (username or "").strip()
    if not (USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH):
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )
    return username


def normalize_email(email: str | None) -> str | None:
    email = (email or "").strip().lower()
    if not email:
        return None
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password length is validated before hashing.
    """
    validate_password(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    verifies as False rather than raising.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _ensure_unique(username: str, email: str | None, *, exclude_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Username already exists")

    if email:
        query = db.session.query(User).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Email already registered")


def _coerce_birth_date(value) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError("birth_date must be YYYY-MM-DD") from None


def create_user(
    username: str,
    password: str,
    *,
    email: str | None = None,
    role: str = ROLE_CUSTOMER,
    firstname: str | None = None,
    lastname: str | None = None,
    gender: str | None = None,
    birth_date=None,
    is_verified: bool = False,
) -> User:
    """
    Create an account with a bcrypt password hash.

    Raises:
        ValidationError: bad username/password/email/role
        ConflictError: username or email already taken
    """
    username = validate_username(username)
    validate_password(password)
    email = normalize_email(email)
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    _ensure_unique(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        firstname=(firstname or "").strip() or None,
        lastname=(lastname or "").strip() or None,
        gender=(gender or "").strip() or None,
        birth_date=_coerce_birth_date(birth_date),
        is_verified=is_verified,
        created_at=utcnow(),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists") from None
    return user


def register_customer(payload: dict) -> User:
    """Self-service registration; always creates a customer."""
    return create_user(
        payload.get("username"),
        payload.get("password"),
        email=payload.get("email"),
        role=ROLE_CUSTOMER,
        firstname=payload.get("firstname"),
        lastname=payload.get("lastname"),
        gender=payload.get("gender"),
        birth_date=payload.get("birth_date") or payload.get("birthdate"),
    )


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User and stamps last_login_at on success, None otherwise.
    """
    identifier = (username or "").strip()
    if not identifier or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(*, role: str | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.id.asc()).all()


def update_user(user_id: int, payload: dict) -> User:
    """Admin edit. Only keys present in payload are touched."""
    user = get_user(user_id)

    username = validate_username(payload["username"]) if "username" in payload else user.username
    email = normalize_email(payload["email"]) if "email" in payload else user.email
    _ensure_unique(username, email, exclude_id=user.id)
    user.username = username
    user.email = email

    if "role" in payload:
        if payload["role"] not in VALID_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
        user.role = payload["role"]
    for field in PROFILE_FIELDS:
        if field in payload:
            setattr(user, field, (payload[field] or "").strip() or None)
    if "birth_date" in payload:
        user.birth_date = _coerce_birth_date(payload["birth_date"])
    if "is_active" in payload:
        user.is_active = bool(payload["is_active"])
    if "is_verified" in payload:
        user.is_verified = bool(payload["is_verified"])
    if payload.get("password"):
        user.password_hash = hash_password(payload["password"])

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists") from None
    if not user.is_active:
        revoke_all_user_sessions(user.id)
    return user


def delete_user(user_id: int) -> None:
    """
    Remove an account that never ordered; otherwise deactivate it.

    Orders keep their user_id for history, so accounts with orders are
    soft-deleted.
    """
    user = get_user(user_id)
    if user.orders:
        user.is_active = False
    else:
        db.session.query(SessionToken).filter_by(user_id=user.id).delete()
        db.session.query(StockEntry).filter_by(created_by_user_id=user.id).update(
            {"created_by_user_id": None}, synchronize_session=False
        )
        db.session.delete(user)
    db.session.commit()


def mark_verified(email: str) -> User | None:
    user = db.session.query(User).filter(User.email == normalize_email(email)).first()
    if user is None:
        return None
    user.is_verified = True
    db.session.commit()
    return user
