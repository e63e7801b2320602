# Overview: Service-layer operations for auth and user accounts.

"""
Authentication Service

Every bill, stock movement and catalog change records the acting user, so
this module owns password hashing, bearer token issue/decode and the user
account lifecycle.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters
- Bearer tokens are HS256 JWTs carrying the user id and role; the user row is
  re-read on every request so deactivation takes effect immediately
"""

from datetime import timedelta

import bcrypt
from flask import current_app
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, USER_ROLES, Bill, InventoryTransaction, Product, Service
from ..validation import ConflictError, NotFoundError, ValidationError, parse_sort
from station.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6
REFERENCED_USER_MESSAGE = "User is referenced by bills, stock history or the catalog; deactivate the account instead"

USER_SORTABLE = {
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "created_at": User.created_at,
    "createdAt": User.created_at,
}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str | None) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field_name="password",
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_access_token(user: User) -> str:
    cfg = current_app.config
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=cfg["JWT_EXPIRES_HOURS"]),
    }
    return jwt.encode(payload, cfg["JWT_SECRET_KEY"], algorithm=cfg["JWT_ALGORITHM"])


def user_from_token(token: str) -> User | None:
    """
    Resolve a bearer token to an active user.

    Returns None for bad signatures, expired tokens, unknown or inactive users.
    """
    cfg = current_app.config
    try:
        claims = jwt.decode(token, cfg["JWT_SECRET_KEY"], algorithms=[cfg["JWT_ALGORITHM"]])
        user_id = int(claims["sub"])
    except (JWTError, KeyError, ValueError):
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _require_email_available(email: str, exclude_user_id: int | None = None) -> None:
    q = db.session.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    if q.first() is not None:
        raise ConflictError("User with this email already exists")


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = "staff",
    phone: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing name/email, bad role or weak password
        ConflictError: email already registered
    """
    errors = []
    if not name or not str(name).strip():
        errors.append({"field": "name", "message": "Name is required"})
    email = _normalize_email(email)
    if not email or "@" not in email:
        errors.append({"field": "email", "message": "Please include a valid email"})
    if role not in USER_ROLES:
        errors.append({"field": "role", "message": f"role must be one of: {', '.join(USER_ROLES)}"})
    if errors:
        raise ValidationError(errors)

    _require_email_available(email)

    user = User(
        name=str(name).strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        phone=phone,
    )

    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created user id=%s role=%s", user.id, user.role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == _normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if user is None or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(
    *,
    role: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    sort: str | None = None,
) -> list[User]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == role)
    if active is not None:
        q = q.filter(User.is_active.is_(active))
    if search:
        q = q.filter(db.or_(
            User.name.icontains(search, autoescape=True),
            User.email.icontains(search, autoescape=True),
        ))
    order = parse_sort(sort, USER_SORTABLE, default=[User.name.asc()])
    return q.order_by(*order, User.id.asc()).all()


def update_user(user: User, patch: dict) -> User:
    """
    Apply an admin or self-service patch.

    Recognised keys: name, email, role, phone, is_active, password.
    """
    if "email" in patch and patch["email"] is not None:
        email = _normalize_email(patch["email"])
        if "@" not in email:
            raise ValidationError("Please include a valid email", field_name="email")
        if email != user.email:
            _require_email_available(email, exclude_user_id=user.id)
        user.email = email

    if patch.get("name"):
        user.name = str(patch["name"]).strip()

    if "role" in patch and patch["role"] is not None and patch["role"] not in USER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(USER_ROLES)}", field_name="role"
        )

    demoted = patch.get("role") is not None and patch["role"] != "admin"
    deactivated = patch.get("is_active") is not None and not patch["is_active"]
    if user.role == "admin" and user.is_active and (demoted or deactivated):
        _require_other_admin(user)

    if patch.get("role") is not None:
        user.role = patch["role"]

    if "phone" in patch:
        user.phone = patch["phone"]

    if "is_active" in patch and patch["is_active"] is not None:
        user.is_active = bool(patch["is_active"])

    if patch.get("password"):
        user.password_hash = hash_password(patch["password"])

    db.session.commit()
    return user


def change_own_password(user: User, current_password: str | None, new_password: str) -> None:
    if not current_password or not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect", field_name="current_password")
    user.password_hash = hash_password(new_password)


def _require_other_admin(user: User) -> None:
    """Another active admin must remain once `user` loses admin access."""
    others = (
        db.session.query(func.count(User.id))
        .filter(User.role == "admin", User.is_active.is_(True), User.id != user.id)
        .scalar()
    )
    if not others:
        raise ConflictError("Cannot remove the last active admin user")


def is_user_referenced(user_id: int) -> bool:
    """True when bills, stock history or catalog rows record this user."""
    checks = (
        (Bill.id, Bill.created_by_user_id),
        (InventoryTransaction.id, InventoryTransaction.performed_by_user_id),
        (Product.id, Product.created_by_user_id),
        (Service.id, Service.created_by_user_id),
    )
    for id_column, user_column in checks:
        if db.session.query(id_column).filter(user_column == user_id).first() is not None:
            return True
    return False


def delete_user(user_id: int) -> None:
    """
    Hard-delete a user account.

    Raises:
        NotFoundError: unknown id
        ConflictError: the user is the only remaining active admin, or bills,
            stock history or catalog rows still record the user
    """
    user = get_user(user_id)
    if user.role == "admin" and user.is_active:
        _require_other_admin(user)
    if is_user_referenced(user.id):
        raise ConflictError(REFERENCED_USER_MESSAGE)

    db.session.delete(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(REFERENCED_USER_MESSAGE)
    current_app.logger.info("Deleted user id=%s", user_id)
