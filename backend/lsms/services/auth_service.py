# Overview: Service-layer operations for auth and user management; encapsulates business logic and database work.

"""
Authentication and User Management Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate and lose their sessions
"""

import re

import bcrypt
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, Sale, Expense
from ..models.auth import USER_ROLES
from ..validation import ConflictError, ValidationError
from . import audit_service, session_service
from .concurrency import run_with_retry
from lsms.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PasswordValidationError(AuthError):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserNotFoundError(AuthError):
    pass


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
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash verifies as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str = "SELLER",
    actor_id: int | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    actor_id is the Owner performing the action; None only for bootstrap
    (CLI), in which case the new user is recorded as its own creator.

    Raises:
        ValidationError: missing name, malformed email or unknown role
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    name = (name or "").strip()
    email = normalize_email(email)
    role = (role or "SELLER").strip().upper()

    if not name:
        raise ValidationError("name is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    password_hash = hash_password(password)

    def _op():
        try:
            if db.session.query(User.id).filter_by(email=email).first():
                raise ConflictError("Email already exists")

            user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
            db.session.add(user)
            db.session.flush()

            audit_service.append_audit(
                user_id=actor_id or user.id,
                action="USER_CREATE",
                entity_type="User",
                entity_id=user.id,
                description=f"Created user {email} ({role})",
                new_value={"name": name, "email": email, "role": role},
            )
            db.session.commit()
            return user
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Email already exists")
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_users() -> list[dict]:
    """All users with their sale and submitted-expense counts."""
    sale_counts = dict(
        db.session.query(Sale.user_id, func.count(Sale.id)).group_by(Sale.user_id).all()
    )
    expense_counts = dict(
        db.session.query(Expense.submitted_by, func.count(Expense.id)).group_by(Expense.submitted_by).all()
    )

    users = db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    result = []
    for user in users:
        data = user.to_dict()
        data["sales_count"] = int(sale_counts.get(user.id, 0))
        data["expenses_count"] = int(expense_counts.get(user.id, 0))
        result.append(data)
    return result


def set_user_active(*, user_id: int, is_active: bool, actor_id: int) -> User:
    """
    Activate or deactivate a user.

    Rules:
    - Nobody can deactivate themselves
    - The last active OWNER cannot be deactivated
    - Deactivation revokes all of the user's sessions in the same transaction
    """
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")

    if user_id == actor_id and not is_active:
        raise ValidationError("You cannot deactivate your own account")

    def _op():
        try:
            user = db.session.query(User).filter_by(id=user_id).first()
            if not user:
                raise UserNotFoundError("User not found")

            if user.is_active == is_active:
                return user

            if not is_active and user.role == "OWNER":
                other_owners = db.session.query(func.count(User.id)).filter(
                    User.role == "OWNER",
                    User.is_active.is_(True),
                    User.id != user.id,
                ).scalar()
                if not other_owners:
                    raise ConflictError("Cannot deactivate the last active owner")

            user.is_active = is_active
            if not is_active:
                session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)

            audit_service.append_audit(
                user_id=actor_id,
                action="USER_ACTIVATE" if is_active else "USER_DEACTIVATE",
                entity_type="User",
                entity_id=user.id,
                description=f"{'Activated' if is_active else 'Deactivated'} user {user.email}",
                old_value={"is_active": not is_active},
                new_value={"is_active": is_active},
            )
            db.session.commit()
            return user
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)
