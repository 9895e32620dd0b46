# Overview: Service-layer operations for auth identities; encapsulates business logic and database work.

"""
Authentication Identity Service

WHY: Every account and admin action belongs to one identity. Uses bcrypt for
password hashing. Privileges are expressed as custom claims on the identity
(e.g. {"admin": true}) and travel with every session.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters (matches the registration form)
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import MIN_PASSWORD_LENGTH


ROLE_BUSINESS = "business"


class AuthError(Exception):
    """Raised for identity operation errors."""
    pass


class EmailAlreadyExistsError(AuthError):
    """Raised when an identity with the email already exists."""
    pass


class IdentityNotFoundError(AuthError):
    """Raised when no identity matches the lookup."""
    pass


class PasswordValidationError(AuthError):
    """Raised when password doesn't meet requirements."""
    pass


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Raises PasswordValidationError for passwords shorter than the minimum.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_identity_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


def create_identity(email: str, password: str, display_name: str | None = None) -> User:
    """
    Create and commit a new identity.

    Raises:
        EmailAlreadyExistsError: email already registered (checked up front and
            enforced by the unique index for concurrent registrations)
        PasswordValidationError: password too short
    """
    email = normalize_email(email)
    if get_identity_by_email(email):
        raise EmailAlreadyExistsError("Email already in use")

    user = User(
        email=email,
        password_hash=hash_password(password),
        display_name=display_name,
        custom_claims={},
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise EmailAlreadyExistsError("Email already in use")
    return user


def delete_identity(user_id: str) -> None:
    """Remove an identity and its sessions (registration compensation)."""
    user = db.session.get(User, user_id)
    if user is None:
        return
    db.session.delete(user)
    db.session.commit()


def set_custom_claims(user_id: str, claims: dict, *, merge: bool = True) -> User:
    """
    Replace or merge the identity's custom claims.

    Claims are picked up by the next validated request; existing sessions
    read them from the identity, not from a copy.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise IdentityNotFoundError(f"Identity {user_id} not found")

    current = dict(user.custom_claims or {}) if merge else {}
    current.update(claims)
    # Reassign so the JSON column is flagged dirty
    user.custom_claims = current
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate by email and password.

    Returns the identity and stamps last_login_at on success, None otherwise.
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
