# Overview: Service-layer operations for accounts and credentials; encapsulates business logic and database work.

"""
Account Service

WHY: Every token issued by token_service starts from a password check
here. Customers and administrators live in the same users table; admin
access is the is_admin flag on top of an active, registered account.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, with upper, lower, digit and special char
- Emails are compared lower-cased
- Failed logins return None without saying which part was wrong
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError
from storefront.time_utils import utcnow


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check; False for malformed hashes."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def register_user(
    name: str,
    email: str,
    password: str,
    mobile: str | None = None,
    is_admin: bool = False,
) -> User:
    """
    Create a registered account.

    Raises:
        ValidationError: missing name or malformed email
        ConflictError: email or mobile already taken
        PasswordValidationError: weak password
    """
    name = (name or "").strip()
    email = normalize_email(email)
    mobile = (mobile or "").strip() or None

    if not name:
        raise ValidationError("name is required")
    if len(name) > 255:
        raise ValidationError("name exceeds max length 255")
    if not _EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")

    if db.session.query(User).filter(User.email == email).first() is not None:
        raise ConflictError("Email already registered")
    if mobile and db.session.query(User).filter(User.mobile == mobile).first() is not None:
        raise ConflictError("Mobile number already registered")

    user = User(
        name=name,
        email=email,
        mobile=mobile,
        password_hash=hash_password(password),
        is_registered=True,
        is_active=True,
        is_admin=is_admin,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")

    current_app.logger.info("Registered user %s (admin=%s)", user.id, is_admin)
    return user


def authenticate(email: str, password: str, ip_address: str | None = None) -> User | None:
    """
    Check email + password for an active, registered account.

    Returns the User and stamps last_login_at/last_login_ip on success,
    None otherwise.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
        User.is_registered.is_(True),
    ).first()

    if user is None:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    user.last_login_ip = ip_address
    db.session.commit()
    return user


def authenticate_admin(email: str, password: str, ip_address: str | None = None) -> User | None:
    """Same as authenticate, but only for accounts with is_admin set."""
    user = authenticate(email, password, ip_address)
    if user is None or not user.is_admin:
        return None
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()
