# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every order and invoice action must be attributable. Uses bcrypt for
password hashing; verification and reset tokens are random, stored as
SHA-256 hashes with expiries.

SECURITY NOTES:
- Passwords hashed with bcrypt (rounds from BCRYPT_ROUNDS, default 12)
- Minimum length comes from the password_min_length setting
- Strong-password rules apply when require_strong_password is on
- Email verification tokens expire after 24 hours, reset tokens after 1 hour
- Session tokens managed separately (see session_service.py)
"""

import re
from datetime import timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, VendorProfile, CustomerProfile
from ..models.users import ROLE_ADMIN, ROLE_VENDOR, ROLE_CUSTOMER
from ..validation import ValidationError, ConflictError, NotFoundError
from rentmarket.time_utils import utcnow
from . import settings_service
from .session_service import generate_token, hash_token, revoke_all_user_sessions


EMAIL_VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(hours=1)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SIGNUP_ROLES = {ROLE_CUSTOMER, ROLE_VENDOR}


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password against the current settings.

    Always: at least password_min_length characters.
    With require_strong_password: upper, lower and a digit.

    Raises PasswordValidationError if requirements not met.
    """
    settings = settings_service.get_system_settings()
    min_length = int(settings.get("password_min_length") or 8)

    if not isinstance(password, str) or len(password) < min_length:
        raise PasswordValidationError(f"Password must be at least {min_length} characters long")

    if settings.get("require_strong_password"):
        if not re.search(r'[A-Z]', password):
            raise PasswordValidationError("Password must contain at least one uppercase letter")
        if not re.search(r'[a-z]', password):
            raise PasswordValidationError("Password must contain at least one lowercase letter")
        if not re.search(r'\d', password):
            raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


def create_user(
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str = "",
    role: str = ROLE_CUSTOMER,
    company_name: str | None = None,
    gstin: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    email_verified: bool = False,
) -> User:
    """
    Create a user and the profile matching its role. Does not commit.

    Raises:
        ValidationError: bad email, unknown role, vendor without company
        ConflictError: email already registered
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email address is required")
    if not (first_name or "").strip():
        raise ValidationError("first_name is required")
    if role not in (ROLE_ADMIN, ROLE_VENDOR, ROLE_CUSTOMER):
        raise ValidationError(f"Invalid role '{role}'")
    if role == ROLE_VENDOR and not (company_name or "").strip():
        raise ValidationError("company_name is required for vendors")
    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        first_name=first_name.strip(),
        last_name=(last_name or "").strip(),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
        email_verified=email_verified,
    )
    if role == ROLE_VENDOR:
        user.vendor_profile = VendorProfile(
            company_name=company_name.strip(),
            gstin=(gstin or "").strip() or None,
            address=address,
        )
    elif role == ROLE_CUSTOMER:
        user.customer_profile = CustomerProfile(phone=phone, default_address=address)
    db.session.add(user)
    db.session.flush()
    return user


def signup(data: dict) -> tuple[User, str | None]:
    """
    Self-service registration for customers and vendors.

    Returns (user, verification_token). The token is None when the account
    needs no verification.
    """
    if not settings_service.get_setting("allow_registration"):
        raise ValidationError("Registration is currently disabled")
    role = str(data.get("role") or ROLE_CUSTOMER).strip().upper()
    if role not in SIGNUP_ROLES:
        raise ValidationError("role must be CUSTOMER or VENDOR")

    user = create_user(
        email=data.get("email"),
        password=data.get("password") or "",
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        role=role,
        company_name=data.get("company_name"),
        gstin=data.get("gstin"),
        phone=data.get("phone"),
        address=data.get("address"),
    )
    token = issue_verification_token(user)
    db.session.commit()
    return user, token


def authenticate(email: str, password: str) -> User | None:
    """
    Return the user for valid credentials, else None.

    Inactive accounts fail the same way as wrong passwords.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    user.last_login_at = utcnow()
    db.session.commit()
    return user


def issue_verification_token(user: User) -> str:
    """Set a fresh email verification token on `user`. Does not commit."""
    token = generate_token()
    user.email_verification_token_hash = hash_token(token)
    user.email_verification_expires_at = utcnow() + EMAIL_VERIFICATION_TTL
    return token


def verify_email(token: str) -> User:
    user = db.session.query(User).filter_by(email_verification_token_hash=hash_token(token or "")).first()
    if not user:
        raise ValidationError("Invalid verification token")
    if user.email_verification_expires_at is None or user.email_verification_expires_at < utcnow():
        raise ValidationError("Verification token has expired")
    user.email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    db.session.commit()
    return user


def resend_verification(email: str) -> tuple[User, str] | None:
    """New verification token for an unverified account; None when nothing to send."""
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user or user.email_verified:
        return None
    token = issue_verification_token(user)
    db.session.commit()
    return user, token


def request_password_reset(email: str) -> tuple[User, str] | None:
    """
    Issue a password reset token. Returns None for unknown or inactive
    accounts so callers can answer identically either way.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user or not user.is_active:
        return None
    token = generate_token()
    user.password_reset_token_hash = hash_token(token)
    user.password_reset_expires_at = utcnow() + PASSWORD_RESET_TTL
    db.session.commit()
    return user, token


def reset_password(token: str, new_password: str) -> User:
    """Consume a reset token, set the new password and revoke every session."""
    user = db.session.query(User).filter_by(password_reset_token_hash=hash_token(token or "")).first()
    if not user:
        raise ValidationError("Invalid or expired reset token")
    if user.password_reset_expires_at is None or user.password_reset_expires_at < utcnow():
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = hash_password(new_password)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    revoke_all_user_sessions(user.id, reason="Password reset")
    db.session.commit()
    return user


def set_user_active(user_id: int, is_active: bool, *, acting_user_id: int | None = None) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    if acting_user_id == user.id and not is_active:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = bool(is_active)
    if not user.is_active:
        revoke_all_user_sessions(user.id, reason="User account deactivated")
    db.session.commit()
    return user
