# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every action must be attributable, so every user has their own login.
Passwords are hashed with bcrypt; the cost factor comes from the
BCRYPT_ROUNDS config value (tests lower it).

Password rules:
- Minimum 8 characters
- At least one uppercase letter, one lowercase letter and one digit
- At least one special character
"""

import re

import bcrypt
from flask import current_app

from ..errors import AuthError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from . import session_service


def validate_password_strength(password: str) -> None:
    """Raises ValidationError (WEAK_PASSWORD) if requirements are not met."""
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", code="WEAK_PASSWORD")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter", code="WEAK_PASSWORD")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter", code="WEAK_PASSWORD")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit", code="WEAK_PASSWORD")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise ValidationError("Password must contain at least one special character", code="WEAK_PASSWORD")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    username: str,
    email: str,
    password: str,
    full_name: str,
    role: str,
) -> User:
    """
    Create a user. Username and email are globally unique.

    Raises ConflictError (USER_EXISTS) or ValidationError (WEAK_PASSWORD).
    """
    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists", code="USER_EXISTS")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Look up an active user by username or email and check the password.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def login(username, password, *, user_agent: str | None = None, ip_address: str | None = None) -> dict:
    if not isinstance(username, str) or not username.strip() or not isinstance(password, str) or not password:
        raise ValidationError("username and password are required")

    user = authenticate(username.strip(), password)
    if user is None:
        raise AuthError("Invalid credentials", code="INVALID_CREDENTIALS")

    session, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return {
        "token": token,
        "token_type": "Bearer",
        "expires_at": session.to_dict()["expires_at"],
        "user": user.to_dict(),
    }


def change_password(user: User, current_password, new_password, *, keep_token: str | None = None) -> int:
    """
    Change a user's password and revoke their other sessions.

    Returns the number of sessions revoked.
    """
    if not isinstance(current_password, str) or not isinstance(new_password, str):
        raise ValidationError("current_password and new_password are required")
    if not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect", code="INVALID_CURRENT_PASSWORD")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    return session_service.revoke_all_user_sessions(
        user.id,
        reason="Password changed",
        except_token=keep_token,
    )


def list_users() -> list[dict]:
    users = db.session.query(User).order_by(User.username.asc()).all()
    return [u.to_dict() for u in users]


def set_user_active(user_id: int, is_active, *, acting_user_id: int) -> dict:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be true or false")
    if user_id == acting_user_id and not is_active:
        raise ValidationError("You cannot deactivate your own account", code="CANNOT_DEACTIVATE_SELF")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    user.is_active = is_active
    db.session.commit()

    if not is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")

    return user.to_dict()
