"""
Account helpers for the instructor portal.
"""

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from portal.database import User
from portal.errors import ValidationError

logger = logging.getLogger(__name__)

USER_ROLES = ("instructor", "student", "admin")

MIN_PASSWORD_LENGTH = 8


def create_user(session, email, password, first_name, last_name, role="student"):
    """Create a new user with a hashed password.

    Args:
        session: SQLAlchemy session.
        email: Unique login email.
        password: Plain-text password (will be hashed).
        first_name: Given name.
        last_name: Family name.
        role: One of USER_ROLES (default "student").

    Returns:
        The created User.

    Raises:
        ValidationError: bad role, short password, missing name, or the
            email is already registered.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role '{role}' (must be one of {', '.join(USER_ROLES)})")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("First and last name are required")

    if session.query(User).filter_by(email=email).first():
        raise ValidationError(f"User {email} already exists")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    session.add(user)
    session.commit()
    logger.info("Created %s account %s", role, user.id)
    return user


def authenticate_user(session, email, password):
    """Return the User if the email/password pair is valid, None otherwise."""
    user = session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if user and check_password_hash(user.password_hash, password or ""):
        return user
    return None


def get_user_by_id(session, user_id):
    return session.query(User).filter_by(id=user_id).first()


def get_user_by_email(session, email):
    return session.query(User).filter_by(email=(email or "").strip().lower()).first()
