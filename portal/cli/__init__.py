"""
CLI command modules for the instructor portal.

Provides shared helpers for all CLI command modules.
"""

import os

from portal.auth import get_user_by_email, get_user_by_id
from portal.database import get_engine, get_session, init_db
from portal.errors import NotFoundError, ValidationError


def get_db_session(config):
    """Helper to get a database engine and session.

    Uses DATABASE_URL environment variable if set (PostgreSQL support),
    otherwise falls back to the SQLite path in config.
    """
    database_url = os.environ.get("DATABASE_URL")
    db_path = config.get("paths", {}).get("database_file", "portal.db")
    engine = get_engine(url=database_url) if database_url else get_engine(db_path)
    init_db(engine)
    session = get_session(engine)
    return engine, session


def resolve_instructor(session, value):
    """Resolve ``--instructor`` (user ID or email) to an instructor's user ID."""
    if value is None:
        raise ValidationError("--instructor is required")
    value = str(value).strip()
    user = get_user_by_id(session, int(value)) if value.isdigit() else get_user_by_email(session, value)
    if user is None:
        raise NotFoundError(f"User '{value}' not found")
    if user.role != "instructor":
        raise ValidationError(f"User '{value}' is not an instructor")
    return user.id


def add_instructor_argument(parser):
    parser.add_argument(
        "--instructor", required=True, help="Acting instructor (user ID or email)."
    )
