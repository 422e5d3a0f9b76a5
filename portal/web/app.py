"""
Flask application factory for the instructor portal.
"""

import logging
import os
import secrets

import yaml
from flask import Flask, g
from flask_wtf.csrf import CSRFProtect

from portal.database import get_engine, init_db
from portal.web.blueprints import register_blueprints
from portal.web.blueprints.helpers import register_error_handlers

logger = logging.getLogger(__name__)

csrf = CSRFProtect()


def load_config(path="config.yaml"):
    """Load the YAML config file, or an empty dict if it does not exist."""
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def create_app(config=None):
    """
    Create and configure the Flask application.

    Args:
        config: Application config dict (paths, grading settings, etc.)
                If None, loads from config.yaml.

    Returns:
        Configured Flask app instance
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()

    app.config["APP_CONFIG"] = config

    # Never fall back to a static default key
    secret_key = os.environ.get("SECRET_KEY") or config.get("web", {}).get("secret_key")
    if not secret_key:
        logger.warning("SECRET_KEY not set; sessions will not survive a restart")
        secret_key = secrets.token_hex(32)
    app.config["SECRET_KEY"] = secret_key

    app.config["MAX_CONTENT_LENGTH"] = 5 * 1024 * 1024  # 5 MB upload limit

    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    if os.environ.get("FLASK_HTTPS"):
        app.config["SESSION_COOKIE_SECURE"] = True

    # Test fixtures may set WTF_CSRF_ENABLED to False after creation.
    csrf.init_app(app)

    if os.environ.get("DATABASE_PATH"):
        config.setdefault("paths", {})["database_file"] = os.environ["DATABASE_PATH"]

    # DATABASE_URL (e.g. PostgreSQL) takes precedence over the SQLite path.
    database_url = os.environ.get("DATABASE_URL")
    db_path = config.get("paths", {}).get("database_file", "portal.db")

    engine = get_engine(url=database_url) if database_url else get_engine(db_path)
    init_db(engine)
    app.config["DB_ENGINE"] = engine

    @app.teardown_appcontext
    def close_db_session(exception):
        """Close the database session at the end of each request."""
        session = g.pop("db_session", None)
        if session is not None:
            session.close()

    register_error_handlers(app)
    register_blueprints(app)
    return app
