"""Authentication routes: login, logout, health check."""

import logging

from flask import Blueprint, jsonify
from flask import session as flask_session
from flask_wtf.csrf import generate_csrf

from portal.auth import authenticate_user
from portal.web.blueprints.helpers import _get_session, json_body, login_required

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/login", methods=["POST"])
def login():
    """Log in with email and password (JSON or form body)."""
    data = json_body()
    session = _get_session()
    user = authenticate_user(session, data.get("email", ""), data.get("password", ""))
    if user is None:
        logger.warning("Failed login for %r", data.get("email", ""))
        return jsonify({"error": "Invalid email or password."}), 401

    flask_session.clear()  # Regenerate session to prevent fixation
    flask_session["logged_in"] = True
    flask_session["user_id"] = user.id
    flask_session["role"] = user.role
    return jsonify({"ok": True, "user": {"id": user.id, "name": user.full_name, "role": user.role}})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout(ctx):
    flask_session.clear()
    return jsonify({"ok": True})


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on later POSTs."""
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/health")
def health():
    """Health check endpoint for monitoring."""
    return jsonify({"status": "ok", "service": "instructor-portal"})
