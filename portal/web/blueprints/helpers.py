"""Shared utilities for the portal blueprint modules."""

import functools
import logging
from datetime import datetime
from io import BytesIO
from typing import NamedTuple

from flask import current_app, g, jsonify, request, send_file
from flask import session as flask_session

from portal.database import get_session
from portal.errors import PortalError, ValidationError

logger = logging.getLogger(__name__)


class RequestContext(NamedTuple):
    """Who is making the request. Built per request and passed to handlers."""

    user_id: int
    role: str


def _get_session():
    """Get a database session from the shared app engine."""
    if "db_session" not in g:
        engine = current_app.config["DB_ENGINE"]
        g.db_session = get_session(engine)
    return g.db_session


def _current_context():
    user_id = flask_session.get("user_id")
    if not flask_session.get("logged_in") or user_id is None:
        return None
    return RequestContext(user_id=int(user_id), role=flask_session.get("role", ""))


def login_required(f):
    """Require a logged-in user; the handler receives a RequestContext first."""

    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = _current_context()
        if ctx is None:
            return jsonify({"error": "Login required"}), 401
        return f(ctx, *args, **kwargs)

    return decorated_function


def instructor_required(f):
    """Like login_required, but only instructors get through."""

    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = _current_context()
        if ctx is None:
            return jsonify({"error": "Login required"}), 401
        if ctx.role != "instructor":
            logger.warning("User %s with role %r denied instructor route %s", ctx.user_id, ctx.role, request.path)
            return jsonify({"error": "Instructor access required"}), 403
        return f(ctx, *args, **kwargs)

    return decorated_function


def json_body():
    """Return the request's JSON object body, or raise ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def to_json(value):
    """Recursively convert datetimes to ISO strings for jsonify."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


def grade_entry_to_dict(entry):
    return to_json(
        {
            "id": entry.id,
            "class_id": entry.class_id,
            "student_id": entry.student_id,
            "assessment_type": entry.assessment_type,
            "assessment_id": entry.assessment_id,
            "score": entry.score,
            "max_score": entry.max_score,
            "percentage": round(entry.percentage, 2),
            "letter": entry.grade_letter,
            "feedback": entry.notes,
            "updated_at": entry.updated_at,
        }
    )


def csv_download(csv_text, filename):
    buf = BytesIO(csv_text.encode("utf-8"))
    return send_file(buf, as_attachment=True, download_name=filename, mimetype="text/csv")


def register_error_handlers(app):
    """Map portal errors to JSON responses with their status codes."""

    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        return jsonify({"error": error.message}), error.status_code
