"""Class listing and roster routes."""

from flask import Blueprint, jsonify

from portal.classroom import (
    export_roster_csv,
    list_classes,
    list_roster,
    require_class_owner,
    set_enrollment_status,
)
from portal.export_utils import sanitize_filename
from portal.web.blueprints.helpers import _get_session, csv_download, instructor_required, json_body, to_json

classes_bp = Blueprint("classes", __name__)


@classes_bp.route("/api/classes")
@instructor_required
def api_classes(ctx):
    """Classes taught by the logged-in instructor."""
    session = _get_session()
    return jsonify({"classes": list_classes(session, ctx.user_id)})


@classes_bp.route("/api/classes/<int:class_id>/roster")
@instructor_required
def api_roster(ctx, class_id):
    session = _get_session()
    class_obj = require_class_owner(session, class_id, ctx.user_id)
    roster = list_roster(session, class_id)
    return jsonify({"class_id": class_obj.id, "class_name": class_obj.name, "students": to_json(roster)})


@classes_bp.route("/api/classes/<int:class_id>/roster/export")
@instructor_required
def api_roster_export(ctx, class_id):
    """Download the active roster as CSV."""
    session = _get_session()
    csv_text = export_roster_csv(session, ctx.user_id, class_id)
    class_obj = require_class_owner(session, class_id, ctx.user_id)
    return csv_download(csv_text, f"{sanitize_filename(class_obj.name, default='class')}_roster.csv")


@classes_bp.route("/api/classes/<int:class_id>/roster/<int:student_id>/status", methods=["POST"])
@instructor_required
def api_enrollment_status(ctx, class_id, student_id):
    """Change a student's enrollment status. Body: {"status": "active" | "dropped" | "completed"}."""
    session = _get_session()
    status = (json_body().get("status") or "").strip().lower()
    enrollment = set_enrollment_status(session, ctx.user_id, class_id, student_id, status)
    return jsonify({"ok": True, "student_id": enrollment.student_id, "status": enrollment.status})
