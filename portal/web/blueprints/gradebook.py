"""Gradebook routes: class summary, student grades, grading, bulk grading, export."""

import logging

from flask import Blueprint, current_app, jsonify, request

from portal.assessments import get_assessment, parse_id
from portal.classroom import require_class_owner
from portal.errors import ValidationError
from portal.export_utils import sanitize_filename
from portal.gradebook import (
    aggregate_student,
    bulk_grade,
    export_grades_csv,
    get_recent_grades,
    grade_submission,
    gradebook_view,
    grading_settings,
    record_grade,
    sync_quiz_grades,
)
from portal.web.blueprints.helpers import (
    _get_session,
    csv_download,
    grade_entry_to_dict,
    instructor_required,
    json_body,
    to_json,
)

logger = logging.getLogger(__name__)

gradebook_bp = Blueprint("gradebook", __name__)


@gradebook_bp.route("/api/classes/<int:class_id>/gradebook")
@instructor_required
def api_gradebook(ctx, class_id):
    """Class summary plus the filtered, sorted student list."""
    session = _get_session()
    view = gradebook_view(
        session,
        ctx.user_id,
        class_id,
        grade_filter=request.args.get("filter", "all"),
        search=request.args.get("search", ""),
        sort_by=request.args.get("sort_by", "name"),
        sort_order=request.args.get("sort_order", "asc"),
        config=current_app.config["APP_CONFIG"],
    )
    for student in view["students"]:
        student["percentage"] = round(student["percentage"], 2)
    return jsonify(to_json(view))


@gradebook_bp.route("/api/classes/<int:class_id>/students/<int:student_id>/grades")
@instructor_required
def api_student_grades(ctx, class_id, student_id):
    session = _get_session()
    aggregate = aggregate_student(session, ctx.user_id, student_id, class_id)
    aggregate["percentage"] = round(aggregate["percentage"], 2)
    return jsonify(to_json(aggregate))


@gradebook_bp.route("/api/classes/<int:class_id>/grades", methods=["POST"])
@instructor_required
def api_record_grade(ctx, class_id):
    """Record one grade. Body: student_id, assessment_type, assessment_id, score, feedback."""
    session = _get_session()
    require_class_owner(session, class_id, ctx.user_id)
    data = json_body()
    assessment_type = data.get("assessment_type", "")
    assessment_id = parse_id(data.get("assessment_id"), "assessment_id")
    if get_assessment(session, assessment_type, assessment_id).class_id != class_id:
        raise ValidationError(f"{assessment_type.capitalize()} {assessment_id} does not belong to class {class_id}")

    entry = record_grade(
        session,
        ctx.user_id,
        parse_id(data.get("student_id"), "student_id"),
        assessment_type,
        assessment_id,
        data.get("score"),
        data.get("feedback"),
    )
    return jsonify({"ok": True, "grade": grade_entry_to_dict(entry)})


@gradebook_bp.route("/api/classes/<int:class_id>/submissions/<int:submission_id>/grade", methods=["POST"])
@instructor_required
def api_grade_submission(ctx, class_id, submission_id):
    session = _get_session()
    data = json_body()
    entry = grade_submission(
        session, ctx.user_id, class_id, submission_id, data.get("grade", data.get("score")), data.get("feedback")
    )
    return jsonify({"ok": True, "grade": grade_entry_to_dict(entry)})


@gradebook_bp.route("/api/classes/<int:class_id>/grades/bulk", methods=["POST"])
@instructor_required
def api_bulk_grade(ctx, class_id):
    """Grade many submissions. Body: {"grades": [{submission_id, grade, feedback}, ...]}."""
    session = _get_session()
    data = json_body()
    entries = data.get("grades")
    if not isinstance(entries, list):
        raise ValidationError("'grades' must be a list")
    if not all(isinstance(entry, dict) for entry in entries):
        raise ValidationError("Each grade must be an object")

    result = bulk_grade(session, ctx.user_id, class_id, entries)
    return jsonify(result)


@gradebook_bp.route("/api/classes/<int:class_id>/grades/export")
@instructor_required
def api_export_grades(ctx, class_id):
    """Download the class gradebook as CSV."""
    session = _get_session()
    class_obj = require_class_owner(session, class_id, ctx.user_id)
    csv_text = export_grades_csv(session, ctx.user_id, class_id)
    return csv_download(csv_text, f"{sanitize_filename(class_obj.name, default='class')}_grades.csv")


@gradebook_bp.route("/api/classes/<int:class_id>/grades/recent")
@instructor_required
def api_recent_grades(ctx, class_id):
    session = _get_session()
    default_limit = grading_settings(current_app.config["APP_CONFIG"])["recent_limit"]
    limit = request.args.get("limit", default_limit, type=int)
    if limit is None or limit < 1:
        raise ValidationError("limit must be a positive integer")
    return jsonify({"grades": to_json(get_recent_grades(session, ctx.user_id, class_id, limit=limit))})


@gradebook_bp.route("/api/classes/<int:class_id>/grades/sync-quizzes", methods=["POST"])
@instructor_required
def api_sync_quiz_grades(ctx, class_id):
    """Pull best graded quiz attempts into the gradebook."""
    session = _get_session()
    updated = sync_quiz_grades(session, ctx.user_id, class_id)
    return jsonify({"ok": True, "updated": updated})
