"""Quiz question import routes."""

import logging
from io import BytesIO

from flask import Blueprint, jsonify, request, send_file

from portal.errors import ValidationError
from portal.question_import import get_sample_csv, import_questions
from portal.web.blueprints.helpers import _get_session, instructor_required

logger = logging.getLogger(__name__)

quizzes_bp = Blueprint("quizzes", __name__)

ALLOWED_IMPORT_EXTENSIONS = {".csv", ".json", ".xml", ".txt"}


@quizzes_bp.route("/api/classes/<int:class_id>/quizzes/<int:quiz_id>/questions/import", methods=["POST"])
@instructor_required
def api_import_questions(ctx, class_id, quiz_id):
    """Import questions from an uploaded CSV, JSON or XML file."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded")
    filename = upload.filename
    ext = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_IMPORT_EXTENSIONS:
        raise ValidationError(f"Unsupported file type '{ext or filename}'")

    try:
        text = upload.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("File must be UTF-8 text")

    session = _get_session()
    count, errors = import_questions(
        session,
        ctx.user_id,
        class_id,
        quiz_id,
        text,
        fmt=request.form.get("format", "auto"),
        filename=filename,
    )
    return jsonify({"ok": count > 0, "imported": count, "errors": errors})


@quizzes_bp.route("/api/questions/sample-csv")
@instructor_required
def api_questions_sample_csv(ctx):
    """Download a sample question CSV template."""
    buf = BytesIO(get_sample_csv().encode("utf-8"))
    return send_file(buf, as_attachment=True, download_name="questions_template.csv", mimetype="text/csv")
