"""
Gradebook service for the instructor portal.

Storage-backed counterpart of ``portal.grading``: records grades with an
atomic upsert, keeps the assignment-submission mirror in step, and builds
student and class aggregates from structured join rows.

Every public operation takes the acting ``instructor_id`` and verifies
class ownership before reading or writing anything.
"""

import csv
import io
import logging
import math
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.assessments import count_pending_submissions, get_assessment, list_assessments, parse_id
from portal.classroom import list_roster, require_class_owner
from portal.database import Assignment, Enrollment, GradeEntry, Quiz, QuizAttempt, Submission, User, utcnow
from portal.errors import NotFoundError, ValidationError
from portal.export_utils import sanitize_csv_cell
from portal.grading import (
    DEFAULT_MIN_GRADED_ENTRIES,
    DEFAULT_NEEDS_ATTENTION_THRESHOLD,
    aggregate_grade_rows,
    compute_letter_grade,
    compute_percentage,
    summarize_class,
)

logger = logging.getLogger(__name__)

GRADE_FILTERS = ("all", "graded", "ungraded")
SORT_FIELDS = ("name", "percentage", "total_score")
SORT_ORDERS = ("asc", "desc")

DEFAULT_RECENT_LIMIT = 10

_UPSERT_KEY = ["student_id", "assessment_type", "assessment_id"]
_GRADE_COLUMNS = ["class_id", "score", "max_score", "percentage", "grade_letter", "updated_at"]


def grading_settings(config: Optional[dict]) -> Dict[str, Any]:
    """Pull the ``grading`` section out of an app config dict with defaults."""
    section = (config or {}).get("grading", {}) or {}
    return {
        "needs_attention_threshold": float(
            section.get("needs_attention_threshold", DEFAULT_NEEDS_ATTENTION_THRESHOLD)
        ),
        "min_graded_entries": int(section.get("min_graded_entries", DEFAULT_MIN_GRADED_ENTRIES)),
        "recent_limit": int(section.get("recent_limit", DEFAULT_RECENT_LIMIT)),
    }


def _coerce_score(raw_score) -> float:
    if raw_score is None or (isinstance(raw_score, str) and not raw_score.strip()):
        raise ValidationError("Grade is required")
    if isinstance(raw_score, bool):
        raise ValidationError(f"Invalid grade '{raw_score}' (must be a number)")
    try:
        score = float(raw_score)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid grade '{raw_score}' (must be a number)")
    if math.isnan(score):
        raise ValidationError("Invalid grade 'nan' (must be a number)")
    return score


def validate_score(raw_score, max_points: float) -> float:
    """Return the score as a float if ``0 <= score <= max_points``.

    Raises:
        ValidationError: missing, non-numeric, or out-of-range score.
    """
    score = _coerce_score(raw_score)
    if score < 0 or score > max_points:
        raise ValidationError(f"Invalid grade (must be 0-{max_points:g})")
    return score


def _upsert_grade_entry(session: Session, values: Dict[str, Any], update_notes: bool = True):
    """Insert or update the gradebook row keyed by (student, assessment).

    SQLite and PostgreSQL get a single ``INSERT ... ON CONFLICT DO UPDATE``
    statement. Other dialects insert inside a savepoint and update on a
    unique-constraint violation.
    """
    update_columns = list(_GRADE_COLUMNS)
    if update_notes:
        update_columns.append("notes")

    dialect = session.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert(GradeEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=_UPSERT_KEY,
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        session.execute(stmt)
        return

    try:
        with session.begin_nested():
            session.add(GradeEntry(**values))
    except IntegrityError:
        session.query(GradeEntry).filter_by(**{k: values[k] for k in _UPSERT_KEY}).update(
            {column: values[column] for column in update_columns},
            synchronize_session=False,
        )


def _get_grade_entry(session: Session, student_id: int, assessment_type: str, assessment_id: int):
    return (
        session.query(GradeEntry)
        .filter_by(student_id=student_id, assessment_type=assessment_type, assessment_id=assessment_id)
        .first()
    )


def record_grade(
    session: Session,
    instructor_id: int,
    student_id: int,
    assessment_type: str,
    assessment_id: int,
    raw_score,
    feedback: Optional[str] = None,
) -> GradeEntry:
    """Record (upsert) one student's grade for one assessment.

    For assignments, the student's submission row (if any) is updated in
    the same transaction so the legacy mirror never disagrees with the
    gradebook.

    Args:
        session: SQLAlchemy session.
        instructor_id: Acting instructor; must own the assessment's class.
        student_id: Student being graded; must be enrolled in the class.
        assessment_type: "assignment" or "quiz".
        assessment_id: ID of the assignment or quiz.
        raw_score: Score between 0 and the assessment's total points.
        feedback: Optional free-text feedback stored with the grade.

    Returns:
        The persisted GradeEntry.

    Raises:
        AuthorizationError: the instructor does not own the class.
        ValidationError: bad score, practice quiz, or student not enrolled.
        NotFoundError: unknown assessment.
    """
    assessment = get_assessment(session, assessment_type, assessment_id)
    require_class_owner(session, assessment.class_id, instructor_id)

    if assessment_type == "quiz" and assessment.quiz_type != "graded":
        raise ValidationError(f"Quiz {assessment_id} is a practice quiz and cannot be graded")

    enrollment = session.query(Enrollment).filter_by(class_id=assessment.class_id, student_id=student_id).first()
    if enrollment is None:
        raise ValidationError(f"Student {student_id} is not enrolled in class {assessment.class_id}")

    max_points = float(assessment.total_points)
    score = validate_score(raw_score, max_points)
    percentage = compute_percentage(score, max_points)
    feedback = (feedback or "").strip() or None
    now = utcnow()

    try:
        _upsert_grade_entry(
            session,
            {
                "class_id": assessment.class_id,
                "student_id": student_id,
                "assessment_type": assessment_type,
                "assessment_id": assessment_id,
                "score": score,
                "max_score": max_points,
                "percentage": percentage,
                "grade_letter": compute_letter_grade(percentage),
                "notes": feedback,
                "updated_at": now,
            },
        )
        if assessment_type == "assignment":
            submission = (
                session.query(Submission).filter_by(assignment_id=assessment_id, student_id=student_id).first()
            )
            if submission is not None:
                submission.grade = score
                submission.feedback = feedback
                submission.graded_by = instructor_id
                submission.graded_at = now
                submission.status = "graded"
                submission.late_submission = bool(
                    assessment.due_date
                    and submission.submitted_at
                    and submission.submitted_at > assessment.due_date
                )
        session.commit()
    except Exception:
        session.rollback()
        logger.exception(
            "Failed to record grade for student %s on %s %s", student_id, assessment_type, assessment_id
        )
        raise

    logger.info(
        "Recorded grade %s/%s for student %s on %s %s",
        score,
        max_points,
        student_id,
        assessment_type,
        assessment_id,
    )
    return _get_grade_entry(session, student_id, assessment_type, assessment_id)


def grade_submission(
    session: Session,
    instructor_id: int,
    class_id: int,
    submission_id: int,
    raw_score,
    feedback: Optional[str] = None,
) -> GradeEntry:
    """Grade an assignment submission that belongs to ``class_id``."""
    require_class_owner(session, class_id, instructor_id)
    submission = (
        session.query(Submission)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .filter(Submission.id == submission_id, Assignment.class_id == class_id)
        .first()
    )
    if submission is None:
        raise NotFoundError(f"Submission #{submission_id} not found in class {class_id}")
    return record_grade(
        session,
        instructor_id,
        submission.student_id,
        "assignment",
        submission.assignment_id,
        raw_score,
        feedback,
    )


def _normalize_bulk_entry(entry):
    """Split a bulk entry into ``(submission_id, raw_score, feedback)``.

    Raises:
        ValidationError: unknown entry shape, bad submission id, or no grade.
    """
    if isinstance(entry, dict):
        submission_id = entry.get("submission_id")
        raw_score = entry.get("grade", entry.get("score"))
        feedback = entry.get("feedback")
    elif isinstance(entry, (list, tuple)):
        submission_id = entry[0] if entry else None
        raw_score = entry[1] if len(entry) > 1 else None
        feedback = entry[2] if len(entry) > 2 else None
    else:
        raise ValidationError(f"Invalid bulk grade entry {entry!r}")

    try:
        submission_id = parse_id(submission_id, "submission id")
    except ValidationError:
        raise ValidationError(f"Submission #{submission_id}: Invalid submission id") from None
    if raw_score is None:
        raise ValidationError(f"Submission #{submission_id}: missing grade")
    return submission_id, raw_score, feedback


def bulk_grade(session: Session, instructor_id: int, class_id: int, entries: Iterable) -> Dict[str, Any]:
    """Grade many submissions, each independently.

    A bad entry is reported and skipped; it never aborts the others.
    Class ownership is checked once before any entry is processed.

    Args:
        session: SQLAlchemy session.
        instructor_id: Acting instructor.
        class_id: Class the submissions must belong to.
        entries: ``(submission_id, raw_score, feedback)`` tuples or dicts
            with ``submission_id``, ``grade`` and ``feedback`` keys.

    Returns:
        ``{"succeeded": int, "failed": int, "errors": [str, ...]}``
    """
    require_class_owner(session, class_id, instructor_id)

    succeeded = 0
    errors = []
    for entry in entries:
        try:
            submission_id, raw_score, feedback = _normalize_bulk_entry(entry)
        except ValidationError as e:
            errors.append(e.message)
            continue
        try:
            grade_submission(session, instructor_id, class_id, submission_id, raw_score, feedback)
            succeeded += 1
        except (ValidationError, NotFoundError) as e:
            message = e.message
            prefix = f"Submission #{submission_id}"
            errors.append(message if message.startswith(prefix) else f"{prefix}: {message}")

    if errors:
        logger.warning("Bulk grade in class %s: %d failed", class_id, len(errors))
    logger.info("Bulk grade in class %s: %d succeeded", class_id, succeeded)
    return {"succeeded": succeeded, "failed": len(errors), "errors": errors}


def _grade_row(entry: GradeEntry, user: User, title: str, due_date) -> Dict[str, Any]:
    return {
        "entry_id": entry.id,
        "student_id": entry.student_id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "assessment_type": entry.assessment_type,
        "assessment_id": entry.assessment_id,
        "title": title,
        "due_date": due_date,
        "score": entry.score,
        "max_score": entry.max_score,
        "percentage": entry.percentage,
        "letter": entry.grade_letter,
        "feedback": entry.notes,
        "updated_at": entry.updated_at,
    }


def list_grade_rows(session: Session, class_id: int, student_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Every grade entry in a class as uniform rows (assignments and graded quizzes).

    Ownership is the caller's responsibility.
    """
    assignment_query = (
        session.query(GradeEntry, User, Assignment)
        .join(User, GradeEntry.student_id == User.id)
        .join(
            Assignment,
            and_(GradeEntry.assessment_type == "assignment", GradeEntry.assessment_id == Assignment.id),
        )
        .filter(Assignment.class_id == class_id)
    )
    quiz_query = (
        session.query(GradeEntry, User, Quiz)
        .join(User, GradeEntry.student_id == User.id)
        .join(Quiz, and_(GradeEntry.assessment_type == "quiz", GradeEntry.assessment_id == Quiz.id))
        .filter(Quiz.class_id == class_id, Quiz.quiz_type == "graded")
    )
    if student_id is not None:
        assignment_query = assignment_query.filter(GradeEntry.student_id == student_id)
        quiz_query = quiz_query.filter(GradeEntry.student_id == student_id)

    rows = [_grade_row(entry, user, a.title, a.due_date) for entry, user, a in assignment_query.all()]
    rows.extend(_grade_row(entry, user, q.title, q.available_to) for entry, user, q in quiz_query.all())
    rows.sort(key=lambda r: (r["student_id"], r["assessment_type"], r["assessment_id"]))
    return rows


def aggregate_student(session: Session, instructor_id: int, student_id: int, class_id: int) -> Dict[str, Any]:
    """Overall score, percentage and letter for one student in one class."""
    require_class_owner(session, class_id, instructor_id)
    student = (
        session.query(User)
        .join(Enrollment, Enrollment.student_id == User.id)
        .filter(Enrollment.class_id == class_id, User.id == student_id)
        .first()
    )
    if student is None:
        raise NotFoundError(f"Student {student_id} is not enrolled in class {class_id}")

    rows = list_grade_rows(session, class_id, student_id=student_id)
    return aggregate_grade_rows(
        rows,
        {
            "student_id": student.id,
            "first_name": student.first_name,
            "last_name": student.last_name,
            "email": student.email,
        },
    )


def aggregate_class(
    session: Session,
    instructor_id: int,
    class_id: int,
    needs_attention_threshold: float = DEFAULT_NEEDS_ATTENTION_THRESHOLD,
    min_graded_entries: int = DEFAULT_MIN_GRADED_ENTRIES,
) -> Dict[str, Any]:
    """Aggregate every active student and summarize the class.

    Returns:
        The ``summarize_class`` dict plus class_id, class_name,
        pending_submissions, assessments and the per-student aggregates
        under ``students`` (ordered by last name, first name).
    """
    class_obj = require_class_owner(session, class_id, instructor_id)
    roster = list_roster(session, class_id)

    rows_by_student = defaultdict(list)
    for row in list_grade_rows(session, class_id):
        rows_by_student[row["student_id"]].append(row)

    aggregates = [aggregate_grade_rows(rows_by_student.get(s["student_id"], []), s) for s in roster]
    summary = summarize_class(
        aggregates,
        needs_attention_threshold=needs_attention_threshold,
        min_graded_entries=min_graded_entries,
    )
    summary.update(
        {
            "class_id": class_obj.id,
            "class_name": class_obj.name,
            "pending_submissions": count_pending_submissions(session, class_id),
            "assessments": list_assessments(session, class_id),
            "students": aggregates,
        }
    )
    return summary


def _students_with_pending(session: Session, class_id: int) -> set:
    rows = (
        session.query(Submission.student_id)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .filter(
            Assignment.class_id == class_id,
            Submission.status == "submitted",
            Submission.grade.is_(None),
        )
        .distinct()
        .all()
    )
    return {student_id for (student_id,) in rows}


def gradebook_view(
    session: Session,
    instructor_id: int,
    class_id: int,
    grade_filter: str = "all",
    search: str = "",
    sort_by: str = "name",
    sort_order: str = "asc",
    config: Optional[dict] = None,
) -> Dict[str, Any]:
    """Class summary with a filtered, searched and sorted student list.

    ``grade_filter``, ``sort_by`` and ``sort_order`` come from closed sets
    (GRADE_FILTERS, SORT_FIELDS, SORT_ORDERS); anything else is rejected.
    "graded" keeps students with at least one grade; "ungraded" keeps
    students with a submission still awaiting a grade. The summary always
    covers the whole class.
    """
    if grade_filter not in GRADE_FILTERS:
        raise ValidationError(f"Invalid filter '{grade_filter}' (must be one of {', '.join(GRADE_FILTERS)})")
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"Invalid sort field '{sort_by}' (must be one of {', '.join(SORT_FIELDS)})")
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"Invalid sort order '{sort_order}' (must be one of {', '.join(SORT_ORDERS)})")

    settings = grading_settings(config)
    summary = aggregate_class(
        session,
        instructor_id,
        class_id,
        needs_attention_threshold=settings["needs_attention_threshold"],
        min_graded_entries=settings["min_graded_entries"],
    )

    students = summary["students"]
    if grade_filter == "graded":
        students = [s for s in students if s["graded_count"] > 0]
    elif grade_filter == "ungraded":
        pending = _students_with_pending(session, class_id)
        students = [s for s in students if s["student_id"] in pending]

    term = (search or "").strip().lower()
    if term:
        students = [s for s in students if term in s["name"].lower() or term in (s.get("email") or "").lower()]

    reverse = sort_order == "desc"
    if sort_by == "name":
        students = sorted(
            students, key=lambda s: (s["last_name"].lower(), s["first_name"].lower(), s["student_id"]), reverse=reverse
        )
    else:
        students = sorted(students, key=lambda s: (s[sort_by], s["student_id"]), reverse=reverse)

    summary["students"] = students
    summary["filter"] = grade_filter
    summary["search"] = search or ""
    summary["sort_by"] = sort_by
    summary["sort_order"] = sort_order
    return summary


def get_recent_grades(
    session: Session, instructor_id: int, class_id: int, limit: int = DEFAULT_RECENT_LIMIT
) -> List[Dict[str, Any]]:
    """Most recently updated grade entries in the class, newest first."""
    require_class_owner(session, class_id, instructor_id)
    rows = list_grade_rows(session, class_id)
    rows.sort(key=lambda r: (r["updated_at"], r["entry_id"]), reverse=True)
    return rows[:limit]


def export_grades_csv(session: Session, instructor_id: int, class_id: int) -> str:
    """Export the class gradebook as CSV text.

    One row per active student with a column per assessment (ordered by
    due date). Missing grades show as 0 but are left out of the totals,
    so Average % and Final Grade match the gradebook view.
    """
    require_class_owner(session, class_id, instructor_id)
    assessments = list_assessments(session, class_id)
    roster = list_roster(session, class_id)

    scores = {}
    rows_by_student = defaultdict(list)
    for row in list_grade_rows(session, class_id):
        scores[(row["student_id"], row["assessment_type"], row["assessment_id"])] = row["score"]
        rows_by_student[row["student_id"]].append(row)

    output = io.StringIO()
    writer = csv.writer(output)
    header = ["Student ID", "Name", "Email", "Enrollment Date"]
    header.extend(sanitize_csv_cell(f"{a['title']} ({a['total_points']:g} pts)") for a in assessments)
    header.extend(["Total Score", "Average %", "Final Grade"])
    writer.writerow(header)

    for student in roster:
        aggregate = aggregate_grade_rows(rows_by_student.get(student["student_id"], []), student)
        enrolled = student["enrolled_at"].strftime("%Y-%m-%d") if student["enrolled_at"] else ""
        row = [
            student["student_id"],
            sanitize_csv_cell(aggregate["name"]),
            sanitize_csv_cell(student["email"]),
            enrolled,
        ]
        for a in assessments:
            row.append(f"{scores.get((student['student_id'], a['type'], a['id']), 0):g}")
        row.append(f"{aggregate['total_score']:g}")
        row.append(f"{aggregate['percentage']:.2f}")
        row.append(aggregate["letter"])
        writer.writerow(row)

    logger.info("Exported gradebook for class %s (%d students)", class_id, len(roster))
    return output.getvalue()


def sync_quiz_grades(session: Session, instructor_id: int, class_id: int) -> int:
    """Copy each active student's best graded quiz attempt into the gradebook.

    An entry is written when none exists or when the best attempt beats the
    recorded score; instructor feedback on the entry is left untouched.

    Returns:
        Number of grade entries created or raised.
    """
    require_class_owner(session, class_id, instructor_id)

    best_attempts = (
        session.query(QuizAttempt.student_id, Quiz, func.max(QuizAttempt.total_score))
        .join(Quiz, QuizAttempt.quiz_id == Quiz.id)
        .join(
            Enrollment,
            and_(Enrollment.student_id == QuizAttempt.student_id, Enrollment.class_id == Quiz.class_id),
        )
        .filter(
            Quiz.class_id == class_id,
            Quiz.quiz_type == "graded",
            QuizAttempt.status == "graded",
            QuizAttempt.total_score.isnot(None),
            Enrollment.status == "active",
        )
        .group_by(QuizAttempt.student_id, Quiz.id)
        .all()
    )
    existing = {
        (entry.student_id, entry.assessment_id): entry.score
        for entry in session.query(GradeEntry).filter_by(class_id=class_id, assessment_type="quiz").all()
    }

    updated = 0
    now = utcnow()
    try:
        for student_id, quiz, best_score in best_attempts:
            current = existing.get((student_id, quiz.id))
            if current is not None and current >= best_score:
                continue
            max_points = float(quiz.total_points)
            score = min(float(best_score), max_points)
            percentage = compute_percentage(score, max_points)
            _upsert_grade_entry(
                session,
                {
                    "class_id": class_id,
                    "student_id": student_id,
                    "assessment_type": "quiz",
                    "assessment_id": quiz.id,
                    "score": score,
                    "max_score": max_points,
                    "percentage": percentage,
                    "grade_letter": compute_letter_grade(percentage),
                    "updated_at": now,
                },
                update_notes=False,
            )
            updated += 1
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Quiz grade sync failed for class %s", class_id)
        raise

    logger.info("Synced %d quiz grade(s) for class %s", updated, class_id)
    return updated
