"""
Assignments, quizzes, submissions and quiz attempts.

Assignments and quizzes are the two assessment kinds that feed the
gradebook. ``list_assessments`` merges them into one uniform shape sorted
by due date.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from portal.classroom import get_active_enrollment, require_class_owner
from portal.database import ASSESSMENT_TYPES, Assignment, Quiz, QuizAttempt, Submission, utcnow
from portal.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

QUIZ_TYPES = ("graded", "practice")

# Assessments without a due date sort after every dated one.
_FAR_FUTURE = datetime(9999, 12, 31)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Accept a datetime, an ISO-8601 string, or None."""
    if value is None or isinstance(value, datetime):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}' (use YYYY-MM-DD or ISO-8601)")


def parse_id(value, field: str = "id") -> int:
    """Parse a record ID from JSON or form input.

    Accepts ints, whole-number floats and digit strings. Booleans and
    fractional numbers are rejected rather than truncated onto another row.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field} '{value}' (must be an integer)")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"Invalid {field} '{value}' (must be an integer)")


def _validate_points(total_points) -> float:
    try:
        points = float(total_points)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid total points '{total_points}' (must be a number)")
    if points <= 0:
        raise ValidationError("Total points must be greater than 0")
    return points


def create_assignment(
    session: Session,
    instructor_id: int,
    class_id: int,
    title: str,
    total_points: float = 100.0,
    due_date=None,
    description: Optional[str] = None,
) -> Assignment:
    """Create an assignment in a class the instructor owns."""
    require_class_owner(session, class_id, instructor_id)
    title = (title or "").strip()
    if not title:
        raise ValidationError("Assignment title is required")

    assignment = Assignment(
        class_id=class_id,
        title=title,
        description=description,
        total_points=_validate_points(total_points),
        due_date=parse_datetime(due_date),
    )
    session.add(assignment)
    session.commit()
    logger.info("Created assignment %s in class %s", assignment.id, class_id)
    return assignment


def create_quiz(
    session: Session,
    instructor_id: int,
    class_id: int,
    title: str,
    total_points: float = 100.0,
    available_to=None,
    quiz_type: str = "graded",
) -> Quiz:
    """Create a quiz in a class the instructor owns."""
    require_class_owner(session, class_id, instructor_id)
    title = (title or "").strip()
    if not title:
        raise ValidationError("Quiz title is required")
    if quiz_type not in QUIZ_TYPES:
        raise ValidationError(f"Invalid quiz type '{quiz_type}' (must be one of {', '.join(QUIZ_TYPES)})")

    quiz = Quiz(
        class_id=class_id,
        title=title,
        quiz_type=quiz_type,
        total_points=_validate_points(total_points),
        available_to=parse_datetime(available_to),
    )
    session.add(quiz)
    session.commit()
    logger.info("Created %s quiz %s in class %s", quiz_type, quiz.id, class_id)
    return quiz


def get_assessment(session: Session, assessment_type: str, assessment_id: int):
    """
    Look up an assignment or quiz.

    Raises:
        ValidationError: unknown assessment type.
        NotFoundError: no such record.
    """
    if assessment_type not in ASSESSMENT_TYPES:
        raise ValidationError(
            f"Invalid assessment type '{assessment_type}' (must be one of {', '.join(ASSESSMENT_TYPES)})"
        )
    model = Assignment if assessment_type == "assignment" else Quiz
    assessment = session.query(model).filter_by(id=assessment_id).first()
    if assessment is None:
        raise NotFoundError(f"{assessment_type.capitalize()} {assessment_id} not found")
    return assessment


def get_quiz_for_instructor(session: Session, instructor_id: int, class_id: int, quiz_id: int) -> Quiz:
    """Return a quiz that belongs to a class owned by the instructor."""
    require_class_owner(session, class_id, instructor_id)
    quiz = session.query(Quiz).filter_by(id=quiz_id, class_id=class_id).first()
    if quiz is None:
        raise NotFoundError(f"Quiz {quiz_id} not found in class {class_id}")
    return quiz


def submit_assignment(session: Session, student_id: int, assignment_id: int, content: str = "") -> Submission:
    """
    Record a student's submission for an assignment.

    A resubmission replaces the content of an ungraded submission; graded
    submissions are locked.
    """
    assignment = get_assessment(session, "assignment", assignment_id)
    if get_active_enrollment(session, assignment.class_id, student_id) is None:
        raise ValidationError(f"Student {student_id} is not actively enrolled in class {assignment.class_id}")

    submission = session.query(Submission).filter_by(assignment_id=assignment_id, student_id=student_id).first()
    if submission is None:
        submission = Submission(assignment_id=assignment_id, student_id=student_id, content=content)
        session.add(submission)
    elif submission.status == "graded":
        raise ValidationError(f"Submission #{submission.id} has already been graded")
    else:
        submission.content = content
        submission.submitted_at = utcnow()
    session.commit()
    return submission


def record_quiz_attempt(session: Session, student_id: int, quiz_id: int, total_score: float) -> QuizAttempt:
    """Store a finished, auto-graded quiz attempt."""
    quiz = get_assessment(session, "quiz", quiz_id)
    if get_active_enrollment(session, quiz.class_id, student_id) is None:
        raise ValidationError(f"Student {student_id} is not actively enrolled in class {quiz.class_id}")
    if total_score is None or total_score < 0 or total_score > quiz.total_points:
        raise ValidationError(f"Invalid quiz score (must be 0-{quiz.total_points:g})")

    attempt = QuizAttempt(quiz_id=quiz_id, student_id=student_id, total_score=float(total_score), status="graded")
    session.add(attempt)
    session.commit()
    return attempt


def list_assessments(session: Session, class_id: int) -> List[Dict[str, Any]]:
    """
    Merge a class's assignments and graded quizzes, sorted by due date.

    Practice quizzes are excluded since they never reach the gradebook.

    Returns:
        List of {type, id, title, total_points, due_date} dicts.
    """
    assessments = [
        {
            "type": "assignment",
            "id": a.id,
            "title": a.title,
            "total_points": a.total_points,
            "due_date": a.due_date,
        }
        for a in session.query(Assignment).filter_by(class_id=class_id).all()
    ]
    assessments.extend(
        {
            "type": "quiz",
            "id": q.id,
            "title": q.title,
            "total_points": q.total_points,
            "due_date": q.available_to,
        }
        for q in session.query(Quiz).filter_by(class_id=class_id, quiz_type="graded").all()
    )
    assessments.sort(key=lambda a: (a["due_date"] or _FAR_FUTURE, a["type"], a["id"]))
    return assessments


def count_pending_submissions(session: Session, class_id: int) -> int:
    """Number of submitted assignments in the class still awaiting a grade."""
    return (
        session.query(Submission)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .filter(
            Assignment.class_id == class_id,
            Submission.status == "submitted",
            Submission.grade.is_(None),
        )
        .count()
    )
