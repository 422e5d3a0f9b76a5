"""
Class and roster module for the instructor portal.

Provides class CRUD scoped to the instructor of record, enrollment
management, roster listing and roster CSV export.
"""

import csv
import io
import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from portal.database import Assignment, Class, Enrollment, Quiz, User
from portal.errors import AuthorizationError, NotFoundError, ValidationError
from portal.export_utils import sanitize_csv_cell

logger = logging.getLogger(__name__)

ENROLLMENT_STATUSES = ("active", "dropped", "completed")


def create_class(session: Session, instructor_id: int, name: str, code: Optional[str] = None) -> Class:
    """
    Create a new Class owned by the given instructor.

    Args:
        session: SQLAlchemy session
        instructor_id: User ID of the instructor of record
        name: Class name (required)
        code: Optional unique class code; generated if omitted

    Returns:
        The created Class object with its assigned ID
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Class name is required")

    instructor = session.query(User).filter_by(id=instructor_id).first()
    if instructor is None or instructor.role != "instructor":
        raise ValidationError(f"User {instructor_id} is not an instructor")

    new_class = Class(
        name=name,
        code=code or uuid.uuid4().hex[:8].upper(),
        instructor_id=instructor_id,
    )
    session.add(new_class)
    session.commit()
    logger.info("Created class %s (%s) for instructor %s", new_class.id, name, instructor_id)
    return new_class


def get_class(session: Session, class_id: int) -> Optional[Class]:
    """Fetch a single class by ID, or None."""
    return session.query(Class).filter_by(id=class_id).first()


def require_class_owner(session: Session, class_id: int, instructor_id: int) -> Class:
    """
    Return the class if ``instructor_id`` is its instructor of record.

    Raises:
        NotFoundError: the class does not exist.
        AuthorizationError: the class belongs to another instructor.
    """
    class_obj = get_class(session, class_id)
    if class_obj is None:
        raise NotFoundError(f"Class {class_id} not found")
    if class_obj.instructor_id != instructor_id:
        logger.warning("Instructor %s denied access to class %s", instructor_id, class_id)
        raise AuthorizationError(f"You are not the instructor of class {class_id}")
    return class_obj


def list_classes(session: Session, instructor_id: int) -> List[dict]:
    """
    List the instructor's classes with student and assessment counts.

    Args:
        session: SQLAlchemy session
        instructor_id: Instructor whose classes to list

    Returns:
        List of dicts with class info plus student_count,
        assignment_count and quiz_count
    """
    classes = session.query(Class).filter_by(instructor_id=instructor_id).order_by(Class.id).all()
    result = []
    for cls in classes:
        result.append(
            {
                "id": cls.id,
                "name": cls.name,
                "code": cls.code,
                "student_count": session.query(Enrollment).filter_by(class_id=cls.id, status="active").count(),
                "assignment_count": session.query(Assignment).filter_by(class_id=cls.id).count(),
                "quiz_count": session.query(Quiz).filter_by(class_id=cls.id).count(),
                "created_at": cls.created_at.isoformat() if cls.created_at else None,
            }
        )
    return result


def delete_class(session: Session, instructor_id: int, class_id: int) -> bool:
    """
    Delete a class owned by the instructor.

    Enrollments, assessments and submissions are removed via cascade.

    Returns:
        True once deleted.
    """
    class_obj = require_class_owner(session, class_id, instructor_id)
    session.delete(class_obj)
    session.commit()
    logger.info("Deleted class %s", class_id)
    return True


def enroll_student(session: Session, instructor_id: int, class_id: int, student_id: int) -> Enrollment:
    """Enroll a student (re-activating a previous enrollment if present)."""
    require_class_owner(session, class_id, instructor_id)

    student = session.query(User).filter_by(id=student_id).first()
    if student is None or student.role != "student":
        raise ValidationError(f"User {student_id} is not a student")

    enrollment = session.query(Enrollment).filter_by(class_id=class_id, student_id=student_id).first()
    if enrollment is None:
        enrollment = Enrollment(class_id=class_id, student_id=student_id, status="active")
        session.add(enrollment)
    else:
        enrollment.status = "active"
    session.commit()
    return enrollment


def set_enrollment_status(session: Session, instructor_id: int, class_id: int, student_id: int, status: str) -> Enrollment:
    """Change an enrollment's status (active, dropped, completed)."""
    if status not in ENROLLMENT_STATUSES:
        raise ValidationError(f"Invalid enrollment status '{status}' (must be one of {', '.join(ENROLLMENT_STATUSES)})")
    require_class_owner(session, class_id, instructor_id)

    enrollment = session.query(Enrollment).filter_by(class_id=class_id, student_id=student_id).first()
    if enrollment is None:
        raise NotFoundError(f"Student {student_id} is not enrolled in class {class_id}")
    enrollment.status = status
    session.commit()
    return enrollment


def get_active_enrollment(session: Session, class_id: int, student_id: int) -> Optional[Enrollment]:
    return session.query(Enrollment).filter_by(class_id=class_id, student_id=student_id, status="active").first()


def list_roster(session: Session, class_id: int, status: Optional[str] = "active") -> List[dict]:
    """
    List enrolled students ordered by last name, first name.

    Ownership is checked by the caller. Pass ``status=None`` to include
    every enrollment regardless of status.
    """
    query = (
        session.query(User, Enrollment)
        .join(Enrollment, Enrollment.student_id == User.id)
        .filter(Enrollment.class_id == class_id)
    )
    if status is not None:
        query = query.filter(Enrollment.status == status)
    rows = query.order_by(User.last_name, User.first_name, User.id).all()
    return [
        {
            "student_id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "enrollment_id": enrollment.id,
            "status": enrollment.status,
            "enrolled_at": enrollment.enrolled_at,
        }
        for user, enrollment in rows
    ]


def export_roster_csv(session: Session, instructor_id: int, class_id: int) -> str:
    """Export the active roster of an owned class as CSV text."""
    require_class_owner(session, class_id, instructor_id)
    roster = list_roster(session, class_id)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Student ID", "First Name", "Last Name", "Email", "Enrollment Date"])
    for student in roster:
        enrolled = student["enrolled_at"].strftime("%Y-%m-%d") if student["enrolled_at"] else ""
        writer.writerow(
            [
                student["student_id"],
                sanitize_csv_cell(student["first_name"]),
                sanitize_csv_cell(student["last_name"]),
                sanitize_csv_cell(student["email"]),
                enrolled,
            ]
        )
    return output.getvalue()
