"""
Setup CLI commands (init-db, create-user, create-class, enroll, enrollment-status).
"""

from portal.auth import USER_ROLES, create_user
from portal.classroom import ENROLLMENT_STATUSES, create_class, enroll_student, set_enrollment_status
from portal.cli import add_instructor_argument, get_db_session, resolve_instructor
from portal.errors import PortalError


def register_account_commands(subparsers):
    """Register setup subcommands."""

    subparsers.add_parser("init-db", help="Create all database tables.")

    p = subparsers.add_parser("create-user", help="Create a user account.")
    p.add_argument("--email", required=True, help="Login email.")
    p.add_argument("--password", required=True, help="Password (min 8 characters).")
    p.add_argument("--first", required=True, help="First name.")
    p.add_argument("--last", required=True, help="Last name.")
    p.add_argument("--role", choices=USER_ROLES, default="student", help="Account role.")

    p = subparsers.add_parser("create-class", help="Create a class for an instructor.")
    add_instructor_argument(p)
    p.add_argument("--name", required=True, help="Class name.")
    p.add_argument("--code", help="Optional unique class code.")

    p = subparsers.add_parser("enroll", help="Enroll a student in a class.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("student_id", type=int, help="Student user ID.")

    p = subparsers.add_parser("enrollment-status", help="Mark an enrollment active, dropped or completed.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("student_id", type=int, help="Student user ID.")
    p.add_argument("status", choices=ENROLLMENT_STATUSES, help="New enrollment status.")


def handle_init_db(config, args):
    """Create the schema."""
    engine, session = get_db_session(config)
    session.close()
    engine.dispose()
    print("[OK] Database initialized.")


def handle_create_user(config, args):
    engine, session = get_db_session(config)
    try:
        user = create_user(session, args.email, args.password, args.first, args.last, role=args.role)
        print(f"[OK] Created {user.role}: {user.full_name} (ID: {user.id})")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_create_class(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        new_class = create_class(session, instructor_id, args.name, code=args.code)
        print(f"[OK] Created class: {new_class.name} (ID: {new_class.id}, code: {new_class.code})")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_enroll(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        enroll_student(session, instructor_id, args.class_id, args.student_id)
        print(f"[OK] Enrolled student {args.student_id} in class {args.class_id}")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_enrollment_status(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        set_enrollment_status(session, instructor_id, args.class_id, args.student_id, args.status)
        print(f"[OK] Student {args.student_id} is now {args.status} in class {args.class_id}")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()
