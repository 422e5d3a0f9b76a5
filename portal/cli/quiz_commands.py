"""
Quiz CLI commands (import-questions).
"""

import os

from portal.cli import add_instructor_argument, get_db_session, resolve_instructor
from portal.errors import PortalError
from portal.question_import import IMPORT_FORMATS, import_questions


def register_quiz_commands(subparsers):
    """Register quiz subcommands."""

    p = subparsers.add_parser("import-questions", help="Import quiz questions from CSV, JSON or XML.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("quiz_id", type=int, help="Quiz ID.")
    p.add_argument("file", help="Question file to import.")
    p.add_argument("--format", choices=IMPORT_FORMATS, default="auto", help="File format.")


def handle_import_questions(config, args):
    """Import questions and report per-item errors."""
    if not os.path.exists(args.file):
        print(f"Error: File not found: {args.file}")
        return

    with open(args.file, encoding="utf-8-sig") as f:
        text = f.read()

    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        count, errors = import_questions(
            session,
            instructor_id,
            args.class_id,
            args.quiz_id,
            text,
            fmt=args.format,
            filename=os.path.basename(args.file),
        )
        print(f"[OK] Imported {count} question(s) into quiz {args.quiz_id}")
        for error in errors:
            print(f"   [SKIP] {error}")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()
