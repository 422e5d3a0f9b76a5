import argparse
import logging
import os

import yaml
from dotenv import load_dotenv

from portal.cli.account_commands import (
    handle_create_class,
    handle_create_user,
    handle_enroll,
    handle_enrollment_status,
    handle_init_db,
    register_account_commands,
)
from portal.cli.gradebook_commands import (
    handle_export_grades,
    handle_gradebook,
    handle_student_grades,
    handle_sync_quiz_grades,
    register_gradebook_commands,
)
from portal.cli.quiz_commands import handle_import_questions, register_quiz_commands

HANDLERS = {
    "init-db": handle_init_db,
    "create-user": handle_create_user,
    "create-class": handle_create_class,
    "enroll": handle_enroll,
    "enrollment-status": handle_enrollment_status,
    "gradebook": handle_gradebook,
    "student-grades": handle_student_grades,
    "export-grades": handle_export_grades,
    "sync-quiz-grades": handle_sync_quiz_grades,
    "import-questions": handle_import_questions,
}


def handle_serve(config, args):
    """Run the Flask development server."""
    from portal.web.app import create_app

    app = create_app(config)
    app.run(host=args.host, port=args.port, debug=args.debug)


def build_parser():
    parser = argparse.ArgumentParser(description="Instructor portal gradebook CLI.")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_account_commands(subparsers)
    register_gradebook_commands(subparsers)
    register_quiz_commands(subparsers)

    p = subparsers.add_parser("serve", help="Run the web server (development).")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=5000)
    p.add_argument("--debug", action="store_true")
    return parser


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        with open(args.config, "r") as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"Error: {args.config} not found.")
        return

    level = config.get("logging", {}).get("level", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if os.environ.get("DATABASE_PATH"):
        config.setdefault("paths", {})["database_file"] = os.environ["DATABASE_PATH"]

    if args.command == "serve":
        handle_serve(config, args)
    else:
        HANDLERS[args.command](config, args)


if __name__ == "__main__":
    main()
