"""
Gradebook CLI commands (gradebook, student-grades, export-grades, sync-quiz-grades).
"""

from portal.cli import add_instructor_argument, get_db_session, resolve_instructor
from portal.errors import PortalError
from portal.gradebook import (
    GRADE_FILTERS,
    SORT_FIELDS,
    SORT_ORDERS,
    aggregate_student,
    export_grades_csv,
    gradebook_view,
    sync_quiz_grades,
)


def register_gradebook_commands(subparsers):
    """Register gradebook subcommands."""

    p = subparsers.add_parser("gradebook", help="Show a class gradebook summary.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("--filter", choices=GRADE_FILTERS, default="all", help="Student filter.")
    p.add_argument("--search", default="", help="Match student name or email.")
    p.add_argument("--sort-by", choices=SORT_FIELDS, default="name", help="Sort field.")
    p.add_argument("--sort-order", choices=SORT_ORDERS, default="asc", help="Sort order.")

    p = subparsers.add_parser("student-grades", help="Show one student's grades in a class.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("student_id", type=int, help="Student user ID.")

    p = subparsers.add_parser("export-grades", help="Export a class gradebook to CSV.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")
    p.add_argument("--output", help="Output file path (default: stdout).")

    p = subparsers.add_parser("sync-quiz-grades", help="Copy best quiz attempts into the gradebook.")
    add_instructor_argument(p)
    p.add_argument("class_id", type=int, help="Class ID.")


def _print_summary(view):
    print(f"Gradebook: {view['class_name']} (ID: {view['class_id']})")
    print(
        f"   Students: {view['total_students']}   "
        f"Class average: {view['class_average']:.2f}%   "
        f"Pending submissions: {view['pending_submissions']}"
    )
    print("   Distribution: " + "  ".join(f"{band}: {count}" for band, count in view["histogram"].items()))

    top = view["top_performer"]
    if top:
        print(f"   Top performer: {top['name']} ({top['percentage']:.2f}%, {top['letter']})")
    for student in view["needs_attention"]:
        print(f"   [!] Needs attention: {student['name']} ({student['percentage']:.2f}%)")
    if view["ungraded"]:
        print(f"   Ungraded: {', '.join(s['name'] for s in view['ungraded'])}")


def handle_gradebook(config, args):
    """Print the class summary and the student table."""
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        view = gradebook_view(
            session,
            instructor_id,
            args.class_id,
            grade_filter=args.filter,
            search=args.search,
            sort_by=args.sort_by,
            sort_order=args.sort_order,
            config=config,
        )
        _print_summary(view)
        print()
        print(f"{'ID':>5}  {'Student':<28} {'Score':>15} {'%':>8}  Grade")
        for s in view["students"]:
            score = f"{s['total_score']:g}/{s['total_max']:g}"
            print(f"{s['student_id']:>5}  {s['name']:<28} {score:>15} {s['percentage']:>8.2f}  {s['letter']}")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_student_grades(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        result = aggregate_student(session, instructor_id, args.student_id, args.class_id)
        print(f"{result['name']} (ID: {result['student_id']})")
        for row in result["grades"]:
            print(
                f"   [{row['assessment_type']}] {row['title']}: "
                f"{row['score']:g}/{row['max_score']:g} ({row['percentage']:.2f}%, {row['letter']})"
            )
        if result["graded_count"] == 0:
            print("   No graded work yet.")
        print(
            f"   Overall: {result['total_score']:g}/{result['total_max']:g} "
            f"= {result['percentage']:.2f}% ({result['letter']}, {result['grade_points']:.1f} pts)"
        )
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_export_grades(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        csv_text = export_grades_csv(session, instructor_id, args.class_id)
        if args.output:
            with open(args.output, "w", newline="", encoding="utf-8") as f:
                f.write(csv_text)
            print(f"[OK] Exported grades to {args.output}")
        else:
            print(csv_text, end="")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()


def handle_sync_quiz_grades(config, args):
    engine, session = get_db_session(config)
    try:
        instructor_id = resolve_instructor(session, args.instructor)
        updated = sync_quiz_grades(session, instructor_id, args.class_id)
        print(f"[OK] Synced {updated} quiz grade(s) for class {args.class_id}")
    except PortalError as e:
        print(f"Error: {e.message}")
    finally:
        session.close()
