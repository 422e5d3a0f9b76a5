"""
Grade aggregation and letter-grade computation.

Pure functions only: nothing here touches the database. The gradebook
service fetches uniform grade rows and hands them to these helpers.

A grade row is a dict with at least ``assessment_type``, ``assessment_id``,
``score`` and ``max_score``. Rows for assignments and quizzes share the same
shape, so both kinds aggregate identically.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

# Evaluated top-down; the first threshold the percentage reaches wins.
LETTER_THRESHOLDS = [
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
]

FAILING_LETTER = "F"

LETTER_BANDS = ("A", "B", "C", "D", "F")

GRADE_POINTS = {
    "A+": 4.0,
    "A": 4.0,
    "A-": 3.7,
    "B+": 3.3,
    "B": 3.0,
    "B-": 2.7,
    "C+": 2.3,
    "C": 2.0,
    "C-": 1.7,
    "D+": 1.3,
    "D": 1.0,
    "D-": 0.7,
    "F": 0.0,
}

DEFAULT_NEEDS_ATTENTION_THRESHOLD = 50.0
DEFAULT_MIN_GRADED_ENTRIES = 2


def compute_letter_grade(percentage: float) -> str:
    """Map a percentage to a letter grade (A+ through F).

    The input is not clamped; callers are responsible for range checks.
    """
    for threshold, letter in LETTER_THRESHOLDS:
        if percentage >= threshold:
            return letter
    return FAILING_LETTER


def grade_points(letter: str) -> float:
    """Return the 4.0-scale grade points for a letter, 0.0 if unknown."""
    return GRADE_POINTS.get((letter or "").strip().upper(), 0.0)


def letter_band(letter: str) -> str:
    """Collapse a fine-grained letter (e.g. ``B+``) to its band (``B``)."""
    band = (letter or FAILING_LETTER)[0].upper()
    return band if band in LETTER_BANDS else FAILING_LETTER


def compute_percentage(score: float, max_score: float) -> float:
    """Score as a percentage of max_score; 0 when max_score is not positive."""
    if not max_score or max_score <= 0:
        return 0.0
    return score / max_score * 100


def aggregate_grade_rows(
    rows: Iterable[Dict[str, Any]],
    student: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Combine one student's grade rows into an overall aggregate.

    Only rows that exist contribute: an assessment with no recorded grade
    adds nothing to either total rather than counting as zero.

    A student with no rows aggregates to 0% and ``F``. ``graded_count`` is
    0 in that case so callers can tell "no work graded" apart from
    "graded zero everywhere".

    Args:
        rows: Grade row dicts for a single student.
        student: Optional identity dict (student_id, first_name, last_name).

    Returns:
        Aggregate dict with totals, percentage, letter and per-kind counts.
    """
    rows = list(rows)
    total_score = 0.0
    total_max = 0.0
    assignment_count = 0
    quiz_count = 0

    for row in rows:
        total_score += float(row["score"])
        total_max += float(row["max_score"])
        if row.get("assessment_type") == "quiz":
            quiz_count += 1
        else:
            assignment_count += 1

    percentage = compute_percentage(total_score, total_max)
    letter = compute_letter_grade(percentage)
    student = student or {}
    first_name = student.get("first_name", "")
    last_name = student.get("last_name", "")

    return {
        "student_id": student.get("student_id"),
        "first_name": first_name,
        "last_name": last_name,
        "name": f"{first_name} {last_name}".strip(),
        "email": student.get("email"),
        "total_score": total_score,
        "total_max": total_max,
        "percentage": percentage,
        "letter": letter,
        "grade_points": grade_points(letter),
        "graded_count": len(rows),
        "assignment_count": assignment_count,
        "quiz_count": quiz_count,
        "grades": rows,
    }


def _ranking_key(aggregate: Dict[str, Any]):
    return (
        -aggregate["percentage"],
        (aggregate.get("last_name") or "").lower(),
        (aggregate.get("first_name") or "").lower(),
        aggregate.get("student_id") or 0,
    )


def _student_ref(aggregate: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "student_id": aggregate.get("student_id"),
        "name": aggregate.get("name"),
        "percentage": round(aggregate["percentage"], 2),
        "letter": aggregate["letter"],
        "graded_count": aggregate["graded_count"],
    }


def summarize_class(
    aggregates: List[Dict[str, Any]],
    needs_attention_threshold: float = DEFAULT_NEEDS_ATTENTION_THRESHOLD,
    min_graded_entries: int = DEFAULT_MIN_GRADED_ENTRIES,
) -> Dict[str, Any]:
    """Roster-wide summary: letter-band histogram, top performer, at-risk list.

    Top performer is the highest percentage above zero; ties go to last
    name, then first name, then student id. A student needs attention when
    below ``needs_attention_threshold`` percent with more than
    ``min_graded_entries`` recorded grades.

    Ungraded students stay in the F band of the histogram and are also
    listed under ``ungraded``.

    Args:
        aggregates: Output of ``aggregate_grade_rows`` for each student.
        needs_attention_threshold: Percentage below which a student is at risk.
        min_graded_entries: Graded-entry count a student must exceed to be flagged.

    Returns:
        Summary dict.
    """
    histogram = {band: 0 for band in LETTER_BANDS}
    needs_attention = []
    ungraded = []

    for aggregate in aggregates:
        histogram[letter_band(aggregate["letter"])] += 1
        if aggregate["graded_count"] == 0:
            ungraded.append(_student_ref(aggregate))
        if aggregate["percentage"] < needs_attention_threshold and aggregate["graded_count"] > min_graded_entries:
            needs_attention.append(_student_ref(aggregate))

    ranked = sorted((a for a in aggregates if a["percentage"] > 0), key=_ranking_key)
    top_performer = _student_ref(ranked[0]) if ranked else None

    graded = [a["percentage"] for a in aggregates if a["graded_count"] > 0]
    class_average = round(sum(graded) / len(graded), 2) if graded else 0.0

    return {
        "total_students": len(aggregates),
        "histogram": histogram,
        "top_performer": top_performer,
        "needs_attention": needs_attention,
        "ungraded": ungraded,
        "class_average": class_average,
    }
