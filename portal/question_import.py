"""
Bulk quiz-question import for the instructor portal.

Parses CSV, JSON and XML question files, validates each question, and
writes QuizQuestion/QuizOption rows for a quiz the instructor owns.

CSV columns: question_type, question_text, points, required, explanation,
options and correct_options. Options are separated by ``|`` and
correct_options holds zero-based option indexes (``0|2``).

JSON: ``{"questions": [{...}, ...]}`` using the same keys, with
``options`` and ``correct_options`` as lists.

XML::

    <assessment>
      <question type="multiple_choice">
        <text>...</text>
        <points>1.0</points>
        <options>
          <option correct="true">...</option>
        </options>
        <feedback>...</feedback>
      </question>
    </assessment>
"""

import csv
import io
import json
import logging
import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from portal.assessments import get_quiz_for_instructor
from portal.database import QuizOption, QuizQuestion
from portal.errors import ValidationError

logger = logging.getLogger(__name__)

IMPORT_FORMATS = ("auto", "csv", "json", "xml")

QUESTION_TYPES = (
    "multiple_choice",
    "multiple_select",
    "true_false",
    "short_answer",
    "essay",
    "file_upload",
    "matching",
    "ordering",
    "dropdown",
    "fill_blanks",
)

OPTION_SEPARATOR = "|"

_TRUE_VALUES = ("1", "true", "yes", "y")


def get_sample_csv() -> str:
    """Return a downloadable CSV template with example rows."""
    lines = [
        "question_type,question_text,points,required,explanation,options,correct_options",
        'multiple_choice,What is 2 + 2?,1,true,Basic addition.,3|4|5,1',
        "true_false,The Earth orbits the Sun.,1,true,,True|False,0",
        "short_answer,Name the largest planet.,2,false,Jupiter is the largest.,,",
    ]
    return "\n".join(lines) + "\n"


def _parse_bool(value, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    return text in _TRUE_VALUES


def _split_list(value) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    text = str(value).strip()
    if not text:
        return []
    return [part.strip() for part in text.split(OPTION_SEPARATOR)]


def validate_question(data: Dict[str, Any], item_num: int) -> Tuple[Optional[Dict], Optional[str]]:
    """Validate and normalize a single question record.

    Args:
        data: Raw question dict (from any import format).
        item_num: 1-based position for error messages.

    Returns:
        Tuple of (normalized_dict, error_string). On success the error is
        None; on failure the dict is None.
    """
    text = str(data.get("question_text") or "").strip()
    if not text:
        return None, f"Question {item_num}: missing question text"

    question_type = str(data.get("question_type") or "multiple_choice").strip().lower()
    if question_type not in QUESTION_TYPES:
        return None, f"Question {item_num}: unknown question type '{question_type}'"

    points_raw = data.get("points")
    points = 1.0
    if points_raw not in (None, ""):
        try:
            points = float(points_raw)
        except (TypeError, ValueError):
            return None, f"Question {item_num}: invalid points '{points_raw}' (must be a number)"
        if points < 0:
            return None, f"Question {item_num}: points must be >= 0"

    options = [str(o).strip() for o in _split_list(data.get("options"))]

    correct = set()
    for raw_index in _split_list(data.get("correct_options")):
        try:
            index = int(raw_index)
        except (TypeError, ValueError):
            return None, f"Question {item_num}: invalid correct option '{raw_index}'"
        if index < 0 or index >= len(options):
            return None, f"Question {item_num}: correct option {index} out of range"
        correct.add(index)

    # Indexes refer to the original list, so blanks are dropped after matching.
    normalized_options = []
    for index, option_text in enumerate(options):
        if not option_text:
            continue
        is_correct = index in correct
        if question_type in ("ordering", "matching"):
            is_correct = True
        elif question_type == "true_false" and not correct and index == 0:
            is_correct = True
        normalized_options.append({"text": option_text, "is_correct": is_correct, "order": index})

    return {
        "question_type": question_type,
        "question_text": text,
        "points": points,
        "required": _parse_bool(data.get("required"), default=True),
        "explanation": str(data.get("explanation") or "").strip() or None,
        "options": normalized_options,
    }, None


def _parse_csv(text: str) -> List[Dict[str, Any]]:
    reader = csv.DictReader(io.StringIO(text))
    return [row for row in reader if any((value or "").strip() for value in row.values() if isinstance(value, str))]


def _parse_json(text: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e.msg} (line {e.lineno})")
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise ValidationError("JSON must contain a 'questions' list")
    return [item if isinstance(item, dict) else {} for item in data]


def _parse_xml(text: str) -> List[Dict[str, Any]]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ValidationError(f"Invalid XML: {e}")

    items = []
    for node in root.iter("question"):
        options = []
        correct_options = []
        for index, option in enumerate(node.findall("./options/option")):
            options.append((option.text or "").strip())
            if _parse_bool(option.get("correct"), default=False):
                correct_options.append(index)
        items.append(
            {
                "question_type": node.get("type"),
                "question_text": node.findtext("text"),
                "points": node.findtext("points"),
                "required": node.get("required"),
                "explanation": node.findtext("feedback") or node.findtext("explanation"),
                "options": options,
                "correct_options": correct_options,
            }
        )
    return items


def detect_format(text: str, filename: Optional[str] = None) -> str:
    """Guess the import format from the file extension, then the content."""
    if filename:
        ext = os.path.splitext(filename)[1].lower().lstrip(".")
        if ext in ("csv", "json", "xml"):
            return ext
    stripped = text.lstrip()
    if stripped.startswith("{") or stripped.startswith("["):
        return "json"
    if stripped.startswith("<"):
        return "xml"
    return "csv"


def parse_questions(text: str, fmt: str = "auto", filename: Optional[str] = None) -> Tuple[List[Dict], List[str]]:
    """Parse question file text into validated question dicts.

    Returns:
        Tuple of (valid_questions, errors).

    Raises:
        ValidationError: unknown format or a file that cannot be parsed at all.
    """
    if fmt not in IMPORT_FORMATS:
        raise ValidationError(f"Invalid format '{fmt}' (must be one of {', '.join(IMPORT_FORMATS)})")
    if fmt == "auto":
        fmt = detect_format(text, filename)

    parser = {"csv": _parse_csv, "json": _parse_json, "xml": _parse_xml}[fmt]
    raw_items = parser(text)

    questions = []
    errors = []
    for i, item in enumerate(raw_items, start=1):
        normalized, error = validate_question(item, i)
        if error:
            errors.append(error)
        else:
            questions.append(normalized)
    return questions, errors


def import_questions(
    session: Session,
    instructor_id: int,
    class_id: int,
    quiz_id: int,
    text: str,
    fmt: str = "auto",
    filename: Optional[str] = None,
) -> Tuple[int, List[str]]:
    """Parse a question file and append its questions to a quiz.

    Args:
        session: SQLAlchemy session.
        instructor_id: Acting instructor; must own the class.
        class_id: Class the quiz belongs to.
        quiz_id: Quiz to append questions to.
        text: Raw file contents.
        fmt: One of IMPORT_FORMATS.
        filename: Original filename, used when ``fmt`` is "auto".

    Returns:
        Tuple of (questions_created, errors).
    """
    quiz = get_quiz_for_instructor(session, instructor_id, class_id, quiz_id)
    questions, errors = parse_questions(text, fmt, filename)

    for error in errors:
        logger.warning("Question import for quiz %s: %s", quiz_id, error)
    if not questions:
        return 0, errors

    next_order = len(quiz.questions)
    for offset, q in enumerate(questions):
        question = QuizQuestion(
            quiz_id=quiz.id,
            question_type=q["question_type"],
            question_text=q["question_text"],
            points=q["points"],
            required=q["required"],
            explanation=q["explanation"],
            order_number=next_order + offset,
        )
        question.options = [
            QuizOption(option_text=o["text"], is_correct=o["is_correct"], order_number=o["order"])
            for o in q["options"]
        ]
        session.add(question)

    session.commit()
    logger.info("Imported %d question(s) into quiz %s", len(questions), quiz_id)
    return len(questions), errors
