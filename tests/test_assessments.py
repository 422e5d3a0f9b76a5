"""Tests for assignments, quizzes, submissions and attempts (portal/assessments.py)."""

from datetime import datetime

import pytest

from portal.assessments import (
    count_pending_submissions,
    create_assignment,
    create_quiz,
    get_assessment,
    get_quiz_for_instructor,
    list_assessments,
    parse_datetime,
    parse_id,
    record_quiz_attempt,
    submit_assignment,
)
from portal.classroom import create_class, set_enrollment_status
from portal.errors import AuthorizationError, NotFoundError, ValidationError
from portal.gradebook import record_grade


@pytest.fixture
def session(db_session):
    session, _ = db_session
    return session


class TestParseDatetime:
    def test_iso_date(self):
        assert parse_datetime("2025-03-01") == datetime(2025, 3, 1)

    def test_passthrough_and_blank(self):
        now = datetime(2025, 1, 1, 12, 0)
        assert parse_datetime(now) is now
        assert parse_datetime(None) is None
        assert parse_datetime("  ") is None

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_datetime("March 1st")


class TestParseId:
    @pytest.mark.parametrize("value, expected", [(7, 7), (7.0, 7), ("7", 7), (" 12 ", 12)])
    def test_accepts_whole_numbers(self, value, expected):
        assert parse_id(value) == expected

    @pytest.mark.parametrize("value", [True, False, 1.9, "1.5", "-3", "", None, "seven"])
    def test_rejects_everything_else(self, value):
        with pytest.raises(ValidationError, match="must be an integer"):
            parse_id(value, "submission id")


class TestCreateAssessments:
    def test_assignment_points_must_be_positive(self, session, gradebook_data):
        with pytest.raises(ValidationError, match="greater than 0"):
            create_assignment(session, gradebook_data["instructor"].id, gradebook_data["class_"].id, "Bad", 0)

    def test_quiz_type_validated(self, session, gradebook_data):
        with pytest.raises(ValidationError):
            create_quiz(
                session, gradebook_data["instructor"].id, gradebook_data["class_"].id, "Q", quiz_type="survey"
            )

    def test_other_instructor_denied(self, session, gradebook_data):
        with pytest.raises(AuthorizationError):
            create_assignment(session, gradebook_data["other_instructor"].id, gradebook_data["class_"].id, "X")

    def test_get_assessment(self, session, gradebook_data):
        assert get_assessment(session, "quiz", gradebook_data["quiz"].id).title == "Cell Quiz"
        with pytest.raises(NotFoundError):
            get_assessment(session, "quiz", 9999)

    def test_get_quiz_for_instructor_checks_class(self, session, gradebook_data):
        other_class = create_class(session, gradebook_data["instructor"].id, "Other")
        with pytest.raises(NotFoundError):
            get_quiz_for_instructor(session, gradebook_data["instructor"].id, other_class.id, gradebook_data["quiz"].id)


class TestListAssessments:
    def test_sorted_by_due_date_missing_last(self, session, gradebook_data):
        instructor_id = gradebook_data["instructor"].id
        class_id = gradebook_data["class_"].id
        create_assignment(session, instructor_id, class_id, "Undated")
        create_assignment(session, instructor_id, class_id, "Early", due_date="2025-01-15")

        titles = [a["title"] for a in list_assessments(session, class_id)]
        assert titles == ["Early", "Lab Report", "Cell Quiz", "Undated"]

    def test_excludes_practice_quizzes(self, session, gradebook_data):
        kinds = {(a["type"], a["title"]) for a in list_assessments(session, gradebook_data["class_"].id)}
        assert ("quiz", "Warm-up") not in kinds


class TestSubmissions:
    def test_resubmit_replaces_content(self, session, gradebook_data):
        submission = submit_assignment(
            session, gradebook_data["alice"].id, gradebook_data["assignment"].id, "Second draft"
        )
        assert submission.id == gradebook_data["alice_submission"].id
        assert submission.content == "Second draft"

    def test_graded_submission_locked(self, session, gradebook_data):
        record_grade(
            session,
            gradebook_data["instructor"].id,
            gradebook_data["alice"].id,
            "assignment",
            gradebook_data["assignment"].id,
            90,
        )
        with pytest.raises(ValidationError, match="already been graded"):
            submit_assignment(session, gradebook_data["alice"].id, gradebook_data["assignment"].id, "Late edit")

    def test_inactive_student_cannot_submit(self, session, gradebook_data):
        set_enrollment_status(
            session, gradebook_data["instructor"].id, gradebook_data["class_"].id, gradebook_data["cara"].id, "dropped"
        )
        with pytest.raises(ValidationError, match="not actively enrolled"):
            submit_assignment(session, gradebook_data["cara"].id, gradebook_data["assignment"].id, "hi")

    def test_pending_count(self, session, gradebook_data):
        assert count_pending_submissions(session, gradebook_data["class_"].id) == 2


class TestQuizAttempts:
    def test_records_graded_attempt(self, session, gradebook_data):
        attempt = record_quiz_attempt(session, gradebook_data["bob"].id, gradebook_data["quiz"].id, 14)
        assert attempt.status == "graded"
        assert attempt.total_score == 14

    @pytest.mark.parametrize("score", [-1, 20.5, None])
    def test_score_bounds(self, session, gradebook_data, score):
        with pytest.raises(ValidationError):
            record_quiz_attempt(session, gradebook_data["bob"].id, gradebook_data["quiz"].id, score)
