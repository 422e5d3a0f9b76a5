"""
Shared pytest fixtures for the instructor portal tests.

Fixture summary
---------------
Database:
    db_path              -- temp .db file path with cleanup
    db_session           -- (session, db_path) tuple with all tables created

Data builders:
    make_user            -- factory that creates a User through portal.auth
    gradebook_data       -- seeded instructor, students, class and assessments

Flask:
    flask_app            -- Flask app on the seeded database (CSRF off)
    instructor_client    -- test client logged in as the class instructor
    other_instructor_client -- logged in as an instructor who owns nothing
    student_client       -- logged in as a student
    anon_client          -- unauthenticated test client
"""

import os
import tempfile
from datetime import datetime

import pytest

from portal.assessments import create_assignment, create_quiz, submit_assignment
from portal.auth import create_user
from portal.classroom import create_class, enroll_student
from portal.database import get_engine, get_session, init_db

TEST_PASSWORD = "password123"

# ---------------------------------------------------------------------------
# Core database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path():
    """Provide a temporary database file path with cleanup."""
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    yield tmp.name
    try:
        if os.path.exists(tmp.name):
            os.remove(tmp.name)
    except OSError:
        pass  # Windows may still hold the lock


@pytest.fixture
def db_session(db_path):
    """Provide a ``(session, db_path)`` tuple bound to a fresh temp DB."""
    engine = get_engine(db_path)
    init_db(engine)
    session = get_session(engine)
    yield session, db_path
    session.close()
    engine.dispose()


# ---------------------------------------------------------------------------
# Data builder fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user():
    """Factory fixture: ``create(session, first, last, role="student")``."""

    def _create(session, first, last, role="student", email=None):
        email = email or f"{first}.{last}@example.edu".lower()
        return create_user(session, email, TEST_PASSWORD, first, last, role=role)

    return _create


@pytest.fixture
def gradebook_data(db_session, make_user):
    """Seed one class with three students, two assessments and submissions.

    Returns a dict of ORM objects:
        instructor, other_instructor, alice, bob, cara, class_, assignment
        (100 pts), quiz (20 pts, graded), practice_quiz, alice_submission,
        bob_submission.
    """
    session, _ = db_session
    instructor = make_user(session, "Ina", "Structor", role="instructor")
    other = make_user(session, "Otto", "Other", role="instructor")
    alice = make_user(session, "Alice", "Adams")
    bob = make_user(session, "Bob", "Brown")
    cara = make_user(session, "Cara", "Clark")

    class_ = create_class(session, instructor.id, "Biology 101", code="BIO101")
    for student in (alice, bob, cara):
        enroll_student(session, instructor.id, class_.id, student.id)

    assignment = create_assignment(
        session, instructor.id, class_.id, "Lab Report", total_points=100, due_date=datetime(2025, 3, 1)
    )
    quiz = create_quiz(session, instructor.id, class_.id, "Cell Quiz", total_points=20, available_to=datetime(2025, 3, 10))
    practice = create_quiz(session, instructor.id, class_.id, "Warm-up", total_points=10, quiz_type="practice")

    alice_submission = submit_assignment(session, alice.id, assignment.id, "Alice's report")
    bob_submission = submit_assignment(session, bob.id, assignment.id, "Bob's report")

    return {
        "instructor": instructor,
        "other_instructor": other,
        "alice": alice,
        "bob": bob,
        "cara": cara,
        "class_": class_,
        "assignment": assignment,
        "quiz": quiz,
        "practice_quiz": practice,
        "alice_submission": alice_submission,
        "bob_submission": bob_submission,
    }


# ---------------------------------------------------------------------------
# Flask test client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def flask_app(db_session, gradebook_data):
    """Provide a Flask test app on the seeded temp database."""
    from portal.web.app import create_app

    _, db_path_value = db_session
    test_config = {
        "paths": {"database_file": db_path_value},
        "grading": {"needs_attention_threshold": 50, "min_graded_entries": 2, "recent_limit": 10},
    }
    app = create_app(test_config)
    app.config["TESTING"] = True
    app.config["WTF_CSRF_ENABLED"] = False  # Disable CSRF for non-security tests

    yield app

    app.config["DB_ENGINE"].dispose()


def _logged_in_client(app, user_id, role):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["logged_in"] = True
        sess["user_id"] = user_id
        sess["role"] = role
    return client


@pytest.fixture
def instructor_client(flask_app, gradebook_data):
    """Logged-in client for the seeded class's instructor (session-injected)."""
    with _logged_in_client(flask_app, gradebook_data["instructor"].id, "instructor") as client:
        yield client


@pytest.fixture
def other_instructor_client(flask_app, gradebook_data):
    with _logged_in_client(flask_app, gradebook_data["other_instructor"].id, "instructor") as client:
        yield client


@pytest.fixture
def student_client(flask_app, gradebook_data):
    with _logged_in_client(flask_app, gradebook_data["alice"].id, "student") as client:
        yield client


@pytest.fixture
def anon_client(flask_app):
    with flask_app.test_client() as client:
        yield client
