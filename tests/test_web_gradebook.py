"""
Tests for the gradebook, class and quiz-import JSON endpoints.

Uses the seeded ``gradebook_data`` class and session-injected clients from
conftest.py.
"""

import csv
import io

import pytest

from portal.database import GradeEntry, Submission


@pytest.fixture
def ids(gradebook_data):
    return {key: obj.id for key, obj in gradebook_data.items()}


@pytest.fixture
def session(db_session):
    session, _ = db_session
    return session


def _post_grade(client, ids, student="alice", assessment_type="assignment", assessment="assignment", score=80, **extra):
    body = {
        "student_id": ids[student],
        "assessment_type": assessment_type,
        "assessment_id": ids[assessment],
        "score": score,
    }
    body.update(extra)
    return client.post(f"/api/classes/{ids['class_']}/grades", json=body)


class TestClassesApi:
    def test_list_classes(self, instructor_client):
        data = instructor_client.get("/api/classes").get_json()
        assert [c["name"] for c in data["classes"]] == ["Biology 101"]
        assert data["classes"][0]["student_count"] == 3

    def test_roster(self, instructor_client, ids):
        data = instructor_client.get(f"/api/classes/{ids['class_']}/roster").get_json()
        assert [s["last_name"] for s in data["students"]] == ["Adams", "Brown", "Clark"]
        assert isinstance(data["students"][0]["enrolled_at"], str)

    def test_roster_export(self, instructor_client, ids):
        resp = instructor_client.get(f"/api/classes/{ids['class_']}/roster/export")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "Biology_101_roster.csv" in resp.headers["Content-Disposition"]

    def test_enrollment_status(self, instructor_client, ids):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/roster/{ids['cara']}/status", json={"status": "dropped"}
        )
        assert resp.get_json() == {"ok": True, "student_id": ids["cara"], "status": "dropped"}
        roster = instructor_client.get(f"/api/classes/{ids['class_']}/roster").get_json()
        assert [s["last_name"] for s in roster["students"]] == ["Adams", "Brown"]

    def test_enrollment_status_invalid(self, instructor_client, ids):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/roster/{ids['cara']}/status", json={"status": "expelled"}
        )
        assert resp.status_code == 400

    def test_enrollment_status_forbidden(self, other_instructor_client, ids):
        resp = other_instructor_client.post(
            f"/api/classes/{ids['class_']}/roster/{ids['cara']}/status", json={"status": "dropped"}
        )
        assert resp.status_code == 403

    def test_other_instructor_forbidden(self, other_instructor_client, ids):
        resp = other_instructor_client.get(f"/api/classes/{ids['class_']}/roster")
        assert resp.status_code == 403
        assert "error" in resp.get_json()

    def test_missing_class(self, instructor_client):
        assert instructor_client.get("/api/classes/9999/roster").status_code == 404


class TestRecordGradeApi:
    def test_record(self, instructor_client, ids, session):
        resp = _post_grade(instructor_client, ids, score=91.5, feedback="Strong analysis")
        assert resp.status_code == 200
        grade = resp.get_json()["grade"]
        assert grade["letter"] == "A-"
        assert grade["feedback"] == "Strong analysis"

        session.expire_all()
        assert session.get(Submission, ids["alice_submission"]).grade == 91.5

    def test_out_of_range(self, instructor_client, ids):
        resp = _post_grade(instructor_client, ids, score=101)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid grade (must be 0-100)"

    def test_missing_score(self, instructor_client, ids):
        resp = _post_grade(instructor_client, ids, score=None)
        assert resp.status_code == 400

    def test_bad_ids(self, instructor_client, ids):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/grades",
            json={"student_id": "abc", "assessment_type": "assignment", "assessment_id": ids["assignment"], "score": 5},
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("student_id", [True, 1.5])
    def test_rejects_bool_and_fractional_ids(self, instructor_client, ids, session, student_id):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/grades",
            json={
                "student_id": student_id,
                "assessment_type": "assignment",
                "assessment_id": ids["assignment"],
                "score": 5,
            },
        )
        assert resp.status_code == 400
        assert "must be an integer" in resp.get_json()["error"]
        session.expire_all()
        assert session.query(GradeEntry).count() == 0

    def test_forbidden_for_other_instructor(self, other_instructor_client, ids, session):
        resp = _post_grade(other_instructor_client, ids)
        assert resp.status_code == 403
        session.expire_all()
        assert session.query(GradeEntry).count() == 0

    def test_student_cannot_grade(self, student_client, ids):
        assert _post_grade(student_client, ids).status_code == 403

    def test_assessment_from_another_class(self, instructor_client, ids, session, gradebook_data):
        from portal.assessments import create_assignment
        from portal.classroom import create_class

        other_class = create_class(session, ids["instructor"], "Physics")
        foreign = create_assignment(session, ids["instructor"], other_class.id, "Elsewhere")
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/grades",
            json={
                "student_id": ids["alice"],
                "assessment_type": "assignment",
                "assessment_id": foreign.id,
                "score": 5,
            },
        )
        assert resp.status_code == 400
        session.expire_all()
        assert session.query(GradeEntry).count() == 0


class TestSubmissionGradingApi:
    def test_grade_submission(self, instructor_client, ids):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/submissions/{ids['bob_submission']}/grade",
            json={"grade": 72, "feedback": "Check units"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["grade"]["letter"] == "C-"

    def test_unknown_submission(self, instructor_client, ids):
        resp = instructor_client.post(f"/api/classes/{ids['class_']}/submissions/9999/grade", json={"grade": 50})
        assert resp.status_code == 404

    def test_bulk(self, instructor_client, ids):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/grades/bulk",
            json={
                "grades": [
                    {"submission_id": ids["alice_submission"], "grade": 95},
                    {"submission_id": ids["bob_submission"], "grade": -3},
                ]
            },
        )
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        assert data["errors"] == [f"Submission #{ids['bob_submission']}: Invalid grade (must be 0-100)"]

    def test_bulk_fractional_id_not_truncated(self, instructor_client, ids, session):
        resp = instructor_client.post(
            f"/api/classes/{ids['class_']}/grades/bulk",
            json={"grades": [{"submission_id": ids["alice_submission"] + 0.9, "grade": 55}]},
        )
        data = resp.get_json()
        assert data["succeeded"] == 0
        assert data["failed"] == 1
        session.expire_all()
        assert session.get(Submission, ids["alice_submission"]).grade is None

    def test_bulk_requires_list(self, instructor_client, ids):
        resp = instructor_client.post(f"/api/classes/{ids['class_']}/grades/bulk", json={"grades": "all A"})
        assert resp.status_code == 400

    def test_bulk_forbidden(self, other_instructor_client, ids):
        resp = other_instructor_client.post(
            f"/api/classes/{ids['class_']}/grades/bulk",
            json={"grades": [{"submission_id": ids["alice_submission"], "grade": 95}]},
        )
        assert resp.status_code == 403


class TestGradebookApi:
    def test_summary_and_students(self, instructor_client, ids):
        _post_grade(instructor_client, ids, score=80)
        _post_grade(instructor_client, ids, assessment_type="quiz", assessment="quiz", score=18)

        data = instructor_client.get(f"/api/classes/{ids['class_']}/gradebook").get_json()
        assert data["total_students"] == 3
        assert data["histogram"]["B"] == 1
        assert data["top_performer"]["student_id"] == ids["alice"]
        alice = data["students"][0]
        assert alice["percentage"] == 81.67
        assert alice["letter"] == "B-"
        assert [a["title"] for a in data["assessments"]] == ["Lab Report", "Cell Quiz"]

    def test_filters(self, instructor_client, ids):
        _post_grade(instructor_client, ids, student="bob", score=60)
        url = f"/api/classes/{ids['class_']}/gradebook?filter=graded&sort_by=percentage&sort_order=desc"
        data = instructor_client.get(url).get_json()
        assert [s["student_id"] for s in data["students"]] == [ids["bob"]]
        assert data["filter"] == "graded"

    def test_search(self, instructor_client, ids):
        data = instructor_client.get(f"/api/classes/{ids['class_']}/gradebook?search=clark").get_json()
        assert [s["student_id"] for s in data["students"]] == [ids["cara"]]

    @pytest.mark.parametrize("query", ["filter=bogus", "sort_by=password_hash", "sort_order=up"])
    def test_rejects_unknown_params(self, instructor_client, ids, query):
        resp = instructor_client.get(f"/api/classes/{ids['class_']}/gradebook?{query}")
        assert resp.status_code == 400

    def test_student_grades(self, instructor_client, ids):
        _post_grade(instructor_client, ids, score=80)
        data = instructor_client.get(f"/api/classes/{ids['class_']}/students/{ids['alice']}/grades").get_json()
        assert data["graded_count"] == 1
        assert data["grades"][0]["title"] == "Lab Report"
        assert isinstance(data["grades"][0]["updated_at"], str)

    def test_student_grades_forbidden(self, other_instructor_client, ids):
        resp = other_instructor_client.get(f"/api/classes/{ids['class_']}/students/{ids['alice']}/grades")
        assert resp.status_code == 403

    def test_recent(self, instructor_client, ids):
        _post_grade(instructor_client, ids, score=80)
        _post_grade(instructor_client, ids, student="bob", score=70)
        data = instructor_client.get(f"/api/classes/{ids['class_']}/grades/recent?limit=1").get_json()
        assert [g["student_id"] for g in data["grades"]] == [ids["bob"]]

    def test_recent_bad_limit(self, instructor_client, ids):
        assert instructor_client.get(f"/api/classes/{ids['class_']}/grades/recent?limit=0").status_code == 400

    def test_export(self, instructor_client, ids):
        _post_grade(instructor_client, ids, score=80)
        resp = instructor_client.get(f"/api/classes/{ids['class_']}/grades/export")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert rows[0][-3:] == ["Total Score", "Average %", "Final Grade"]
        assert rows[1][-1] == "B-"

    def test_sync_quizzes(self, instructor_client, ids, session):
        from portal.assessments import record_quiz_attempt

        record_quiz_attempt(session, ids["cara"], ids["quiz"], 16)
        resp = instructor_client.post(f"/api/classes/{ids['class_']}/grades/sync-quizzes")
        assert resp.get_json() == {"ok": True, "updated": 1}


class TestQuestionImportApi:
    def _upload(self, client, ids, content, filename, fmt="auto"):
        return client.post(
            f"/api/classes/{ids['class_']}/quizzes/{ids['quiz']}/questions/import",
            data={"file": (io.BytesIO(content.encode("utf-8")), filename), "format": fmt},
            content_type="multipart/form-data",
        )

    def test_csv_upload(self, instructor_client, ids):
        csv_text = "question_type,question_text,points,options,correct_options\nmultiple_choice,2+2?,1,3|4,1\n"
        resp = self._upload(instructor_client, ids, csv_text, "questions.csv")
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True, "imported": 1, "errors": []}

    def test_reports_item_errors(self, instructor_client, ids):
        resp = self._upload(instructor_client, ids, '{"questions": [{"question_text": ""}]}', "q.json")
        data = resp.get_json()
        assert data["imported"] == 0
        assert data["errors"] == ["Question 1: missing question text"]

    def test_rejects_extension(self, instructor_client, ids):
        assert self._upload(instructor_client, ids, "x", "questions.exe").status_code == 400

    def test_no_file(self, instructor_client, ids):
        resp = instructor_client.post(f"/api/classes/{ids['class_']}/quizzes/{ids['quiz']}/questions/import")
        assert resp.status_code == 400

    def test_forbidden(self, other_instructor_client, ids):
        assert self._upload(other_instructor_client, ids, "question_text\nHi\n", "q.csv").status_code == 403

    def test_sample_csv(self, instructor_client):
        resp = instructor_client.get("/api/questions/sample-csv")
        assert resp.status_code == 200
        assert resp.get_data(as_text=True).startswith("question_type,question_text")
