import pytest
from sqlalchemy.exc import OperationalError

from quiz_assessment.backend.api import students as students_api
from quiz_assessment.backend.api.auth import hash_password
from quiz_assessment.backend.database.models import Admin
from quiz_assessment.backend.services import submission as submission_module

START_TIME = 1714564800000


def submission(name="Aya", email="aya@example.com", quiz_id="Q1", answers=None):
    if answers is None:
        answers = [
            {"questionId": "q1", "selectedOptionIndex": 0},
            {"questionId": "q2", "selectedOptionIndex": 1},
            {"questionId": "q3", "selectedOptionIndex": 0},
        ]
    return {
        "student": {"name": name, "email": email, "phone": "0550", "wilaya": "Oran"},
        "quizId": quiz_id,
        "answers": answers,
        "startTime": START_TIME,
    }


class TestSubmitQuiz:
    async def test_first_submission_then_replay(self, client):
        response = await client.post("/submit_quiz", json=submission())
        assert response.status_code == 200
        body = response.json()
        assert body == {
            "success": True,
            "attemptId": body["attemptId"],
            "score": 2,
            "total": 3,
            "percentage": 67,
        }

        replay = await client.post("/submit_quiz", json=submission(answers=[]))
        assert replay.status_code == 200
        assert replay.json() == {
            "success": True,
            "alreadyAttempted": True,
            "attemptId": body["attemptId"],
            "percentage": 67,
        }

        stats = await client.get("/get_student_stats", params={"email": "aya@example.com"})
        assert stats.json() == {"totalCompleted": 1, "avgScore": 66.7}

    async def test_padded_name_is_a_different_student(self, client):
        first = await client.post("/submit_quiz", json=submission(name="Aya"))
        second = await client.post("/submit_quiz", json=submission(name=" Aya"))

        assert "alreadyAttempted" not in second.json()
        assert second.json()["attemptId"] != first.json()["attemptId"]

    async def test_guest_without_email(self, client):
        payload = submission(email=None)
        response = await client.post("/submit_quiz", json=payload)
        assert response.status_code == 200
        assert response.json()["percentage"] == 67

    @pytest.mark.parametrize("missing", ["student", "quizId", "answers", "startTime"])
    async def test_missing_field_rejected(self, client, missing):
        payload = submission()
        del payload[missing]

        response = await client.post("/submit_quiz", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert missing in body["details"]["fields"]

    async def test_blank_student_name_rejected(self, client):
        response = await client.post("/submit_quiz", json=submission(name="   "))
        assert response.status_code == 400
        assert response.json()["details"]["fields"] == ["student.name"]

    async def test_invalid_email_rejected(self, client):
        response = await client.post("/submit_quiz", json=submission(email="not-an-email"))
        assert response.status_code == 400

    async def test_unknown_quiz_rejected(self, client):
        response = await client.post("/submit_quiz", json=submission(quiz_id="missing"))
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_out_of_range_answer_rejected(self, client):
        answers = [{"questionId": "q1", "selectedOptionIndex": 7}]
        response = await client.post("/submit_quiz", json=submission(answers=answers))
        assert response.status_code == 400

    async def test_student_token_pins_identity(self, client, database, add_student, student_token_for):
        async with database.session() as session:
            student_id = await add_student(session, "Aya", "aya@example.com", password_hash="x")

        response = await client.post(
            "/submit_quiz",
            json=submission(name="Someone", email="someone@example.com"),
            headers={"Authorization": f"Bearer {student_token_for(student_id)}"}
        )
        assert response.status_code == 200

        stats = await client.get("/get_student_stats", params={"email": "aya@example.com"})
        assert stats.json()["totalCompleted"] == 1

    async def test_garbage_token_rejected(self, client):
        response = await client.post(
            "/submit_quiz",
            json=submission(),
            headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401


class TestStudentStats:
    async def test_email_required(self, client):
        response = await client.get("/get_student_stats")
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_unknown_email(self, client):
        response = await client.get("/get_student_stats", params={"email": "nobody@example.com"})
        assert response.status_code == 200
        assert response.json() == {"totalCompleted": 0, "avgScore": 0}


class TestAdminAccess:
    @pytest.mark.parametrize("path", [
        "/get_dashboard_stats",
        "/get_results",
        "/get_leaderboard",
        "/get_students",
        "/get_result_details?id=1",
    ])
    async def test_requires_token(self, client, path):
        response = await client.get(path)
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_FAILED"

    async def test_student_token_forbidden(self, client, student_token_for):
        response = await client.get(
            "/get_dashboard_stats",
            headers={"Authorization": f"Bearer {student_token_for(1)}"}
        )
        assert response.status_code == 403
        assert response.json()["error"] == "ACCESS_DENIED"

    async def test_admin_reports(self, client, admin_headers):
        await client.post("/submit_quiz", json=submission())
        await client.post("/submit_quiz", json=submission(name="Omar", email="omar@example.com"))

        dashboard = await client.get("/get_dashboard_stats", headers=admin_headers)
        assert dashboard.status_code == 200
        assert dashboard.json()["total_attempts"] == 2
        assert dashboard.json()["performance_levels"]["average"] == 2

        results = await client.get("/get_results", params={"quiz_id": "Q1"}, headers=admin_headers)
        assert [row["score_percentage"] for row in results.json()] == [67, 67]

        rollup = await client.get("/get_results", headers=admin_headers)
        assert all(row["quiz_id"] == "all" for row in rollup.json())

        board = await client.get("/get_leaderboard", params={"quiz_id": "Q1"}, headers=admin_headers)
        assert [row["rank"] for row in board.json()] == [1, 2]

        attempt_id = results.json()[0]["id"]
        details = await client.get("/get_result_details", params={"id": attempt_id}, headers=admin_headers)
        assert details.status_code == 200
        assert len(details.json()["attempt"]["details"]) == 3

        students = await client.get("/get_students", headers=admin_headers)
        assert {row["name"] for row in students.json()} == {"Aya", "Omar"}

    async def test_unknown_result_details(self, client, admin_headers):
        response = await client.get("/get_result_details", params={"id": 999}, headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_invalid_sort_rejected(self, client, admin_headers):
        response = await client.get("/get_leaderboard", params={"sort": "sideways"}, headers=admin_headers)
        assert response.status_code == 400


class TestAuthentication:
    async def test_admin_login(self, client, database):
        async with database.session() as session:
            session.add(Admin(username="admin", password_hash=hash_password("correct-horse", 4)))
            await session.commit()

        response = await client.post("/login", json={"username": "admin", "password": "correct-horse"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        dashboard = await client.get("/get_dashboard_stats", headers={"Authorization": f"Bearer {token}"})
        assert dashboard.status_code == 200

        rejected = await client.post("/login", json={"username": "admin", "password": "wrong"})
        assert rejected.status_code == 401

    async def test_signup_then_login_then_submit(self, client):
        signup = await client.post("/student_signup", json={
            "name": "Aya", "email": "aya@example.com", "password": "long-enough"
        })
        assert signup.status_code == 201
        student = signup.json()["student"]
        assert student["has_account"] is True

        duplicate = await client.post("/student_signup", json={
            "name": "Aya", "email": "aya@example.com", "password": "long-enough"
        })
        assert duplicate.status_code == 409

        login = await client.post("/student_login", json={
            "email": "aya@example.com", "password": "long-enough"
        })
        assert login.status_code == 200
        assert login.json()["student"]["id"] == student["id"]
        token = login.json()["access_token"]

        response = await client.post(
            "/submit_quiz",
            json=submission(name="Aya B."),
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200

        stats = await client.get("/get_student_stats", params={"email": "aya@example.com"})
        assert stats.json()["totalCompleted"] == 1

    async def test_short_password_rejected(self, client):
        response = await client.post("/student_signup", json={
            "name": "Aya", "email": "aya@example.com", "password": "short"
        })
        assert response.status_code == 400

    async def test_guest_cannot_log_in(self, client):
        await client.post("/submit_quiz", json=submission())
        response = await client.post("/student_login", json={
            "email": "aya@example.com", "password": "anything-at-all"
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"


class TestContent:
    async def test_quiz_listing_and_detail(self, client):
        quizzes = await client.get("/get_quizzes")
        assert [quiz["id"] for quiz in quizzes.json()] == ["Q1", "Q2"]

        quiz = await client.get("/get_quiz", params={"id": "Q1"})
        assert quiz.status_code == 200
        assert [question["id"] for question in quiz.json()["questions"]] == ["q1", "q2", "q3"]

    async def test_unknown_quiz(self, client):
        response = await client.get("/get_quiz", params={"id": "missing"})
        assert response.status_code == 404

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        assert "x-process-time" in response.headers


def store_failure(*args, **kwargs):
    raise OperationalError(
        "SELECT * FROM quiz_attempts", {}, Exception("disk I/O error at /var/lib/quiz.db")
    )


class TestStoreFailures:
    async def test_escaped_database_error_is_generic(self, client, monkeypatch):
        async def failing_stats(db, email):
            store_failure()

        monkeypatch.setattr(students_api, "compute_student_stats", failing_stats)

        response = await client.get("/get_student_stats", params={"email": "aya@example.com"})

        assert response.status_code == 500
        body = response.json()
        assert set(body) == {"error", "message", "details", "timestamp"}
        assert body["error"] == "PERSISTENCE_ERROR"
        assert "disk I/O" not in response.text
        assert "quiz_attempts" not in response.text

    async def test_submission_store_failure(self, client, monkeypatch):
        async def failing_guard(session, student_id, quiz_id):
            store_failure()

        monkeypatch.setattr(submission_module, "find_existing_attempt", failing_guard)

        response = await client.post("/submit_quiz", json=submission())

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "PERSISTENCE_ERROR"
        assert body["details"] == {"operation": "find_attempt"}
        assert "disk I/O" not in response.text
