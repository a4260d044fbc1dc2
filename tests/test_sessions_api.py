"""Acceptance tests for the test-session lifecycle over HTTP."""

from datetime import datetime, timedelta

from sqlmodel import Session, select

from assessment_hub import models
from conftest import login, make_assignment, make_test, test_engine


def _start(client, test, **extra):
    return client.post("/api/sessions", json={"testId": test.id, **extra})


def _move_deadline(session_id, delta):
    """Shift a stored session deadline relative to now."""
    with Session(test_engine) as db:
        test_session = db.get(models.TestSession, session_id)
        test_session.deadline_at = datetime.utcnow() + delta
        db.add(test_session)
        db.commit()


def _results_for_session(session_id):
    with Session(test_engine) as db:
        return db.exec(
            select(models.TestResult).where(models.TestResult.session_id == session_id)
        ).all()


def _load_session(session_id):
    with Session(test_engine) as db:
        return db.get(models.TestSession, session_id)


class TestStartAndResume:
    def test_first_open_creates_then_reopen_resumes(self, client, employee, assignment, sample_test):
        """Acceptance: opening twice returns the same in-progress session."""
        # Given: a logged-in employee with an assignment
        login(client, employee)

        # When: the test is opened twice
        first = _start(client, sample_test)
        second = _start(client, sample_test)

        # Then: 201 then 200 on the same session
        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["id"] == second.json()["id"]
        body = first.json()
        assert body["status"] == "in_progress"
        assert body["totalQuestions"] == 10
        assert 0 < body["secondsRemaining"] <= 30 * 60

    def test_unassigned_user_is_refused(self, client, other_employee, sample_test, assignment):
        login(client, other_employee)

        response = _start(client, sample_test)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_assignment_time_limit_overrides_duration(self, client, employee, project):
        test = make_test(project.id, question_count=2, duration=60)
        make_assignment(employee, test, time_limit=5)
        login(client, employee)

        body = _start(client, test).json()

        started = datetime.fromisoformat(body["startedAt"])
        deadline = datetime.fromisoformat(body["deadlineAt"])
        assert deadline - started == timedelta(minutes=5)

    def test_timestamps_are_stored_as_naive_utc(self, client, employee, assignment, sample_test):
        login(client, employee)
        before = datetime.utcnow()

        stored = _load_session(_start(client, sample_test).json()["id"])

        assert stored.started_at.tzinfo is None
        assert stored.deadline_at.tzinfo is None
        assert before - timedelta(seconds=1) <= stored.started_at <= datetime.utcnow()
        assert stored.deadline_at - stored.started_at == timedelta(minutes=30)

    def test_questions_render_without_answers(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        questions = client.get(f"/api/sessions/{session_id}/questions").json()

        assert len(questions) == 10
        assert questions[0]["kind"] == "mcq"
        assert [c["letter"] for c in questions[0]["choices"]] == ["A", "B", "C", "D"]
        assert all("correctAnswer" not in q for q in questions)

    def test_other_users_cannot_see_the_session(self, client, employee, other_employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        login(client, other_employee)
        response = client.get(f"/api/sessions/{session_id}")

        assert response.status_code == 404

    def test_requires_login(self, client, sample_test):
        response = _start(client, sample_test)
        assert response.status_code == 401


class TestAnswers:
    def test_answers_are_saved_by_index(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 0, "answer": "B"})
        response = client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 3, "answer": "C"})

        assert response.status_code == 200
        assert response.json()["answers"] == {"0": "B", "3": "C"}

    def test_index_out_of_range_is_rejected(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        response = client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 10, "answer": "B"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_bulk_update_cannot_finish_the_session(self, client, employee, assignment, sample_test):
        """Acceptance: status and score sent by the client are ignored."""
        # Given: an open session
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        # When: the client tries to mark it completed with a perfect score
        response = client.put(
            f"/api/sessions/{session_id}",
            json={"answers": {"1": "B"}, "status": "completed", "score": 100},
        )

        # Then: only the answers were applied
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        assert response.json()["answers"] == {"1": "B"}
        assert _results_for_session(session_id) == []


class TestSubmission:
    def test_manual_submit_scores_once(self, client, employee, assignment, sample_test):
        """Acceptance: a double submit yields one result and a 200 on the repeat."""
        # Given: seven of ten answers correct
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        answers = {str(i): "B" for i in range(7)}
        answers.update({str(i): "A" for i in range(7, 10)})

        # When: the session is submitted twice
        first = client.post(f"/api/sessions/{session_id}/submit", json={"answers": answers})
        second = client.post(f"/api/sessions/{session_id}/submit", json={"answers": answers})

        # Then: one result, the repeat flagged as already submitted
        assert first.status_code == 201
        assert first.json()["alreadySubmitted"] is False
        assert second.status_code == 200
        assert second.json()["alreadySubmitted"] is True
        assert first.json()["id"] == second.json()["id"]

        results = _results_for_session(session_id)
        assert len(results) == 1
        assert results[0].score == 7
        assert results[0].percentage == 70
        assert results[0].passed is True

        stored = _load_session(session_id)
        assert stored.status == "completed"
        assert stored.submit_reason == "manual"
        assert stored.score == 70
        assert stored.correct_answers == 7

    def test_scores_withheld_until_released(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        body = client.post(f"/api/sessions/{session_id}/submit", json={"answers": {"0": "B"}}).json()

        assert body["resultsVisible"] is False
        assert "score" not in body and "percentage" not in body

    def test_scores_shown_when_released(self, client, employee, sample_test):
        make_assignment(employee, sample_test, results_visible=True)
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        body = client.post(f"/api/sessions/{session_id}/submit", json={"answers": {"0": "B"}}).json()

        assert body["resultsVisible"] is True
        assert body["score"] == 1
        assert body["percentage"] == 10
        assert body["passed"] is False

    def test_submit_without_body_uses_saved_answers(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 0, "answer": "B"})

        response = client.post(f"/api/sessions/{session_id}/submit")

        assert response.status_code == 201
        assert _results_for_session(session_id)[0].score == 1

    def test_early_timer_reason_counts_as_manual(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        client.post(f"/api/sessions/{session_id}/submit", json={"reason": "timer"})

        stored = _load_session(session_id)
        assert stored.status == "completed"
        assert stored.submit_reason == "manual"

    def test_retake_refused_after_completion(self, client, employee, assignment, sample_test):
        """Acceptance: a completed test cannot be restarted."""
        # Given: a submitted session
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        client.post(f"/api/sessions/{session_id}/submit", json={"answers": {"0": "B"}})

        # When: the employee opens the test again
        response = _start(client, sample_test)

        # Then: 403 with the machine-readable code and the completion time
        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "TEST_ALREADY_COMPLETED"
        assert body["detail"] == "Test already completed. Retaking tests is not allowed."
        assert body["completedAt"] is not None
        # Scores are not released on this assignment
        assert body["score"] is None

    def test_extra_attempts_allow_a_new_session(self, client, employee, sample_test):
        make_assignment(employee, sample_test, max_attempts=2)
        login(client, employee)
        first_id = _start(client, sample_test).json()["id"]
        client.post(f"/api/sessions/{first_id}/submit")

        second = _start(client, sample_test)

        assert second.status_code == 201
        assert second.json()["id"] != first_id

    def test_closed_session_rejects_answers(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        client.post(f"/api/sessions/{session_id}/submit")

        response = client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 0, "answer": "B"})

        assert response.status_code == 409
        assert response.json()["code"] == "SESSION_CLOSED"
        assert response.json()["status"] == "completed"


class TestExpiry:
    def test_server_finalises_expired_session(self, client, employee, assignment, sample_test):
        """Acceptance: the server times out a session whose client went away."""
        # Given: one saved answer and a deadline a minute in the past
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        client.put(f"/api/sessions/{session_id}/answers", json={"questionIndex": 0, "answer": "B"})
        _move_deadline(session_id, timedelta(minutes=-1))

        # When: anyone polls the time
        response = client.get(f"/api/sessions/{session_id}/time")

        # Then: the session is finalised as timed out with the saved answers scored
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "timed_out"
        assert body["expired"] is True
        assert body["secondsRemaining"] == 0

        results = _results_for_session(session_id)
        assert len(results) == 1
        assert results[0].score == 1
        assert results[0].time_spent == 30
        assert _load_session(session_id).submit_reason == "timer"

    def test_late_submit_returns_timer_result(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        _move_deadline(session_id, timedelta(minutes=-1))

        response = client.post(
            f"/api/sessions/{session_id}/submit",
            json={"answers": {"0": "B", "1": "B"}, "reason": "manual"},
        )

        # The timer already wrote the result; late answers are not merged
        assert response.status_code == 200
        assert response.json()["alreadySubmitted"] is True
        assert _results_for_session(session_id)[0].score == 0

    def test_client_expiry_submit_within_grace(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        _move_deadline(session_id, timedelta(seconds=-1))

        response = client.post(
            f"/api/sessions/{session_id}/submit",
            json={"answers": {"0": "B"}, "reason": "timer"},
        )

        assert response.status_code == 201
        stored = _load_session(session_id)
        assert stored.status == "timed_out"
        assert stored.submit_reason == "timer"
        assert _results_for_session(session_id)[0].score == 1

    def test_early_client_expiry_counts_as_manual(self, client, employee, assignment, sample_test):
        # A client clock running slightly fast reaches zero before the server deadline
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        _move_deadline(session_id, timedelta(seconds=2))

        response = client.post(
            f"/api/sessions/{session_id}/submit",
            json={"answers": {"0": "B"}, "reason": "timer"},
        )

        assert response.status_code == 201
        stored = _load_session(session_id)
        assert stored.status == "completed"
        assert stored.submit_reason == "manual"
        assert _results_for_session(session_id)[0].score == 1

    def test_time_reports_remaining_seconds(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        body = client.get(f"/api/sessions/{session_id}/time").json()

        assert body["status"] == "in_progress"
        assert body["expired"] is False
        assert 30 * 60 - 5 <= body["secondsRemaining"] <= 30 * 60


class TestRunCode:
    def _coding_test(self, project, employee):
        test = make_test(project.id, question_count=0, title="Algorithms")
        with Session(test_engine) as db:
            db.add(
                models.Question(
                    test_id=test.id,
                    type="coding",
                    question="Write a factorial function",
                    options={"template": "function factorial(n) {\n}\n"},
                    correct_answer="",
                    status="approved",
                )
            )
            db.commit()
        make_assignment(employee, test)
        return test

    def test_empty_code_is_refused(self, client, employee, project):
        test = self._coding_test(project, employee)
        login(client, employee)
        session_id = _start(client, test).json()["id"]

        response = client.post(f"/api/sessions/{session_id}/questions/0/run", json={"code": "  "})

        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_CODE"

    def test_simulated_run_reports_cases(self, client, employee, project):
        test = self._coding_test(project, employee)
        login(client, employee)
        session_id = _start(client, test).json()["id"]

        response = client.post(
            f"/api/sessions/{session_id}/questions/0/run",
            json={"code": "function factorial(n) { return n <= 1 ? 1 : n * factorial(n - 1); }"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "simulated"
        assert body["total"] == 4
        assert body["passed"] == 4

    def test_non_coding_question_cannot_run(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]

        response = client.post(f"/api/sessions/{session_id}/questions/0/run", json={"code": "print(1) " * 5})

        assert response.status_code == 400


class TestTakePage:
    def test_take_page_renders_for_assigned_test(self, client, employee, assignment, sample_test):
        login(client, employee)

        response = client.get(f"/tests/{sample_test.id}/take")

        assert response.status_code == 200
        assert sample_test.title in response.text

    def test_completed_test_redirects_to_dashboard(self, client, employee, assignment, sample_test):
        """Acceptance: reopening a completed test lands on the dashboard with a notice."""
        # Given: a submitted session
        login(client, employee)
        session_id = _start(client, sample_test).json()["id"]
        client.post(f"/api/sessions/{session_id}/submit")

        # When: the take page is requested again
        response = client.get(f"/tests/{sample_test.id}/take", follow_redirects=False)

        # Then: redirected with the already-completed notice
        assert response.status_code == 303
        assert response.headers["location"] == "/employee-dashboard?notice=already_completed"

    def test_unassigned_test_redirects_with_notice(self, client, other_employee, sample_test):
        login(client, other_employee)

        response = client.get(f"/tests/{sample_test.id}/take", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"].endswith("notice=not_available")

    def test_pages_redirect_to_login_when_anonymous(self, client, sample_test):
        response = client.get(f"/tests/{sample_test.id}/take", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    def test_script_submits_at_zero_and_watches_window_size(self, client):
        script = client.get("/static/take_test.js")

        assert script.status_code == 200
        countdown = script.text.split("renderCountdown();\n  setInterval(", 1)[1]
        assert 'if (remaining === 0) {\n      submit("timer");' in countdown
        assert "window.outerWidth - window.innerWidth" in script.text
        assert "setInterval(checkDevToolsSize, 2000)" in script.text
