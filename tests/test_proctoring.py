"""Proctoring monitor and event recording."""

from sqlmodel import Session, select

from assessment_hub import models
from assessment_hub.services.proctoring import ProctoringMonitor, ProctoringPolicy
from conftest import login, test_engine


def _start(client, test):
    return client.post("/api/sessions", json={"testId": test.id}).json()["id"]


def _event(client, session_id, event_type, **extra):
    return client.post(f"/api/sessions/{session_id}/proctoring", json={"eventType": event_type, **extra})


class TestMonitor:
    def test_counts_fold_from_events(self):
        policy = ProctoringPolicy(limits={"tabSwitches": 3})
        monitor = ProctoringMonitor(policy)

        for event_type in ["tab_switch", "copy_attempt", "paste_attempt", "unknown_thing"]:
            monitor.observe(event_type)

        assert monitor.counts["tabSwitches"] == 1
        assert monitor.counts["copyPasteAttempts"] == 2
        assert sum(monitor.counts.values()) == 3

    def test_reaching_the_limit_blocks(self):
        monitor = ProctoringMonitor(ProctoringPolicy(limits={"tabSwitches": 3}))

        monitor.observe("tab_switch")
        monitor.observe("tab_switch")
        assert not monitor.blocked
        monitor.observe("tab_switch")

        assert monitor.blocked
        assert monitor.breached == ["tabSwitches"]

    def test_security_score_deducts_weights(self):
        monitor = ProctoringMonitor(
            ProctoringPolicy(limits={}),
            counts={"tabSwitches": 2, "devToolsOpened": 1, "rightClicks": 1},
        )
        # 100 - (2 * 5) - 10 - 3
        assert monitor.security_score == 77

    def test_security_score_floors_at_zero(self):
        monitor = ProctoringMonitor(ProctoringPolicy(limits={}), counts={"devToolsOpened": 20})
        assert monitor.security_score == 0


class TestRecordingEvents:
    def test_events_are_logged_and_counted(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test)

        first = _event(client, session_id, "tab_switch")
        second = _event(client, session_id, "right_click", details={"x": 10})

        assert first.status_code == 200
        assert first.json()["event"]["severity"] == "medium"
        assert first.json()["monitor"]["counts"]["tabSwitches"] == 1
        assert second.json()["event"]["severity"] == "low"
        assert second.json()["monitor"]["securityScore"] == 92

        log = client.get(f"/api/sessions/{session_id}/proctoring").json()
        assert [e["eventType"] for e in log["events"]] == ["tab_switch", "right_click"]

    def test_unknown_severity_is_rejected(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test)

        response = _event(client, session_id, "tab_switch", severity="critical")

        assert response.status_code == 400

    def test_limit_blocks_without_submitting_by_default(self, client, employee, assignment, sample_test):
        login(client, employee)
        session_id = _start(client, sample_test)

        for _ in range(3):
            response = _event(client, session_id, "tab_switch")

        body = response.json()
        assert body["monitor"]["blocked"] is True
        assert body["result"] is None
        assert client.get(f"/api/sessions/{session_id}").json()["status"] == "in_progress"

    def test_auto_submit_finishes_through_submission(self, client, settings, employee, assignment, sample_test):
        """Acceptance: a blocking violation submits the session once."""
        # Given: auto-submit on and two saved correct answers
        settings.auto_submit_on_violation = True
        login(client, employee)
        session_id = _start(client, sample_test)
        client.put(f"/api/sessions/{session_id}", json={"answers": {"0": "B", "1": "B"}})

        # When: dev tools are opened (limit 1)
        response = _event(client, session_id, "dev_tools_detected")

        # Then: the session is finalised with reason proctoring
        assert response.status_code == 200
        assert response.json()["result"] is not None
        with Session(test_engine) as db:
            stored = db.get(models.TestSession, session_id)
            results = db.exec(
                select(models.TestResult).where(models.TestResult.session_id == session_id)
            ).all()
        assert stored.status == "completed"
        assert stored.submit_reason == "proctoring"
        assert len(results) == 1
        assert results[0].score == 2

        # And: later events are refused
        assert _event(client, session_id, "tab_switch").status_code == 409


class TestFlaggedSessions:
    def test_blocked_sessions_are_flagged_for_company_staff(
        self, client, employee, admin_user, outsider_admin, assignment, sample_test
    ):
        login(client, employee)
        session_id = _start(client, sample_test)
        for _ in range(2):
            _event(client, session_id, "fullscreen_exit")

        login(client, admin_user)
        flagged = client.get("/api/proctoring/flagged").json()
        assert [f["sessionId"] for f in flagged] == [session_id]
        assert flagged[0]["monitor"]["breached"] == ["fullscreenExits"]

        login(client, outsider_admin)
        assert client.get("/api/proctoring/flagged").json() == []

    def test_takers_cannot_list_flags(self, client, employee):
        login(client, employee)
        assert client.get("/api/proctoring/flagged").status_code == 403
