"""Proctoring: append-only event log, counters derived from it, and the policy."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import Session, select

from assessment_hub.config import Settings
from assessment_hub.deps import in_company_scope
from assessment_hub.errors import SessionClosedError, ValidationFailed
from assessment_hub.models import ProctoringEvent, Test, TestResult, TestSession, User
from assessment_hub.services import results as results_service
from assessment_hub.services import sessions as session_service

logger = logging.getLogger(__name__)

# event type -> (default severity, default description)
EVENT_DEFAULTS = {
    "tab_switch": ("medium", "Tab switched or window lost focus"),
    "fullscreen_exit": ("high", "Exited fullscreen mode"),
    "copy_attempt": ("medium", "Copy attempt blocked"),
    "paste_attempt": ("medium", "Paste attempt blocked"),
    "dev_tools_detected": ("high", "Developer tools detected"),
    "right_click": ("low", "Right-click blocked"),
    "mouse_leave": ("low", "Mouse left the test window"),
    "blocked_keystroke": ("medium", "Blocked keyboard shortcut"),
}

# event type -> counter name
COUNTERS = {
    "tab_switch": "tabSwitches",
    "fullscreen_exit": "fullscreenExits",
    "copy_attempt": "copyPasteAttempts",
    "paste_attempt": "copyPasteAttempts",
    "dev_tools_detected": "devToolsOpened",
    "right_click": "rightClicks",
    "mouse_leave": "mouseLeaves",
    "blocked_keystroke": "blockedKeystrokes",
}

COUNTER_NAMES = [
    "tabSwitches",
    "fullscreenExits",
    "copyPasteAttempts",
    "devToolsOpened",
    "rightClicks",
    "mouseLeaves",
    "blockedKeystrokes",
]

# Security score deduction per counted event
PENALTY_WEIGHTS = {
    "tabSwitches": 5,
    "copyPasteAttempts": 8,
    "devToolsOpened": 10,
    "rightClicks": 3,
    "fullscreenExits": 6,
    "mouseLeaves": 2,
    "blockedKeystrokes": 4,
}

FLAG_SCORE_BELOW = 50


@dataclass(frozen=True)
class ProctoringPolicy:
    # counter name -> maximum allowed; reaching it blocks the session
    limits: Dict[str, int]
    auto_submit: bool = False
    weights: Dict[str, int] = field(default_factory=lambda: dict(PENALTY_WEIGHTS))

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProctoringPolicy":
        return cls(
            limits={
                "tabSwitches": settings.max_tab_switches,
                "fullscreenExits": settings.max_fullscreen_exits,
                "copyPasteAttempts": settings.max_copy_paste_attempts,
                "devToolsOpened": settings.max_dev_tools_opened,
            },
            auto_submit=settings.auto_submit_on_violation,
        )


class ProctoringMonitor:
    """Counts folded from a session's event log and judged against a policy."""

    def __init__(self, policy: ProctoringPolicy, counts: Optional[Dict[str, int]] = None):
        self.policy = policy
        self.counts = {name: 0 for name in COUNTER_NAMES}
        if counts:
            self.counts.update(counts)

    @classmethod
    def from_events(cls, policy: ProctoringPolicy, events: Iterable[ProctoringEvent]):
        monitor = cls(policy)
        for event in events:
            monitor.observe(event.event_type)
        return monitor

    def observe(self, event_type: str) -> None:
        counter = COUNTERS.get(event_type)
        if counter is not None:
            self.counts[counter] += 1

    @property
    def security_score(self) -> int:
        penalty = sum(
            self.policy.weights.get(name, 0) * count for name, count in self.counts.items()
        )
        return max(0, 100 - penalty)

    @property
    def breached(self) -> List[str]:
        return [
            name
            for name, limit in self.policy.limits.items()
            if self.counts.get(name, 0) >= limit
        ]

    @property
    def blocked(self) -> bool:
        return bool(self.breached)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "counts": dict(self.counts),
            "limits": dict(self.policy.limits),
            "securityScore": self.security_score,
            "blocked": self.blocked,
            "breached": self.breached,
        }


def list_events(db: Session, session_id: int) -> List[ProctoringEvent]:
    stmt = (
        select(ProctoringEvent)
        .where(ProctoringEvent.session_id == session_id)
        .order_by(ProctoringEvent.id)
    )
    return list(db.exec(stmt).all())


def monitor_for(db: Session, session_id: int, policy: ProctoringPolicy) -> ProctoringMonitor:
    return ProctoringMonitor.from_events(policy, list_events(db, session_id))


def event_to_dict(event: ProctoringEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "sessionId": event.session_id,
        "eventType": event.event_type,
        "severity": event.severity,
        "description": event.description,
        "details": event.details,
        "timestamp": event.client_timestamp.isoformat() if event.client_timestamp else None,
        "recordedAt": event.recorded_at.isoformat(),
    }


def record_event(
    db: Session,
    test_session: TestSession,
    event_type: str,
    settings: Settings,
    severity: Optional[str] = None,
    description: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    client_timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Append one event and return the monitor state after it.

    When the policy blocks the session and auto-submit is on, the session
    goes through the shared submission path with reason ``proctoring``.
    """
    if test_session.status != "in_progress":
        raise SessionClosedError(test_session.id, test_session.status)
    if not event_type:
        raise ValidationFailed("eventType is required")

    default_severity, default_description = EVENT_DEFAULTS.get(
        event_type, ("medium", event_type.replace("_", " ").capitalize())
    )
    severity = severity or default_severity
    if severity not in ("low", "medium", "high"):
        raise ValidationFailed(f"Unknown severity '{severity}'")

    policy = ProctoringPolicy.from_settings(settings)
    was_blocked = monitor_for(db, test_session.id, policy).blocked

    event = ProctoringEvent(
        session_id=test_session.id,
        event_type=event_type,
        severity=severity,
        description=description or default_description,
        details=details,
        client_timestamp=client_timestamp,
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    monitor = monitor_for(db, test_session.id, policy)
    state = {"event": event_to_dict(event), "monitor": monitor.snapshot(), "result": None}

    if monitor.blocked and not was_blocked:
        logger.warning(
            "Session %s breached proctoring limits: %s",
            test_session.id,
            ", ".join(monitor.breached),
        )
    if monitor.blocked and policy.auto_submit:
        logger.info("Auto-submitting session %s after proctoring violation", test_session.id)
        result, _ = session_service.submit_session(db, test_session, "proctoring", settings=settings)
        state["result"] = session_service.result_to_dict(
            result, include_scores=results_service.scores_visible_to_owner(db, result)
        )
    return state


def flagged_sessions(db: Session, settings: Settings, viewer: User) -> List[Dict[str, Any]]:
    """Sessions in the viewer's company scope whose monitor is blocked or whose score is low."""
    policy = ProctoringPolicy.from_settings(settings)
    session_ids = db.exec(select(ProctoringEvent.session_id).distinct()).all()

    flagged = []
    for session_id in session_ids:
        test_session = db.get(TestSession, session_id)
        if test_session is None:
            continue
        user = db.get(User, test_session.user_id)
        if user is None or not in_company_scope(viewer, user.company_id):
            continue
        monitor = monitor_for(db, session_id, policy)
        if not monitor.blocked and monitor.security_score >= FLAG_SCORE_BELOW:
            continue
        test = db.get(Test, test_session.test_id)
        result = db.exec(select(TestResult).where(TestResult.session_id == session_id)).first()
        flagged.append(
            {
                "sessionId": session_id,
                "status": test_session.status,
                "user": {"id": user.id, "name": user.name, "username": user.username},
                "test": {"id": test.id, "title": test.title} if test else None,
                "monitor": monitor.snapshot(),
                "resultId": result.id if result else None,
            }
        )
    flagged.sort(key=lambda item: item["monitor"]["securityScore"])
    return flagged
