"""Test session lifecycle: creation, answering, expiry and submission.

The server-issued ``deadline_at`` is the only clock that matters. Manual
submission, timer expiry and proctoring auto-submit all finish through
``submit_session``, which writes at most one ``TestResult`` per session.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from assessment_hub import notifications, roles
from assessment_hub.config import Settings, get_settings
from assessment_hub.deps import in_company_scope
from assessment_hub.errors import (
    ForbiddenError,
    NotFoundError,
    SessionClosedError,
    TestAlreadyCompletedError,
    ValidationFailed,
)
from assessment_hub.models import (
    Question,
    Test,
    TestAssignment,
    TestResult,
    TestSession,
    User,
)
from assessment_hub.services import catalog
from assessment_hub.services.results import scores_visible_to_owner
from assessment_hub.services.renderer import render_question, to_variant
from assessment_hub.services.scoring import answer_for, score_answers, time_spent_minutes
from assessment_hub.services.timer import Countdown, deadline_for

logger = logging.getLogger(__name__)

SUBMIT_REASONS = ("manual", "timer", "proctoring")


# ===================== LOOKUPS =====================


def effective_minutes(test: Test, assignment: Optional[TestAssignment]) -> int:
    if assignment is not None and assignment.time_limit:
        return assignment.time_limit
    return test.duration


def find_assignment(
    db: Session, user: User, test_id: int, assignment_id: Optional[int] = None
) -> TestAssignment:
    """The assignment entitling ``user`` to take ``test_id``."""
    if assignment_id is not None:
        assignment = db.get(TestAssignment, assignment_id)
        if not assignment or assignment.user_id != user.id or assignment.test_id != test_id:
            raise ForbiddenError("Assignment does not belong to you")
        return assignment

    stmt = (
        select(TestAssignment)
        .where(TestAssignment.user_id == user.id, TestAssignment.test_id == test_id)
        .order_by(TestAssignment.id.desc())
    )
    assignment = db.exec(stmt).first()
    if not assignment:
        raise ForbiddenError("Test is not assigned to you")
    return assignment


def results_for(db: Session, user_id: int, test_id: int) -> List[TestResult]:
    stmt = (
        select(TestResult)
        .where(TestResult.user_id == user_id, TestResult.test_id == test_id)
        .order_by(TestResult.completed_at, TestResult.id)
    )
    return list(db.exec(stmt).all())


def active_session(db: Session, user_id: int, test_id: int) -> Optional[TestSession]:
    stmt = select(TestSession).where(
        TestSession.user_id == user_id,
        TestSession.test_id == test_id,
        TestSession.status == "in_progress",
    )
    return db.exec(stmt).first()


def result_for_session(db: Session, session_id: int) -> Optional[TestResult]:
    return db.exec(select(TestResult).where(TestResult.session_id == session_id)).first()


def get_session_or_404(db: Session, session_id: int) -> TestSession:
    test_session = db.get(TestSession, session_id)
    if not test_session:
        raise NotFoundError("Session", session_id)
    return test_session


def can_view_session(db: Session, user: User, test_session: TestSession) -> bool:
    if test_session.user_id == user.id:
        return True
    if not roles.has_permission(user.role, roles.VIEW_ALL_RESULTS):
        return False
    owner = db.get(User, test_session.user_id)
    return owner is not None and in_company_scope(user, owner.company_id)


def get_session_for_user(
    db: Session,
    session_id: int,
    user: User,
    settings: Optional[Settings] = None,
    owner_only: bool = False,
    now: Optional[datetime] = None,
) -> TestSession:
    """Load a session visible to ``user``, finalising it first if it has expired.

    Sessions the user may not see are reported as missing.
    """
    test_session = get_session_or_404(db, session_id)
    allowed = (
        test_session.user_id == user.id if owner_only else can_view_session(db, user, test_session)
    )
    if not allowed:
        raise NotFoundError("Session", session_id)
    expire_if_due(db, test_session, settings or get_settings(), now=now)
    return test_session


# ===================== CREATION =====================


def create_or_resume(
    db: Session,
    user: User,
    test_id: int,
    settings: Settings,
    assignment_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[TestSession, bool]:
    """Return the user's active session for the test, or start a new one.

    The flag is True when a session was created. Raises
    ``TestAlreadyCompletedError`` once the assignment's attempts are used up.
    """
    now = now or datetime.utcnow()
    test = catalog.get_test(db, test_id)
    if not test.is_active:
        raise ValidationFailed("Test is not active")
    assignment = find_assignment(db, user, test_id, assignment_id)

    existing = active_session(db, user.id, test_id)
    if existing is not None:
        expire_if_due(db, existing, settings, now=now)
        if existing.status == "in_progress":
            logger.info("Resuming session %s for user %s on test %s", existing.id, user.id, test_id)
            return existing, False

    previous = results_for(db, user.id, test_id)
    if len(previous) >= assignment.max_attempts:
        last = previous[-1]
        logger.warning("User %s tried to retake completed test %s", user.id, test_id)
        score = last.score if scores_visible_to_owner(db, last) else None
        raise TestAlreadyCompletedError(completed_at=last.completed_at, score=score)

    questions = catalog.served_questions(db, test_id, settings.question_review_gate)
    if not questions:
        raise ValidationFailed("Test has no questions to serve")

    minutes = effective_minutes(test, assignment)
    test_session = TestSession(
        assignment_id=assignment.id,
        user_id=user.id,
        test_id=test_id,
        started_at=now,
        deadline_at=deadline_for(now, minutes),
        total_questions=len(questions),
        question_ids=[q.id for q in questions],
        answers={},
        status="in_progress",
    )
    db.add(test_session)
    if assignment.status in ("assigned", "overdue"):
        assignment.status = "started"
        db.add(assignment)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request created the active session first
        db.rollback()
        winner = active_session(db, user.id, test_id)
        if winner is None:
            raise
        return winner, False
    db.refresh(test_session)
    logger.info(
        "Session %s created for user %s on test %s (%s minutes)",
        test_session.id,
        user.id,
        test_id,
        minutes,
    )
    return test_session, True


# ===================== TIME =====================


def countdown_for(test_session: TestSession, on_expire=None) -> Countdown:
    return Countdown(test_session.deadline_at, on_expire=on_expire)


def expire_if_due(
    db: Session, test_session: TestSession, settings: Settings, now: Optional[datetime] = None
) -> Optional[TestResult]:
    """Finalise an in-progress session whose deadline (plus grace) has passed.

    Returns the result written by the timer path, or None if nothing fired.
    The grace window lets a client's own expiry submission land first.
    """
    if test_session.status != "in_progress":
        return None
    fired: Dict[str, TestResult] = {}

    def on_expire():
        fired["result"], _ = submit_session(db, test_session, "timer", settings=settings, now=now)

    grace = timedelta(seconds=settings.submission_grace_seconds)
    Countdown(test_session.deadline_at + grace, on_expire=on_expire).tick(now)
    return fired.get("result")


def time_status(
    db: Session, test_session: TestSession, settings: Settings, now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    expire_if_due(db, test_session, settings, now=now)
    remaining = countdown_for(test_session).seconds_remaining(now)
    if test_session.status != "in_progress":
        remaining = 0
    return {
        "sessionId": test_session.id,
        "status": test_session.status,
        "secondsRemaining": remaining,
        "deadlineAt": test_session.deadline_at.isoformat(),
        "serverTime": now.isoformat(),
        "expired": remaining == 0,
    }


def _accepting_writes(test_session: TestSession, settings: Settings, now: datetime) -> bool:
    grace = timedelta(seconds=settings.submission_grace_seconds)
    return now <= test_session.deadline_at + grace


# ===================== ANSWERS =====================


def _check_index(test_session: TestSession, index: int) -> None:
    if index < 0 or index >= len(test_session.question_ids):
        raise ValidationFailed(
            f"Question index {index} out of range [0, {len(test_session.question_ids) - 1}]"
        )


def _ensure_open(
    db: Session, test_session: TestSession, settings: Settings, now: datetime
) -> None:
    expire_if_due(db, test_session, settings, now=now)
    if test_session.status != "in_progress":
        logger.warning("Rejected write to %s session %s", test_session.status, test_session.id)
        raise SessionClosedError(test_session.id, test_session.status)


def save_answer(
    db: Session,
    test_session: TestSession,
    index: int,
    answer: str,
    settings: Settings,
    now: Optional[datetime] = None,
) -> TestSession:
    now = now or datetime.utcnow()
    _ensure_open(db, test_session, settings, now)
    _check_index(test_session, index)
    # Reassign so the JSON column is flagged dirty
    test_session.answers = {**(test_session.answers or {}), str(index): answer}
    db.add(test_session)
    db.commit()
    db.refresh(test_session)
    return test_session


def _normalise_answers(test_session: TestSession, answers: Mapping[Any, Any]) -> Dict[str, str]:
    normalised = {}
    for key, value in answers.items():
        try:
            index = int(key)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Answer key '{key}' is not a question index")
        _check_index(test_session, index)
        if value is None:
            continue
        normalised[str(index)] = str(value)
    return normalised


def save_answers(
    db: Session,
    test_session: TestSession,
    answers: Mapping[Any, Any],
    settings: Settings,
    now: Optional[datetime] = None,
) -> TestSession:
    now = now or datetime.utcnow()
    _ensure_open(db, test_session, settings, now)
    merged = {**(test_session.answers or {}), **_normalise_answers(test_session, answers)}
    test_session.answers = merged
    db.add(test_session)
    db.commit()
    db.refresh(test_session)
    return test_session


# ===================== SUBMISSION =====================


def served_questions_for(db: Session, test_session: TestSession) -> List[Question]:
    """The session's questions in served order (snapshot taken at creation)."""
    if not test_session.question_ids:
        return []
    found = {
        q.id: q
        for q in db.exec(select(Question).where(Question.id.in_(test_session.question_ids))).all()
    }
    return [found[qid] for qid in test_session.question_ids if qid in found]


def submission_reason(test_session: TestSession, requested: Optional[str], now: Optional[datetime] = None) -> str:
    """Reason for a client-initiated submit; ``timer`` only counts once time is up."""
    if requested == "timer" and countdown_for(test_session).expired(now):
        return "timer"
    return "manual"


def submit_session(
    db: Session,
    test_session: TestSession,
    reason: str,
    answers: Optional[Mapping[Any, Any]] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> Tuple[TestResult, bool]:
    """Finish a session and score it, at most once.

    Returns ``(result, created)``. A second call for the same session, from
    any path, returns the existing result with ``created`` False. Answers
    arriving after the deadline plus grace are not merged.
    """
    if reason not in SUBMIT_REASONS:
        raise ValueError(f"Unknown submit reason '{reason}'")
    settings = settings or get_settings()
    now = now or datetime.utcnow()

    existing = result_for_session(db, test_session.id)
    if existing is not None:
        logger.info("Session %s already submitted; returning result %s", test_session.id, existing.id)
        db.refresh(test_session)
        return existing, False
    if test_session.status != "in_progress":
        raise SessionClosedError(test_session.id, test_session.status)

    on_time = _accepting_writes(test_session, settings, now)
    merged = dict(test_session.answers or {})
    if answers and on_time:
        merged.update(_normalise_answers(test_session, answers))

    test = db.get(Test, test_session.test_id)
    assignment = db.get(TestAssignment, test_session.assignment_id) if test_session.assignment_id else None
    questions = served_questions_for(db, test_session)
    sheet = score_answers(questions, merged)

    duration = effective_minutes(test, assignment)
    remaining = countdown_for(test_session).seconds_remaining(now)
    spent = time_spent_minutes(duration, remaining)
    timed_out = reason == "timer" or not on_time

    test_session.answers = merged
    test_session.status = "timed_out" if timed_out else "completed"
    test_session.submit_reason = reason
    test_session.completed_at = now
    test_session.time_spent = spent
    test_session.score = sheet.percentage
    test_session.correct_answers = sheet.correct
    db.add(test_session)

    result = TestResult(
        session_id=test_session.id,
        user_id=test_session.user_id,
        test_id=test_session.test_id,
        score=sheet.correct,
        percentage=sheet.percentage,
        passed=sheet.passed(test.passing_score),
        time_spent=spent,
        detailed_results=sheet.detailed_results,
        completed_at=now,
    )
    db.add(result)

    if assignment is not None:
        assignment.status = "completed"
        db.add(assignment)

    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent submit of the same session
        db.rollback()
        winner = result_for_session(db, test_session.id)
        if winner is None:
            raise
        db.refresh(test_session)
        return winner, False

    db.refresh(result)
    db.refresh(test_session)
    logger.info(
        "Session %s %s via %s: %s/%s correct (%s%%)",
        test_session.id,
        test_session.status,
        reason,
        sheet.correct,
        sheet.total,
        sheet.percentage,
    )

    user = db.get(User, test_session.user_id)
    if user is not None:
        notifications.notify_completion(settings, user, test, result)
    return result, True


# ===================== SERIALISATION =====================


def session_to_dict(test_session: TestSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    remaining = 0
    if test_session.status == "in_progress":
        remaining = countdown_for(test_session).seconds_remaining(now)
    return {
        "id": test_session.id,
        "userId": test_session.user_id,
        "testId": test_session.test_id,
        "assignmentId": test_session.assignment_id,
        "status": test_session.status,
        "startedAt": test_session.started_at.isoformat(),
        "deadlineAt": test_session.deadline_at.isoformat(),
        "completedAt": test_session.completed_at.isoformat() if test_session.completed_at else None,
        "secondsRemaining": remaining,
        "totalQuestions": test_session.total_questions,
        "answers": dict(test_session.answers or {}),
        "timeSpent": test_session.time_spent,
        "submitReason": test_session.submit_reason,
    }


def result_to_dict(result: TestResult, include_scores: bool = True) -> Dict[str, Any]:
    data = {
        "id": result.id,
        "sessionId": result.session_id,
        "userId": result.user_id,
        "testId": result.test_id,
        "timeSpent": result.time_spent,
        "completedAt": result.completed_at.isoformat(),
        "resultsVisible": include_scores,
    }
    if include_scores:
        data.update(
            {
                "score": result.score,
                "percentage": result.percentage,
                "passed": result.passed,
                "detailedResults": result.detailed_results,
            }
        )
    return data


def rendered_questions(db: Session, test_session: TestSession) -> List[Dict[str, Any]]:
    answers = test_session.answers or {}
    return [
        render_question(to_variant(q), index, answer_for(answers, index))
        for index, q in enumerate(served_questions_for(db, test_session))
    ]


def rendered_question(db: Session, test_session: TestSession, index: int) -> Dict[str, Any]:
    _check_index(test_session, index)
    question = db.get(Question, test_session.question_ids[index])
    if question is None:
        raise NotFoundError("Question", test_session.question_ids[index])
    return render_question(to_variant(question), index, answer_for(test_session.answers or {}, index))
