"""Test-session endpoints: start/resume, answers, time, submission, proctoring and code runs."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Response
from pydantic import BaseModel
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.config import Settings, get_settings
from assessment_hub.database import get_session
from assessment_hub.deps import require_login, require_permission
from assessment_hub.errors import SessionClosedError, ValidationFailed
from assessment_hub.models import Question, User
from assessment_hub.services import code_runner
from assessment_hub.services import proctoring as proctoring_service
from assessment_hub.services import results as results_service
from assessment_hub.services import sessions as session_service
from assessment_hub.services.renderer import CodingQuestion, to_variant
from assessment_hub.utils import to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter()
proctoring_router = APIRouter()


class StartSessionIn(BaseModel):
    testId: int
    assignmentId: Optional[int] = None
    # Accepted for compatibility; the served question list decides the count
    totalQuestions: Optional[int] = None


class AnswerIn(BaseModel):
    questionIndex: int
    answer: str


class BulkUpdateIn(BaseModel):
    answers: Optional[Dict[str, Optional[str]]] = None
    # Ignored: only the submission path can finish a session
    status: Optional[str] = None
    score: Optional[int] = None


class SubmitIn(BaseModel):
    answers: Optional[Dict[str, Optional[str]]] = None
    reason: str = "manual"  # manual | timer


class ProctoringEventIn(BaseModel):
    eventType: str
    severity: Optional[str] = None
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None


class RunCodeIn(BaseModel):
    code: str = ""


@router.post("", status_code=201)
def api_start_session(
    response: Response,
    payload: StartSessionIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_permission(roles.TAKE_TESTS)),
):
    test_session, created = session_service.create_or_resume(
        session, current_user, payload.testId, settings, assignment_id=payload.assignmentId
    )
    if not created:
        response.status_code = 200
    return session_service.session_to_dict(test_session)


@router.get("/{session_id}")
def api_get_session(
    session_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(session, session_id, current_user, settings)
    return session_service.session_to_dict(test_session)


@router.get("/{session_id}/time")
def api_session_time(
    session_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(session, session_id, current_user, settings)
    return session_service.time_status(session, test_session, settings)


@router.get("/{session_id}/questions")
def api_session_questions(
    session_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    return session_service.rendered_questions(session, test_session)


@router.get("/{session_id}/questions/{index}")
def api_session_question(
    session_id: int,
    index: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    return session_service.rendered_question(session, test_session, index)


@router.put("/{session_id}/answers")
def api_save_answer(
    session_id: int,
    payload: AnswerIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    test_session = session_service.save_answer(
        session, test_session, payload.questionIndex, payload.answer, settings
    )
    return session_service.session_to_dict(test_session)


@router.put("/{session_id}")
def api_update_session(
    session_id: int,
    payload: BulkUpdateIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    if payload.status is not None or payload.score is not None:
        logger.warning("Ignored status/score fields on session %s update", session_id)
    if payload.answers:
        test_session = session_service.save_answers(session, test_session, payload.answers, settings)
    elif test_session.status != "in_progress":
        raise SessionClosedError(test_session.id, test_session.status)
    return session_service.session_to_dict(test_session)


@router.post("/{session_id}/submit", status_code=201)
def api_submit_session(
    session_id: int,
    response: Response,
    payload: Optional[SubmitIn] = Body(None),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    payload = payload or SubmitIn()
    reason = session_service.submission_reason(test_session, payload.reason)
    result, created = session_service.submit_session(
        session, test_session, reason, answers=payload.answers, settings=settings
    )
    if not created:
        response.status_code = 200
    body = session_service.result_to_dict(
        result, include_scores=results_service.scores_visible_to_owner(session, result)
    )
    body["alreadySubmitted"] = not created
    body["session"] = session_service.session_to_dict(test_session)
    return body


@router.post("/{session_id}/proctoring")
def api_record_proctoring(
    session_id: int,
    payload: ProctoringEventIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    return proctoring_service.record_event(
        session,
        test_session,
        payload.eventType,
        settings,
        severity=payload.severity,
        description=payload.description,
        details=payload.details,
        client_timestamp=to_naive_utc(payload.timestamp),
    )


@router.get("/{session_id}/proctoring")
def api_get_proctoring(
    session_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(session, session_id, current_user, settings)
    policy = proctoring_service.ProctoringPolicy.from_settings(settings)
    events = proctoring_service.list_events(session, test_session.id)
    return {
        "sessionId": test_session.id,
        "events": [proctoring_service.event_to_dict(e) for e in events],
        "monitor": proctoring_service.ProctoringMonitor.from_events(policy, events).snapshot(),
    }


@router.post("/{session_id}/questions/{index}/run")
def api_run_code(
    session_id: int,
    index: int,
    payload: RunCodeIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    test_session = session_service.get_session_for_user(
        session, session_id, current_user, settings, owner_only=True
    )
    if test_session.status != "in_progress":
        raise SessionClosedError(test_session.id, test_session.status)
    if index < 0 or index >= len(test_session.question_ids):
        raise ValidationFailed(f"Question index {index} out of range")

    question = session.get(Question, test_session.question_ids[index])
    variant = to_variant(question) if question else None
    if not isinstance(variant, CodingQuestion):
        raise ValidationFailed("Only coding questions can be run")

    policy = code_runner.policy_for(
        variant,
        mode=settings.code_execution_mode,
        failure_rate=settings.simulated_failure_rate,
    )
    return code_runner.run_code(policy, payload.code).to_dict()


@proctoring_router.get("/flagged")
def api_flagged_sessions(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_RESULTS)),
):
    return proctoring_service.flagged_sessions(session, settings, current_user)
