"""Question bank endpoints, including the review workflow."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.database import get_session
from assessment_hub.deps import require_permission
from assessment_hub.errors import NotFoundError
from assessment_hub.models import Question, User
from assessment_hub.services import catalog

router = APIRouter()


class QuestionIn(BaseModel):
    testId: Optional[int] = None
    type: str = "mcq"
    question: str
    options: Optional[Any] = None
    correctAnswer: str
    explanation: Optional[str] = None
    difficulty: str = "medium"
    weightage: int = 1
    codeLanguage: Optional[str] = None
    timeLimit: Optional[int] = None


class QuestionUpdateIn(BaseModel):
    testId: Optional[int] = None
    type: Optional[str] = None
    question: Optional[str] = None
    options: Optional[Any] = None
    correctAnswer: Optional[str] = None
    explanation: Optional[str] = None
    difficulty: Optional[str] = None
    weightage: Optional[int] = None
    codeLanguage: Optional[str] = None
    timeLimit: Optional[int] = None


class ReviewIn(BaseModel):
    status: str


UPDATE_FIELDS = {
    "testId": "test_id",
    "type": "type",
    "question": "question",
    "options": "options",
    "correctAnswer": "correct_answer",
    "explanation": "explanation",
    "difficulty": "difficulty",
    "weightage": "weightage",
    "codeLanguage": "code_language",
    "timeLimit": "time_limit",
}


def _load_question(session: Session, user: User, question_id: int) -> Question:
    question = catalog.get_question(session, question_id)
    if question.test_id is not None:
        test = catalog.get_test(session, question.test_id)
        if not catalog.can_see_test(session, user, test):
            raise NotFoundError("Question", question_id)
    return question


@router.get("")
def api_list_questions(
    testId: Optional[int] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_TESTS)),
):
    questions = catalog.list_questions(session, test_id=testId, status=status)
    visible = {t.id for t in catalog.list_tests(session, current_user, include_inactive=True)}
    return [catalog.question_to_dict(q) for q in questions if q.test_id is None or q.test_id in visible]


@router.get("/pending")
def api_pending_questions(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.REVIEW_QUESTIONS)),
):
    visible = {t.id for t in catalog.list_tests(session, current_user, include_inactive=True)}
    return [
        catalog.question_to_dict(q)
        for q in catalog.list_questions(session, status="pending")
        if q.test_id is None or q.test_id in visible
    ]


@router.post("", status_code=201)
def api_create_question(
    payload: QuestionIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.CREATE_QUESTION)),
):
    if payload.testId is not None:
        test = catalog.get_test(session, payload.testId)
        if not catalog.can_see_test(session, current_user, test):
            raise NotFoundError("Test", payload.testId)
    try:
        question = catalog.create_question(
            session,
            current_user,
            test_id=payload.testId,
            question_text=payload.question,
            correct_answer=payload.correctAnswer,
            qtype=payload.type,
            options=payload.options,
            explanation=payload.explanation,
            difficulty=payload.difficulty,
            weightage=payload.weightage,
            code_language=payload.codeLanguage,
            time_limit=payload.timeLimit,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return catalog.question_to_dict(question)


@router.put("/{question_id}")
def api_update_question(
    question_id: int,
    payload: QuestionUpdateIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.UPDATE_QUESTION)),
):
    question = _load_question(session, current_user, question_id)
    sent = payload.model_dump(exclude_unset=True)
    changes = {UPDATE_FIELDS[name]: value for name, value in sent.items()}
    try:
        question = catalog.update_question(session, question, changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return catalog.question_to_dict(question)


@router.delete("/{question_id}", status_code=204)
def api_delete_question(
    question_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.DELETE_QUESTION)),
):
    catalog.delete_question(session, _load_question(session, current_user, question_id))


@router.patch("/{question_id}/status")
def api_review_question(
    question_id: int,
    payload: ReviewIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.REVIEW_QUESTIONS)),
):
    question = _load_question(session, current_user, question_id)
    try:
        question = catalog.review_question(session, question, payload.status, current_user)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return catalog.question_to_dict(question)
