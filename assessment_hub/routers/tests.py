"""Test catalogue endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.config import Settings, get_settings
from assessment_hub.database import get_session
from assessment_hub.deps import require_login, require_permission
from assessment_hub.errors import NotFoundError
from assessment_hub.models import User
from assessment_hub.services import catalog
from assessment_hub.services.sessions import find_assignment

router = APIRouter()


class CreateTestIn(BaseModel):
    title: str
    domain: str
    level: str
    duration: int
    passingScore: int = 70
    description: Optional[str] = None
    projectId: Optional[int] = None


class UpdateTestIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    domain: Optional[str] = None
    level: Optional[str] = None
    duration: Optional[int] = None
    passingScore: Optional[int] = None
    isActive: Optional[bool] = None


def _load_visible_test(session: Session, user: User, test_id: int):
    test = catalog.get_test(session, test_id)
    if not catalog.can_see_test(session, user, test):
        raise NotFoundError("Test", test_id)
    return test


@router.get("")
def api_list_tests(
    includeInactive: bool = False,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_TESTS)),
):
    return [catalog.test_to_dict(t) for t in catalog.list_tests(session, current_user, includeInactive)]


@router.post("", status_code=201)
def api_create_test(
    payload: CreateTestIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.CREATE_TEST)),
):
    try:
        test = catalog.create_test(
            session,
            current_user,
            title=payload.title,
            domain=payload.domain,
            level=payload.level,
            duration=payload.duration,
            passing_score=payload.passingScore,
            description=payload.description,
            project_id=payload.projectId,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return catalog.test_to_dict(test)


@router.get("/{test_id}")
def api_get_test(
    test_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    if roles.has_permission(current_user.role, roles.VIEW_ALL_TESTS):
        return catalog.test_to_dict(_load_visible_test(session, current_user, test_id))
    find_assignment(session, current_user, test_id)
    return catalog.test_to_dict(catalog.get_test(session, test_id))


@router.put("/{test_id}")
def api_update_test(
    test_id: int,
    payload: UpdateTestIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.UPDATE_TEST)),
):
    test = _load_visible_test(session, current_user, test_id)
    fields = {
        "title": "title",
        "description": "description",
        "domain": "domain",
        "level": "level",
        "duration": "duration",
        "passingScore": "passing_score",
        "isActive": "is_active",
    }
    changes = {}
    for name, column in fields.items():
        value = getattr(payload, name)
        if value is not None:
            changes[column] = value
    try:
        test = catalog.update_test(session, test, changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return catalog.test_to_dict(test)


@router.delete("/{test_id}", status_code=204)
def api_delete_test(
    test_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.DELETE_TEST)),
):
    catalog.delete_test(session, _load_visible_test(session, current_user, test_id))


@router.post("/{test_id}/copy", status_code=201)
def api_copy_test(
    test_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.CREATE_TEST)),
):
    test = _load_visible_test(session, current_user, test_id)
    return catalog.test_to_dict(catalog.copy_test(session, test, current_user))


@router.get("/{test_id}/questions")
def api_test_questions(
    test_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    if roles.is_staff(current_user.role):
        _load_visible_test(session, current_user, test_id)
        return [catalog.question_to_dict(q) for q in catalog.list_questions(session, test_id=test_id)]

    catalog.get_test(session, test_id)
    find_assignment(session, current_user, test_id)
    served = catalog.served_questions(session, test_id, settings.question_review_gate)
    return [catalog.question_to_dict(q, include_answer=False) for q in served]
