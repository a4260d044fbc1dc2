"""Group, assignment and group-assignment endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.config import Settings, get_settings
from assessment_hub.database import get_session
from assessment_hub.deps import require_login, require_permission
from assessment_hub.models import User
from assessment_hub.services import assignments as assignment_service
from assessment_hub.services import groups as group_service
from assessment_hub.utils import to_naive_utc

groups_router = APIRouter()
assignments_router = APIRouter()
group_assignments_router = APIRouter()


class GroupIn(BaseModel):
    name: str
    description: Optional[str] = None
    companyId: Optional[int] = None
    projectId: Optional[int] = None
    domain: Optional[str] = None
    level: Optional[str] = None


class MemberIn(BaseModel):
    userId: int


class AssignmentIn(BaseModel):
    userId: int
    testId: int
    dueDate: Optional[datetime] = None
    timeLimit: Optional[int] = None
    maxAttempts: int = 1


class GroupAssignmentIn(BaseModel):
    groupId: int
    testId: int
    dueDate: Optional[datetime] = None
    timeLimit: Optional[int] = None
    maxAttempts: int = 1


class VisibilityIn(BaseModel):
    resultsVisible: bool


# ===================== GROUPS =====================


@groups_router.get("")
def api_list_groups(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_ASSIGNMENTS)),
):
    return [group_service.group_to_dict(session, g) for g in group_service.list_groups(session, current_user)]


@groups_router.post("", status_code=201)
def api_create_group(
    payload: GroupIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.MANAGE_ASSIGNMENTS)),
):
    try:
        group = group_service.create_group(
            session,
            current_user,
            name=payload.name,
            description=payload.description,
            company_id=payload.companyId,
            project_id=payload.projectId,
            domain=payload.domain,
            level=payload.level,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return group_service.group_to_dict(session, group)


@groups_router.post("/{group_id}/members", status_code=201)
def api_add_member(
    group_id: int,
    payload: MemberIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.MANAGE_ASSIGNMENTS)),
):
    group = group_service.get_group(session, current_user, group_id)
    try:
        group_service.add_member(session, group, payload.userId, current_user)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return group_service.group_to_dict(session, group)


@groups_router.delete("/{group_id}/members/{user_id}")
def api_remove_member(
    group_id: int,
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.MANAGE_ASSIGNMENTS)),
):
    group = group_service.get_group(session, current_user, group_id)
    group_service.remove_member(session, group, user_id)
    return group_service.group_to_dict(session, group)


# ===================== ASSIGNMENTS =====================


@assignments_router.get("")
def api_list_assignments(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return [
        assignment_service.assignment_to_dict(session, a)
        for a in assignment_service.list_assignments(session, current_user)
    ]


@assignments_router.post("", status_code=201)
def api_create_assignment(
    payload: AssignmentIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_permission(roles.ASSIGN_TEST)),
):
    try:
        assignment = assignment_service.create_assignment(
            session,
            current_user,
            user_id=payload.userId,
            test_id=payload.testId,
            settings=settings,
            due_date=to_naive_utc(payload.dueDate),
            time_limit=payload.timeLimit,
            max_attempts=payload.maxAttempts,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return assignment_service.assignment_to_dict(session, assignment)


@assignments_router.patch("/{assignment_id}/result-visibility")
def api_result_visibility(
    assignment_id: int,
    payload: VisibilityIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.MANAGE_ASSIGNMENTS)),
):
    assignment = assignment_service.get_assignment(session, current_user, assignment_id)
    assignment = assignment_service.set_results_visibility(session, assignment, payload.resultsVisible)
    return assignment_service.assignment_to_dict(session, assignment)


# ===================== GROUP ASSIGNMENTS =====================


@group_assignments_router.post("", status_code=201)
def api_assign_group(
    payload: GroupAssignmentIn = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_permission(roles.ASSIGN_TEST)),
):
    group = group_service.get_group(session, current_user, payload.groupId)
    try:
        group_assignment, created, skipped = assignment_service.assign_group(
            session,
            current_user,
            group,
            test_id=payload.testId,
            settings=settings,
            due_date=to_naive_utc(payload.dueDate),
            time_limit=payload.timeLimit,
            max_attempts=payload.maxAttempts,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "id": group_assignment.id,
        "groupId": group_assignment.group_id,
        "testId": group_assignment.test_id,
        "status": group_assignment.status,
        "assignments": [assignment_service.assignment_to_dict(session, a) for a in created],
        "skippedUserIds": skipped,
    }
