"""Read-only result endpoints. Results are created by session submission only."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.database import get_session
from assessment_hub.deps import require_login, require_permission
from assessment_hub.models import Test, User
from assessment_hub.services import results as results_service
from assessment_hub.services.sessions import result_to_dict

router = APIRouter()


def _with_context(session: Session, result, visible: bool) -> dict:
    data = result_to_dict(result, include_scores=visible)
    test = session.get(Test, result.test_id)
    user = session.get(User, result.user_id)
    data["test"] = {"id": test.id, "title": test.title, "passingScore": test.passing_score} if test else None
    data["user"] = {"id": user.id, "name": user.name, "username": user.username} if user else None
    return data


@router.get("")
def api_list_results(
    testId: Optional[int] = None,
    userId: Optional[int] = None,
    passed: Optional[bool] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    rows = results_service.list_results(
        session, current_user, test_id=testId, user_id=userId, passed=passed
    )
    return [_with_context(session, r, visible) for r, visible in rows]


# Must precede /{result_id}
@router.get("/analytics")
def api_results_analytics(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_ANALYTICS)),
):
    return results_service.analytics(session, current_user)


@router.get("/{result_id}")
def api_get_result(
    result_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    result, visible = results_service.get_result(session, current_user, result_id)
    return _with_context(session, result, visible)
