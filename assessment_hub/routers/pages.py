"""Server-rendered pages: login, employee dashboard and the test-taking page."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.config import Settings, get_settings
from assessment_hub.database import get_session
from assessment_hub.deps import get_current_user, require_login
from assessment_hub.errors import AppError, TestAlreadyCompletedError
from assessment_hub.models import User
from assessment_hub.routers.auth import authenticate
from assessment_hub.services import assignments as assignment_service
from assessment_hub.services import catalog
from assessment_hub.services import proctoring as proctoring_service
from assessment_hub.services import results as results_service
from assessment_hub.services import sessions as session_service

logger = logging.getLogger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

NOTICES = {
    "already_completed": "You have already completed this test. Retaking tests is not allowed.",
    "not_available": "That test is not available to you.",
    "submitted": "Your test has been submitted.",
}


def _dashboard_redirect(settings: Settings, notice: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.dashboard_path}?notice={notice}", status_code=status.HTTP_303_SEE_OTHER
    )


@router.get("/login")
def login_form(request: Request, current_user: Optional[User] = Depends(get_current_user)):
    if current_user:
        return RedirectResponse(url="/employee-dashboard", status_code=status.HTTP_303_SEE_OTHER)
    return templates.TemplateResponse(request, "login.html", {"error": None, "username": ""})


@router.post("/login")
def login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    session: Session = Depends(get_session),
):
    user = authenticate(session, username, password)
    if user is None:
        context = {"error": "Invalid username or password.", "username": username}
        return templates.TemplateResponse(
            request, "login.html", context, status_code=status.HTTP_400_BAD_REQUEST
        )
    request.session["user_id"] = user.id
    logger.info("User %s logged in", user.username)
    return RedirectResponse(url="/employee-dashboard", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/employee-dashboard")
def employee_dashboard(
    request: Request,
    notice: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    rows = []
    for assignment in assignment_service.list_assignments(session, current_user):
        if assignment.user_id != current_user.id:
            continue
        test = catalog.get_test(session, assignment.test_id)
        results = session_service.results_for(session, current_user.id, test.id)
        last = results[-1] if results else None
        rows.append(
            {
                "assignment": assignment,
                "test": test,
                "minutes": session_service.effective_minutes(test, assignment),
                "result": last,
                "resultVisible": bool(last) and results_service.scores_visible_to_owner(session, last),
                "canStart": len(results) < assignment.max_attempts,
            }
        )
    context = {
        "user": current_user,
        "rows": rows,
        "notice": NOTICES.get(notice) if notice else None,
        "isTaker": current_user.role in roles.TEST_TAKER_ROLES,
    }
    return templates.TemplateResponse(request, "employee_dashboard.html", context)


@router.get("/tests/{test_id}/take")
def take_test(
    test_id: int,
    request: Request,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(require_login),
):
    try:
        test_session, _ = session_service.create_or_resume(session, current_user, test_id, settings)
    except TestAlreadyCompletedError:
        return _dashboard_redirect(settings, "already_completed")
    except AppError as exc:
        logger.warning("User %s cannot take test %s: %s", current_user.id, test_id, exc.message)
        return _dashboard_redirect(settings, "not_available")

    test = catalog.get_test(session, test_id)
    policy = proctoring_service.ProctoringPolicy.from_settings(settings)
    context = {
        "user": current_user,
        "test": test,
        "session": session_service.session_to_dict(test_session),
        "questions": session_service.rendered_questions(session, test_session),
        "limits": policy.limits,
        "dashboardPath": settings.dashboard_path,
    }
    return templates.TemplateResponse(request, "take_test.html", context)
