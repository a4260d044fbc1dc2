"""JSON authentication endpoints backed by the session cookie."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlmodel import Session, select

from assessment_hub import roles
from assessment_hub.auth_utils import verify_and_upgrade
from assessment_hub.database import get_session
from assessment_hub.deps import require_login
from assessment_hub.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginIn(BaseModel):
    username: str
    password: str


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "companyId": user.company_id,
        "employeeId": user.employee_id,
        "domain": user.domain,
        "isActive": user.is_active,
        "lastLogin": user.last_login.isoformat() if user.last_login else None,
        "permissions": list(roles.ROLE_PERMISSIONS.get(user.role, [])),
    }


def authenticate(session: Session, username: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, or None."""
    user = session.exec(select(User).where(User.username == username.strip())).first()
    if not user:
        return None
    valid, new_hash = verify_and_upgrade(password, user.password_hash)
    if not valid:
        return None
    if not user.is_active:
        logger.warning("Login refused for inactive account %s", user.username)
        return None
    if new_hash:
        user.password_hash = new_hash
    user.last_login = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.post("/login")
def api_login(request: Request, payload: LoginIn = Body(...), session: Session = Depends(get_session)):
    user = authenticate(session, payload.username, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    request.session["user_id"] = user.id
    logger.info("User %s logged in", user.username)
    return user_to_dict(user)


@router.post("/logout")
def api_logout(request: Request):
    request.session.clear()
    return {"success": True}


@router.get("/me")
def api_me(current_user: User = Depends(require_login)):
    return user_to_dict(current_user)
