import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from assessment_hub import roles
from assessment_hub.auth_utils import MIN_PASSWORD_LENGTH, hash_password
from assessment_hub.database import get_session
from assessment_hub.deps import in_company_scope, require_permission, sees_all_companies
from assessment_hub.errors import ConflictError, ForbiddenError
from assessment_hub.models import Company, User
from assessment_hub.routers.auth import user_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateUserIn(BaseModel):
    username: str
    password: str
    name: str
    email: Optional[str] = None
    role: str = roles.EMPLOYEE
    companyId: Optional[int] = None
    employeeId: Optional[str] = None
    domain: Optional[str] = None


@router.get("")
def api_list_users(
    role: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.VIEW_ALL_USERS)),
):
    stmt = select(User).order_by(User.id)
    if not sees_all_companies(current_user):
        stmt = stmt.where(User.company_id == current_user.company_id)
    if role:
        stmt = stmt.where(User.role == role)
    return [user_to_dict(u) for u in session.exec(stmt).all()]


@router.post("", status_code=201)
def api_create_user(
    payload: CreateUserIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.CREATE_USER)),
):
    if payload.role not in roles.ALL_ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role '{payload.role}'")
    if payload.role == roles.SUPER_ADMIN and current_user.role != roles.SUPER_ADMIN:
        raise ForbiddenError("Only a super admin can create super admins")
    if not payload.username.strip() or len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Username is required and password needs {MIN_PASSWORD_LENGTH}+ characters",
        )

    company_id = payload.companyId if payload.companyId is not None else current_user.company_id
    if not in_company_scope(current_user, company_id):
        raise ForbiddenError("Cannot create users for another company")
    if company_id is not None and not session.get(Company, company_id):
        raise HTTPException(status_code=400, detail=f"Company with id={company_id} does not exist")

    user = User(
        username=payload.username.strip(),
        email=payload.email.strip().lower() if payload.email else None,
        name=payload.name.strip(),
        password_hash=hash_password(payload.password),
        role=payload.role,
        company_id=company_id,
        employee_id=payload.employeeId,
        domain=payload.domain,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Username or email already exists")
    session.refresh(user)
    logger.info("User %s (%s) created by %s", user.username, user.role, current_user.username)
    return user_to_dict(user)
