"""Company and project endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from assessment_hub import roles
from assessment_hub.database import get_session
from assessment_hub.deps import (
    in_company_scope,
    require_login,
    require_permission,
    require_role,
    sees_all_companies,
)
from assessment_hub.errors import ConflictError, NotFoundError
from assessment_hub.models import Company, Project, User

router = APIRouter()

PROJECT_STATUSES = ["active", "completed", "on_hold", "cancelled"]


class CompanyIn(BaseModel):
    name: str
    code: str
    industry: Optional[str] = None


class ProjectIn(BaseModel):
    name: str
    description: Optional[str] = None
    status: str = "active"


def company_to_dict(company: Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "code": company.code,
        "industry": company.industry,
        "isActive": company.is_active,
        "createdAt": company.created_at.isoformat(),
    }


def project_to_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "companyId": project.company_id,
        "name": project.name,
        "description": project.description,
        "status": project.status,
        "createdAt": project.created_at.isoformat(),
    }


def _load_company(session: Session, user: User, company_id: int) -> Company:
    company = session.get(Company, company_id)
    if not company or not in_company_scope(user, company.id):
        raise NotFoundError("Company", company_id)
    return company


@router.get("")
def api_list_companies(session: Session = Depends(get_session), current_user: User = Depends(require_login)):
    stmt = select(Company).order_by(Company.id)
    if not sees_all_companies(current_user):
        stmt = stmt.where(Company.id == current_user.company_id)
    return [company_to_dict(c) for c in session.exec(stmt).all()]


@router.post("", status_code=201)
def api_create_company(
    payload: CompanyIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role([roles.SUPER_ADMIN])),
):
    if not payload.name.strip() or not payload.code.strip():
        raise HTTPException(status_code=400, detail="Company name and code are required")
    company = Company(name=payload.name.strip(), code=payload.code.strip().upper(), industry=payload.industry)
    session.add(company)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"Company code '{company.code}' already exists")
    session.refresh(company)
    return company_to_dict(company)


@router.get("/{company_id}")
def api_get_company(
    company_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_login)
):
    return company_to_dict(_load_company(session, current_user, company_id))


@router.get("/{company_id}/projects")
def api_list_projects(
    company_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_login)
):
    company = _load_company(session, current_user, company_id)
    projects = session.exec(select(Project).where(Project.company_id == company.id).order_by(Project.id)).all()
    return [project_to_dict(p) for p in projects]


@router.post("/{company_id}/projects", status_code=201)
def api_create_project(
    company_id: int,
    payload: ProjectIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission(roles.MANAGE_COMPANY_STRUCTURE)),
):
    company = _load_company(session, current_user, company_id)
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")
    if payload.status not in PROJECT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown project status '{payload.status}'")
    project = Project(
        company_id=company.id,
        name=payload.name.strip(),
        description=payload.description,
        status=payload.status,
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    return project_to_dict(project)
