import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from assessment_hub.deps import in_company_scope, sees_all_companies
from assessment_hub.errors import ConflictError, ForbiddenError, NotFoundError
from assessment_hub.models import Company, EmployeeGroup, GroupMember, Project, User

logger = logging.getLogger(__name__)


def get_group(db: Session, user: User, group_id: int) -> EmployeeGroup:
    group = db.get(EmployeeGroup, group_id)
    if not group or not in_company_scope(user, group.company_id):
        raise NotFoundError("Group", group_id)
    return group


def list_groups(db: Session, user: User) -> List[EmployeeGroup]:
    stmt = select(EmployeeGroup).where(EmployeeGroup.is_active == True).order_by(EmployeeGroup.id)  # noqa: E712
    if not sees_all_companies(user):
        stmt = stmt.where(EmployeeGroup.company_id == user.company_id)
    return list(db.exec(stmt).all())


def create_group(
    db: Session,
    created_by: User,
    name: str,
    description: Optional[str] = None,
    company_id: Optional[int] = None,
    project_id: Optional[int] = None,
    domain: Optional[str] = None,
    level: Optional[str] = None,
) -> EmployeeGroup:
    name = (name or "").strip()
    if not name:
        raise ValueError("Group name cannot be empty")
    company_id = company_id if company_id is not None else created_by.company_id
    if not in_company_scope(created_by, company_id):
        raise ForbiddenError("Cannot create groups for another company")
    if company_id is not None and not db.get(Company, company_id):
        raise ValueError(f"Company with id={company_id} does not exist")
    if project_id is not None:
        project = db.get(Project, project_id)
        if not project or project.company_id != company_id:
            raise ValueError(f"Project with id={project_id} does not belong to the company")

    group = EmployeeGroup(
        name=name,
        description=description,
        company_id=company_id,
        project_id=project_id,
        domain=domain,
        level=level,
        created_by=created_by.id,
    )
    db.add(group)
    db.commit()
    db.refresh(group)
    return group


def members(db: Session, group_id: int) -> List[User]:
    stmt = (
        select(User)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(User.id)
    )
    return list(db.exec(stmt).all())


def add_member(db: Session, group: EmployeeGroup, user_id: int, added_by: User) -> GroupMember:
    member_user = db.get(User, user_id)
    if not member_user or not in_company_scope(added_by, member_user.company_id):
        raise NotFoundError("User", user_id)
    if group.company_id is not None and member_user.company_id != group.company_id:
        raise ValueError("User belongs to a different company than the group")

    membership = GroupMember(group_id=group.id, user_id=user_id, added_by=added_by.id)
    db.add(membership)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"User {user_id} is already a member of group {group.id}")
    db.refresh(membership)
    logger.info("User %s added to group %s", user_id, group.id)
    return membership


def remove_member(db: Session, group: EmployeeGroup, user_id: int) -> None:
    stmt = select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == user_id)
    membership = db.exec(stmt).first()
    if not membership:
        raise NotFoundError("Group member", user_id)
    db.delete(membership)
    db.commit()


def group_to_dict(db: Session, group: EmployeeGroup) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "companyId": group.company_id,
        "projectId": group.project_id,
        "domain": group.domain,
        "level": group.level,
        "isActive": group.is_active,
        "members": [{"id": u.id, "name": u.name, "username": u.username} for u in members(db, group.id)],
        "createdAt": group.created_at.isoformat(),
    }
