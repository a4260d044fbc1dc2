"""Test assignments to individual users and to whole groups."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from assessment_hub import notifications, roles
from assessment_hub.config import Settings
from assessment_hub.deps import in_company_scope, sees_all_companies
from assessment_hub.errors import ConflictError, NotFoundError
from assessment_hub.models import (
    EmployeeGroup,
    GroupTestAssignment,
    Test,
    TestAssignment,
    User,
)
from assessment_hub.services import catalog, groups

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("assigned", "started", "overdue")


def get_assignment(db: Session, user: User, assignment_id: int) -> TestAssignment:
    assignment = db.get(TestAssignment, assignment_id)
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)
    if assignment.user_id != user.id:
        assignee = db.get(User, assignment.user_id)
        if not roles.is_staff(user.role) or not assignee or not in_company_scope(user, assignee.company_id):
            raise NotFoundError("Assignment", assignment_id)
    return assignment


def open_assignment(db: Session, user_id: int, test_id: int) -> Optional[TestAssignment]:
    stmt = select(TestAssignment).where(
        TestAssignment.user_id == user_id,
        TestAssignment.test_id == test_id,
        TestAssignment.status.in_(OPEN_STATUSES),
    )
    return db.exec(stmt).first()


def _validate_terms(time_limit: Optional[int], max_attempts: int) -> None:
    if time_limit is not None and time_limit < 1:
        raise ValueError("Time limit must be at least 1 minute")
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")


def _check_assignable(db: Session, assigned_by: User, user_id: int, test: Test) -> User:
    assignee = db.get(User, user_id)
    if not assignee or not in_company_scope(assigned_by, assignee.company_id):
        raise NotFoundError("User", user_id)
    if assignee.role not in roles.TEST_TAKER_ROLES:
        raise ValueError(f"Users with role '{assignee.role}' do not take tests")
    if not assignee.is_active:
        raise ValueError("Cannot assign tests to an inactive user")
    if not test.is_active:
        raise ValueError("Cannot assign an inactive test")
    if not catalog.can_see_test(db, assigned_by, test):
        raise NotFoundError("Test", test.id)
    return assignee


def create_assignment(
    db: Session,
    assigned_by: User,
    user_id: int,
    test_id: int,
    settings: Settings,
    due_date: Optional[datetime] = None,
    time_limit: Optional[int] = None,
    max_attempts: int = 1,
) -> TestAssignment:
    test = catalog.get_test(db, test_id)
    _validate_terms(time_limit, max_attempts)
    assignee = _check_assignable(db, assigned_by, user_id, test)
    if open_assignment(db, user_id, test_id):
        raise ConflictError(f"User {user_id} already has an open assignment for test {test_id}")

    assignment = TestAssignment(
        user_id=user_id,
        test_id=test_id,
        due_date=due_date,
        time_limit=time_limit,
        max_attempts=max_attempts,
        assigned_by=assigned_by.id,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Test %s assigned to user %s by user %s", test_id, user_id, assigned_by.id)
    notifications.notify_assignment(settings, assignee, test, assignment)
    return assignment


def assign_group(
    db: Session,
    assigned_by: User,
    group: EmployeeGroup,
    test_id: int,
    settings: Settings,
    due_date: Optional[datetime] = None,
    time_limit: Optional[int] = None,
    max_attempts: int = 1,
) -> Tuple[GroupTestAssignment, List[TestAssignment], List[int]]:
    """Fan a test out to every group member.

    Members who already hold an open assignment for the test (or who cannot
    take tests) are skipped and reported by id.
    """
    test = catalog.get_test(db, test_id)
    _validate_terms(time_limit, max_attempts)
    if not test.is_active:
        raise ValueError("Cannot assign an inactive test")

    group_assignment = GroupTestAssignment(
        group_id=group.id,
        test_id=test_id,
        due_date=due_date,
        time_limit=time_limit,
        max_attempts=max_attempts,
        assigned_by=assigned_by.id,
    )
    db.add(group_assignment)
    db.flush()

    created = []
    skipped = []
    for member in groups.members(db, group.id):
        if (
            member.role not in roles.TEST_TAKER_ROLES
            or not member.is_active
            or open_assignment(db, member.id, test_id)
        ):
            skipped.append(member.id)
            continue
        assignment = TestAssignment(
            user_id=member.id,
            test_id=test_id,
            group_assignment_id=group_assignment.id,
            due_date=due_date,
            time_limit=time_limit,
            max_attempts=max_attempts,
            assigned_by=assigned_by.id,
        )
        db.add(assignment)
        created.append((member, assignment))
    db.commit()

    db.refresh(group_assignment)
    for member, assignment in created:
        db.refresh(assignment)
        notifications.notify_assignment(settings, member, test, assignment)
    logger.info(
        "Test %s assigned to group %s: %s created, %s skipped",
        test_id,
        group.id,
        len(created),
        len(skipped),
    )
    return group_assignment, [a for _, a in created], skipped


def refresh_overdue(db: Session, assignments: List[TestAssignment], now: Optional[datetime] = None) -> None:
    """Store ``overdue`` on open assignments whose due date has passed."""
    now = now or datetime.utcnow()
    changed = False
    for assignment in assignments:
        if (
            assignment.due_date is not None
            and assignment.due_date < now
            and assignment.status in ("assigned", "started")
        ):
            assignment.status = "overdue"
            db.add(assignment)
            changed = True
    if changed:
        db.commit()
        for assignment in assignments:
            db.refresh(assignment)


def list_assignments(db: Session, user: User, now: Optional[datetime] = None) -> List[TestAssignment]:
    """Own assignments for test takers; company assignments for staff."""
    stmt = select(TestAssignment).order_by(TestAssignment.id)
    if not roles.has_permission(user.role, roles.VIEW_ALL_ASSIGNMENTS):
        stmt = stmt.where(TestAssignment.user_id == user.id)
    elif not sees_all_companies(user):
        stmt = stmt.join(User, User.id == TestAssignment.user_id).where(User.company_id == user.company_id)
    assignments = list(db.exec(stmt).all())
    refresh_overdue(db, assignments, now)
    return assignments


def set_results_visibility(db: Session, assignment: TestAssignment, visible: bool) -> TestAssignment:
    assignment.results_visible = visible
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


def assignment_to_dict(db: Session, assignment: TestAssignment) -> Dict[str, Any]:
    test = db.get(Test, assignment.test_id)
    return {
        "id": assignment.id,
        "userId": assignment.user_id,
        "testId": assignment.test_id,
        "groupAssignmentId": assignment.group_assignment_id,
        "dueDate": assignment.due_date.isoformat() if assignment.due_date else None,
        "timeLimit": assignment.time_limit,
        "maxAttempts": assignment.max_attempts,
        "status": assignment.status,
        "resultsVisible": assignment.results_visible,
        "assignedBy": assignment.assigned_by,
        "createdAt": assignment.created_at.isoformat(),
        "test": catalog.test_to_dict(test) if test else None,
    }
