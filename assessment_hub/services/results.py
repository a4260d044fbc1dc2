"""Result visibility and analytics. Results are only written by session submission."""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from assessment_hub import roles
from assessment_hub.deps import in_company_scope, sees_all_companies
from assessment_hub.errors import NotFoundError
from assessment_hub.models import Test, TestAssignment, TestResult, TestSession, User


def scores_visible_to_owner(db: Session, result: TestResult) -> bool:
    """Takers see scores once the assignment releases them, or when unassigned."""
    test_session = db.get(TestSession, result.session_id)
    if test_session is None or test_session.assignment_id is None:
        return True
    assignment = db.get(TestAssignment, test_session.assignment_id)
    return assignment is None or assignment.results_visible


def _staff_view(user: User) -> bool:
    return roles.has_permission(user.role, roles.VIEW_ALL_RESULTS)


def list_results(
    db: Session,
    user: User,
    test_id: Optional[int] = None,
    user_id: Optional[int] = None,
    passed: Optional[bool] = None,
) -> List[Tuple[TestResult, bool]]:
    """Results ``user`` may see, each paired with whether scores are shown."""
    stmt = select(TestResult).order_by(TestResult.completed_at.desc(), TestResult.id.desc())
    if test_id is not None:
        stmt = stmt.where(TestResult.test_id == test_id)
    if not _staff_view(user):
        # Takers cannot filter by outcome
        stmt = stmt.where(TestResult.user_id == user.id)
        return [(r, scores_visible_to_owner(db, r)) for r in db.exec(stmt).all()]

    if passed is not None:
        stmt = stmt.where(TestResult.passed == passed)
    if user_id is not None:
        stmt = stmt.where(TestResult.user_id == user_id)
    if not sees_all_companies(user):
        stmt = stmt.join(User, User.id == TestResult.user_id).where(User.company_id == user.company_id)
    return [(r, True) for r in db.exec(stmt).all()]


def get_result(db: Session, user: User, result_id: int) -> Tuple[TestResult, bool]:
    result = db.get(TestResult, result_id)
    if not result:
        raise NotFoundError("Result", result_id)
    if result.user_id == user.id and not _staff_view(user):
        return result, scores_visible_to_owner(db, result)
    if _staff_view(user):
        owner = db.get(User, result.user_id)
        if owner is not None and in_company_scope(user, owner.company_id):
            return result, True
    raise NotFoundError("Result", result_id)


def _rate(part: int, whole: int) -> float:
    return round(part * 100 / whole, 1) if whole else 0.0


def _mean(values: List[int]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def analytics(db: Session, user: User) -> Dict[str, Any]:
    """Aggregate figures over the results ``user`` may see."""
    results = [r for r, _ in list_results(db, user)]

    by_test = defaultdict(list)
    for result in results:
        by_test[result.test_id].append(result)

    per_test = []
    for test_id, test_results in sorted(by_test.items()):
        test = db.get(Test, test_id)
        per_test.append(
            {
                "testId": test_id,
                "title": test.title if test else None,
                "attempts": len(test_results),
                "averagePercentage": _mean([r.percentage for r in test_results]),
                "passRate": _rate(sum(1 for r in test_results if r.passed), len(test_results)),
                "averageTimeSpent": _mean([r.time_spent for r in test_results]),
            }
        )

    return {
        "totalResults": len(results),
        "uniqueCandidates": len({r.user_id for r in results}),
        "averagePercentage": _mean([r.percentage for r in results]),
        "passRate": _rate(sum(1 for r in results if r.passed), len(results)),
        "averageTimeSpent": _mean([r.time_spent for r in results]),
        "perTest": per_test,
    }
