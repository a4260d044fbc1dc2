"""Test and question catalogue: CRUD, copying and question review."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, func, select

from assessment_hub.deps import sees_all_companies
from assessment_hub.errors import ConflictError, NotFoundError
from assessment_hub.models import (
    GroupTestAssignment,
    Project,
    Question,
    Test,
    TestAssignment,
    TestSession,
    User,
)
from assessment_hub.services.renderer import FILL_BLANK_TYPES, SCENARIO_TYPES
from assessment_hub.utils import (
    sanitize_plain_text,
    sanitize_question_text,
    validate_passing_score,
)

logger = logging.getLogger(__name__)

QUESTION_TYPES = ["mcq", "coding", "fill_blank", "scenario", "direct_qa", "drag_drop", "matching"]
QUESTION_STATUSES = ["pending", "approved", "rejected"]
DIFFICULTIES = ["easy", "medium", "hard"]
TEST_LEVELS = ["junior", "mid", "senior", "lead", "principal"]

REVIEW_GATE_ADVISORY = "advisory"
REVIEW_GATE_ENFORCED = "enforced"


# ===================== TESTS =====================


def get_test(db: Session, test_id: int) -> Test:
    test = db.get(Test, test_id)
    if not test:
        raise NotFoundError("Test", test_id)
    return test


def test_company_id(db: Session, test: Test) -> Optional[int]:
    """Company owning ``test`` through its project; ``None`` for shared tests."""
    if test.project_id is None:
        return None
    project = db.get(Project, test.project_id)
    return project.company_id if project else None


def can_see_test(db: Session, user: User, test: Test) -> bool:
    if sees_all_companies(user):
        return True
    company_id = test_company_id(db, test)
    return company_id is None or company_id == user.company_id


def list_tests(db: Session, user: User, include_inactive: bool = False) -> List[Test]:
    stmt = select(Test).order_by(Test.id)
    if not include_inactive:
        stmt = stmt.where(Test.is_active == True)  # noqa: E712
    return [t for t in db.exec(stmt).all() if can_see_test(db, user, t)]


def _validate_test_fields(duration: Optional[int], passing_score: Optional[int], level: Optional[str]):
    if duration is not None and duration < 1:
        raise ValueError("Duration must be at least 1 minute")
    if passing_score is not None:
        validate_passing_score(passing_score)
    if level is not None and level not in TEST_LEVELS:
        raise ValueError(f"Unknown level '{level}'")


def create_test(
    db: Session,
    created_by: User,
    title: str,
    domain: str,
    level: str,
    duration: int,
    passing_score: int = 70,
    description: Optional[str] = None,
    project_id: Optional[int] = None,
) -> Test:
    title = sanitize_plain_text(title or "")
    if not title:
        raise ValueError("Title cannot be empty")
    _validate_test_fields(duration, passing_score, level)
    if project_id is not None and not db.get(Project, project_id):
        raise ValueError(f"Project with id={project_id} does not exist")

    test = Test(
        title=title,
        description=sanitize_plain_text(description) if description else None,
        project_id=project_id,
        domain=domain,
        level=level,
        duration=duration,
        passing_score=passing_score,
        created_by=created_by.id,
    )
    db.add(test)
    db.commit()
    db.refresh(test)
    logger.info("Test %s '%s' created by user %s", test.id, test.title, created_by.id)
    return test


def update_test(db: Session, test: Test, changes: Dict[str, Any]) -> Test:
    _validate_test_fields(changes.get("duration"), changes.get("passing_score"), changes.get("level"))
    for key, value in changes.items():
        if key == "title":
            value = sanitize_plain_text(value or "")
            if not value:
                raise ValueError("Title cannot be empty")
        elif key == "description" and value:
            value = sanitize_plain_text(value)
        setattr(test, key, value)
    db.add(test)
    db.commit()
    db.refresh(test)
    return test


def delete_test(db: Session, test: Test) -> None:
    has_sessions = db.exec(select(TestSession).where(TestSession.test_id == test.id)).first()
    if has_sessions:
        raise ConflictError("Test has been taken and cannot be deleted; deactivate it instead")

    for question in db.exec(select(Question).where(Question.test_id == test.id)).all():
        db.delete(question)
    for assignment in db.exec(select(TestAssignment).where(TestAssignment.test_id == test.id)).all():
        db.delete(assignment)
    for group_assignment in db.exec(
        select(GroupTestAssignment).where(GroupTestAssignment.test_id == test.id)
    ).all():
        db.delete(group_assignment)
    db.delete(test)
    db.commit()
    logger.info("Test %s deleted", test.id)


def copy_test(db: Session, test: Test, copied_by: User) -> Test:
    """Duplicate a test and its questions; copied questions await review again."""
    copy = Test(
        title=f"{test.title} (Copy)",
        description=test.description,
        project_id=test.project_id,
        domain=test.domain,
        level=test.level,
        duration=test.duration,
        passing_score=test.passing_score,
        is_active=test.is_active,
        created_by=copied_by.id,
    )
    db.add(copy)
    db.flush()

    questions = db.exec(select(Question).where(Question.test_id == test.id).order_by(Question.id)).all()
    for q in questions:
        db.add(
            Question(
                test_id=copy.id,
                type=q.type,
                question=q.question,
                options=q.options,
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                difficulty=q.difficulty,
                weightage=q.weightage,
                status="pending",
                code_language=q.code_language,
                time_limit=q.time_limit,
                created_by=copied_by.id,
            )
        )
    copy.total_questions = len(questions)
    db.add(copy)
    db.commit()
    db.refresh(copy)
    logger.info("Test %s copied to %s", test.id, copy.id)
    return copy


def test_to_dict(test: Test) -> Dict[str, Any]:
    return {
        "id": test.id,
        "title": test.title,
        "description": test.description,
        "projectId": test.project_id,
        "domain": test.domain,
        "level": test.level,
        "duration": test.duration,
        "totalQuestions": test.total_questions,
        "passingScore": test.passing_score,
        "isActive": test.is_active,
        "createdBy": test.created_by,
        "createdAt": test.created_at.isoformat(),
    }


# ===================== QUESTIONS =====================


def get_question(db: Session, question_id: int) -> Question:
    question = db.get(Question, question_id)
    if not question:
        raise NotFoundError("Question", question_id)
    return question


def sync_total_questions(db: Session, test_id: Optional[int]) -> None:
    if test_id is None:
        return
    test = db.get(Test, test_id)
    if not test:
        return
    count = db.exec(select(func.count()).select_from(Question).where(Question.test_id == test_id)).one()
    test.total_questions = count
    db.add(test)


def _is_free_text(qtype: str) -> bool:
    return qtype in FILL_BLANK_TYPES or qtype in SCENARIO_TYPES


def _validate_question(qtype: str, options: Any, correct_answer: str, difficulty: str) -> None:
    if qtype not in QUESTION_TYPES:
        raise ValueError(f"Unknown question type '{qtype}'")
    if difficulty not in DIFFICULTIES:
        raise ValueError(f"Unknown difficulty '{difficulty}'")
    if correct_answer is None or not str(correct_answer).strip():
        raise ValueError("Correct answer cannot be empty")

    if qtype == "coding":
        if options is not None and not isinstance(options, dict):
            raise ValueError("Coding question options must be an object")
        return
    if _is_free_text(qtype):
        return
    if qtype == "mcq" or options is not None:
        if not isinstance(options, list) or len(options) < 2:
            raise ValueError("Choice questions need at least 2 options")
        if any(not str(o).strip() for o in options):
            raise ValueError("Options cannot be empty")
        if correct_answer not in [str(o) for o in options]:
            raise ValueError("Correct answer must be one of the options")


def create_question(
    db: Session,
    created_by: User,
    test_id: Optional[int],
    question_text: str,
    correct_answer: str,
    qtype: str = "mcq",
    options: Any = None,
    explanation: Optional[str] = None,
    difficulty: str = "medium",
    weightage: int = 1,
    code_language: Optional[str] = None,
    time_limit: Optional[int] = None,
) -> Question:
    if test_id is not None and not db.get(Test, test_id):
        raise ValueError(f"Test with id={test_id} does not exist")

    qtype = (qtype or "mcq").replace("-", "_")
    sanitized_text = sanitize_question_text(question_text or "")
    if not sanitized_text:
        raise ValueError("Question text cannot be empty after sanitization")
    _validate_question(qtype, options, correct_answer, difficulty)
    if weightage < 1:
        raise ValueError("weightage must be at least 1")

    question = Question(
        test_id=test_id,
        type=qtype,
        question=sanitized_text,
        options=options,
        correct_answer=correct_answer,
        explanation=sanitize_question_text(explanation) if explanation else None,
        difficulty=difficulty,
        weightage=weightage,
        status="pending",
        code_language=code_language,
        time_limit=time_limit,
        created_by=created_by.id,
    )
    db.add(question)
    db.flush()
    sync_total_questions(db, test_id)
    db.commit()
    db.refresh(question)
    return question


def update_question(db: Session, question: Question, changes: Dict[str, Any]) -> Question:
    """Apply ``changes`` to a question and re-validate it as a whole.

    Edited questions go back to ``pending`` review.
    """
    previous_test_id = question.test_id
    qtype = (changes.get("type") or question.type).replace("-", "_")
    options = changes["options"] if "options" in changes else question.options
    correct_answer = changes.get("correct_answer", question.correct_answer)
    difficulty = changes.get("difficulty", question.difficulty)
    _validate_question(qtype, options, correct_answer, difficulty)

    if "question" in changes:
        text = sanitize_question_text(changes["question"] or "")
        if not text:
            raise ValueError("Question text cannot be empty after sanitization")
        question.question = text
    if "explanation" in changes:
        explanation = changes["explanation"]
        question.explanation = sanitize_question_text(explanation) if explanation else None
    if "test_id" in changes and changes["test_id"] is not None:
        if not db.get(Test, changes["test_id"]):
            raise ValueError(f"Test with id={changes['test_id']} does not exist")
        question.test_id = changes["test_id"]
    for key in ("weightage", "code_language", "time_limit"):
        if key in changes:
            setattr(question, key, changes[key])

    question.type = qtype
    question.options = options
    question.correct_answer = correct_answer
    question.difficulty = difficulty
    question.status = "pending"
    question.reviewed_by = None
    question.reviewed_at = None
    db.add(question)
    db.flush()
    sync_total_questions(db, question.test_id)
    if previous_test_id != question.test_id:
        sync_total_questions(db, previous_test_id)
    db.commit()
    db.refresh(question)
    return question


def delete_question(db: Session, question: Question) -> None:
    test_id = question.test_id
    if test_id is not None and db.exec(select(TestSession).where(TestSession.test_id == test_id)).first():
        # Sessions keep positional answers against their served question list
        raise ConflictError("Questions of a test that has been taken cannot be deleted")
    db.delete(question)
    db.flush()
    sync_total_questions(db, test_id)
    db.commit()


def list_questions(
    db: Session, test_id: Optional[int] = None, status: Optional[str] = None
) -> List[Question]:
    stmt = select(Question).order_by(Question.id)
    if test_id is not None:
        stmt = stmt.where(Question.test_id == test_id)
    if status is not None:
        stmt = stmt.where(Question.status == status)
    return list(db.exec(stmt).all())


def review_question(db: Session, question: Question, status: str, reviewer: User) -> Question:
    if status not in QUESTION_STATUSES:
        raise ValueError(f"Unknown status '{status}'")
    question.status = status
    question.reviewed_by = reviewer.id
    question.reviewed_at = datetime.utcnow()
    db.add(question)
    db.commit()
    db.refresh(question)
    logger.info("Question %s marked %s by user %s", question.id, status, reviewer.id)
    return question


def served_questions(db: Session, test_id: int, review_gate: str = REVIEW_GATE_ADVISORY) -> List[Question]:
    """Questions a taker is served for ``test_id``, in a stable order.

    With the ``enforced`` gate only approved questions are served.
    """
    stmt = select(Question).where(Question.test_id == test_id).order_by(Question.id)
    if review_gate == REVIEW_GATE_ENFORCED:
        stmt = stmt.where(Question.status == "approved")
    return list(db.exec(stmt).all())


def question_to_dict(question: Question, include_answer: bool = True) -> Dict[str, Any]:
    data = {
        "id": question.id,
        "testId": question.test_id,
        "type": question.type,
        "question": question.question,
        "options": question.options,
        "difficulty": question.difficulty,
        "weightage": question.weightage,
        "codeLanguage": question.code_language,
        "timeLimit": question.time_limit,
    }
    if include_answer:
        data.update(
            {
                "correctAnswer": question.correct_answer,
                "explanation": question.explanation,
                "status": question.status,
                "reviewedBy": question.reviewed_by,
                "reviewedAt": question.reviewed_at.isoformat() if question.reviewed_at else None,
                "createdBy": question.created_by,
            }
        )
    elif question.type == "coding" and isinstance(question.options, dict):
        # Hidden expectations stay server-side
        data["options"] = {
            "template": question.options.get("template", ""),
            "testCases": [
                {"input": c.get("input"), "description": c.get("description", "")}
                for c in question.options.get("testCases") or []
            ],
        }
    return data
