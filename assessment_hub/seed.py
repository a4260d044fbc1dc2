"""Demo data created on first startup."""

import logging

from sqlmodel import Session, select

from assessment_hub import roles
from assessment_hub.auth_utils import hash_password
from assessment_hub.models import Company, Project, Question, Test, TestAssignment, User

logger = logging.getLogger(__name__)

DEMO_QUESTIONS = [
    {
        "type": "mcq",
        "question": "Which HTTP method is idempotent?",
        "options": ["POST", "PUT", "PATCH", "CONNECT"],
        "correct_answer": "PUT",
        "difficulty": "easy",
    },
    {
        "type": "mcq",
        "question": "What does <code>len([1, 2, 3])</code> return in Python?",
        "options": ["2", "3", "4", "An error"],
        "correct_answer": "3",
        "difficulty": "easy",
    },
    {
        "type": "fill_blank",
        "question": "The SQL keyword used to remove duplicate rows from a result is ____.",
        "correct_answer": "DISTINCT",
        "difficulty": "medium",
    },
    {
        "type": "scenario",
        "question": "A deploy doubled API latency. Which single metric would you check first?",
        "correct_answer": "p99 latency",
        "difficulty": "hard",
    },
    {
        "type": "coding",
        "question": "Write a function <code>factorial(n)</code> that returns n!.",
        "options": {"template": "function factorial(n) {\n  // your code here\n}\n"},
        "correct_answer": "function factorial(n) { return n <= 1 ? 1 : n * factorial(n - 1); }",
        "difficulty": "medium",
        "code_language": "javascript",
        "time_limit": 10,
    },
]


def seed_demo_data(session: Session) -> None:
    """Create a demo company, staff, an employee and one assigned test, once."""
    if session.exec(select(User).where(User.role == roles.SUPER_ADMIN)).first():
        return

    company = Company(name="Demo Technologies", code="DEMO001", industry="Software")
    session.add(company)
    session.flush()
    project = Project(company_id=company.id, name="Platform Hiring", description="Backend hiring round")
    session.add(project)

    admin = User(
        username="superadmin",
        email="superadmin@example.com",
        name="Super Admin",
        password_hash=hash_password("admin123"),
        role=roles.SUPER_ADMIN,
    )
    reviewer = User(
        username="reviewer",
        email="reviewer@example.com",
        name="Rita Reviewer",
        password_hash=hash_password("reviewer123"),
        role=roles.REVIEWER,
        company_id=company.id,
    )
    employee = User(
        username="employee",
        email="employee@example.com",
        name="Eli Employee",
        password_hash=hash_password("employee123"),
        role=roles.EMPLOYEE,
        company_id=company.id,
        employee_id="EMP-0001",
        domain="programming",
    )
    session.add_all([admin, reviewer, employee])
    session.flush()

    test = Test(
        title="Backend Fundamentals",
        description="HTTP, Python, SQL and a short coding exercise",
        project_id=project.id,
        domain="programming",
        level="junior",
        duration=20,
        passing_score=60,
        total_questions=len(DEMO_QUESTIONS),
        created_by=reviewer.id,
    )
    session.add(test)
    session.flush()

    for fields in DEMO_QUESTIONS:
        session.add(
            Question(
                test_id=test.id,
                status="approved",
                reviewed_by=reviewer.id,
                created_by=reviewer.id,
                **fields,
            )
        )
    session.add(TestAssignment(user_id=employee.id, test_id=test.id, assigned_by=admin.id))
    session.commit()
    logger.info("Seeded demo data: superadmin/admin123, reviewer/reviewer123, employee/employee123")
