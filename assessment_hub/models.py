"""SQLModel models for the assessment platform."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


# ===================== ORGANISATION =====================


class Company(SQLModel, table=True):
    """A tenant. Users, projects and groups all belong to one company."""

    __table_args__ = (UniqueConstraint("code", name="uq_company_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    code: str  # e.g. "TECH001"
    industry: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Project(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="company.id")
    name: str
    description: Optional[str] = None
    status: str = Field(default="active")  # active, completed, on_hold, cancelled
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    """Application user that can log in and own a role."""

    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        UniqueConstraint("email", name="uq_user_email"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str
    email: Optional[str] = None
    name: str
    password_hash: str
    # super_admin, admin, hr_manager, reviewer, team_lead, employee, candidate
    role: str = Field(default="employee")
    company_id: Optional[int] = Field(default=None, foreign_key="company.id")
    employee_id: Optional[str] = None
    domain: Optional[str] = None  # programming, devops, security, ...
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_login: Optional[datetime] = None


# ===================== TESTS & QUESTIONS =====================


class Test(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    project_id: Optional[int] = Field(default=None, foreign_key="project.id")
    domain: str
    level: str  # junior, mid, senior, lead, principal
    duration: int  # minutes
    total_questions: int = Field(default=0)
    passing_score: int = Field(default=70)
    is_active: bool = Field(default=True)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    test_id: Optional[int] = Field(default=None, foreign_key="test.id")
    # mcq, coding, fill_blank, scenario, direct_qa, drag_drop, matching
    type: str = Field(default="mcq")
    question: str
    # list of choices for choice questions; {"template", "testCases"} for coding
    options: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    correct_answer: str
    explanation: Optional[str] = None
    difficulty: str = Field(default="medium")  # easy, medium, hard
    weightage: int = Field(default=1)
    status: str = Field(default="pending")  # pending, approved, rejected
    reviewed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    reviewed_at: Optional[datetime] = None
    code_language: Optional[str] = None
    time_limit: Optional[int] = None  # minutes, coding questions only
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ===================== GROUPS & ASSIGNMENTS =====================


class EmployeeGroup(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    company_id: Optional[int] = Field(default=None, foreign_key="company.id")
    project_id: Optional[int] = Field(default=None, foreign_key="project.id")
    domain: Optional[str] = None
    level: Optional[str] = None
    is_active: bool = Field(default=True)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class GroupMember(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="employeegroup.id")
    user_id: int = Field(foreign_key="user.id")
    added_by: Optional[int] = Field(default=None, foreign_key="user.id")
    added_at: datetime = Field(default_factory=datetime.utcnow)


class GroupTestAssignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="employeegroup.id")
    test_id: int = Field(foreign_key="test.id")
    due_date: Optional[datetime] = None
    time_limit: Optional[int] = None  # minutes, overrides test default
    max_attempts: int = Field(default=1)
    assigned_by: Optional[int] = Field(default=None, foreign_key="user.id")
    status: str = Field(default="active")  # active, completed, cancelled
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TestAssignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    test_id: int = Field(foreign_key="test.id")
    group_assignment_id: Optional[int] = Field(
        default=None, foreign_key="grouptestassignment.id"
    )
    due_date: Optional[datetime] = None
    time_limit: Optional[int] = None  # minutes, overrides test.duration
    max_attempts: int = Field(default=1)
    status: str = Field(default="assigned")  # assigned, started, completed, overdue
    results_visible: bool = Field(default=False)
    assigned_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ===================== SESSIONS, RESULTS & PROCTORING =====================


class TestSession(SQLModel, table=True):
    """One attempt at a test by a user."""

    __table_args__ = (
        # At most one in-progress session per user and test
        Index(
            "uq_active_session",
            "user_id",
            "test_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: Optional[int] = Field(default=None, foreign_key="testassignment.id")
    user_id: int = Field(foreign_key="user.id")
    test_id: int = Field(foreign_key="test.id")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    deadline_at: datetime
    completed_at: Optional[datetime] = None
    time_spent: Optional[int] = None  # minutes
    score: Optional[int] = None
    total_questions: int = Field(default=0)
    correct_answers: Optional[int] = None
    # Served question order; answer keys are indexes into this list
    question_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    answers: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = Field(default="in_progress")  # in_progress | completed | timed_out
    submit_reason: Optional[str] = None  # manual | timer | proctoring


class TestResult(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("session_id", name="uq_result_session"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="testsession.id")
    user_id: int = Field(foreign_key="user.id")
    test_id: int = Field(foreign_key="test.id")
    score: int
    percentage: int
    passed: bool
    time_spent: int  # minutes
    detailed_results: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON)
    )
    completed_at: datetime = Field(default_factory=datetime.utcnow)


class ProctoringEvent(SQLModel, table=True):
    """Append-only audit entry recorded against a session."""

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="testsession.id")
    # e.g. "tab_switch", "fullscreen_exit", "copy_attempt", "paste_attempt", "dev_tools_detected"
    event_type: str
    severity: str = Field(default="medium")  # low, medium, high
    description: str = Field(default="")
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    client_timestamp: Optional[datetime] = None
    recorded_at: datetime = Field(default_factory=datetime.utcnow)
