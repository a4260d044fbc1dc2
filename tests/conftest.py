import os

os.environ.setdefault("ASSESSMENT_SEED_DEMO_DATA", "false")
os.environ.setdefault("ASSESSMENT_MAIL_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text

from assessment_hub import models, roles
from assessment_hub.auth_utils import hash_password
from assessment_hub.config import Settings, get_settings
from assessment_hub.database import get_session

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # all connections share the same in-memory database
)

TEST_PASSWORD = "testpass123"
# Hashed once; bcrypt is deliberately slow
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    with Session(test_engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(text(f'DELETE FROM "{table.name}"'))
        session.commit()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        seed_demo_data=False,
        mail_enabled=False,
        simulated_failure_rate=0.0,
    )


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================


@pytest.fixture
def client(settings):
    """TestClient bound to the in-memory database and test settings."""
    from assessment_hub.main import app

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


def login(client, user, password=TEST_PASSWORD):
    response = client.post("/api/auth/login", json={"username": user.username, "password": password})
    assert response.status_code == 200, response.text
    return response


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _persist(obj):
    with Session(test_engine) as session:
        session.add(obj)
        session.commit()
        session.refresh(obj)
        obj_id = obj.id
    with Session(test_engine) as session:
        return session.get(type(obj), obj_id)


def make_user(username, role, company_id=None, **extra):
    return _persist(
        models.User(
            username=username,
            email=f"{username}@example.com",
            name=username.replace("_", " ").title(),
            password_hash=TEST_PASSWORD_HASH,
            role=role,
            company_id=company_id,
            **extra,
        )
    )


@pytest.fixture
def company():
    return _persist(models.Company(name="Acme Corp", code="ACME001", industry="Software"))


@pytest.fixture
def other_company():
    return _persist(models.Company(name="Globex", code="GLOBEX01"))


@pytest.fixture
def project(company):
    return _persist(models.Project(company_id=company.id, name="Backend Hiring"))


@pytest.fixture
def super_admin():
    return make_user("root_admin", roles.SUPER_ADMIN)


@pytest.fixture
def admin_user(company):
    return make_user("acme_admin", roles.ADMIN, company.id)


@pytest.fixture
def reviewer_user(company):
    return make_user("acme_reviewer", roles.REVIEWER, company.id)


@pytest.fixture
def hr_user(company):
    return make_user("acme_hr", roles.HR_MANAGER, company.id)


@pytest.fixture
def employee(company):
    return make_user("alice_employee", roles.EMPLOYEE, company.id)


@pytest.fixture
def other_employee(company):
    return make_user("bob_employee", roles.EMPLOYEE, company.id)


@pytest.fixture
def outsider_admin(other_company):
    return make_user("globex_admin", roles.ADMIN, other_company.id)


def make_test(project_id, question_count=10, duration=30, passing_score=70, status="approved", **extra):
    """A test with ``question_count`` MCQ questions whose answer is always "B"."""
    test = _persist(
        models.Test(
            title=extra.pop("title", "Python Basics"),
            project_id=project_id,
            domain="programming",
            level="junior",
            duration=duration,
            passing_score=passing_score,
            total_questions=question_count,
            **extra,
        )
    )
    with Session(test_engine) as session:
        for i in range(question_count):
            session.add(
                models.Question(
                    test_id=test.id,
                    type="mcq",
                    question=f"Question {i + 1}?",
                    options=["A", "B", "C", "D"],
                    correct_answer="B",
                    status=status,
                )
            )
        session.commit()
    return test


@pytest.fixture
def sample_test(project):
    return make_test(project.id)


def make_assignment(user, test, **extra):
    return _persist(models.TestAssignment(user_id=user.id, test_id=test.id, **extra))


@pytest.fixture
def assignment(employee, sample_test):
    return make_assignment(employee, sample_test)
