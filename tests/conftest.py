from __future__ import annotations

import os

os.environ.setdefault("TIMEFUND_DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEFUND_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TIMEFUND_JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timefund.core.security import create_access_token, hash_password
from timefund.db.session import Base, build_engine, get_session
from timefund.main import app
from timefund.models import FundingSource, Project, ProjectFunding, ProjectUser, User

engine = build_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "supersecure"


def override_get_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_session] = override_get_session


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.username, user.role)}"}


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def make_user(db):
    def factory(username: str, role: str = "employee", **fields) -> User:
        user = User(
            username=username,
            password_hash=hash_password(PASSWORD),
            full_name=fields.pop("full_name", username.title()),
            role=role,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user("admin", "admin")


@pytest.fixture
def manager(make_user):
    return make_user("manager", "project_manager", email="pm@example.com")


@pytest.fixture
def hr(make_user):
    return make_user("hr", "hr")


@pytest.fixture
def employee(make_user):
    return make_user("employee", "employee", email="employee@example.com")


@pytest.fixture
def funded_project(db, manager, employee):
    """A project with the manager and employee assigned and a 60/40 funding split."""
    research = FundingSource(name="Research Grant")
    structural = FundingSource(name="Structural Fund")
    db.add_all([research, structural])
    db.flush()

    project = Project(name="Apollo", budget=500, contract_number="CN-1", created_by=manager.id)
    project.members = [
        ProjectUser(user_id=manager.id, role="project_manager", workload=40),
        ProjectUser(user_id=employee.id, role="employee", workload=20),
    ]
    project.funding = [
        ProjectFunding(funding_source_id=research.id, amount=6000, percentage=60),
        ProjectFunding(funding_source_id=structural.id, amount=4000, percentage=40),
    ]
    db.add(project)
    db.commit()
    return {"project_id": project.id, "research_id": research.id, "structural_id": structural.id}
