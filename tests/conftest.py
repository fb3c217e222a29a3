import pytest
import os
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from leavedesk.database import Base, get_db, enable_sqlite_savepoints
from leavedesk.main import app
from leavedesk.models.activity_type import ActivityType, ApprovalWorkflow
from leavedesk.models.holiday import Holiday
from leavedesk.models.proxy_approver import ProxyAssignment
from leavedesk.models.user import ApprovalLogic, UserProfile, UserRole
from leavedesk.models.user_manager import ManagerRelationship
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


def next_monday(weeks_ahead: int = 2) -> date:
    """A Monday comfortably in the future, so cancellation deadlines never bite."""
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) + 7 * (weeks_ahead - 1))


@pytest.fixture
def monday():
    return next_monday()


@pytest.fixture(scope="function")
def engine():
    """A throwaway database per test; services commit and roll back freely."""
    engine = enable_sqlite_savepoints(create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(role=UserRole.EMPLOYEE, approval_logic=ApprovalLogic.ANY_MANAGER,
                   company_id=1, is_active=True, name=None):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        user = UserProfile(
            email=f"{name}@acme.test",
            full_name=name.title(),
            company_id=company_id,
            role=role,
            approval_logic=approval_logic,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture(scope="function")
def link_manager(db_session):
    def _link(user, manager, level=1, is_primary=False, is_active=True):
        rel = ManagerRelationship(
            user_id=user.id,
            manager_id=manager.id,
            level=level,
            is_primary=is_primary,
            is_active=is_active,
        )
        db_session.add(rel)
        db_session.commit()
        return rel
    return _link


@pytest.fixture(scope="function")
def make_activity_type(db_session):
    def _make(code="VAC", **policy):
        policy.setdefault("name", code.title())
        policy.setdefault("approval_workflow", ApprovalWorkflow.SINGLE_LEVEL)
        policy.setdefault("default_annual_balance", 20.0)
        activity_type = ActivityType(code=code, **policy)
        db_session.add(activity_type)
        db_session.commit()
        return activity_type
    return _make


@pytest.fixture(scope="function")
def make_proxy(db_session):
    def _make(original, proxy, start=None, end=None, is_active=True):
        today = date.today()
        assignment = ProxyAssignment(
            original_approver_id=original.id,
            proxy_user_id=proxy.id,
            start_date=start or today - timedelta(days=1),
            end_date=end or today + timedelta(days=30),
            is_active=is_active,
        )
        db_session.add(assignment)
        db_session.commit()
        return assignment
    return _make


@pytest.fixture(scope="function")
def make_holiday(db_session):
    def _make(day, company_id=None, recurring=False, is_active=True, name="Holiday"):
        holiday = Holiday(
            company_id=company_id,
            name=name,
            date=day,
            is_recurring_yearly=recurring,
            is_active=is_active,
        )
        db_session.add(holiday)
        db_session.commit()
        return holiday
    return _make


@pytest.fixture(scope="function")
def team(make_user, link_manager):
    """Employee reporting to a manager (level 1) and a director (level 2), plus an HR admin."""
    director = make_user(UserRole.MANAGER, name="director")
    manager = make_user(UserRole.MANAGER, name="manager")
    employee = make_user(UserRole.EMPLOYEE, name="employee")
    hr_admin = make_user(UserRole.HR_ADMIN, name="hradmin")
    link_manager(employee, manager, level=1, is_primary=True)
    link_manager(employee, director, level=2)
    link_manager(manager, director, level=1, is_primary=True)
    return {"employee": employee, "manager": manager, "director": director, "hr_admin": hr_admin}


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
