from __future__ import annotations

import os
import uuid
from datetime import date, timedelta

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_MODE"] = "demo"
os.environ.setdefault("JWT_SECRET", "test-secret-key-32-chars-aaaaaaaaaaaa")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models.approval import ApprovalHistory, TimesheetProjectApproval  # noqa: F401
from app.models.project import Project, ProjectMember
from app.models.timesheet import Timesheet, TimeEntry  # noqa: F401
from app.models.user import User
from app.services import timesheet_service

WEEK_START = date(2025, 3, 3)
WEEK_END = date(2025, 3, 9)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class Factory:
    """Builds directory rows and submitted timesheets for a test."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def user(self, role: str = "employee", name: str | None = None) -> User:
        self._n += 1
        user = User(
            user_id=uuid.uuid4(),
            email=f"{role}{self._n}@example.com",
            full_name=name or f"{role.title()} {self._n}",
            role=role,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def project(
        self,
        name: str = "Apollo",
        manager: User | None = None,
        lead: User | None = None,
        employees=(),
        project_type: str = "regular",
        auto_escalate: bool = False,
    ) -> Project:
        project = Project(
            id=uuid.uuid4(),
            name=name,
            project_type=project_type,
            primary_manager_id=manager.user_id if manager else None,
            lead_approval_auto_escalates=auto_escalate,
        )
        self.db.add(project)
        self.db.flush()
        if manager is not None:
            self.member(project, manager, "manager")
        if lead is not None:
            self.member(project, lead, "lead")
        for employee in employees:
            self.member(project, employee, "employee")
        self.db.commit()
        return project

    def member(self, project: Project, user: User, project_role: str):
        self.db.add(ProjectMember(project_id=project.id, user_id=user.user_id, project_role=project_role))
        self.db.commit()

    def timesheet(self, user: User, hours_by_project: dict, week_start: date = WEEK_START, submit: bool = True) -> Timesheet:
        for i, (project, hours) in enumerate(hours_by_project.items()):
            timesheet_service.add_time_entry(
                self.db, user.user_id, project.id, week_start + timedelta(days=i % 5), hours,
                task_name="Development",
            )
        timesheet = timesheet_service.get_or_create_timesheet(self.db, user.user_id, week_start)
        if submit:
            timesheet = timesheet_service.submit_timesheet(self.db, timesheet.id, user.user_id)
        return timesheet


@pytest.fixture()
def factory(db):
    return Factory(db)


def reload(db, obj):
    db.expire_all()
    return db.get(type(obj), obj.id)
