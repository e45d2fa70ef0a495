"""
Read-only lookups against the project and user directories.

Project configuration is returned as an immutable ProjectSettings value so a
transition reads it once and passes it along instead of re-querying.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models.project import Project, ProjectMember, PROJECT_TYPE_TRAINING
from app.models.user import User, UserRole, role_value
from app.services.errors import NotFoundError


@dataclass(frozen=True)
class ProjectSettings:
    project_id: uuid.UUID
    name: str
    status: str
    project_type: str
    primary_manager_id: Optional[uuid.UUID]
    lead_id: Optional[uuid.UUID]
    auto_escalate: bool

    @property
    def is_training(self) -> bool:
        return self.project_type == PROJECT_TYPE_TRAINING

    @property
    def has_lead(self) -> bool:
        return self.lead_id is not None


def active_members_query(db: Session):
    return db.query(ProjectMember).filter(
        ProjectMember.deleted_at.is_(None),
        ProjectMember.removed_at.is_(None),
    )


def settings_from_project(project: Project, lead_id: Optional[uuid.UUID]) -> ProjectSettings:
    return ProjectSettings(
        project_id=project.id,
        name=project.name,
        status=project.status,
        project_type=project.project_type or "regular",
        primary_manager_id=project.primary_manager_id,
        lead_id=lead_id,
        auto_escalate=bool(project.lead_approval_auto_escalates),
    )


def get_project_settings(db: Session, project_id: uuid.UUID) -> ProjectSettings:
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.deleted_at.is_(None),
    ).first()
    if not project:
        raise NotFoundError("Project not found", details={"project_id": str(project_id)})

    lead = active_members_query(db).filter(
        ProjectMember.project_id == project_id,
        ProjectMember.project_role == UserRole.lead.value,
    ).order_by(ProjectMember.assigned_at).first()

    return settings_from_project(project, lead.user_id if lead else None)


def get_user(db: Session, user_id: uuid.UUID) -> Optional[User]:
    return db.query(User).filter(User.user_id == user_id).first()


def get_user_role(db: Session, user_id: uuid.UUID) -> str:
    user = get_user(db, user_id)
    return role_value(user.role) if user else UserRole.employee.value


def get_users_by_ids(db: Session, user_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, User]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    return {u.user_id: u for u in db.query(User).filter(User.user_id.in_(ids)).all()}


def display_name(user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    return user.full_name or user.email or "Unknown"


def projects_led_by(db: Session, user_id: uuid.UUID) -> list[uuid.UUID]:
    rows = active_members_query(db).filter(
        ProjectMember.user_id == user_id,
        ProjectMember.project_role == UserRole.lead.value,
    ).all()
    return [m.project_id for m in rows]
