"""Project directory tables. Owned by project CRUD; the approval engine only reads them."""
import uuid

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from app.database import Base


PROJECT_TYPE_TRAINING = "training"


class Project(Base):
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | completed | archived
    project_type = Column(String(30), nullable=False, default="regular")
    primary_manager_id = Column(Uuid, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True)
    is_billable = Column(Boolean, nullable=False, default=True)

    # approval_settings
    lead_approval_auto_escalates = Column(Boolean, nullable=False, default=False)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    project_role = Column(String(30), nullable=False, default="employee")  # employee | lead | manager
    assigned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    removed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
