import enum
import uuid

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Date, Numeric, Integer, Enum,
    ForeignKey, UniqueConstraint, Index, Uuid,
)
from sqlalchemy.sql import func

from app.database import Base
from app.services.dates import utcnow


class TimesheetStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    lead_approved = "lead_approved"
    lead_rejected = "lead_rejected"
    manager_approved = "manager_approved"
    manager_rejected = "manager_rejected"
    management_pending = "management_pending"
    management_rejected = "management_rejected"
    frozen = "frozen"
    billed = "billed"


def enum_column_type(enum_cls):
    """VARCHAR-backed enum that still loads as enum members."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=30,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Timesheet(Base):
    __tablename__ = "timesheets"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_timesheet_user_week"),
        Index("ix_timesheets_status_week", "status", "week_start_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.user_id"), nullable=False, index=True)
    week_start_date = Column(Date, nullable=False)
    week_end_date = Column(Date, nullable=False)
    total_hours = Column(Numeric(6, 2), nullable=False, default=0)
    status = Column(enum_column_type(TimesheetStatus), nullable=False, default=TimesheetStatus.draft)

    # Lead tier
    approved_by_lead_id = Column(Uuid, nullable=True)
    approved_by_lead_at = Column(DateTime(timezone=True), nullable=True)
    lead_rejection_reason = Column(Text, nullable=True)
    lead_rejected_at = Column(DateTime(timezone=True), nullable=True)

    # Manager tier
    approved_by_manager_id = Column(Uuid, nullable=True)
    approved_by_manager_at = Column(DateTime(timezone=True), nullable=True)
    manager_rejection_reason = Column(Text, nullable=True)
    manager_rejected_at = Column(DateTime(timezone=True), nullable=True)

    # Management tier
    approved_by_management_id = Column(Uuid, nullable=True)
    approved_by_management_at = Column(DateTime(timezone=True), nullable=True)
    management_rejection_reason = Column(Text, nullable=True)
    management_rejected_at = Column(DateTime(timezone=True), nullable=True)

    verified_by_id = Column(Uuid, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_frozen = Column(Boolean, nullable=False, default=False)
    billed_at = Column(DateTime(timezone=True), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)

    # Soft delete only
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Uuid, nullable=True)
    deleted_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        Index("ix_time_entries_timesheet_project", "timesheet_id", "project_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    timesheet_id = Column(Uuid, ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    task_name = Column(String(200), nullable=False, default="General")
    date = Column(Date, nullable=False)
    hours = Column(Numeric(4, 2), nullable=False)
    description = Column(Text, nullable=True, default="")
    is_billable = Column(Boolean, nullable=False, default=True)
    is_rejected = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)
