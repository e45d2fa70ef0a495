import enum
import uuid

from sqlalchemy import (
    Column, String, Text, DateTime, Numeric, ForeignKey, UniqueConstraint, Index, Uuid, event,
)
from sqlalchemy.sql import func

from app.database import Base
from app.models.timesheet import TimesheetStatus, enum_column_type
from app.services.dates import utcnow


class ApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    not_required = "not_required"


RESOLVED_STATUSES = frozenset({ApprovalStatus.approved, ApprovalStatus.not_required})


class ReviewTier(str, enum.Enum):
    lead = "lead"
    manager = "manager"
    management = "management"

    @property
    def status_field(self) -> str:
        return f"{self.value}_status"

    @property
    def approved_at_field(self) -> str:
        return f"{self.value}_approved_at"

    @property
    def reason_field(self) -> str:
        return f"{self.value}_rejection_reason"


class ApprovalAction(str, enum.Enum):
    approved = "approved"
    rejected = "rejected"
    verified = "verified"
    billed = "billed"


class TimesheetProjectApproval(Base):
    __tablename__ = "timesheet_project_approvals"
    __table_args__ = (
        UniqueConstraint("timesheet_id", "project_id", name="uq_approval_timesheet_project"),
        Index("ix_approvals_project_created", "project_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    timesheet_id = Column(Uuid, ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False)

    # Reviewers assigned when the record was created
    lead_id = Column(Uuid, nullable=True)
    manager_id = Column(Uuid, nullable=True)

    lead_status = Column(enum_column_type(ApprovalStatus), nullable=False, default=ApprovalStatus.not_required)
    lead_approved_at = Column(DateTime(timezone=True), nullable=True)
    lead_rejection_reason = Column(Text, nullable=True)

    manager_status = Column(enum_column_type(ApprovalStatus), nullable=False, default=ApprovalStatus.pending)
    manager_approved_at = Column(DateTime(timezone=True), nullable=True)
    manager_rejection_reason = Column(Text, nullable=True)

    management_status = Column(enum_column_type(ApprovalStatus), nullable=False, default=ApprovalStatus.pending)
    management_approved_at = Column(DateTime(timezone=True), nullable=True)
    management_rejection_reason = Column(Text, nullable=True)

    worked_hours = Column(Numeric(6, 2), nullable=False, default=0)
    billable_adjustment = Column(Numeric(6, 2), nullable=False, default=0)
    billable_hours = Column(Numeric(6, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    def track(self, tier: ReviewTier) -> ApprovalStatus:
        return ApprovalStatus(getattr(self, tier.status_field))

    def set_track(self, tier: ReviewTier, status: ApprovalStatus, *, reason=None, at=None):
        setattr(self, tier.status_field, status)
        setattr(self, tier.reason_field, reason)
        setattr(self, tier.approved_at_field, at if status == ApprovalStatus.approved else None)


class ApprovalHistory(Base):
    """Append-only audit trail of approval transitions."""

    __tablename__ = "approval_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    timesheet_id = Column(Uuid, ForeignKey("timesheets.id"), nullable=False, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=True, index=True)
    user_id = Column(Uuid, nullable=False)  # timesheet owner
    actor_id = Column(Uuid, nullable=False)
    actor_role = Column(String(30), nullable=False)
    action = Column(enum_column_type(ApprovalAction), nullable=False)
    status_before = Column(enum_column_type(TimesheetStatus), nullable=False)
    status_after = Column(enum_column_type(TimesheetStatus), nullable=False)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


@event.listens_for(ApprovalHistory, "before_update")
def _history_is_immutable(mapper, connection, target):
    raise RuntimeError("approval_history rows are append-only")


@event.listens_for(ApprovalHistory, "before_delete")
def _history_is_undeletable(mapper, connection, target):
    raise RuntimeError("approval_history rows cannot be deleted")
