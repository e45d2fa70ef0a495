from pydantic import BaseModel, Field
from typing import Optional
import datetime as dt
from datetime import date, datetime
from uuid import UUID
from decimal import Decimal

from app.models.approval import ApprovalStatus
from app.models.timesheet import TimesheetStatus


class TimeEntryCreate(BaseModel):
    date: date
    project_id: UUID
    hours: Decimal = Field(gt=0, le=24)
    task_name: str = "General"
    description: str = ""
    is_billable: bool = True


class TimeEntryUpdate(BaseModel):
    date: Optional[dt.date] = None  # the field name shadows datetime.date
    project_id: Optional[UUID] = None
    hours: Optional[Decimal] = Field(default=None, gt=0, le=24)
    task_name: Optional[str] = None
    description: Optional[str] = None
    is_billable: Optional[bool] = None


class TimeEntryResponse(BaseModel):
    id: UUID
    timesheet_id: UUID
    project_id: UUID
    task_name: str
    date: date
    hours: float
    description: Optional[str] = None
    is_billable: bool
    is_rejected: bool
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TimesheetResponse(BaseModel):
    id: UUID
    user_id: UUID
    week_start_date: date
    week_end_date: date
    total_hours: float
    status: TimesheetStatus
    is_frozen: bool
    is_verified: bool
    submitted_at: Optional[datetime] = None
    lead_rejection_reason: Optional[str] = None
    manager_rejection_reason: Optional[str] = None
    management_rejection_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    billed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class ProjectApprovalResponse(BaseModel):
    project_id: UUID
    lead_status: ApprovalStatus
    manager_status: ApprovalStatus
    management_status: ApprovalStatus
    lead_rejection_reason: Optional[str] = None
    manager_rejection_reason: Optional[str] = None
    management_rejection_reason: Optional[str] = None
    worked_hours: float
    billable_adjustment: float
    billable_hours: float

    model_config = {"from_attributes": True, "use_enum_values": True}


class TimesheetDetailResponse(BaseModel):
    timesheet: TimesheetResponse
    entries: list[TimeEntryResponse]
    approvals: list[ProjectApprovalResponse]


class PendingReview(BaseModel):
    timesheet_id: str
    user_id: str
    user_name: str
    project_id: str
    project_name: str


class CanSubmitResponse(BaseModel):
    can_submit: bool
    message: str = ""
    pending_reviews: list[PendingReview] = []
