from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime
from uuid import UUID
from decimal import Decimal

from app.models.approval import ApprovalAction
from app.models.timesheet import TimesheetStatus


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class ProjectWeekRequest(BaseModel):
    project_id: UUID
    week_start: date
    week_end: date


class ProjectWeekRejectRequest(ProjectWeekRequest):
    reason: Optional[str] = None


class BulkTimesheetRequest(BaseModel):
    timesheet_ids: list[UUID] = Field(min_length=1)


class BillableAdjustmentRequest(BaseModel):
    adjustment: Decimal


class ApprovalHistoryResponse(BaseModel):
    id: UUID
    timesheet_id: UUID
    project_id: Optional[UUID] = None
    user_id: UUID
    actor_id: UUID
    actor_role: str
    action: ApprovalAction
    status_before: TimesheetStatus
    status_after: TimesheetStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True, "use_enum_values": True}
