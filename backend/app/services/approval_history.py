import uuid
from typing import Optional

from sqlalchemy.orm import Session

from app.models.approval import ApprovalAction, ApprovalHistory
from app.models.timesheet import Timesheet, TimesheetStatus
from app.models.user import role_value


def record(
    db: Session,
    timesheet: Timesheet,
    project_id: Optional[uuid.UUID],
    actor_id: uuid.UUID,
    actor_role: str,
    action: ApprovalAction,
    status_before: TimesheetStatus,
    status_after: TimesheetStatus,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> ApprovalHistory:
    # Added to the caller's unit of work; the caller commits
    entry = ApprovalHistory(
        timesheet_id=timesheet.id,
        project_id=project_id,
        user_id=timesheet.user_id,
        actor_id=actor_id,
        actor_role=role_value(actor_role),
        action=action,
        status_before=status_before,
        status_after=status_after,
        reason=reason,
        notes=notes,
    )
    db.add(entry)
    return entry


def list_for_timesheet(
    db: Session, timesheet_id: uuid.UUID, project_id: Optional[uuid.UUID] = None,
) -> list[ApprovalHistory]:
    query = db.query(ApprovalHistory).filter(ApprovalHistory.timesheet_id == timesheet_id)
    if project_id is not None:
        query = query.filter(ApprovalHistory.project_id == project_id)
    return query.order_by(ApprovalHistory.created_at, ApprovalHistory.id).all()
