"""
Persistence helpers for per-(timesheet, project) approval records.

Only reads and writes rows. The rules about what a transition does to the
tracks live in team_review_approval.py.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models.approval import ApprovalStatus, ReviewTier, TimesheetProjectApproval
from app.models.timesheet import Timesheet
from app.models.user import UserRole
from app.services.project_directory import ProjectSettings


def get(db: Session, timesheet_id: uuid.UUID, project_id: uuid.UUID) -> Optional[TimesheetProjectApproval]:
    return db.query(TimesheetProjectApproval).filter(
        TimesheetProjectApproval.timesheet_id == timesheet_id,
        TimesheetProjectApproval.project_id == project_id,
    ).first()


def upsert(db: Session, timesheet_id: uuid.UUID, project_id: uuid.UUID, **fields) -> TimesheetProjectApproval:
    record = get(db, timesheet_id, project_id)
    if record is None:
        record = TimesheetProjectApproval(timesheet_id=timesheet_id, project_id=project_id)
        db.add(record)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


def find_by_timesheet(db: Session, timesheet_id: uuid.UUID) -> list[TimesheetProjectApproval]:
    return db.query(TimesheetProjectApproval).filter(
        TimesheetProjectApproval.timesheet_id == timesheet_id,
    ).order_by(TimesheetProjectApproval.created_at).all()


def find_by_timesheets_and_project(
    db: Session, timesheet_ids: Iterable[uuid.UUID], project_id: uuid.UUID,
) -> list[TimesheetProjectApproval]:
    ids = list(timesheet_ids)
    if not ids:
        return []
    return db.query(TimesheetProjectApproval).filter(
        TimesheetProjectApproval.timesheet_id.in_(ids),
        TimesheetProjectApproval.project_id == project_id,
    ).order_by(TimesheetProjectApproval.created_at).all()


def find_by_project_and_week(
    db: Session, project_id: uuid.UUID, week_start: date, week_end: date,
) -> list[tuple[TimesheetProjectApproval, Timesheet]]:
    """All records for a project-week with their timesheets, oldest record first."""
    return db.query(TimesheetProjectApproval, Timesheet).join(
        Timesheet, Timesheet.id == TimesheetProjectApproval.timesheet_id,
    ).filter(
        TimesheetProjectApproval.project_id == project_id,
        Timesheet.week_start_date == week_start,
        Timesheet.week_end_date == week_end,
        Timesheet.deleted_at.is_(None),
    ).order_by(TimesheetProjectApproval.created_at).all()


def delete_missing_projects(db: Session, timesheet_id: uuid.UUID, keep_project_ids: Iterable[uuid.UUID]) -> int:
    keep = list(keep_project_ids)
    query = db.query(TimesheetProjectApproval).filter(
        TimesheetProjectApproval.timesheet_id == timesheet_id,
    )
    if keep:
        query = query.filter(TimesheetProjectApproval.project_id.notin_(keep))
    return query.delete(synchronize_session="fetch")


def baseline_lead_status(settings: ProjectSettings, owner_role: str) -> ApprovalStatus:
    """Lead review only applies to employees on projects that have a lead."""
    if settings.has_lead and owner_role == UserRole.employee.value:
        return ApprovalStatus.pending
    return ApprovalStatus.not_required


def baseline_status(tier: ReviewTier, lead_baseline: ApprovalStatus) -> ApprovalStatus:
    if tier == ReviewTier.lead:
        return lead_baseline
    return ApprovalStatus.pending


def reset_to_baseline(record: TimesheetProjectApproval, lead_baseline: ApprovalStatus, *, skip: Optional[ReviewTier] = None):
    for tier in ReviewTier:
        if tier == skip:
            continue
        record.set_track(tier, baseline_status(tier, lead_baseline))


def recompute_billable_hours(record: TimesheetProjectApproval):
    worked = Decimal(record.worked_hours or 0)
    adjustment = Decimal(record.billable_adjustment or 0)
    record.billable_hours = worked + adjustment
