"""
Timesheet editing and submission for the timesheet owner.

Submission is where per-project approval records are created or refreshed,
so every review starts from the baseline tracks for the owner's role.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import unit_of_work
from app.models.approval import ApprovalStatus, TimesheetProjectApproval
from app.models.project import Project
from app.models.timesheet import TimeEntry, Timesheet, TimesheetStatus
from app.models.user import UserRole, role_value
from app.services import approval_store
from app.services.dates import utcnow, week_bounds
from app.services.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from app.services.project_directory import (
    display_name, get_project_settings, get_user_role, get_users_by_ids, projects_led_by,
)
from app.services.status_derivation import REJECTED_STATUSES, derive_timesheet_status

logger = logging.getLogger(__name__)

MAX_HOURS_PER_DAY = Decimal("24")
EDITABLE_STATUSES = {TimesheetStatus.draft} | REJECTED_STATUSES
REVIEWER_ROLES = {
    UserRole.lead.value, UserRole.manager.value,
    UserRole.management.value, UserRole.super_admin.value,
}
LEAD_REVIEW_OPEN = {TimesheetStatus.submitted, TimesheetStatus.lead_approved, TimesheetStatus.manager_approved}


def _get_timesheet(db: Session, timesheet_id: uuid.UUID, *, lock: bool = False) -> Timesheet:
    q = db.query(Timesheet).filter(Timesheet.id == timesheet_id, Timesheet.deleted_at.is_(None))
    if lock:
        q = q.with_for_update()
    timesheet = q.first()
    if not timesheet:
        raise NotFoundError("Timesheet not found", details={"timesheet_id": str(timesheet_id)})
    return timesheet


def _require_owner(timesheet: Timesheet, user_id: uuid.UUID):
    if timesheet.user_id != user_id:
        raise AuthorizationError("Only the timesheet owner can change it")


def _require_editable(timesheet: Timesheet):
    if timesheet.is_frozen:
        raise InvalidTransitionError("Timesheet is frozen; further direct edits are rejected")
    if timesheet.status not in EDITABLE_STATUSES:
        raise InvalidTransitionError(
            f"Timesheet cannot be edited while {timesheet.status.value}",
            details={"status": timesheet.status.value},
        )


def _active_entries(db: Session, timesheet_id: uuid.UUID) -> list[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.timesheet_id == timesheet_id,
        TimeEntry.deleted_at.is_(None),
    ).order_by(TimeEntry.date, TimeEntry.created_at).all()


def _validate_hours(db: Session, timesheet: Timesheet, entry_date: date, hours, exclude_id=None) -> Decimal:
    hours = Decimal(str(hours))
    if hours <= 0 or hours > MAX_HOURS_PER_DAY:
        raise ValidationError("Hours must be greater than 0 and at most 24", details={"hours": float(hours)})
    if not (timesheet.week_start_date <= entry_date <= timesheet.week_end_date):
        raise ValidationError(
            "Entry date must fall inside the timesheet week",
            details={
                "date": entry_date.isoformat(),
                "week_start": timesheet.week_start_date.isoformat(),
                "week_end": timesheet.week_end_date.isoformat(),
            },
        )

    q = db.query(func.coalesce(func.sum(TimeEntry.hours), 0)).filter(
        TimeEntry.timesheet_id == timesheet.id,
        TimeEntry.date == entry_date,
        TimeEntry.deleted_at.is_(None),
    )
    if exclude_id is not None:
        q = q.filter(TimeEntry.id != exclude_id)
    day_total = Decimal(str(q.scalar() or 0))
    if day_total + hours > MAX_HOURS_PER_DAY:
        raise ValidationError(
            f"Total hours for {entry_date.isoformat()} would exceed 24",
            details={"current": float(day_total), "adding": float(hours)},
        )
    return hours


def _recompute_total(db: Session, timesheet: Timesheet):
    db.flush()
    total = db.query(func.coalesce(func.sum(TimeEntry.hours), 0)).filter(
        TimeEntry.timesheet_id == timesheet.id,
        TimeEntry.deleted_at.is_(None),
    ).scalar()
    timesheet.total_hours = Decimal(str(total or 0))
    timesheet.updated_at = utcnow()


def get_or_create_timesheet(db: Session, user_id: uuid.UUID, any_date: date) -> Timesheet:
    week_start, week_end = week_bounds(any_date)
    timesheet = db.query(Timesheet).filter(
        Timesheet.user_id == user_id,
        Timesheet.week_start_date == week_start,
        Timesheet.deleted_at.is_(None),
    ).first()
    if timesheet:
        return timesheet

    timesheet = Timesheet(
        user_id=user_id,
        week_start_date=week_start,
        week_end_date=week_end,
        status=TimesheetStatus.draft,
        total_hours=0,
    )
    db.add(timesheet)
    db.commit()
    db.refresh(timesheet)
    logger.info("Created draft timesheet %s for user %s week %s", timesheet.id, user_id, week_start)
    return timesheet


def get_timesheet_detail(db: Session, timesheet_id: uuid.UUID, user_id: uuid.UUID, role: str) -> dict:
    timesheet = _get_timesheet(db, timesheet_id)
    if timesheet.user_id != user_id and role_value(role) not in REVIEWER_ROLES:
        raise AuthorizationError("You cannot view this timesheet")
    return {
        "timesheet": timesheet,
        "entries": _active_entries(db, timesheet.id),
        "approvals": approval_store.find_by_timesheet(db, timesheet.id),
    }


def add_time_entry(
    db: Session,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    entry_date: date,
    hours,
    task_name: str = "General",
    description: str = "",
    is_billable: bool = True,
) -> TimeEntry:
    get_project_settings(db, project_id)
    timesheet = get_or_create_timesheet(db, user_id, entry_date)

    with unit_of_work(db):
        timesheet = _get_timesheet(db, timesheet.id, lock=True)
        _require_owner(timesheet, user_id)
        _require_editable(timesheet)
        checked = _validate_hours(db, timesheet, entry_date, hours)

        entry = TimeEntry(
            timesheet_id=timesheet.id,
            project_id=project_id,
            task_name=task_name or "General",
            date=entry_date,
            hours=checked,
            description=description or "",
            is_billable=is_billable,
        )
        db.add(entry)
        _recompute_total(db, timesheet)

    db.refresh(entry)
    return entry


def update_time_entry(db: Session, entry_id: uuid.UUID, user_id: uuid.UUID, **changes) -> TimeEntry:
    entry = db.query(TimeEntry).filter(TimeEntry.id == entry_id, TimeEntry.deleted_at.is_(None)).first()
    if not entry:
        raise NotFoundError("Time entry not found", details={"entry_id": str(entry_id)})

    with unit_of_work(db):
        timesheet = _get_timesheet(db, entry.timesheet_id, lock=True)
        _require_owner(timesheet, user_id)
        _require_editable(timesheet)

        if changes.get("project_id") is not None:
            get_project_settings(db, changes["project_id"])
            entry.project_id = changes["project_id"]
        new_date = changes.get("date") or entry.date
        new_hours = changes.get("hours") if changes.get("hours") is not None else entry.hours
        entry.hours = _validate_hours(db, timesheet, new_date, new_hours, exclude_id=entry.id)
        entry.date = new_date
        for key in ("task_name", "description", "is_billable"):
            if changes.get(key) is not None:
                setattr(entry, key, changes[key])
        _recompute_total(db, timesheet)

    db.refresh(entry)
    return entry


def submit_timesheet(db: Session, timesheet_id: uuid.UUID, user_id: uuid.UUID) -> Timesheet:
    with unit_of_work(db):
        timesheet = _get_timesheet(db, timesheet_id, lock=True)
        _require_owner(timesheet, user_id)
        if timesheet.is_frozen or timesheet.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                f"Timesheet cannot be submitted from {timesheet.status.value}",
                details={"status": timesheet.status.value},
            )

        entries = _active_entries(db, timesheet.id)
        hours_by_project: dict[uuid.UUID, Decimal] = {}
        for e in entries:
            hours_by_project[e.project_id] = hours_by_project.get(e.project_id, Decimal("0")) + Decimal(str(e.hours))
        total = sum(hours_by_project.values(), Decimal("0"))
        if total <= 0:
            raise InvalidTransitionError("Cannot submit a timesheet with zero hours")

        owner_role = get_user_role(db, timesheet.user_id)
        if owner_role == UserRole.lead.value:
            check = _lead_submission_check(db, timesheet, user_id)
            if not check["can_submit"]:
                raise InvalidTransitionError(check["message"], details={"pending_reviews": check["pending_reviews"]})

        for project_id, hours in hours_by_project.items():
            settings = get_project_settings(db, project_id)
            record = approval_store.upsert(
                db, timesheet.id, project_id,
                lead_id=settings.lead_id,
                manager_id=settings.primary_manager_id,
                worked_hours=hours,
            )
            approval_store.reset_to_baseline(record, approval_store.baseline_lead_status(settings, owner_role))
            approval_store.recompute_billable_hours(record)
        approval_store.delete_missing_projects(db, timesheet.id, hours_by_project.keys())

        db.query(TimeEntry).filter(TimeEntry.timesheet_id == timesheet.id).update(
            {TimeEntry.is_rejected: False, TimeEntry.rejection_reason: None},
            synchronize_session=False,
        )

        now = utcnow()
        for tier in ("lead", "manager", "management"):
            setattr(timesheet, f"{tier}_rejection_reason", None)
            setattr(timesheet, f"{tier}_rejected_at", None)
            setattr(timesheet, f"approved_by_{tier}_id", None)
            setattr(timesheet, f"approved_by_{tier}_at", None)
        timesheet.is_verified = False
        timesheet.total_hours = total
        timesheet.submitted_at = now
        timesheet.updated_at = now

        db.flush()
        records = approval_store.find_by_timesheet(db, timesheet.id)
        timesheet.status = derive_timesheet_status(records, owner_role, TimesheetStatus.submitted, False)

    logger.info("Timesheet %s submitted by %s (%s hours, %d projects)", timesheet_id, user_id, total, len(hours_by_project))
    db.refresh(timesheet)
    return timesheet


def soft_delete_timesheet(db: Session, timesheet_id: uuid.UUID, user_id: uuid.UUID, reason: Optional[str] = None):
    with unit_of_work(db):
        timesheet = _get_timesheet(db, timesheet_id, lock=True)
        _require_owner(timesheet, user_id)
        if timesheet.status != TimesheetStatus.draft:
            raise InvalidTransitionError(
                "Only draft timesheets can be deleted",
                details={"status": timesheet.status.value},
            )
        now = utcnow()
        timesheet.deleted_at = now
        timesheet.deleted_by = user_id
        timesheet.deleted_reason = reason
        timesheet.updated_at = now
    logger.info("Timesheet %s soft-deleted by %s", timesheet_id, user_id)


def _lead_submission_check(db: Session, timesheet: Timesheet, lead_id: uuid.UUID) -> dict:
    led = projects_led_by(db, lead_id)
    if not led:
        return {"can_submit": True, "message": "", "pending_reviews": []}

    rows = db.query(TimesheetProjectApproval, Timesheet).join(
        Timesheet, Timesheet.id == TimesheetProjectApproval.timesheet_id,
    ).filter(
        TimesheetProjectApproval.project_id.in_(led),
        TimesheetProjectApproval.lead_status == ApprovalStatus.pending,
        Timesheet.week_start_date == timesheet.week_start_date,
        Timesheet.user_id != lead_id,
        Timesheet.deleted_at.is_(None),
        Timesheet.status.in_(LEAD_REVIEW_OPEN),
    ).all()

    owners = get_users_by_ids(db, [t.user_id for _, t in rows])
    rows = [
        (a, t) for a, t in rows
        if t.user_id in owners and role_value(owners[t.user_id].role) == UserRole.employee.value
    ]
    if not rows:
        return {"can_submit": True, "message": "", "pending_reviews": []}

    names = {p.id: p.name for p in db.query(Project).filter(Project.id.in_({a.project_id for a, _ in rows})).all()}
    pending = [
        {
            "timesheet_id": str(t.id),
            "user_id": str(t.user_id),
            "user_name": display_name(owners.get(t.user_id)),
            "project_id": str(a.project_id),
            "project_name": names.get(a.project_id, "Unknown"),
        }
        for a, t in rows
    ]
    return {
        "can_submit": False,
        "message": f"Review {len(pending)} pending employee timesheet(s) for this week before submitting your own",
        "pending_reviews": pending,
    }


def validate_lead_can_submit(db: Session, timesheet_id: uuid.UUID, user_id: uuid.UUID) -> dict:
    timesheet = _get_timesheet(db, timesheet_id)
    _require_owner(timesheet, user_id)
    if get_user_role(db, user_id) != UserRole.lead.value:
        return {"can_submit": True, "message": "", "pending_reviews": []}
    return _lead_submission_check(db, timesheet, user_id)
