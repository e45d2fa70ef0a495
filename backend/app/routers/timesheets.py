"""Timesheets router: the owner's entries, submission and lead pre-checks."""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.dependencies import AuthContext, get_auth_context
from app.schemas.timesheet import (
    TimeEntryCreate,
    TimeEntryUpdate,
    TimeEntryResponse,
    TimesheetResponse,
    TimesheetDetailResponse,
    CanSubmitResponse,
)
from app.services import timesheet_service

router = APIRouter(prefix="/api/v1/timesheets", tags=["Timesheets"])


# ── Entries ──


@router.post("/entries")
def create_entry(
    body: TimeEntryCreate,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    entry = timesheet_service.add_time_entry(
        db,
        ctx.user_id,
        body.project_id,
        body.date,
        body.hours,
        task_name=body.task_name,
        description=body.description,
        is_billable=body.is_billable,
    )
    return {"success": True, "data": TimeEntryResponse.model_validate(entry)}


@router.put("/entries/{entry_id}")
def update_entry(
    entry_id: uuid.UUID,
    body: TimeEntryUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    entry = timesheet_service.update_time_entry(db, entry_id, ctx.user_id, **body.model_dump(exclude_unset=True))
    return {"success": True, "data": TimeEntryResponse.model_validate(entry)}


# ── Timesheet ──


@router.get("/{timesheet_id}")
def get_timesheet(
    timesheet_id: uuid.UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    detail = timesheet_service.get_timesheet_detail(db, timesheet_id, ctx.user_id, ctx.role)
    return {"success": True, "data": TimesheetDetailResponse.model_validate(detail, from_attributes=True)}


@router.post("/{timesheet_id}/submit")
def submit_timesheet(
    timesheet_id: uuid.UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    timesheet = timesheet_service.submit_timesheet(db, timesheet_id, ctx.user_id)
    return {
        "success": True,
        "message": "Timesheet submitted successfully",
        "data": TimesheetResponse.model_validate(timesheet),
    }


@router.get("/{timesheet_id}/can-submit")
def can_submit(
    timesheet_id: uuid.UUID,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    result = timesheet_service.validate_lead_can_submit(db, timesheet_id, ctx.user_id)
    return {"success": True, **CanSubmitResponse.model_validate(result).model_dump()}


@router.delete("/{timesheet_id}")
def delete_timesheet(
    timesheet_id: uuid.UUID,
    reason: Optional[str] = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    timesheet_service.soft_delete_timesheet(db, timesheet_id, ctx.user_id, reason)
    return {"success": True, "message": "Timesheet deleted"}
