"""Team review router: project-week lists and approval actions for reviewers."""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional

from app.database import get_db
from app.dependencies import AuthContext, require_reviewer, require_management
from app.schemas.team_review import (
    RejectRequest,
    ProjectWeekRequest,
    ProjectWeekRejectRequest,
    BulkTimesheetRequest,
    BillableAdjustmentRequest,
    ApprovalHistoryResponse,
)
from app.services import team_review_approval
from app.services.team_review import DEFAULT_LIMIT, ProjectWeekFilters, get_project_week_groups

router = APIRouter(prefix="/api/v1/team-review", tags=["Team Review"])


# ── Project-week list ──


@router.get("/project-weeks")
def list_project_weeks(
    project_id: Optional[list[uuid.UUID]] = Query(None),
    week_start: Optional[date] = Query(None),
    week_end: Optional[date] = Query(None),
    status: str = Query("pending"),
    sort_by: str = Query("week_date"),
    sort_order: str = Query("desc"),
    page: int = Query(1),
    limit: int = Query(DEFAULT_LIMIT),
    search: Optional[str] = Query(None),
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    filters = ProjectWeekFilters(
        project_ids=project_id or [],
        week_start=week_start,
        week_end=week_end,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
        search=search,
    )
    result = get_project_week_groups(db, ctx.user_id, ctx.role, filters)
    return {"success": True, **result}


# ── Single project approval ──


@router.post("/timesheets/{timesheet_id}/projects/{project_id}/approve")
def approve_project(
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    result = team_review_approval.approve_for_project(db, timesheet_id, project_id, ctx.user_id, ctx.role)
    message = "Project approved" if result.changed else "Project was already approved"
    return {"success": True, "message": message, "data": result.to_dict()}


@router.post("/timesheets/{timesheet_id}/projects/{project_id}/reject")
def reject_project(
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    body: RejectRequest,
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    result = team_review_approval.reject_for_project(db, timesheet_id, project_id, ctx.user_id, ctx.role, body.reason)
    return {"success": True, "message": "Project rejected", "data": result.to_dict()}


# ── Project-week bulk actions ──


@router.post("/project-week/approve")
def approve_project_week(
    body: ProjectWeekRequest,
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    result = team_review_approval.approve_project_week(
        db, body.project_id, body.week_start, body.week_end, ctx.user_id, ctx.role,
    )
    return {"success": True, "message": f"Approved {result.project_week}", "data": result.to_dict()}


@router.post("/project-week/reject")
def reject_project_week(
    body: ProjectWeekRejectRequest,
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    result = team_review_approval.reject_project_week(
        db, body.project_id, body.week_start, body.week_end, ctx.user_id, ctx.role, body.reason,
    )
    return {"success": True, "message": f"Rejected {result.project_week}", "data": result.to_dict()}


@router.post("/project-week/freeze")
def freeze_project_week(
    body: ProjectWeekRequest,
    ctx: AuthContext = Depends(require_management),
    db: Session = Depends(get_db),
):
    result = team_review_approval.bulk_freeze_project_week(
        db, body.project_id, body.week_start, body.week_end, ctx.user_id, ctx.role,
    )
    return {"success": True, "data": result}


# ── Management verification and billing ──


@router.post("/timesheets/bulk-verify")
def bulk_verify(
    body: BulkTimesheetRequest,
    ctx: AuthContext = Depends(require_management),
    db: Session = Depends(get_db),
):
    result = team_review_approval.bulk_verify_timesheets(db, body.timesheet_ids, ctx.user_id, ctx.role)
    return {"success": True, "data": result}


@router.post("/timesheets/bulk-bill")
def bulk_bill(
    body: BulkTimesheetRequest,
    ctx: AuthContext = Depends(require_management),
    db: Session = Depends(get_db),
):
    result = team_review_approval.bulk_bill_timesheets(db, body.timesheet_ids, ctx.user_id, ctx.role)
    return {"success": True, "data": result}


@router.put("/timesheets/{timesheet_id}/projects/{project_id}/billable-adjustment")
def set_billable_adjustment(
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    body: BillableAdjustmentRequest,
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    result = team_review_approval.update_billable_adjustment(
        db, timesheet_id, project_id, body.adjustment, ctx.user_id, ctx.role,
    )
    return {"success": True, "data": result}


# ── History ──


@router.get("/timesheets/{timesheet_id}/history")
def approval_history(
    timesheet_id: uuid.UUID,
    project_id: Optional[uuid.UUID] = Query(None),
    ctx: AuthContext = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    rows = team_review_approval.get_approval_history(db, timesheet_id, project_id)
    return {"success": True, "data": [ApprovalHistoryResponse.model_validate(r) for r in rows]}
