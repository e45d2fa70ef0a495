"""
Project-week groups for the team review screen.

Read-only. Loads every timesheet in the window once, then builds one group per
(project, week) the reviewer may act on, filtered by status, sorted and
paginated after aggregation.
"""

import logging
import math
import os
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.approval import ApprovalStatus, ReviewTier, RESOLVED_STATUSES, TimesheetProjectApproval
from app.models.project import Project, ProjectMember, PROJECT_TYPE_TRAINING
from app.models.timesheet import TimeEntry, Timesheet, TimesheetStatus
from app.models.user import UserRole, role_value
from app.services import approval_store
from app.services.dates import format_week_label, subtract_months
from app.services.errors import ValidationError
from app.services.project_directory import active_members_query, display_name, get_users_by_ids, projects_led_by
from app.services.reopening import detect_reopening
from app.services.status_derivation import tier_for_role
from app.services.visibility import is_visible

logger = logging.getLogger(__name__)

LOOKBACK_MONTHS = int(os.getenv("TEAM_REVIEW_LOOKBACK_MONTHS", "2"))
DEFAULT_LIMIT = int(os.getenv("TEAM_REVIEW_DEFAULT_LIMIT", "10"))
MAX_LIMIT = int(os.getenv("TEAM_REVIEW_MAX_LIMIT", "100"))

STATUS_FILTERS = {"pending", "approved", "rejected", "partially_processed", "all"}
SORT_FIELDS = {"week_date", "project_name", "pending_count"}
SORT_ORDERS = {"asc", "desc"}

MANAGEMENT_ROLES = {UserRole.management.value, UserRole.super_admin.value}

# Timesheet statuses in which an employee's pending lead track still blocks the manager
LEAD_REVIEW_OPEN = {TimesheetStatus.submitted, TimesheetStatus.lead_approved, TimesheetStatus.manager_approved}


@dataclass
class ProjectWeekFilters:
    project_ids: list[uuid.UUID] = field(default_factory=list)
    week_start: Optional[date] = None
    week_end: Optional[date] = None
    status: str = "pending"
    sort_by: str = "week_date"
    sort_order: str = "desc"
    page: int = 1
    limit: int = DEFAULT_LIMIT
    search: Optional[str] = None

    def validate(self):
        if self.status not in STATUS_FILTERS:
            raise ValidationError(f"Invalid status filter '{self.status}'", details={"allowed": sorted(STATUS_FILTERS)})
        if self.sort_by not in SORT_FIELDS:
            raise ValidationError(f"Invalid sort_by '{self.sort_by}'", details={"allowed": sorted(SORT_FIELDS)})
        if self.sort_order not in SORT_ORDERS:
            raise ValidationError(f"Invalid sort_order '{self.sort_order}'", details={"allowed": sorted(SORT_ORDERS)})
        if self.page < 1:
            raise ValidationError("page must be at least 1")
        if self.limit < 1 or self.limit > MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
        if self.week_start and self.week_end and self.week_start > self.week_end:
            raise ValidationError("week_start must not be after week_end")

    def to_dict(self) -> dict:
        return {
            "project_ids": [str(p) for p in self.project_ids],
            "week_start": self.week_start.isoformat() if self.week_start else None,
            "week_end": self.week_end.isoformat() if self.week_end else None,
            "status": self.status,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "page": self.page,
            "limit": self.limit,
            "search": self.search,
        }


@dataclass
class GroupStatus:
    status: str
    pending_count: int
    approved_count: int
    rejected_count: int
    sub_status: Optional[str] = None


def compute_group_status(tracks: list[ApprovalStatus]) -> GroupStatus:
    """Status of a project-week from the tier's tracks on its visible records."""
    total = len(tracks)
    pending = sum(1 for t in tracks if t == ApprovalStatus.pending)
    approved = sum(1 for t in tracks if t in RESOLVED_STATUSES)
    rejected = sum(1 for t in tracks if t == ApprovalStatus.rejected)

    if rejected:
        sub = f"{rejected} of {total} rejected" if rejected < total else None
        return GroupStatus("rejected", pending, approved, rejected, sub)
    if approved == total:
        return GroupStatus("approved", pending, approved, rejected)
    if approved and pending:
        return GroupStatus("partially_processed", pending, approved, rejected, f"{approved} of {total} approved")
    return GroupStatus("pending", pending, approved, rejected)


def matches_status_filter(group: GroupStatus, status_filter: str) -> bool:
    if status_filter == "all":
        return True
    if status_filter == "pending":
        return group.status in ("pending", "partially_processed")
    if status_filter == "approved":
        return group.status == "approved" or (group.status == "partially_processed" and group.approved_count > 0)
    return group.status == status_filter


def _scoped_projects(db: Session, approver_id: uuid.UUID, role: str, filters: ProjectWeekFilters) -> list[Project]:
    q = db.query(Project).filter(Project.deleted_at.is_(None))
    if role in MANAGEMENT_ROLES:
        pass
    elif role == UserRole.manager.value:
        q = q.filter(or_(
            Project.primary_manager_id == approver_id,
            Project.project_type == PROJECT_TYPE_TRAINING,
        ))
    elif role == UserRole.lead.value:
        led = projects_led_by(db, approver_id)
        if not led:
            return []
        q = q.filter(Project.id.in_(led), Project.project_type != PROJECT_TYPE_TRAINING)
    else:
        return []

    if filters.project_ids:
        q = q.filter(Project.id.in_(filters.project_ids))
    if filters.search:
        q = q.filter(Project.name.ilike(f"%{filters.search.strip()}%"))
    return q.order_by(Project.name).all()


def _empty_response(filters: ProjectWeekFilters) -> dict:
    return {
        "project_weeks": [],
        "pagination": {"total": 0, "page": filters.page, "limit": filters.limit, "total_pages": 0},
        "filters_applied": filters.to_dict(),
    }


class _WeekData:
    """Everything loaded for the window, indexed for the per-group checks."""

    def __init__(self, timesheets, users, approvals, entries, members):
        self.timesheets = timesheets
        self.users = users
        self.by_user_week = {(t.user_id, t.week_start_date): t for t in timesheets}
        self.approvals = defaultdict(dict)
        for a in approvals:
            self.approvals[a.project_id][a.timesheet_id] = a
        self.entries = defaultdict(list)
        for e in entries:
            self.entries[(e.timesheet_id, e.project_id)].append(e)
        self.members = defaultdict(list)
        for m in members:
            self.members[m.project_id].append(m)

    def owner_role(self, timesheet: Timesheet) -> str:
        user = self.users.get(timesheet.user_id)
        return role_value(user.role) if user else UserRole.employee.value


def _load_window(db: Session, project_ids: list[uuid.UUID], week_start: date, week_end: date) -> Optional[_WeekData]:
    timesheets = db.query(Timesheet).filter(
        Timesheet.week_start_date >= week_start,
        Timesheet.week_start_date <= week_end,
        Timesheet.deleted_at.is_(None),
    ).order_by(Timesheet.week_start_date, Timesheet.created_at).all()
    if not timesheets:
        return None

    timesheet_ids = [t.id for t in timesheets]
    approvals = db.query(TimesheetProjectApproval).filter(
        TimesheetProjectApproval.timesheet_id.in_(timesheet_ids),
        TimesheetProjectApproval.project_id.in_(project_ids),
    ).all()
    entries = db.query(TimeEntry).filter(
        TimeEntry.timesheet_id.in_(timesheet_ids),
        TimeEntry.project_id.in_(project_ids),
        TimeEntry.deleted_at.is_(None),
    ).order_by(TimeEntry.date, TimeEntry.created_at).all()
    members = active_members_query(db).filter(
        ProjectMember.project_id.in_(project_ids),
    ).order_by(ProjectMember.assigned_at).all()
    users = get_users_by_ids(db, [t.user_id for t in timesheets] + [m.user_id for m in members])
    return _WeekData(timesheets, users, approvals, entries, members)


# ── Tier gating ──


def _manager_may_see(project: Project, lead_id, week_start: date, week_records, data: _WeekData) -> bool:
    """The lead has finished reviewing and has submitted their own week."""
    if project.project_type == PROJECT_TYPE_TRAINING or lead_id is None:
        return True
    for timesheet, record in week_records:
        if (
            data.owner_role(timesheet) == UserRole.employee.value
            and record.lead_status == ApprovalStatus.pending
            and timesheet.status in LEAD_REVIEW_OPEN
        ):
            return False
    lead_sheet = data.by_user_week.get((lead_id, week_start))
    return lead_sheet is not None and lead_sheet.status != TimesheetStatus.draft


def _management_may_see(project: Project, week_start: date, week_records, data: _WeekData) -> bool:
    """The manager has finished reviewing and has submitted their own week."""
    if project.project_type == PROJECT_TYPE_TRAINING or project.primary_manager_id is None:
        return True
    for timesheet, record in week_records:
        if (
            data.owner_role(timesheet) in (UserRole.employee.value, UserRole.lead.value)
            and record.manager_status == ApprovalStatus.pending
        ):
            return False
    manager_sheet = data.by_user_week.get((project.primary_manager_id, week_start))
    return manager_sheet is not None and manager_sheet.status != TimesheetStatus.draft


def _lead_may_see(project: Project, approver_id: uuid.UUID, week_start: date, data: _WeekData) -> bool:
    """Every other employee on the project has submitted time against it this week."""
    employees = [
        m for m in data.members[project.id]
        if m.project_role == UserRole.employee.value and m.user_id != approver_id
    ]
    for member in employees:
        sheet = data.by_user_week.get((member.user_id, week_start))
        if sheet is None or sheet.status == TimesheetStatus.draft:
            return False
        if not data.entries.get((sheet.id, project.id)):
            return False
    return True


# ── Group assembly ──


def _user_row(project: Project, timesheet: Timesheet, record: TimesheetProjectApproval, tier: ReviewTier, data: _WeekData):
    member = next((m for m in data.members[project.id] if m.user_id == timesheet.user_id), None)
    is_manager = project.primary_manager_id == timesheet.user_id
    if member is None and not is_manager and project.project_type != PROJECT_TYPE_TRAINING:
        return None

    if member is not None:
        project_role = member.project_role
    elif is_manager:
        project_role = UserRole.manager.value
    else:
        project_role = UserRole.employee.value

    user = data.users.get(timesheet.user_id)
    entries = data.entries.get((timesheet.id, project.id), [])
    hours = sum(float(e.hours or 0) for e in entries)
    return {
        "user_id": str(timesheet.user_id),
        "user_name": display_name(user),
        "user_email": user.email if user else None,
        "user_role": data.owner_role(timesheet),
        "project_role": project_role,
        "timesheet_id": str(timesheet.id),
        "timesheet_status": timesheet.status.value,
        "approval_status": record.track(tier).value,
        "lead_status": record.track(ReviewTier.lead).value,
        "manager_status": record.track(ReviewTier.manager).value,
        "management_status": record.track(ReviewTier.management).value,
        "entries": [
            {
                "entry_id": str(e.id),
                "date": e.date.isoformat(),
                "task_name": e.task_name or "Unnamed Task",
                "hours": float(e.hours or 0),
                "description": e.description,
                "is_billable": bool(e.is_billable),
                "is_rejected": bool(e.is_rejected),
            }
            for e in entries
        ],
        "total_hours_for_project": hours,
        "worked_hours": float(record.worked_hours or 0),
        "billable_hours": float(record.billable_hours or 0),
        "billable_adjustment": float(record.billable_adjustment or 0),
    }


def _build_group(
    db: Session,
    project: Project,
    lead_id,
    week_start: date,
    week_end: date,
    visible: list[tuple[Timesheet, TimesheetProjectApproval]],
    tier: ReviewTier,
    status_filter: str,
    data: _WeekData,
) -> Optional[dict]:
    group_status = compute_group_status([record.track(tier) for _, record in visible])

    # only records this tier can see take part, in record order
    visible_ids = {record.id for _, record in visible}
    rows = [
        (record, timesheet)
        for record, timesheet in approval_store.find_by_project_and_week(db, project.id, week_start, week_end)
        if record.id in visible_ids
    ]
    reopening = detect_reopening(rows, tier)
    if reopening.is_reopened and group_status.status == "approved":
        if group_status.pending_count > 0:
            group_status.status = "partially_processed"
            total = group_status.approved_count + group_status.pending_count
            group_status.sub_status = group_status.sub_status or f"{group_status.approved_count} of {total} approved"
        else:
            group_status.status = "pending"

    if not matches_status_filter(group_status, status_filter):
        return None

    users = []
    for timesheet, record in visible:
        row = _user_row(project, timesheet, record, tier, data)
        if row is not None:
            users.append(row)
    if not users:
        return None

    rejected = next((r for _, r in visible if r.track(tier) == ApprovalStatus.rejected), None)
    manager = data.users.get(project.primary_manager_id) if project.primary_manager_id else None
    lead = data.users.get(lead_id) if lead_id else None

    group = {
        "project_id": str(project.id),
        "project_name": project.name,
        "project_status": project.status,
        "project_type": project.project_type,
        "week_start": week_start.isoformat(),
        "week_end": week_end.isoformat(),
        "week_label": format_week_label(week_start, week_end),
        "manager_id": str(project.primary_manager_id) if project.primary_manager_id else None,
        "manager_name": display_name(manager),
        "lead_id": str(lead_id) if lead_id else None,
        "lead_name": display_name(lead) if lead_id else None,
        "approval_status": group_status.status,
        "sub_status": group_status.sub_status,
        "pending_count": group_status.pending_count,
        "approved_count": group_status.approved_count,
        "rejected_count": group_status.rejected_count,
        "users": users,
        "total_users": len(users),
        "total_hours": sum(u["total_hours_for_project"] for u in users),
        "total_entries": sum(len(u["entries"]) for u in users),
        "rejected_reason": getattr(rejected, tier.reason_field) if rejected else None,
        "rejected_at": rejected.updated_at.isoformat() if rejected and rejected.updated_at else None,
    }
    group.update(reopening.to_dict())
    return group


def _sort_groups(groups: list[dict], sort_by: str, sort_order: str) -> list[dict]:
    if sort_by == "project_name":
        key = lambda g: g["project_name"].lower()
    elif sort_by == "pending_count":
        key = lambda g: sum(1 for u in g["users"] if u["approval_status"] == ApprovalStatus.pending.value)
    else:
        key = lambda g: g["week_start"]
    return sorted(groups, key=key, reverse=(sort_order == "desc"))


def get_project_week_groups(
    db: Session,
    approver_id: uuid.UUID,
    approver_role: str,
    filters: Optional[ProjectWeekFilters] = None,
) -> dict:
    filters = filters or ProjectWeekFilters()
    role = role_value(approver_role)
    tier = tier_for_role(role)
    filters.validate()

    week_end = filters.week_end or date.today()
    week_start = filters.week_start or subtract_months(week_end, LOOKBACK_MONTHS)
    if week_start > week_end:
        raise ValidationError("week_start must not be after week_end")

    projects = _scoped_projects(db, approver_id, role, filters)
    if not projects:
        return _empty_response(filters)

    data = _load_window(db, [p.id for p in projects], week_start, week_end)
    if data is None:
        return _empty_response(filters)

    groups = []
    for project in projects:
        lead_member = next((m for m in data.members[project.id] if m.project_role == UserRole.lead.value), None)
        lead_id = lead_member.user_id if lead_member else None
        project_records = data.approvals.get(project.id, {})

        all_by_week = defaultdict(list)
        visible_by_week = defaultdict(list)
        for timesheet in data.timesheets:
            record = project_records.get(timesheet.id)
            if record is None:
                continue
            week = (timesheet.week_start_date, timesheet.week_end_date)
            all_by_week[week].append((timesheet, record))
            if is_visible(tier, timesheet.status, data.owner_role(timesheet), record):
                visible_by_week[week].append((timesheet, record))

        for (ws, we), visible in visible_by_week.items():
            if tier == ReviewTier.manager and not _manager_may_see(project, lead_id, ws, all_by_week[(ws, we)], data):
                continue
            if tier == ReviewTier.management and not _management_may_see(project, ws, all_by_week[(ws, we)], data):
                continue
            if tier == ReviewTier.lead and not _lead_may_see(project, approver_id, ws, data):
                continue

            group = _build_group(db, project, lead_id, ws, we, visible, tier, filters.status, data)
            if group is not None:
                groups.append(group)

    groups = _sort_groups(groups, filters.sort_by, filters.sort_order)
    total = len(groups)
    offset = (filters.page - 1) * filters.limit
    logger.debug("Team review for %s %s: %d project-weeks", role, approver_id, total)

    return {
        "project_weeks": groups[offset:offset + filters.limit],
        "pagination": {
            "total": total,
            "page": filters.page,
            "limit": filters.limit,
            "total_pages": math.ceil(total / filters.limit),
        },
        "filters_applied": filters.to_dict(),
    }
