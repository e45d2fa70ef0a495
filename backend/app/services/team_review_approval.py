"""
Approval transitions for team review.

Every reviewer action goes through here: single project approvals and
rejections, project-week bulk actions, management freeze/verify/bill and
billable-hour adjustments. Each public function is one unit of work; the
timesheet status is always re-derived from the approval records before commit.
"""

import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import unit_of_work
from app.models.approval import ApprovalAction, ApprovalStatus, ReviewTier, TimesheetProjectApproval
from app.models.timesheet import TimeEntry, Timesheet, TimesheetStatus
from app.models.user import UserRole, role_value
from app.services import approval_history, approval_store
from app.services.dates import format_week_label, utcnow
from app.services.errors import (
    ApprovalError, AuthorizationError, InvalidTransitionError,
    NotFoundError, ValidationError,
)
from app.services.project_directory import (
    ProjectSettings, display_name, get_project_settings, get_user_role, get_users_by_ids,
)
from app.services.status_derivation import derive_timesheet_status, tier_for_role

logger = logging.getLogger(__name__)

REJECTION_REASON_MIN_LENGTH = int(os.getenv("REJECTION_REASON_MIN_LENGTH", "10"))

MANAGEMENT_ROLES = {UserRole.management.value, UserRole.super_admin.value}
SELF_REVIEW_BLOCKED_ROLES = {UserRole.lead.value, UserRole.manager.value}

LOCKED_STATUSES = {TimesheetStatus.frozen, TimesheetStatus.billed}

LEAD_REVIEWABLE = {TimesheetStatus.submitted, TimesheetStatus.lead_approved, TimesheetStatus.lead_rejected}
MANAGER_REJECTABLE = {
    TimesheetStatus.submitted,
    TimesheetStatus.lead_approved,
    TimesheetStatus.lead_rejected,
    TimesheetStatus.manager_approved,
    TimesheetStatus.manager_rejected,
    TimesheetStatus.management_pending,
    TimesheetStatus.management_rejected,
}
MANAGEMENT_APPROVABLE = {TimesheetStatus.manager_approved, TimesheetStatus.management_pending}
MANAGEMENT_REJECTABLE = MANAGEMENT_APPROVABLE | {TimesheetStatus.management_rejected}
DIRECT_SUBMIT_ROLES = {UserRole.employee.value, UserRole.lead.value, UserRole.manager.value}

FREEZE_BLOCKING = {
    TimesheetStatus.submitted,
    TimesheetStatus.manager_rejected,
    TimesheetStatus.management_rejected,
}

# Status reached when a tier has signed off, used to stamp approved_by_<tier>
STATUS_SIGNOFF_TIER = {
    TimesheetStatus.lead_approved: ReviewTier.lead,
    TimesheetStatus.manager_approved: ReviewTier.manager,
    TimesheetStatus.management_pending: ReviewTier.manager,
    TimesheetStatus.frozen: ReviewTier.management,
}


@dataclass
class TransitionResult:
    timesheet_id: uuid.UUID
    project_id: uuid.UUID
    tier: ReviewTier
    status_before: TimesheetStatus
    status_after: TimesheetStatus
    changed: bool = True

    def to_dict(self) -> dict:
        return {
            "timesheet_id": str(self.timesheet_id),
            "project_id": str(self.project_id),
            "tier": self.tier.value,
            "status_before": self.status_before.value,
            "status": self.status_after.value,
            "changed": self.changed,
        }


@dataclass
class BulkResult:
    project_week: str
    affected_users: set = field(default_factory=set)
    affected_timesheets: set = field(default_factory=set)
    skipped_self_approvals: int = 0
    skipped_count: int = 0

    def to_dict(self) -> dict:
        return {
            "project_week": self.project_week,
            "affected_users": len(self.affected_users),
            "affected_timesheets": len(self.affected_timesheets),
            "skipped_self_approvals": self.skipped_self_approvals,
            "skipped_count": self.skipped_count,
        }


# ── Transaction helpers ────────────────────────────────────────────────


def _load_timesheet(db: Session, timesheet_id: uuid.UUID) -> Timesheet:
    timesheet = db.query(Timesheet).filter(
        Timesheet.id == timesheet_id,
        Timesheet.deleted_at.is_(None),
    ).with_for_update().first()
    if not timesheet:
        raise NotFoundError("Timesheet not found", details={"timesheet_id": str(timesheet_id)})
    return timesheet


def _load_record(db: Session, timesheet_id: uuid.UUID, project_id: uuid.UUID) -> TimesheetProjectApproval:
    record = approval_store.get(db, timesheet_id, project_id)
    if not record:
        raise NotFoundError(
            "No approval record for this timesheet and project",
            details={"timesheet_id": str(timesheet_id), "project_id": str(project_id)},
        )
    return record


def _timesheets_in_window(db: Session, week_start: date, week_end: date) -> list[Timesheet]:
    return db.query(Timesheet).filter(
        Timesheet.week_start_date >= week_start,
        Timesheet.week_start_date <= week_end,
        Timesheet.deleted_at.is_(None),
    ).with_for_update().all()


def _is_self_review(timesheet: Timesheet, actor_id: uuid.UUID, actor_role: str) -> bool:
    return timesheet.user_id == actor_id and role_value(actor_role) in SELF_REVIEW_BLOCKED_ROLES


def _require_management(role: str, action: str):
    if role_value(role) not in MANAGEMENT_ROLES:
        raise AuthorizationError(f"Only management can {action}", details={"role": role_value(role)})


def _validate_reason(reason: Optional[str]) -> str:
    cleaned = (reason or "").strip()
    if len(cleaned) < REJECTION_REASON_MIN_LENGTH:
        raise ValidationError(
            f"Rejection reason must be at least {REJECTION_REASON_MIN_LENGTH} characters",
            details={"min_length": REJECTION_REASON_MIN_LENGTH},
        )
    return cleaned


def _set_entries_rejected(db: Session, timesheet_id: uuid.UUID, project_id: uuid.UUID, reason: Optional[str]):
    db.query(TimeEntry).filter(
        TimeEntry.timesheet_id == timesheet_id,
        TimeEntry.project_id == project_id,
        TimeEntry.deleted_at.is_(None),
    ).update(
        {TimeEntry.is_rejected: reason is not None, TimeEntry.rejection_reason: reason},
        synchronize_session=False,
    )


def _refresh_status(db: Session, timesheet: Timesheet, owner_role: str) -> TimesheetStatus:
    db.flush()
    records = approval_store.find_by_timesheet(db, timesheet.id)
    status = derive_timesheet_status(records, owner_role, timesheet.status, timesheet.is_frozen)
    timesheet.status = status
    timesheet.updated_at = utcnow()
    return status


def _stamp_freeze(timesheet: Timesheet, actor_id: uuid.UUID, now):
    timesheet.is_frozen = True
    timesheet.is_verified = True
    timesheet.verified_by_id = actor_id
    timesheet.verified_at = now
    timesheet.approved_by_management_id = actor_id
    timesheet.approved_by_management_at = now
    timesheet.status = TimesheetStatus.frozen


# ── Preconditions ──────────────────────────────────────────────────────


def _check_not_locked(timesheet: Timesheet):
    if timesheet.is_frozen or timesheet.status in LOCKED_STATUSES:
        raise InvalidTransitionError(
            f"Timesheet is {timesheet.status.value}; no further review changes are allowed",
            details={"status": timesheet.status.value},
        )


def _check_can_approve(tier: ReviewTier, status: TimesheetStatus, owner_role: str):
    allowed = False
    if tier == ReviewTier.lead:
        allowed = owner_role == UserRole.employee.value and status in LEAD_REVIEWABLE
    elif tier == ReviewTier.manager:
        allowed = (
            status == TimesheetStatus.lead_approved
            or status == TimesheetStatus.management_rejected
            or (status == TimesheetStatus.submitted and owner_role in DIRECT_SUBMIT_ROLES)
        )
    elif tier == ReviewTier.management:
        allowed = status in MANAGEMENT_APPROVABLE

    if not allowed:
        raise InvalidTransitionError(
            f"{tier.value.capitalize()} cannot approve a {status.value} timesheet",
            details={"tier": tier.value, "status": status.value, "owner_role": owner_role},
        )


def _check_can_reject(tier: ReviewTier, status: TimesheetStatus, owner_role: str):
    if tier == ReviewTier.lead:
        allowed = owner_role == UserRole.employee.value and status in LEAD_REVIEWABLE
    elif tier == ReviewTier.manager:
        allowed = status in MANAGER_REJECTABLE
    else:
        allowed = status in MANAGEMENT_REJECTABLE

    if not allowed:
        raise InvalidTransitionError(
            f"{tier.value.capitalize()} cannot reject a {status.value} timesheet",
            details={"tier": tier.value, "status": status.value, "owner_role": owner_role},
        )


# ── Single-record transitions (no commit) ──────────────────────────────


def _approve_record(
    db: Session,
    timesheet: Timesheet,
    record: TimesheetProjectApproval,
    settings: ProjectSettings,
    owner_role: str,
    tier: ReviewTier,
    approver_id: uuid.UUID,
    approver_role: str,
) -> TransitionResult:
    status_before = timesheet.status
    if record.track(tier) == ApprovalStatus.approved:
        return TransitionResult(timesheet.id, record.project_id, tier, status_before, status_before, changed=False)

    _check_not_locked(timesheet)
    _check_can_approve(tier, status_before, owner_role)

    now = utcnow()
    record.set_track(tier, ApprovalStatus.approved, at=now)

    if tier == ReviewTier.lead and settings.auto_escalate:
        record.set_track(ReviewTier.manager, ApprovalStatus.approved, at=now)
        logger.info("Lead approval auto-escalated to manager for timesheet %s project %s", timesheet.id, settings.project_id)

    if tier == ReviewTier.manager:
        if (
            owner_role == UserRole.employee.value
            and status_before == TimesheetStatus.submitted
            and record.track(ReviewTier.lead) != ApprovalStatus.approved
        ):
            record.set_track(ReviewTier.lead, ApprovalStatus.not_required)
            logger.info("Manager %s bypassed lead review on timesheet %s project %s", approver_id, timesheet.id, settings.project_id)
        if record.track(ReviewTier.management) == ApprovalStatus.rejected:
            record.set_track(ReviewTier.management, ApprovalStatus.pending)

    status_after = _refresh_status(db, timesheet, owner_role)

    if status_after != status_before:
        setattr(timesheet, f"approved_by_{tier.value}_id", approver_id)
        setattr(timesheet, f"approved_by_{tier.value}_at", now)
        signoff = STATUS_SIGNOFF_TIER.get(status_after)
        if signoff is not None and signoff != tier:
            setattr(timesheet, f"approved_by_{signoff.value}_id", approver_id)
            setattr(timesheet, f"approved_by_{signoff.value}_at", now)
    setattr(timesheet, tier.reason_field, None)

    if status_after == TimesheetStatus.frozen:
        _stamp_freeze(timesheet, approver_id, now)
        logger.info("Timesheet %s frozen by %s", timesheet.id, approver_id)

    if tier == ReviewTier.management:
        _set_entries_rejected(db, timesheet.id, record.project_id, None)

    approval_history.record(
        db, timesheet, record.project_id, approver_id, approver_role,
        ApprovalAction.approved, status_before, status_after,
    )
    return TransitionResult(timesheet.id, record.project_id, tier, status_before, status_after)


def _reject_record(
    db: Session,
    timesheet: Timesheet,
    record: TimesheetProjectApproval,
    owner_role: str,
    tier: ReviewTier,
    reason: str,
    approver_id: uuid.UUID,
    approver_role: str,
    settings_cache: dict,
) -> TransitionResult:
    status_before = timesheet.status
    _check_not_locked(timesheet)
    _check_can_reject(tier, status_before, owner_role)

    def lead_baseline(project_id):
        if project_id not in settings_cache:
            settings_cache[project_id] = get_project_settings(db, project_id)
        return approval_store.baseline_lead_status(settings_cache[project_id], owner_role)

    now = utcnow()
    record.set_track(tier, ApprovalStatus.rejected, reason=reason)
    approval_store.reset_to_baseline(record, lead_baseline(record.project_id), skip=tier)

    for other in approval_store.find_by_timesheet(db, timesheet.id):
        if other.id == record.id:
            continue
        approval_store.reset_to_baseline(other, lead_baseline(other.project_id))

    status_after = _refresh_status(db, timesheet, owner_role)

    setattr(timesheet, tier.reason_field, reason)
    setattr(timesheet, f"{tier.value}_rejected_at", now)
    timesheet.is_verified = False

    _set_entries_rejected(db, timesheet.id, record.project_id, reason)

    approval_history.record(
        db, timesheet, record.project_id, approver_id, approver_role,
        ApprovalAction.rejected, status_before, status_after, reason=reason,
    )
    return TransitionResult(timesheet.id, record.project_id, tier, status_before, status_after)


# ── Public operations ──────────────────────────────────────────────────


def approve_for_project(
    db: Session,
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    approver_id: uuid.UUID,
    approver_role: str,
) -> TransitionResult:
    tier = tier_for_role(approver_role)
    with unit_of_work(db):
        timesheet = _load_timesheet(db, timesheet_id)
        record = _load_record(db, timesheet_id, project_id)
        if _is_self_review(timesheet, approver_id, approver_role):
            raise AuthorizationError("You cannot approve your own timesheet")

        owner_role = get_user_role(db, timesheet.user_id)
        settings = get_project_settings(db, project_id)
        result = _approve_record(db, timesheet, record, settings, owner_role, tier, approver_id, approver_role)

    if result.changed:
        logger.info(
            "%s %s approved timesheet %s project %s: %s -> %s",
            approver_role, approver_id, timesheet_id, project_id,
            result.status_before.value, result.status_after.value,
        )
    return result


def reject_for_project(
    db: Session,
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    approver_id: uuid.UUID,
    approver_role: str,
    reason: Optional[str],
) -> TransitionResult:
    tier = tier_for_role(approver_role)
    cleaned = _validate_reason(reason)
    with unit_of_work(db):
        timesheet = _load_timesheet(db, timesheet_id)
        record = _load_record(db, timesheet_id, project_id)
        if _is_self_review(timesheet, approver_id, approver_role):
            raise AuthorizationError("You cannot reject your own timesheet")

        owner_role = get_user_role(db, timesheet.user_id)
        result = _reject_record(db, timesheet, record, owner_role, tier, cleaned, approver_id, approver_role, {})

    logger.info(
        "%s %s rejected timesheet %s project %s: %s -> %s",
        approver_role, approver_id, timesheet_id, project_id,
        result.status_before.value, result.status_after.value,
    )
    return result


def _project_week_scope(db: Session, project_id: uuid.UUID, week_start: date, week_end: date):
    timesheets = _timesheets_in_window(db, week_start, week_end)
    if not timesheets:
        raise NotFoundError(
            "No timesheets found for this week",
            details={"week_start": week_start.isoformat(), "week_end": week_end.isoformat()},
        )
    records = approval_store.find_by_timesheets_and_project(db, [t.id for t in timesheets], project_id)
    if not records:
        raise NotFoundError(
            "No approval records found for this project and week",
            details={"project_id": str(project_id)},
        )
    by_id = {t.id: t for t in timesheets}
    owners = get_users_by_ids(db, [t.user_id for t in timesheets])
    return records, by_id, owners


def _owner_role(owners: dict, user_id: uuid.UUID) -> str:
    user = owners.get(user_id)
    return role_value(user.role) if user else UserRole.employee.value


def approve_project_week(
    db: Session,
    project_id: uuid.UUID,
    week_start: date,
    week_end: date,
    approver_id: uuid.UUID,
    approver_role: str,
) -> BulkResult:
    tier = tier_for_role(approver_role)
    settings = get_project_settings(db, project_id)
    result = BulkResult(project_week=format_week_label(week_start, week_end))

    try:
        with unit_of_work(db):
            records, timesheets, owners = _project_week_scope(db, project_id, week_start, week_end)
            for record in records:
                timesheet = timesheets[record.timesheet_id]
                if _is_self_review(timesheet, approver_id, approver_role):
                    result.skipped_self_approvals += 1
                    continue
                if record.track(tier) == ApprovalStatus.approved:
                    result.skipped_count += 1
                    continue
                try:
                    _approve_record(
                        db, timesheet, record, settings, _owner_role(owners, timesheet.user_id),
                        tier, approver_id, approver_role,
                    )
                except InvalidTransitionError as e:
                    result.skipped_count += 1
                    logger.warning("Skipped timesheet %s in bulk approve: %s", timesheet.id, e.message)
                    continue
                result.affected_users.add(timesheet.user_id)
                result.affected_timesheets.add(timesheet.id)
    except ApprovalError:
        raise
    except Exception:
        logger.exception("Bulk approve aborted for project %s week %s", project_id, result.project_week)
        raise

    logger.info(
        "Bulk approve %s %s by %s: %d timesheets, %d skipped, %d self",
        settings.name, result.project_week, approver_id,
        len(result.affected_timesheets), result.skipped_count, result.skipped_self_approvals,
    )
    return result


def reject_project_week(
    db: Session,
    project_id: uuid.UUID,
    week_start: date,
    week_end: date,
    approver_id: uuid.UUID,
    approver_role: str,
    reason: Optional[str],
) -> BulkResult:
    tier = tier_for_role(approver_role)
    cleaned = _validate_reason(reason)
    settings = get_project_settings(db, project_id)
    result = BulkResult(project_week=format_week_label(week_start, week_end))
    settings_cache = {project_id: settings}

    try:
        with unit_of_work(db):
            records, timesheets, owners = _project_week_scope(db, project_id, week_start, week_end)
            for record in records:
                timesheet = timesheets[record.timesheet_id]
                if _is_self_review(timesheet, approver_id, approver_role):
                    result.skipped_self_approvals += 1
                    continue
                try:
                    _reject_record(
                        db, timesheet, record, _owner_role(owners, timesheet.user_id),
                        tier, cleaned, approver_id, approver_role, settings_cache,
                    )
                except InvalidTransitionError as e:
                    result.skipped_count += 1
                    logger.warning("Skipped timesheet %s in bulk reject: %s", timesheet.id, e.message)
                    continue
                result.affected_users.add(timesheet.user_id)
                result.affected_timesheets.add(timesheet.id)
    except ApprovalError:
        raise
    except Exception:
        logger.exception("Bulk reject aborted for project %s week %s", project_id, result.project_week)
        raise

    logger.info(
        "Bulk reject %s %s by %s: %d timesheets, %d skipped, %d self",
        settings.name, result.project_week, approver_id,
        len(result.affected_timesheets), result.skipped_count, result.skipped_self_approvals,
    )
    return result


def bulk_freeze_project_week(
    db: Session,
    project_id: uuid.UUID,
    week_start: date,
    week_end: date,
    management_id: uuid.UUID,
    management_role: str,
) -> dict:
    _require_management(management_role, "freeze a project week")
    settings = get_project_settings(db, project_id)
    week_label = format_week_label(week_start, week_end)
    frozen_count = 0
    skipped_count = 0
    failed = []

    with unit_of_work(db):
        records, timesheets, owners = _project_week_scope(db, project_id, week_start, week_end)

        blocking = [timesheets[r.timesheet_id] for r in records if timesheets[r.timesheet_id].status in FREEZE_BLOCKING]
        if blocking:
            logger.warning("Freeze of %s %s blocked by %d timesheets", settings.name, week_label, len(blocking))
            raise InvalidTransitionError(
                "Some timesheets in this project week are not ready to freeze",
                details={
                    "blocking_users": [
                        {
                            "user_id": str(t.user_id),
                            "user_name": display_name(owners.get(t.user_id)),
                            "status": t.status.value,
                        }
                        for t in blocking
                    ],
                },
            )

        for record in records:
            timesheet = timesheets[record.timesheet_id]
            if timesheet.status != TimesheetStatus.manager_approved:
                skipped_count += 1
                continue
            try:
                with db.begin_nested():
                    status_before = timesheet.status
                    now = utcnow()
                    # freezing locks the whole timesheet, so every project on it is approved
                    sheet_records = approval_store.find_by_timesheet(db, timesheet.id)
                    for sheet_record in sheet_records:
                        sheet_record.set_track(ReviewTier.management, ApprovalStatus.approved, at=now)
                        _set_entries_rejected(db, timesheet.id, sheet_record.project_id, None)
                    _stamp_freeze(timesheet, management_id, now)
                    timesheet.updated_at = now
                    for sheet_record in sheet_records:
                        approval_history.record(
                            db, timesheet, sheet_record.project_id, management_id, management_role,
                            ApprovalAction.approved, status_before, TimesheetStatus.frozen,
                            notes=f"Bulk freeze of {settings.name} for {week_label}",
                        )
                    db.flush()
                frozen_count += 1
            except SQLAlchemyError as e:
                logger.warning("Could not freeze timesheet %s: %s", timesheet.id, e)
                failed.append({"timesheet_id": str(timesheet.id), "user_id": str(timesheet.user_id), "error": str(e)})

    logger.info(
        "Bulk freeze %s %s by %s: %d frozen, %d skipped, %d failed",
        settings.name, week_label, management_id, frozen_count, skipped_count, len(failed),
    )
    return {
        "project_week": week_label,
        "frozen_count": frozen_count,
        "skipped_count": skipped_count,
        "failed": failed,
    }


def _verify_one(db: Session, timesheet_id: uuid.UUID, verifier_id: uuid.UUID, verifier_role: str):
    timesheet = _load_timesheet(db, timesheet_id)
    if timesheet.status not in MANAGEMENT_APPROVABLE:
        raise InvalidTransitionError(
            f"Cannot verify a {timesheet.status.value} timesheet",
            details={"status": timesheet.status.value},
        )
    status_before = timesheet.status
    now = utcnow()
    records = approval_store.find_by_timesheet(db, timesheet.id)
    for record in records:
        record.set_track(ReviewTier.management, ApprovalStatus.approved, at=now)
        _set_entries_rejected(db, timesheet.id, record.project_id, None)
    _stamp_freeze(timesheet, verifier_id, now)
    timesheet.updated_at = now
    for record in records:
        approval_history.record(
            db, timesheet, record.project_id, verifier_id, verifier_role,
            ApprovalAction.verified, status_before, TimesheetStatus.frozen,
        )
    db.flush()


def _bill_one(db: Session, timesheet_id: uuid.UUID, biller_id: uuid.UUID, biller_role: str):
    timesheet = _load_timesheet(db, timesheet_id)
    if not timesheet.is_frozen or timesheet.status != TimesheetStatus.frozen:
        raise InvalidTransitionError(
            f"Only frozen timesheets can be billed (status is {timesheet.status.value})",
            details={"status": timesheet.status.value},
        )
    now = utcnow()
    timesheet.status = TimesheetStatus.billed
    timesheet.billed_at = now
    timesheet.updated_at = now
    records = approval_store.find_by_timesheet(db, timesheet.id)
    for record in records or [None]:
        approval_history.record(
            db, timesheet, record.project_id if record else None, biller_id, biller_role,
            ApprovalAction.billed, TimesheetStatus.frozen, TimesheetStatus.billed,
        )
    db.flush()


def _run_isolated(db: Session, timesheet_ids: Iterable[uuid.UUID], step, actor_id, actor_role, label: str) -> dict:
    succeeded = 0
    failures = []
    with unit_of_work(db):
        for timesheet_id in timesheet_ids:
            try:
                with db.begin_nested():
                    step(db, timesheet_id, actor_id, actor_role)
                succeeded += 1
            except (ApprovalError, SQLAlchemyError) as e:
                message = e.message if isinstance(e, ApprovalError) else str(e)
                logger.warning("Could not %s timesheet %s: %s", label, timesheet_id, message)
                failures.append({"timesheet_id": str(timesheet_id), "error": message})
    logger.info("Bulk %s by %s: %d ok, %d failed", label, actor_id, succeeded, len(failures))
    return {"success_count": succeeded, "failed_count": len(failures), "failures": failures}


def bulk_verify_timesheets(
    db: Session, timesheet_ids: list[uuid.UUID], verifier_id: uuid.UUID, verifier_role: str,
) -> dict:
    _require_management(verifier_role, "verify timesheets")
    result = _run_isolated(db, timesheet_ids, _verify_one, verifier_id, verifier_role, "verify")
    return {
        "verified_count": result["success_count"],
        "failed_count": result["failed_count"],
        "failures": result["failures"],
    }


def bulk_bill_timesheets(
    db: Session, timesheet_ids: list[uuid.UUID], biller_id: uuid.UUID, biller_role: str,
) -> dict:
    _require_management(biller_role, "bill timesheets")
    result = _run_isolated(db, timesheet_ids, _bill_one, biller_id, biller_role, "bill")
    return {
        "billed_count": result["success_count"],
        "failed_count": result["failed_count"],
        "failures": result["failures"],
    }


def update_billable_adjustment(
    db: Session,
    timesheet_id: uuid.UUID,
    project_id: uuid.UUID,
    adjustment,
    user_id: uuid.UUID,
    user_role: str,
) -> dict:
    settings = get_project_settings(db, project_id)
    role = role_value(user_role)
    if role not in MANAGEMENT_ROLES:
        if not (role == UserRole.manager.value and settings.primary_manager_id == user_id):
            raise AuthorizationError("You can only adjust billable hours on projects you manage")

    try:
        amount = Decimal(str(adjustment))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Adjustment must be a number", details={"adjustment": str(adjustment)}) from exc

    with unit_of_work(db):
        timesheet = _load_timesheet(db, timesheet_id)
        record = _load_record(db, timesheet_id, project_id)
        if timesheet.status == TimesheetStatus.billed:
            raise InvalidTransitionError("Billed timesheets cannot be adjusted")

        worked = Decimal(record.worked_hours or 0)
        if worked + amount < 0:
            raise ValidationError(
                "Billable hours cannot be negative",
                details={"worked_hours": float(worked), "adjustment": float(amount)},
            )
        record.billable_adjustment = amount
        approval_store.recompute_billable_hours(record)
        timesheet.updated_at = utcnow()
        db.flush()
        payload = {
            "timesheet_id": str(timesheet_id),
            "project_id": str(project_id),
            "worked_hours": float(record.worked_hours or 0),
            "billable_adjustment": float(record.billable_adjustment),
            "billable_hours": float(record.billable_hours),
        }

    logger.info("Billable adjustment on timesheet %s project %s set to %s by %s", timesheet_id, project_id, amount, user_id)
    return payload


def get_approval_history(db: Session, timesheet_id: uuid.UUID, project_id: Optional[uuid.UUID] = None):
    exists = db.query(Timesheet.id).filter(
        Timesheet.id == timesheet_id,
        Timesheet.deleted_at.is_(None),
    ).first()
    if not exists:
        raise NotFoundError("Timesheet not found", details={"timesheet_id": str(timesheet_id)})
    return approval_history.list_for_timesheet(db, timesheet_id, project_id)
