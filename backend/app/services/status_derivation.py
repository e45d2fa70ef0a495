"""
Timesheet status derivation.

A timesheet's status is never written directly: it is computed from the
approval tracks of its per-project records, highest tier first.
"""

from typing import Optional, Sequence

from app.models.approval import ApprovalStatus, ReviewTier, RESOLVED_STATUSES, TimesheetProjectApproval
from app.models.timesheet import TimesheetStatus
from app.models.user import UserRole, role_value
from app.services.errors import AuthorizationError

ROLE_TIERS = {
    UserRole.lead.value: ReviewTier.lead,
    UserRole.manager.value: ReviewTier.manager,
    UserRole.super_admin.value: ReviewTier.manager,
    UserRole.management.value: ReviewTier.management,
}

REJECTED_STATUS = {
    ReviewTier.lead: TimesheetStatus.lead_rejected,
    ReviewTier.manager: TimesheetStatus.manager_rejected,
    ReviewTier.management: TimesheetStatus.management_rejected,
}

REJECTED_STATUSES = frozenset(REJECTED_STATUS.values())


def tier_for_role(role: str) -> ReviewTier:
    tier = ROLE_TIERS.get(role_value(role))
    if tier is None:
        raise AuthorizationError(f"Role '{role}' cannot review timesheets", details={"role": role_value(role)})
    return tier


def _tier_outcome(records: Sequence[TimesheetProjectApproval], tier: ReviewTier) -> Optional[str]:
    """'rejected', 'approved', or None (still pending, or nothing to review)."""
    tracks = [r.track(tier) for r in records]
    if tier == ReviewTier.lead:
        tracks = [t for t in tracks if t != ApprovalStatus.not_required]
        if not tracks:
            return None
    if any(t == ApprovalStatus.rejected for t in tracks):
        return "rejected"
    if all(t in RESOLVED_STATUSES for t in tracks):
        return "approved"
    return None


def derive_timesheet_status(
    records: Sequence[TimesheetProjectApproval],
    owner_role: str,
    current_status: TimesheetStatus,
    is_frozen: bool,
) -> TimesheetStatus:
    if current_status == TimesheetStatus.billed:
        return TimesheetStatus.billed
    if is_frozen:
        return TimesheetStatus.frozen
    if not records:
        return TimesheetStatus.draft

    outcome = _tier_outcome(records, ReviewTier.management)
    if outcome == "rejected":
        return TimesheetStatus.management_rejected
    if outcome == "approved":
        return TimesheetStatus.frozen

    outcome = _tier_outcome(records, ReviewTier.manager)
    if outcome == "rejected":
        return TimesheetStatus.manager_rejected
    if outcome == "approved":
        if role_value(owner_role) == UserRole.manager.value:
            return TimesheetStatus.management_pending
        return TimesheetStatus.manager_approved

    outcome = _tier_outcome(records, ReviewTier.lead)
    if outcome == "rejected":
        return TimesheetStatus.lead_rejected
    if outcome == "approved":
        return TimesheetStatus.lead_approved

    return TimesheetStatus.submitted
