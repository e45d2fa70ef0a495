"""
Which (timesheet, approval record) pairs a reviewer tier may see.

Visibility is decided first on the timesheet's aggregate status and owner role.
When that says no, the per-project tracks get a second look so that a project
already processed at this tier stays visible even after another project on the
same timesheet moved the aggregate status elsewhere.
"""

from app.models.approval import ApprovalStatus, ReviewTier, TimesheetProjectApproval
from app.models.timesheet import TimesheetStatus
from app.models.user import UserRole, role_value

ANY_OWNER = None

_EMPLOYEE = frozenset({UserRole.employee.value})
_DIRECT_SUBMITTERS = frozenset({UserRole.employee.value, UserRole.lead.value, UserRole.manager.value})

# tier -> {aggregate status: owner roles allowed (None means any owner)}
STATUS_TABLE = {
    ReviewTier.lead: {
        TimesheetStatus.submitted: _EMPLOYEE,
        TimesheetStatus.lead_approved: _EMPLOYEE,
        TimesheetStatus.lead_rejected: _EMPLOYEE,
    },
    ReviewTier.manager: {
        TimesheetStatus.submitted: _DIRECT_SUBMITTERS,
        TimesheetStatus.lead_approved: ANY_OWNER,
        TimesheetStatus.lead_rejected: ANY_OWNER,
        TimesheetStatus.manager_approved: ANY_OWNER,
        TimesheetStatus.manager_rejected: ANY_OWNER,
        TimesheetStatus.management_rejected: ANY_OWNER,
    },
    ReviewTier.management: {
        TimesheetStatus.manager_approved: ANY_OWNER,
        TimesheetStatus.management_pending: ANY_OWNER,
        TimesheetStatus.frozen: ANY_OWNER,
    },
}

# tier -> [(track, statuses that make the record visible)]
TRACK_TABLE = {
    ReviewTier.lead: [
        (ReviewTier.lead, frozenset({ApprovalStatus.pending, ApprovalStatus.approved, ApprovalStatus.rejected})),
    ],
    ReviewTier.manager: [
        (ReviewTier.lead, frozenset({ApprovalStatus.approved, ApprovalStatus.rejected})),
        (ReviewTier.manager, frozenset({ApprovalStatus.approved, ApprovalStatus.rejected})),
    ],
    ReviewTier.management: [
        (ReviewTier.manager, frozenset({ApprovalStatus.approved})),
        (ReviewTier.management, frozenset({ApprovalStatus.pending, ApprovalStatus.approved})),
    ],
}


def visible_by_status(tier: ReviewTier, status: TimesheetStatus, owner_role: str) -> bool:
    table = STATUS_TABLE[tier]
    if status not in table:
        return False
    owners = table[status]
    return owners is ANY_OWNER or role_value(owner_role) in owners


def visible_by_tracks(tier: ReviewTier, record: TimesheetProjectApproval) -> bool:
    return any(record.track(track) in statuses for track, statuses in TRACK_TABLE[tier])


def is_visible(tier: ReviewTier, status: TimesheetStatus, owner_role: str, record: TimesheetProjectApproval) -> bool:
    if status == TimesheetStatus.draft:
        return False
    return visible_by_status(tier, status, owner_role) or visible_by_tracks(tier, record)
