"""
Reopening detection for project-weeks.

A project-week is "reopened" when every record a tier had to review was
resolved at some point, and afterwards a timesheet was submitted (or
resubmitted) whose track on that tier is pending again. Pure functions over
already-loaded rows; nothing here touches the session.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from app.models.approval import ApprovalStatus, ReviewTier, RESOLVED_STATUSES, TimesheetProjectApproval
from app.models.timesheet import Timesheet
from app.services.dates import as_utc


@dataclass(frozen=True)
class ReopeningInfo:
    is_reopened: bool = False
    reopened_at: Optional[datetime] = None
    reopened_by_submission: Optional[uuid.UUID] = None
    original_approval_count: int = 0

    def to_dict(self) -> dict:
        return {
            "is_reopened": self.is_reopened,
            "reopened_at": self.reopened_at.isoformat() if self.reopened_at else None,
            "reopened_by_submission": str(self.reopened_by_submission) if self.reopened_by_submission else None,
            "original_approval_count": self.original_approval_count,
        }


NOT_REOPENED = ReopeningInfo()


def submission_time(timesheet: Timesheet) -> Optional[datetime]:
    return as_utc(timesheet.submitted_at or timesheet.created_at)


def _resolved_at(record: TimesheetProjectApproval, tier: ReviewTier) -> Optional[datetime]:
    return as_utc(getattr(record, tier.approved_at_field) or record.updated_at)


def detect_reopening(
    rows: Sequence[tuple[TimesheetProjectApproval, Timesheet]],
    tier: ReviewTier,
) -> ReopeningInfo:
    """rows are the project-week records visible to the tier, oldest record first."""
    resolved_at = None
    resolved_count = 0
    for record, _ in rows:
        if record.track(tier) not in RESOLVED_STATUSES:
            break
        at = _resolved_at(record, tier)
        if at is not None and (resolved_at is None or at > resolved_at):
            resolved_at = at
        resolved_count += 1

    if resolved_count == 0 or resolved_at is None:
        return NOT_REOPENED

    # Lead-owned timesheets are included here too; their pending manager
    # track reopens the week for the manager tier.
    late = []
    for record, timesheet in rows:
        submitted = submission_time(timesheet)
        if submitted is not None and submitted > resolved_at and record.track(tier) == ApprovalStatus.pending:
            late.append((submitted, timesheet))

    if not late:
        return NOT_REOPENED

    first_at, first = min(late, key=lambda item: item[0])
    return ReopeningInfo(
        is_reopened=True,
        reopened_at=first_at,
        reopened_by_submission=first.user_id,
        original_approval_count=resolved_count,
    )
