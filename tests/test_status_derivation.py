import pytest

from app.models.approval import ApprovalStatus, ReviewTier, TimesheetProjectApproval
from app.models.timesheet import TimesheetStatus
from app.services.errors import AuthorizationError
from app.services.status_derivation import derive_timesheet_status, tier_for_role

P = ApprovalStatus.pending
A = ApprovalStatus.approved
R = ApprovalStatus.rejected
N = ApprovalStatus.not_required


def rec(lead, manager, management) -> TimesheetProjectApproval:
    return TimesheetProjectApproval(lead_status=lead, manager_status=manager, management_status=management)


def derive(records, owner_role="employee", current=TimesheetStatus.submitted, is_frozen=False):
    return derive_timesheet_status(records, owner_role, current, is_frozen)


def test_no_records_is_draft():
    assert derive([], current=TimesheetStatus.draft) == TimesheetStatus.draft


def test_billed_and_frozen_are_sticky():
    records = [rec(P, P, P)]
    assert derive(records, current=TimesheetStatus.billed, is_frozen=True) == TimesheetStatus.billed
    assert derive(records, is_frozen=True) == TimesheetStatus.frozen


def test_fresh_submission_is_submitted():
    assert derive([rec(P, P, P)]) == TimesheetStatus.submitted
    assert derive([rec(N, P, P)], owner_role="lead") == TimesheetStatus.submitted


def test_lead_approval_needs_every_lead_track():
    assert derive([rec(A, P, P), rec(P, P, P)]) == TimesheetStatus.submitted
    assert derive([rec(A, P, P), rec(N, P, P)]) == TimesheetStatus.lead_approved


def test_lead_rejection_short_circuits():
    assert derive([rec(R, P, P), rec(A, P, P)]) == TimesheetStatus.lead_rejected


def test_manager_approval_depends_on_owner_role():
    records = [rec(N, A, P), rec(A, A, P)]
    assert derive(records) == TimesheetStatus.manager_approved
    assert derive([rec(N, A, P)], owner_role="manager") == TimesheetStatus.management_pending


def test_manager_rejection_beats_lead_approval():
    assert derive([rec(A, R, P), rec(A, A, P)]) == TimesheetStatus.manager_rejected


def test_management_outcomes():
    assert derive([rec(A, A, A), rec(N, A, A)]) == TimesheetStatus.frozen
    assert derive([rec(A, A, R), rec(N, A, A)]) == TimesheetStatus.management_rejected
    # one project still open at management keeps the manager-level status
    assert derive([rec(A, A, A), rec(N, A, P)]) == TimesheetStatus.manager_approved


@pytest.mark.parametrize(
    "role, tier",
    [
        ("lead", ReviewTier.lead),
        ("manager", ReviewTier.manager),
        ("super_admin", ReviewTier.manager),
        ("management", ReviewTier.management),
    ],
)
def test_tier_for_role(role, tier):
    assert tier_for_role(role) == tier


def test_employee_has_no_tier():
    with pytest.raises(AuthorizationError):
        tier_for_role("employee")
