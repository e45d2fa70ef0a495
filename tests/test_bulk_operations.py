import pytest

from app.models.approval import ApprovalStatus, TimesheetProjectApproval
from app.models.timesheet import TimeEntry, Timesheet, TimesheetStatus
from app.services import approval_history
from app.services.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from app.services.team_review_approval import (
    approve_for_project,
    approve_project_week,
    bulk_bill_timesheets,
    bulk_freeze_project_week,
    bulk_verify_timesheets,
    reject_project_week,
)
from conftest import WEEK_END, WEEK_START


@pytest.fixture()
def crew(factory):
    manager = factory.user("manager", "Maya Manager")
    management = factory.user("management", "Mona Management")
    employees = [factory.user("employee", f"Employee {i}") for i in range(5)]
    project = factory.project("Apollo", manager=manager, employees=employees)
    timesheets = [factory.timesheet(e, {project: 8}) for e in employees]
    return manager, management, employees, project, timesheets


def statuses(db, timesheets):
    db.expire_all()
    return [db.get(Timesheet, t.id).status for t in timesheets]


def test_approve_project_week_approves_everyone(db, crew):
    manager, management, employees, project, timesheets = crew

    result = approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")

    assert result.to_dict() == {
        "project_week": "Mar 3-9, 2025",
        "affected_users": 5,
        "affected_timesheets": 5,
        "skipped_self_approvals": 0,
        "skipped_count": 0,
    }
    assert statuses(db, timesheets) == [TimesheetStatus.manager_approved] * 5


def test_approve_project_week_skips_own_and_already_approved(db, factory, crew):
    manager, management, employees, project, timesheets = crew
    factory.timesheet(manager, {project: 6})
    approve_for_project(db, timesheets[0].id, project.id, manager.user_id, "manager")

    result = approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")

    assert result.skipped_self_approvals == 1
    assert result.skipped_count == 1
    assert len(result.affected_timesheets) == 4


def test_approve_project_week_without_timesheets(db, factory):
    manager = factory.user("manager")
    project = factory.project("Empty", manager=manager)
    with pytest.raises(NotFoundError):
        approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")


def test_approve_project_week_is_all_or_nothing(db, crew, monkeypatch):
    manager, management, employees, project, timesheets = crew
    calls = []
    real_record = approval_history.record

    def failing_record(*args, **kwargs):
        calls.append(1)
        if len(calls) == 3:
            raise RuntimeError("history store unavailable")
        return real_record(*args, **kwargs)

    monkeypatch.setattr(approval_history, "record", failing_record)

    with pytest.raises(RuntimeError):
        approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")

    assert statuses(db, timesheets) == [TimesheetStatus.submitted] * 5
    records = db.query(TimesheetProjectApproval).filter(TimesheetProjectApproval.project_id == project.id).all()
    assert all(r.manager_status == ApprovalStatus.pending for r in records)


def test_reject_project_week(db, crew):
    manager, management, employees, project, timesheets = crew

    result = reject_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager", "Sprint hours need a recount")

    assert len(result.affected_timesheets) == 5
    assert statuses(db, timesheets) == [TimesheetStatus.manager_rejected] * 5
    entries = db.query(TimeEntry).filter(TimeEntry.project_id == project.id).all()
    assert all(e.is_rejected for e in entries)


def test_reject_project_week_requires_reason(db, crew):
    manager, management, employees, project, timesheets = crew
    with pytest.raises(ValidationError):
        reject_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager", None)


def test_bulk_freeze_freezes_only_manager_approved(db, crew):
    manager, management, employees, project, timesheets = crew
    approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")
    for t in timesheets[:2]:
        approve_for_project(db, t.id, project.id, management.user_id, "management")

    result = bulk_freeze_project_week(db, project.id, WEEK_START, WEEK_END, management.user_id, "management")

    assert result["frozen_count"] == 3
    assert result["skipped_count"] == 2
    assert result["failed"] == []
    assert statuses(db, timesheets) == [TimesheetStatus.frozen] * 5
    assert all(db.get(Timesheet, t.id).is_frozen for t in timesheets)


def test_bulk_freeze_blocked_by_unreviewed_timesheets(db, crew):
    manager, management, employees, project, timesheets = crew
    for t in timesheets[:4]:
        approve_for_project(db, t.id, project.id, manager.user_id, "manager")

    with pytest.raises(InvalidTransitionError) as excinfo:
        bulk_freeze_project_week(db, project.id, WEEK_START, WEEK_END, management.user_id, "management")

    blocking = excinfo.value.details["blocking_users"]
    assert [b["user_id"] for b in blocking] == [str(employees[4].user_id)]
    assert blocking[0]["status"] == "submitted"
    assert statuses(db, timesheets)[:4] == [TimesheetStatus.manager_approved] * 4


def test_bulk_freeze_requires_management(db, crew):
    manager, management, employees, project, timesheets = crew
    with pytest.raises(AuthorizationError):
        bulk_freeze_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")


def test_bulk_verify_isolates_failures(db, crew):
    manager, management, employees, project, timesheets = crew
    for t in timesheets[:2]:
        approve_for_project(db, t.id, project.id, manager.user_id, "manager")

    result = bulk_verify_timesheets(db, [t.id for t in timesheets[:3]], management.user_id, "management")

    assert result["verified_count"] == 2
    assert result["failed_count"] == 1
    assert result["failures"][0]["timesheet_id"] == str(timesheets[2].id)
    assert statuses(db, timesheets[:3]) == [TimesheetStatus.frozen, TimesheetStatus.frozen, TimesheetStatus.submitted]
    assert db.get(Timesheet, timesheets[0].id).verified_by_id == management.user_id


def test_bulk_bill_only_bills_frozen(db, crew):
    manager, management, employees, project, timesheets = crew
    approve_for_project(db, timesheets[0].id, project.id, manager.user_id, "manager")
    bulk_verify_timesheets(db, [timesheets[0].id], management.user_id, "management")

    result = bulk_bill_timesheets(db, [timesheets[0].id, timesheets[1].id], management.user_id, "management")

    assert result["billed_count"] == 1
    assert result["failed_count"] == 1
    billed = db.get(Timesheet, timesheets[0].id)
    assert billed.status == TimesheetStatus.billed
    assert billed.billed_at is not None


def test_bulk_verify_requires_management(db, crew):
    manager, management, employees, project, timesheets = crew
    with pytest.raises(AuthorizationError):
        bulk_verify_timesheets(db, [timesheets[0].id], manager.user_id, "manager")


def test_bulk_freeze_approves_every_project_on_the_timesheet(db, factory):
    manager = factory.user("manager")
    management = factory.user("management")
    employee = factory.user("employee")
    apollo = factory.project("Apollo", manager=manager, employees=[employee])
    borealis = factory.project("Borealis", manager=manager, employees=[employee])
    timesheet = factory.timesheet(employee, {apollo: 8, borealis: 4})
    approve_for_project(db, timesheet.id, apollo.id, manager.user_id, "manager")
    approve_for_project(db, timesheet.id, borealis.id, manager.user_id, "manager")

    result = bulk_freeze_project_week(db, apollo.id, WEEK_START, WEEK_END, management.user_id, "management")

    assert result["frozen_count"] == 1
    db.expire_all()
    records = db.query(TimesheetProjectApproval).filter(TimesheetProjectApproval.timesheet_id == timesheet.id).all()
    assert {r.project_id: r.management_status for r in records} == {
        apollo.id: ApprovalStatus.approved,
        borealis.id: ApprovalStatus.approved,
    }
    frozen = db.get(Timesheet, timesheet.id)
    assert frozen.status == TimesheetStatus.frozen and frozen.is_frozen
    assert len(approval_history.list_for_timesheet(db, timesheet.id)) == 4
