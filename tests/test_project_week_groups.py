import pytest

from app.models.approval import ApprovalStatus
from app.services.errors import AuthorizationError, ValidationError
from app.services.team_review import ProjectWeekFilters, compute_group_status, get_project_week_groups
from app.services.team_review_approval import approve_for_project, approve_project_week
from conftest import WEEK_END, WEEK_START


def week_filters(**kwargs) -> ProjectWeekFilters:
    kwargs.setdefault("week_start", WEEK_START)
    kwargs.setdefault("week_end", WEEK_END)
    return ProjectWeekFilters(**kwargs)


def groups_for(db, user, role, **kwargs):
    return get_project_week_groups(db, user.user_id, role, week_filters(**kwargs))


def test_compute_group_status():
    P, A, R, N = (ApprovalStatus.pending, ApprovalStatus.approved, ApprovalStatus.rejected, ApprovalStatus.not_required)
    assert compute_group_status([P, P]).status == "pending"
    assert compute_group_status([A, N]).status == "approved"
    partial = compute_group_status([A, P, P])
    assert (partial.status, partial.sub_status) == ("partially_processed", "1 of 3 approved")
    rejected = compute_group_status([A, R])
    assert (rejected.status, rejected.sub_status) == ("rejected", "1 of 2 rejected")


def test_manager_sees_pending_project_week(db, factory):
    manager = factory.user("manager")
    employees = [factory.user("employee") for _ in range(2)]
    project = factory.project("Apollo", manager=manager, employees=employees)
    for e in employees:
        factory.timesheet(e, {project: 8})

    result = groups_for(db, manager, "manager")

    assert result["pagination"]["total"] == 1
    group = result["project_weeks"][0]
    assert group["project_name"] == "Apollo"
    assert group["week_label"] == "Mar 3-9, 2025"
    assert group["approval_status"] == "pending"
    assert group["total_users"] == 2
    assert group["total_hours"] == 16.0
    assert group["is_reopened"] is False


def test_status_filter_moves_group_between_tabs(db, factory):
    manager = factory.user("manager")
    employee = factory.user("employee")
    project = factory.project("Apollo", manager=manager, employees=[employee])
    factory.timesheet(employee, {project: 8})
    approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")

    assert groups_for(db, manager, "manager")["project_weeks"] == []
    approved = groups_for(db, manager, "manager", status="approved")["project_weeks"]
    assert [g["approval_status"] for g in approved] == ["approved"]
    assert groups_for(db, manager, "manager", status="all")["pagination"]["total"] == 1


def test_manager_waits_for_lead(db, factory):
    manager = factory.user("manager")
    lead = factory.user("lead")
    employee = factory.user("employee")
    project = factory.project("Apollo", manager=manager, lead=lead, employees=[employee])
    timesheet = factory.timesheet(employee, {project: 8})

    assert groups_for(db, manager, "manager", status="all")["project_weeks"] == []

    approve_for_project(db, timesheet.id, project.id, lead.user_id, "lead")
    # the lead has reviewed but not submitted their own week yet
    assert groups_for(db, manager, "manager", status="all")["project_weeks"] == []

    factory.timesheet(lead, {project: 8})
    groups = groups_for(db, manager, "manager", status="all")["project_weeks"]
    assert len(groups) == 1
    assert {u["user_role"] for u in groups[0]["users"]} == {"employee", "lead"}


def test_lead_waits_for_all_employees(db, factory):
    lead = factory.user("lead")
    first, second = factory.user("employee"), factory.user("employee")
    project = factory.project("Apollo", lead=lead, employees=[first, second])
    factory.timesheet(first, {project: 8})

    assert groups_for(db, lead, "lead")["project_weeks"] == []

    factory.timesheet(second, {project: 7})
    groups = groups_for(db, lead, "lead")["project_weeks"]
    assert len(groups) == 1
    assert groups[0]["total_users"] == 2


def test_invisible_tracks_do_not_count(db, factory):
    lead = factory.user("lead")
    employee = factory.user("employee")
    project = factory.project("Apollo", lead=lead, employees=[employee])
    timesheet = factory.timesheet(employee, {project: 8})
    approve_for_project(db, timesheet.id, project.id, lead.user_id, "lead")
    factory.timesheet(lead, {project: 8})

    groups = groups_for(db, lead, "lead", status="all")["project_weeks"]

    assert len(groups) == 1
    assert groups[0]["approval_status"] == "approved"
    assert [u["user_id"] for u in groups[0]["users"]] == [str(employee.user_id)]


def test_management_waits_for_manager(db, factory):
    manager = factory.user("manager")
    management = factory.user("management")
    employee = factory.user("employee")
    project = factory.project("Apollo", manager=manager, employees=[employee])
    factory.timesheet(employee, {project: 8})
    approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")

    assert groups_for(db, management, "management")["project_weeks"] == []

    factory.timesheet(manager, {project: 5})
    groups = groups_for(db, management, "management")["project_weeks"]
    assert len(groups) == 1
    assert groups[0]["total_users"] == 2


def test_reopened_week(db, factory):
    manager = factory.user("manager")
    employees = [factory.user("employee") for _ in range(4)]
    project = factory.project("Apollo", manager=manager, employees=employees)
    for e in employees[:3]:
        factory.timesheet(e, {project: 8})
    approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")
    factory.timesheet(employees[3], {project: 8})

    group = groups_for(db, manager, "manager")["project_weeks"][0]

    assert group["is_reopened"] is True
    assert group["original_approval_count"] == 3
    assert group["reopened_by_submission"] == str(employees[3].user_id)
    assert group["approval_status"] == "partially_processed"


def test_hidden_late_submission_does_not_reopen(db, factory):
    manager = factory.user("manager")
    director = factory.user("management")
    employee = factory.user("employee")
    project = factory.project("Apollo", manager=manager, employees=[employee])
    factory.timesheet(employee, {project: 8})
    approve_project_week(db, project.id, WEEK_START, WEEK_END, manager.user_id, "manager")
    factory.timesheet(director, {project: 4})

    group = groups_for(db, manager, "manager", status="approved")["project_weeks"][0]

    assert group["approval_status"] == "approved"
    assert group["is_reopened"] is False
    assert [u["user_id"] for u in group["users"]] == [str(employee.user_id)]


def test_scope_sort_and_pagination(db, factory):
    management = factory.user("management")
    for name in ("Cobalt", "Apollo", "Borealis"):
        employee = factory.user("employee")
        project = factory.project(name, employees=[employee])
        factory.timesheet(employee, {project: 8})

    first = groups_for(db, management, "management", sort_by="project_name", sort_order="asc", limit=2)
    second = groups_for(db, management, "management", sort_by="project_name", sort_order="asc", limit=2, page=2)

    assert [g["project_name"] for g in first["project_weeks"]] == ["Apollo", "Borealis"]
    assert [g["project_name"] for g in second["project_weeks"]] == ["Cobalt"]
    assert first["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
    searched = groups_for(db, management, "management", search="bor")
    assert [g["project_name"] for g in searched["project_weeks"]] == ["Borealis"]


def test_manager_scope_includes_training_projects(db, factory):
    manager = factory.user("manager")
    other_manager = factory.user("manager")
    employee = factory.user("employee")
    training = factory.project("Onboarding", manager=other_manager, employees=[employee], project_type="training")
    regular = factory.project("Zephyr", manager=other_manager, employees=[employee])
    factory.timesheet(employee, {training: 4, regular: 4})

    names = [g["project_name"] for g in groups_for(db, manager, "manager")["project_weeks"]]
    assert names == ["Onboarding"]


def test_lead_scope_excludes_training_projects(db, factory):
    lead = factory.user("lead")
    employee = factory.user("employee")
    training = factory.project("Onboarding", lead=lead, employees=[employee], project_type="training")
    factory.timesheet(employee, {training: 4})

    assert groups_for(db, lead, "lead")["project_weeks"] == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"status": "archived"},
        {"sort_by": "owner"},
        {"sort_order": "sideways"},
        {"limit": 101},
        {"page": 0},
        {"week_start": WEEK_END, "week_end": WEEK_START},
    ],
)
def test_invalid_filters(db, factory, kwargs):
    manager = factory.user("manager")
    with pytest.raises(ValidationError):
        groups_for(db, manager, "manager", **kwargs)


def test_employee_cannot_list_project_weeks(db, factory):
    employee = factory.user("employee")
    with pytest.raises(AuthorizationError):
        groups_for(db, employee, "employee")
