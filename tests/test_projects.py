import pytest
from sqlmodel import select

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.key_step import KeyStep
from app.models.project import Project, ProjectDepartment, ProjectTeamMember, ProjectVendor
from app.models.task import ProjectTask, Subtask, SubtaskMember, TaskMember
from app.schemas.project import ProjectCreate, ProjectUpdate
from app.services import projects
from tests.factories import add_employee, add_project, add_task, identity_for


def _payload(**fields):
    data = {
        "title": "Solar farm",
        "client_name": "Volta Power",
        "start_date": "2024-01-01",
        "end_date": "2024-06-30",
    }
    data.update(fields)
    return data


@pytest.fixture()
def admin(db_session):
    return identity_for(add_employee(db_session, "Yaw Boateng", "E0500", department="Management"), role="ADMIN")


def test_create_normalizes_departments_and_records_creator(db_session, admin):
    created = projects.create_project(
        db_session,
        ProjectCreate(**_payload(department=["Engineering ", "engineering", "Operations"], vendors=["Acme"])),
        admin,
    )

    assert created.department == ["engineering", "operation"]
    assert created.vendors == ["Acme"]
    assert created.status == "open"
    assert created.progress == 0
    assert created.created_by_employee_id == admin.employee_id
    assert created.project_code


@pytest.mark.parametrize(
    "fields, field, message",
    [
        ({"title": ""}, "title", "Project title is required"),
        ({"end_date": None}, "end_date", "end_date is required"),
        ({"start_date": "01/02/2024"}, "start_date", "Invalid date format"),
        ({"start_date": "2024-07-01"}, "dates", "Start date must be before or equal to end date"),
        ({"progress": 120}, "progress", "Progress must be a number between 0 and 100"),
        ({"vendors": ["Acme", " "]}, "vendors", "All vendor names must be non-empty"),
    ],
)
def test_create_rejects_invalid_input(db_session, admin, fields, field, message):
    with pytest.raises(ValidationError) as exc:
        projects.create_project(db_session, ProjectCreate(**_payload(**fields)), admin)

    assert (exc.value.errors[0].field, exc.value.errors[0].message) == (field, message)
    assert db_session.exec(select(Project)).all() == []


def test_list_visible_projects_hydrates_and_filters(db_session, count_queries):
    engineer = add_employee(db_session, "Kofi", "E0300", department="Engineering ")
    teammate = add_employee(db_session, "Abena", "E0301", department="Finance")
    tagged = add_project(db_session, title="Tagged", departments=["engineering"])
    staffed = add_project(db_session, title="Staffed", team=[teammate.id])
    add_project(db_session, title="Unassigned")
    identity = identity_for(engineer)
    tagged_id, staffed_id = tagged.id, staffed.id

    with count_queries() as counter:
        visible = projects.list_visible_projects(db_session, identity)

    assert [p.id for p in visible] == [tagged_id]
    assert visible[0].department == ["engineering"]
    # projects, departments, team, vendors
    assert counter.count == 4
    assert [p.id for p in projects.list_visible_projects(db_session, identity_for(teammate))] == [staffed_id]


def test_get_project_enforces_visibility(db_session):
    outsider = add_employee(db_session, "Ama", "E0200", department="Finance")
    project = add_project(db_session, departments=["engineering"])

    with pytest.raises(AuthorizationError):
        projects.get_project(db_session, identity_for(outsider), project.id)
    with pytest.raises(NotFoundError):
        projects.get_project(db_session, identity_for(outsider), "missing")


def test_update_fully_replaces_join_rows(db_session, admin):
    project = add_project(db_session, departments=["engineering"], team=["emp-1", "emp-2"])
    project_id = project.id

    updated, event = projects.update_project(
        db_session, admin, project_id,
        ProjectUpdate(**_payload(department=["Finance"], team=["emp-3"], status="In Progress", progress="40")),
    )

    assert updated.department == ["finance"]
    assert updated.team == ["emp-3"]
    assert updated.progress == 40
    assert event is None
    team_rows = db_session.exec(select(ProjectTeamMember).where(ProjectTeamMember.project_id == project_id)).all()
    assert [r.employee_id for r in team_rows] == ["emp-3"]


def test_update_into_completed_yields_event_once(db_session, admin):
    project = add_project(db_session, status="In Progress")
    project_id = project.id

    _, first = projects.update_project(db_session, admin, project_id, ProjectUpdate(**_payload(status="Completed")))
    _, second = projects.update_project(db_session, admin, project_id, ProjectUpdate(**_payload(status="Completed")))

    assert first is not None
    assert (first.old_status, first.new_status) == ("In Progress", "Completed")
    assert second is None


def test_update_with_blank_status_keeps_current_status(db_session, admin):
    project = add_project(db_session, status="In Progress")

    updated, _ = projects.update_project(db_session, admin, project.id, ProjectUpdate(**_payload()))

    assert updated.status == "In Progress"


def test_delete_removes_everything_owned_by_the_project(db_session, admin):
    lead = add_employee(db_session, "Esi", "E0101")
    project = add_project(db_session, departments=["engineering"], team=["emp-1"])
    project_id = project.id
    db_session.add(ProjectVendor(project_id=project_id, vendor_name="Acme"))
    db_session.add(KeyStep(project_id=project_id, title="Design", start_date="2024-01-01", end_date="2024-02-01"))
    db_session.commit()
    add_task(db_session, project_id, lead.id, members=["emp-1"], subtasks=[("Measure", ["emp-1"], None)])

    projects.delete_project(db_session, admin, project_id)

    for model in (
        Project, ProjectDepartment, ProjectTeamMember, ProjectVendor, KeyStep,
        ProjectTask, TaskMember, Subtask, SubtaskMember,
    ):
        assert db_session.exec(select(model)).all() == [], model.__name__
