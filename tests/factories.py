"""Seed helpers and test doubles shared by the test modules."""
from typing import List, Optional

from app.core.errors import NotificationDispatchError
from app.core.security import create_access_token
from app.models.employee import Employee, UserAccount
from app.models.project import Project, ProjectDepartment, ProjectTeamMember
from app.models.task import ProjectTask, Subtask, SubtaskMember, TaskMember
from app.schemas.identity import Identity
from app.services.notification_sink import NotificationSink


def add_employee(db, name: str, emp_code: str, department: Optional[str] = None, email: Optional[str] = None):
    employee = Employee(name=name, emp_code=emp_code, department=department, email=email)
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def add_account(db, employee: Optional[Employee], role: str = "EMPLOYEE", username: Optional[str] = None):
    account = UserAccount(
        username=username or (employee.emp_code if employee else "orphan"),
        employee_id=employee.id if employee else None,
        role=role,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def add_project(
    db,
    title: str = "Plant upgrade",
    departments: Optional[List[str]] = None,
    team: Optional[List[str]] = None,
    **fields,
):
    fields.setdefault("start_date", "2024-01-01")
    fields.setdefault("end_date", "2024-12-31")
    project = Project(title=title, **fields)
    db.add(project)
    db.flush()
    db.add_all([ProjectDepartment(project_id=project.id, department=d) for d in departments or []])
    db.add_all([ProjectTeamMember(project_id=project.id, employee_id=e) for e in team or []])
    db.commit()
    db.refresh(project)
    return project


def add_task(db, project_id: str, assigner_id: str, members=(), subtasks=(), **fields):
    """``subtasks`` holds (title, [assignee ids], legacy assigned_to) triples."""
    task = ProjectTask(
        project_id=project_id,
        task_name=fields.pop("task_name", "Survey site"),
        assigner_id=assigner_id,
        **fields,
    )
    db.add(task)
    db.flush()
    db.add_all([TaskMember(task_id=task.id, employee_id=e) for e in members])
    for title, assignees, legacy in subtasks:
        subtask = Subtask(task_id=task.id, title=title, assigned_to=legacy)
        db.add(subtask)
        db.flush()
        db.add_all([SubtaskMember(subtask_id=subtask.id, employee_id=e) for e in assignees])
    db.commit()
    db.refresh(task)
    return task


def identity_for(employee: Optional[Employee], role: str = "EMPLOYEE") -> Identity:
    if employee is None:
        return Identity(role=role)
    return Identity(
        role=role,
        employee_id=employee.id,
        department=employee.department,
        emp_code=employee.emp_code,
        employee_name=employee.name,
    )


class RecordingSink(NotificationSink):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    def send(self, to_email, template_kind, payload):
        if to_email in self.failing:
            raise NotificationDispatchError(to_email, "mailbox unavailable")
        self.sent.append((to_email, template_kind, payload))


def auth_headers(account: UserAccount) -> dict:
    return {"Authorization": f"Bearer {create_access_token(account.id)}"}
