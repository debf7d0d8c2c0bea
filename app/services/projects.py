"""
Project reads and writes.

Department tags, team members and vendors live in their own join tables and are
attached to projects in bulk (one query per join table). Updates fully replace
those join rows. A status change into "Completed" yields a ProjectStatusChanged
event that the caller publishes once the write has committed.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlmodel import Session, col, select

from app.core.errors import FieldError
from app.db.session import reading, transaction
from app.models.key_step import KeyStep
from app.models.project import (
    Project,
    ProjectDepartment,
    ProjectFile,
    ProjectRead,
    ProjectTeamMember,
    ProjectVendor,
)
from app.models.task import ProjectTask
from app.schemas.identity import Identity
from app.schemas.project import ProjectCreate, ProjectUpdate
from app.services import department
from app.services import tasks as task_service
from app.services import validation as v
from app.services import visibility
from app.services.events import ProjectStatusChanged

logger = logging.getLogger(__name__)


def _validated(data: ProjectCreate, current: Optional[Project] = None) -> dict:
    errors: List[FieldError] = []
    v.require(errors, "title", data.title, "Project title is required")
    start = v.date_field(errors, "start_date", data.start_date, required=True)
    end = v.date_field(errors, "end_date", data.end_date, required=True)
    v.date_order(errors, start, end)

    progress = 0
    if data.progress is not None and data.progress != "":
        progress = v.int_in_range(
            errors, "progress", data.progress, minimum=0, maximum=100,
            message="Progress must be a number between 0 and 100",
        )

    departments = v.non_blank_items(errors, "department", data.department, "All departments must be non-empty")
    team = v.non_blank_items(errors, "team", data.team, "All team member IDs must be non-empty")
    vendors = v.non_blank_items(errors, "vendors", data.vendors, "All vendor names must be non-empty")
    v.raise_if_any(errors)

    fields = {
        "title": data.title.strip(),
        "client_name": data.client_name,
        "description": data.description,
        "location": data.location,
        "status": (data.status or "").strip() or (current.status if current else "open"),
        "progress": progress,
        "start_date": start,
        "end_date": end,
    }
    if data.project_code and data.project_code.strip():
        fields["project_code"] = data.project_code.strip()
    return {
        "fields": fields,
        "departments": sorted(department.normalize_all(departments)),
        "team": list(dict.fromkeys(team)),
        "vendors": vendors,
    }


# --- hydration ---------------------------------------------------------------

def _vendors_by_project(db: Session, project_ids: Sequence[str]) -> Dict[str, List[str]]:
    rows = db.exec(
        select(ProjectVendor).where(col(ProjectVendor.project_id).in_(project_ids)).order_by(col(ProjectVendor.id))
    ).all()
    vendors: Dict[str, List[str]] = defaultdict(list)
    for row in rows:
        vendors[row.project_id].append(row.vendor_name)
    return vendors


def hydrate(
    db: Session,
    projects: Sequence[Project],
    facts: Optional[visibility.MembershipFacts] = None,
) -> List[ProjectRead]:
    """Attach department tags, team and vendors to each project, in input order."""
    if not projects:
        return []
    ids = [p.id for p in projects]
    if facts is None:
        facts = visibility.fetch_membership_facts(db, ids)
    with reading("Load project vendors"):
        vendors = _vendors_by_project(db, ids)

    return [
        ProjectRead(
            **p.model_dump(),
            department=facts.departments_of(p.id),
            team=facts.team_of(p.id),
            vendors=vendors.get(p.id, []),
        )
        for p in projects
    ]


def list_visible_projects(db: Session, identity: Identity) -> List[ProjectRead]:
    """
    Every project the requester may see, newest first.

    The membership facts fetched for the visibility check are reused to hydrate
    the result, so the whole listing costs a fixed number of queries.
    """
    with reading("List projects"):
        projects = db.exec(select(Project).order_by(col(Project.created_at).desc())).all()
    facts = visibility.fetch_membership_facts(db, [p.id for p in projects])
    visible = visibility.resolve(identity, projects, facts)
    return hydrate(db, visible, facts)


def get_project(db: Session, identity: Identity, project_id: str) -> ProjectRead:
    project = visibility.ensure_project_visible(db, identity, project_id)
    return hydrate(db, [project])[0]


# --- writes ------------------------------------------------------------------

def _replace_join_rows(db: Session, project_id: str, departments: List[str], team: List[str], vendors: List[str]):
    db.exec(delete(ProjectDepartment).where(ProjectDepartment.project_id == project_id))
    db.exec(delete(ProjectTeamMember).where(ProjectTeamMember.project_id == project_id))
    db.exec(delete(ProjectVendor).where(ProjectVendor.project_id == project_id))
    db.add_all([ProjectDepartment(project_id=project_id, department=d) for d in departments])
    db.add_all([ProjectTeamMember(project_id=project_id, employee_id=e) for e in team])
    db.add_all([ProjectVendor(project_id=project_id, vendor_name=n) for n in vendors])


def create_project(db: Session, data: ProjectCreate, identity: Identity) -> ProjectRead:
    clean = _validated(data)
    project = Project(created_by_employee_id=identity.employee_id, **clean["fields"])

    with transaction(db, "Create project"):
        db.add(project)
        db.flush()
        _replace_join_rows(db, project.id, clean["departments"], clean["team"], clean["vendors"])
    db.refresh(project)
    logger.info("Created project %s (%s)", project.id, project.project_code)
    return hydrate(db, [project])[0]


def update_project(
    db: Session, identity: Identity, project_id: str, data: ProjectUpdate
) -> Tuple[ProjectRead, Optional[ProjectStatusChanged]]:
    """
    Replace a project and its join rows.

    Returns the updated project and, when the stored status moved into
    "Completed" with this write, the event to publish after commit. The
    transition is judged against the status read before the write, never
    against the payload alone.
    """
    project = visibility.ensure_project_visible(db, identity, project_id)
    clean = _validated(data, current=project)
    previous_status = project.status

    with transaction(db, "Update project"):
        for key, value in clean["fields"].items():
            setattr(project, key, value)
        project.updated_at = datetime.utcnow().isoformat()
        db.add(project)
        _replace_join_rows(db, project.id, clean["departments"], clean["team"], clean["vendors"])
    db.refresh(project)

    event = ProjectStatusChanged(
        project_id=project.id,
        old_status=previous_status,
        new_status=project.status,
        actor=identity,
    )
    if not event.completes_project:
        event = None
    else:
        logger.info("Project %s completed (was %r)", project.id, previous_status)
    return hydrate(db, [project])[0], event


def delete_project(db: Session, identity: Identity, project_id: str) -> None:
    """Delete a project with its join rows, file metadata, key steps and tasks."""
    project = visibility.ensure_project_visible(db, identity, project_id)

    with reading("Load project tasks"):
        task_ids = db.exec(select(ProjectTask.id).where(ProjectTask.project_id == project_id)).all()
    with transaction(db, "Delete project"):
        for task_id in task_ids:
            task_service.remove_task_rows(db, task_id)
        db.exec(delete(KeyStep).where(KeyStep.project_id == project_id))
        db.exec(delete(ProjectFile).where(ProjectFile.project_id == project_id))
        _replace_join_rows(db, project_id, [], [], [])
        db.delete(project)
    logger.info("Deleted project %s with %d task(s)", project_id, len(task_ids))
