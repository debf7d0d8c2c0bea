"""
Project Endpoints Module

This module provides CRUD endpoints for projects plus the project-scoped views of
key steps and tasks. Every endpoint applies the visibility rules: admins and
bootstrap identities see everything, other employees see projects they are on
the team of or that are tagged with their department.
"""
from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from app.api import deps
from app.db.session import get_db
from app.models.key_step import KeyStepRead
from app.models.project import ProjectRead
from app.models.task import EnrichedTask
from app.schemas.identity import Identity
from app.schemas.project import ProjectCreate, ProjectUpdate
from app.services import key_steps as key_step_service
from app.services import projects as project_service
from app.services import tasks as task_service
from app.services import visibility
from app.services.notifier import CompletionNotifier

router = APIRouter()


@router.get("", response_model=List[ProjectRead])
def list_projects(
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Retrieve every project visible to the requester.

    Args:
        db: Database session
        identity: The resolved requester

    Returns:
        List[ProjectRead]: Projects with department tags, team and vendors attached
    """
    return project_service.list_visible_projects(db, identity)


@router.post("", response_model=ProjectRead)
def create_project(
    project_in: ProjectCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Create a new project.

    The requester is recorded as the creator. Department tags are stored
    normalized.
    """
    return project_service.create_project(db, project_in, identity)


@router.get("/{project_id}", response_model=ProjectRead)
def read_project(
    project_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Get a specific project by ID.

    Raises:
        404: If the project doesn't exist
        403: If the project exists but is not visible to the requester
    """
    return project_service.get_project(db, identity, project_id)


@router.put("/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: str,
    project_in: ProjectUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
    notifier: CompletionNotifier = Depends(deps.get_completion_notifier),
):
    """
    Replace a project, including its department tags, team and vendors.

    When this update moves the project into "Completed", admins are notified
    after the response has been produced; delivery problems never fail the
    update.
    """
    project, event = project_service.update_project(db, identity, project_id, project_in)
    if event is not None:
        background_tasks.add_task(notifier.handle, event)
    return project


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Delete a project together with its key steps and tasks."""
    project_service.delete_project(db, identity, project_id)
    return {"status": "success", "detail": "Project deleted"}


@router.get("/{project_id}/key-steps", response_model=List[KeyStepRead])
def list_project_key_steps(
    project_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Key steps of a project: each root followed by its sub-milestones."""
    visibility.ensure_project_visible(db, identity, project_id)
    return key_step_service.list_for_project(db, project_id)


@router.get("/{project_id}/tasks", response_model=List[EnrichedTask])
def list_project_tasks(
    project_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Tasks of a project with members and subtasks attached."""
    visibility.ensure_project_visible(db, identity, project_id)
    return task_service.tasks_for_project(db, project_id)
