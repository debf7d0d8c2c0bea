"""
Task Endpoints Module

This module provides CRUD endpoints for project tasks. Tasks are always returned
with their member ids and subtasks attached. Member and subtask lists sent on
create or update are the complete sets: omitted entries are removed.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api import deps
from app.core.errors import ValidationError
from app.db.session import get_db
from app.models.task import EnrichedTask, ProjectTask
from app.schemas.identity import Identity
from app.schemas.key_step import ClonedId
from app.schemas.task import TaskClone, TaskCreate, TaskUpdate
from app.services import tasks as task_service
from app.services import visibility

router = APIRouter()


def _visible_task(db: Session, identity: Identity, task_id: str) -> ProjectTask:
    task = task_service.get_task(db, task_id)
    visibility.ensure_project_visible(db, identity, task.project_id)
    return task


@router.get("", response_model=List[EnrichedTask])
def list_tasks(
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Retrieve every task across all projects visible to the requester.

    Members and subtasks are attached in a fixed number of queries no matter
    how many tasks are returned.
    """
    return task_service.all_tasks(db, identity)


@router.post("", response_model=EnrichedTask)
def create_task(
    task_in: TaskCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Create a task with its members and subtasks.

    The assigner defaults to the requester when not given.

    Raises:
        422: If the input is invalid
        403: If the project is not visible to the requester
        404: If the project doesn't exist
    """
    if not task_in.project_id:
        raise ValidationError.single("project_id", "Project ID is required")
    visibility.ensure_project_visible(db, identity, task_in.project_id)
    return task_service.create_task(db, task_in, identity)


@router.get("/{task_id}", response_model=EnrichedTask)
def read_task(
    task_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    _visible_task(db, identity, task_id)
    return task_service.get_enriched_task(db, task_id)


@router.put("/{task_id}", response_model=EnrichedTask)
def update_task(
    task_id: str,
    task_in: TaskUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Replace a task, its members and its subtasks.

    Sending an empty subtasks list deletes every subtask of the task.
    """
    _visible_task(db, identity, task_id)
    return task_service.update_task(db, task_id, task_in, identity)


@router.delete("/{task_id}")
def delete_task(
    task_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Delete a task with its members and subtasks."""
    _visible_task(db, identity, task_id)
    task_service.delete_task(db, task_id)
    return {"status": "success", "detail": "Task deleted"}


@router.post("/{task_id}/clone", response_model=ClonedId)
def clone_task(
    task_id: str,
    clone_in: Optional[TaskClone] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    _visible_task(db, identity, task_id)
    clone = task_service.clone_task(db, task_id, clone_in.task_name if clone_in else None)
    return ClonedId(new_id=clone.id)
