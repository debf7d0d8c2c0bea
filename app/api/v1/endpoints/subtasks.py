from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api import deps
from app.db.session import get_db
from app.models.task import SubtaskRead
from app.schemas.identity import Identity
from app.schemas.task import SubtaskPatch
from app.services import tasks as task_service
from app.services import visibility

router = APIRouter()


@router.patch("/{subtask_id}", response_model=SubtaskRead)
def patch_subtask(
    subtask_id: str,
    patch: SubtaskPatch,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Toggle completion or move the dates of a single subtask.

    Only the fields present in the request body are changed.
    """
    subtask = task_service.get_subtask(db, subtask_id)
    task = task_service.get_task(db, subtask.task_id)
    visibility.ensure_project_visible(db, identity, task.project_id)
    return task_service.patch_subtask(db, subtask_id, patch)
