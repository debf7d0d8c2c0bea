"""
Key Step Endpoints Module

Key steps are project milestones with at most one level of sub-milestones.
Access follows the visibility of the owning project.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api import deps
from app.core.errors import ValidationError
from app.db.session import get_db
from app.models.key_step import KeyStepRead
from app.schemas.identity import Identity
from app.schemas.key_step import ClonedId, KeyStepClone, KeyStepCreate, KeyStepUpdate
from app.services import key_steps as key_step_service
from app.services import visibility

router = APIRouter()


def _visible_step(db: Session, identity: Identity, key_step_id: str):
    step = key_step_service.get_key_step(db, key_step_id)
    visibility.ensure_project_visible(db, identity, step.project_id)
    return step


@router.post("", response_model=KeyStepRead)
def create_key_step(
    step_in: KeyStepCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Create a root key step or, when parent_key_step_id is set, a sub-milestone.

    Sub-milestones get the next free phase under their parent.
    """
    if step_in.parent_key_step_id:
        parent = _visible_step(db, identity, step_in.parent_key_step_id)
        project_id = parent.project_id
    elif step_in.project_id:
        project_id = step_in.project_id
    else:
        raise ValidationError.single("project_id", "Project ID is required")
    visibility.ensure_project_visible(db, identity, project_id)
    return key_step_service.create_key_step(db, step_in)


@router.get("/{key_step_id}", response_model=KeyStepRead)
def read_key_step(
    key_step_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    return _visible_step(db, identity, key_step_id)


@router.put("/{key_step_id}", response_model=KeyStepRead)
def update_key_step(
    key_step_id: str,
    step_in: KeyStepUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Replace every descriptive field of a key step."""
    _visible_step(db, identity, key_step_id)
    return key_step_service.update_key_step(db, key_step_id, step_in)


@router.delete("/{key_step_id}")
def delete_key_step(
    key_step_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Delete a key step and its sub-milestones."""
    _visible_step(db, identity, key_step_id)
    removed = key_step_service.delete_key_step(db, key_step_id)
    return {"status": "success", "detail": f"Deleted {removed} key step(s)"}


@router.post("/{key_step_id}/clone", response_model=ClonedId)
def clone_key_step(
    key_step_id: str,
    clone_in: Optional[KeyStepClone] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """Copy a key step and its sub-milestones, optionally under a new title."""
    _visible_step(db, identity, key_step_id)
    clone = key_step_service.clone_key_step(db, key_step_id, clone_in.title if clone_in else None)
    return ClonedId(new_id=clone.id)


@router.get("/{key_step_id}/children", response_model=List[KeyStepRead])
def list_children(
    key_step_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    _visible_step(db, identity, key_step_id)
    return key_step_service.list_children(db, key_step_id)
