"""
Key step tree management.

Key steps form a two-level tree per project. Placement is explicit: a ``Root``
carries its caller-chosen phase, a ``Child`` names its parent and gets the next
free phase among its siblings. A child can only hang off a root.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import delete, func
from sqlmodel import Session, col, select

from app.core.errors import FieldError, NotFoundError, ValidationError
from app.core.locks import KeyedLock
from app.db.session import reading, transaction
from app.models.key_step import KeyStep
from app.schemas.key_step import KeyStepCreate, KeyStepUpdate
from app.services import validation as v

logger = logging.getLogger(__name__)

# Serializes phase allocation per (project_id, parent_key_step_id)
_phase_locks = KeyedLock()


@dataclass(frozen=True)
class Root:
    phase: int = 1


@dataclass(frozen=True)
class Child:
    parent_id: str


Placement = Union[Root, Child]


@dataclass
class KeyStepFields:
    """Validated descriptive fields of a key step."""
    title: str
    start_date: str
    end_date: str
    status: str
    header: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None


def _validated_fields(data, errors: List[FieldError]) -> KeyStepFields:
    v.require(errors, "title", data.title, "Key step title is required")
    start = v.date_field(errors, "start_date", data.start_date, required=True)
    end = v.date_field(errors, "end_date", data.end_date, required=True)
    v.date_order(errors, start, end)
    status = v.choice(errors, "status", data.status, v.KEY_STEP_STATUSES, default="pending")
    return KeyStepFields(
        title=(data.title or "").strip(),
        start_date=start,
        end_date=end,
        status=status,
        header=data.header,
        description=data.description,
        requirements=data.requirements,
    )


def placement_for(data: KeyStepCreate) -> Placement:
    if data.parent_key_step_id:
        return Child(parent_id=data.parent_key_step_id)
    phase = v.int_in_range([], "phase", data.phase, minimum=1) if data.phase is not None else None
    return Root(phase=phase or 1)


def get_key_step(db: Session, key_step_id: str) -> KeyStep:
    with reading("Load key step"):
        step = db.get(KeyStep, key_step_id)
    if step is None:
        raise NotFoundError("Key step", key_step_id)
    return step


def next_child_phase(db: Session, project_id: str, parent_id: str) -> int:
    """Highest phase among the parent's children plus one, or 1 when there are none."""
    current = db.exec(
        select(func.max(KeyStep.phase)).where(
            KeyStep.project_id == project_id,
            KeyStep.parent_key_step_id == parent_id,
        )
    ).one()
    return (current or 0) + 1


def create_key_step(db: Session, data: KeyStepCreate) -> KeyStep:
    """
    Create a root key step or a sub-milestone.

    For a sub-milestone the phase is allocated from the current sibling set while
    holding both the in-process lock for (project, parent) and a row lock on the
    parent, so two concurrent inserts cannot pick the same phase.
    """
    errors: List[FieldError] = []
    fields = _validated_fields(data, errors)
    placement = placement_for(data)
    if isinstance(placement, Root):
        v.require(errors, "project_id", data.project_id, "Project ID is required")
    v.raise_if_any(errors)

    if isinstance(placement, Root):
        step = KeyStep(project_id=data.project_id, parent_key_step_id=None, phase=placement.phase, **vars(fields))
        with transaction(db, "Create key step"):
            db.add(step)
        db.refresh(step)
        logger.info("Created root key step %s (phase %d) in project %s", step.id, step.phase, step.project_id)
        return step

    parent = get_key_step(db, placement.parent_id)
    if parent.parent_key_step_id is not None:
        raise ValidationError.single(
            "parent_key_step_id", "Sub-milestones cannot have their own sub-milestones", placement.parent_id
        )
    if data.project_id and data.project_id != parent.project_id:
        raise ValidationError.single("project_id", "Parent key step belongs to a different project", data.project_id)
    project_id = parent.project_id

    with _phase_locks.hold((project_id, parent.id)):
        with transaction(db, "Create sub-milestone"):
            db.exec(select(KeyStep).where(KeyStep.id == parent.id).with_for_update()).first()
            phase = next_child_phase(db, project_id, parent.id)
            step = KeyStep(project_id=project_id, parent_key_step_id=parent.id, phase=phase, **vars(fields))
            db.add(step)
    db.refresh(step)
    logger.info("Created sub-milestone %s under %s with phase %d", step.id, parent.id, step.phase)
    return step


def update_key_step(db: Session, key_step_id: str, data: KeyStepUpdate) -> KeyStep:
    """
    Replace every descriptive field of a key step.

    Status transitions are unrestricted. A missing phase keeps the current one;
    a phase that is present must be a positive integer.
    """
    step = get_key_step(db, key_step_id)

    errors: List[FieldError] = []
    fields = _validated_fields(data, errors)
    phase = step.phase
    if data.phase is not None:
        phase = v.int_in_range(errors, "phase", data.phase, minimum=1, message="Phase must be a positive integer")
    v.raise_if_any(errors)

    with transaction(db, "Update key step"):
        for key, value in vars(fields).items():
            setattr(step, key, value)
        step.phase = phase
        db.add(step)
    db.refresh(step)
    return step


def delete_key_step(db: Session, key_step_id: str) -> int:
    """
    Delete a key step together with its direct children in one transaction.

    Returns the number of rows removed.
    """
    step = get_key_step(db, key_step_id)
    with transaction(db, "Delete key step"):
        result = db.exec(delete(KeyStep).where(KeyStep.parent_key_step_id == step.id))
        removed = result.rowcount or 0
        db.delete(step)
    logger.info("Deleted key step %s and %d sub-milestone(s)", key_step_id, removed)
    return removed + 1


def _copy(source: KeyStep, parent_id: Optional[str], title: Optional[str] = None) -> KeyStep:
    return KeyStep(
        project_id=source.project_id,
        parent_key_step_id=parent_id,
        header=source.header,
        title=title or source.title,
        description=source.description,
        requirements=source.requirements,
        phase=source.phase,
        status=source.status,
        start_date=source.start_date,
        end_date=source.end_date,
    )


def clone_key_step(db: Session, key_step_id: str, new_title: Optional[str] = None) -> KeyStep:
    """
    Copy a key step and its direct children onto fresh ids.

    The copy keeps the source's placement (a cloned sub-milestone stays under
    the same root). Cloned children point at the new copy, never at the source.
    """
    source = get_key_step(db, key_step_id)
    title = new_title.strip() if new_title and new_title.strip() else None

    with transaction(db, "Clone key step"):
        children = db.exec(select(KeyStep).where(KeyStep.parent_key_step_id == source.id)).all()
        clone = _copy(source, source.parent_key_step_id, title)
        db.add(clone)
        db.flush()
        db.add_all([_copy(child, clone.id) for child in children])
    db.refresh(clone)
    logger.info("Cloned key step %s into %s with %d sub-milestone(s)", source.id, clone.id, len(children))
    return clone


def list_children(db: Session, parent_id: str) -> List[KeyStep]:
    with reading("List sub-milestones"):
        return list(db.exec(
            select(KeyStep)
            .where(KeyStep.parent_key_step_id == parent_id)
            .order_by(col(KeyStep.phase))
        ).all())


def list_for_project(db: Session, project_id: str) -> List[KeyStep]:
    """Every key step of a project: each root (by phase) followed by its sub-milestones (by phase)."""
    with reading("List key steps"):
        steps = db.exec(select(KeyStep).where(KeyStep.project_id == project_id)).all()

    by_phase = sorted(steps, key=lambda s: (s.phase, s.created_at or ""))
    roots = [s for s in by_phase if s.parent_key_step_id is None]
    root_ids = {r.id for r in roots}
    ordered: List[KeyStep] = []
    for root in roots:
        ordered.append(root)
        ordered.extend(s for s in by_phase if s.parent_key_step_id == root.id)
    # Sub-milestones whose root is gone still belong to the project
    ordered.extend(s for s in by_phase if s.parent_key_step_id is not None and s.parent_key_step_id not in root_ids)
    return ordered
