"""
Task and subtask aggregation and writes.

Reads attach members and subtasks to a batch of tasks with one query per child
table (members, subtasks, subtask members), never one query per task. Writes
treat the member list and the subtask list as full replacements: whatever the
caller sends becomes the complete set, and an empty list clears it.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlmodel import Session, col, select

from app.core.errors import FieldError, NotFoundError
from app.core.locks import KeyedLock
from app.db.session import reading, transaction
from app.models.key_step import KeyStep
from app.models.task import (
    EnrichedTask,
    ProjectTask,
    Subtask,
    SubtaskMember,
    SubtaskRead,
    TaskMember,
)
from app.schemas.identity import Identity
from app.schemas.task import SubtaskIn, SubtaskPatch, TaskCreate, TaskUpdate
from app.services import validation as v
from app.services import visibility

logger = logging.getLogger(__name__)

# Serializes full-replace updates of the same task
_task_locks = KeyedLock()


# --- reads -------------------------------------------------------------------

def _group(rows, key: str, value: Optional[str] = None) -> Dict[str, list]:
    grouped: Dict[str, list] = defaultdict(list)
    for row in rows:
        grouped[getattr(row, key)].append(getattr(row, value) if value else row)
    return grouped


def effective_assignees(members: List[str], legacy_assigned_to: Optional[str]) -> List[str]:
    """Member rows win; the legacy single assignee only fills in when there are none."""
    if members:
        return list(members)
    if legacy_assigned_to:
        return [legacy_assigned_to]
    return []


def aggregate(db: Session, tasks: Sequence[ProjectTask]) -> List[EnrichedTask]:
    """
    Attach member ids and subtasks (with their assignees) to each task.

    Uses at most three queries for any number of tasks and subtasks: task
    members, subtasks, then subtask members for the subtask ids just loaded.
    Task order is preserved; subtasks keep their creation order.
    """
    if not tasks:
        return []

    task_ids = [t.id for t in tasks]
    with reading("Aggregate tasks"):
        member_rows = db.exec(
            select(TaskMember).where(col(TaskMember.task_id).in_(task_ids)).order_by(col(TaskMember.id))
        ).all()
        subtask_rows = db.exec(
            select(Subtask).where(col(Subtask.task_id).in_(task_ids)).order_by(col(Subtask.created_at))
        ).all()
        subtask_ids = [s.id for s in subtask_rows]
        subtask_member_rows = []
        if subtask_ids:
            subtask_member_rows = db.exec(
                select(SubtaskMember)
                .where(col(SubtaskMember.subtask_id).in_(subtask_ids))
                .order_by(col(SubtaskMember.id))
            ).all()

    members_by_task = _group(member_rows, "task_id", "employee_id")
    subtasks_by_task = _group(subtask_rows, "task_id")
    members_by_subtask = _group(subtask_member_rows, "subtask_id", "employee_id")

    enriched = []
    for task in tasks:
        subtasks = [
            _subtask_read(s, members_by_subtask.get(s.id, []))
            for s in subtasks_by_task.get(task.id, [])
        ]
        enriched.append(
            EnrichedTask(
                **task.model_dump(),
                task_members=members_by_task.get(task.id, []),
                subtasks=subtasks,
            )
        )
    return enriched


def _subtask_read(subtask: Subtask, members: List[str]) -> SubtaskRead:
    return SubtaskRead(
        id=subtask.id,
        task_id=subtask.task_id,
        title=subtask.title,
        description=subtask.description,
        is_completed=bool(subtask.is_completed),
        start_date=subtask.start_date,
        end_date=subtask.end_date,
        assigned_to=effective_assignees(members, subtask.assigned_to),
    )


def get_task(db: Session, task_id: str) -> ProjectTask:
    with reading("Load task"):
        task = db.get(ProjectTask, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def get_enriched_task(db: Session, task_id: str) -> EnrichedTask:
    return aggregate(db, [get_task(db, task_id)])[0]


def tasks_for_project(db: Session, project_id: str) -> List[EnrichedTask]:
    with reading("List project tasks"):
        tasks = db.exec(
            select(ProjectTask).where(ProjectTask.project_id == project_id).order_by(col(ProjectTask.created_at))
        ).all()
    return aggregate(db, tasks)


def all_tasks(db: Session, identity: Identity) -> List[EnrichedTask]:
    """Bulk view: every task of every project the requester can see."""
    statement = select(ProjectTask).order_by(col(ProjectTask.created_at))
    if not visibility.has_full_visibility(identity):
        project_ids = visibility.visible_project_ids(db, identity)
        if not project_ids:
            return []
        statement = statement.where(col(ProjectTask.project_id).in_(list(project_ids)))
    with reading("List tasks"):
        tasks = db.exec(statement).all()
    return aggregate(db, tasks)


# --- writes ------------------------------------------------------------------

def _validated_task_fields(db: Session, data: TaskCreate, project_id: str, identity: Identity) -> dict:
    errors: List[FieldError] = []
    v.require(errors, "project_id", project_id, "Project ID is required")
    v.require(errors, "task_name", data.task_name, "Task name is required")

    assigner_id = data.assigner_id or identity.employee_id
    v.require(errors, "assigner_id", assigner_id, "Task must be assigned to someone")

    start = v.date_field(errors, "start_date", data.start_date)
    end = v.date_field(errors, "end_date", data.end_date)
    v.date_order(errors, start, end)
    priority = v.choice(errors, "priority", data.priority, v.TASK_PRIORITIES, default="medium")
    status = v.choice(errors, "status", data.status, v.TASK_STATUSES, default="pending")
    v.non_blank_items(errors, "task_members", data.task_members, "All task member IDs must be non-empty")

    for idx, st in enumerate(data.subtasks):
        v.require(errors, f"subtasks[{idx}].title", st.title, "Subtask title is required")
        v.non_blank_items(
            errors, f"subtasks[{idx}].assigned_to", st.assigned_to, "All assigned employee IDs must be non-empty"
        )
        st_start = v.date_field(errors, f"subtasks[{idx}].start_date", st.start_date)
        st_end = v.date_field(errors, f"subtasks[{idx}].end_date", st.end_date)
        v.date_order(errors, st_start, st_end)

    if data.key_step_id and project_id:
        with reading("Load key step"):
            step = db.get(KeyStep, data.key_step_id)
        if step is None or step.project_id != project_id:
            errors.append(FieldError("key_step_id", "Key step does not belong to this project", data.key_step_id))

    v.raise_if_any(errors)
    return {
        "key_step_id": data.key_step_id or None,
        "task_name": data.task_name.strip(),
        "description": data.description,
        "status": status,
        "priority": priority,
        "start_date": start,
        "end_date": end,
        "assigner_id": assigner_id,
    }


def replace_members(db: Session, task_id: str, employee_ids: Sequence[str]) -> None:
    """Make ``employee_ids`` the complete member set of the task. Caller commits."""
    db.exec(delete(TaskMember).where(TaskMember.task_id == task_id))
    db.add_all([TaskMember(task_id=task_id, employee_id=e) for e in dict.fromkeys(employee_ids)])


def _delete_subtasks(db: Session, task_id: str) -> None:
    old_ids = select(Subtask.id).where(Subtask.task_id == task_id)
    db.exec(delete(SubtaskMember).where(col(SubtaskMember.subtask_id).in_(old_ids)))
    db.exec(delete(Subtask).where(Subtask.task_id == task_id))


def _insert_subtask(db: Session, task_id: str, data: SubtaskIn) -> Subtask:
    assignees = list(dict.fromkeys(a.strip() for a in data.assigned_to if a and a.strip()))
    subtask = Subtask(
        task_id=task_id,
        title=data.title.strip(),
        description=data.description,
        is_completed=bool(data.is_completed),
        start_date=v.to_iso_date(data.start_date),
        end_date=v.to_iso_date(data.end_date),
        # Kept for readers that predate subtask_members
        assigned_to=assignees[0] if assignees else None,
    )
    db.add(subtask)
    db.flush()
    db.add_all([SubtaskMember(subtask_id=subtask.id, employee_id=e) for e in assignees])
    return subtask


def replace_subtasks(db: Session, task_id: str, subtasks: Sequence[SubtaskIn]) -> None:
    """Make ``subtasks`` the complete subtask set of the task. Caller commits."""
    _delete_subtasks(db, task_id)
    for data in subtasks:
        _insert_subtask(db, task_id, data)


def create_task(db: Session, data: TaskCreate, identity: Identity) -> EnrichedTask:
    fields = _validated_task_fields(db, data, data.project_id, identity)
    task = ProjectTask(project_id=data.project_id, **fields)

    with transaction(db, "Create task"):
        db.add(task)
        db.flush()
        replace_members(db, task.id, data.task_members)
        replace_subtasks(db, task.id, data.subtasks)
    db.refresh(task)
    logger.info("Created task %s in project %s", task.id, task.project_id)
    return get_enriched_task(db, task.id)


def update_task(db: Session, task_id: str, data: TaskUpdate, identity: Identity) -> EnrichedTask:
    """
    Replace a task, its member set and its subtask set atomically.

    Updates to the same task are serialized: in-process by task id, and in the
    database by locking the task row for the duration of the transaction.
    """
    task = get_task(db, task_id)
    fields = _validated_task_fields(db, data, task.project_id, identity)

    with _task_locks.hold(task_id):
        with transaction(db, "Update task"):
            locked = db.exec(select(ProjectTask).where(ProjectTask.id == task_id).with_for_update()).first()
            if locked is None:
                raise NotFoundError("Task", task_id)
            for key, value in fields.items():
                setattr(locked, key, value)
            locked.updated_at = datetime.utcnow().isoformat()
            db.add(locked)
            replace_members(db, task_id, data.task_members)
            replace_subtasks(db, task_id, data.subtasks)
    logger.info(
        "Updated task %s: %d member(s), %d subtask(s)", task_id, len(data.task_members), len(data.subtasks)
    )
    return get_enriched_task(db, task_id)


def remove_task_rows(db: Session, task_id: str) -> None:
    """Delete a task with its subtasks and every member row. Caller commits."""
    _delete_subtasks(db, task_id)
    db.exec(delete(TaskMember).where(TaskMember.task_id == task_id))
    db.exec(delete(ProjectTask).where(ProjectTask.id == task_id))


def delete_task(db: Session, task_id: str) -> None:
    get_task(db, task_id)
    with _task_locks.hold(task_id):
        with transaction(db, "Delete task"):
            remove_task_rows(db, task_id)
    logger.info("Deleted task %s", task_id)


def clone_task(db: Session, task_id: str, new_name: Optional[str] = None) -> ProjectTask:
    """Copy a task with its members, subtasks and subtask members onto fresh ids."""
    source = get_enriched_task(db, task_id)
    name = new_name.strip() if new_name and new_name.strip() else source.task_name

    clone = ProjectTask(
        project_id=source.project_id,
        key_step_id=source.key_step_id,
        task_name=name,
        description=source.description,
        status=source.status,
        priority=source.priority,
        start_date=source.start_date,
        end_date=source.end_date,
        assigner_id=source.assigner_id,
    )
    with transaction(db, "Clone task"):
        db.add(clone)
        db.flush()
        replace_members(db, clone.id, source.task_members)
        for st in source.subtasks:
            _insert_subtask(db, clone.id, SubtaskIn(
                title=st.title,
                description=st.description,
                is_completed=st.is_completed,
                start_date=st.start_date,
                end_date=st.end_date,
                assigned_to=st.assigned_to,
            ))
    db.refresh(clone)
    logger.info("Cloned task %s into %s", task_id, clone.id)
    return clone


def get_subtask(db: Session, subtask_id: str) -> Subtask:
    with reading("Load subtask"):
        subtask = db.get(Subtask, subtask_id)
    if subtask is None:
        raise NotFoundError("Subtask", subtask_id)
    return subtask


def patch_subtask(db: Session, subtask_id: str, patch: SubtaskPatch) -> SubtaskRead:
    """Apply only the fields present in ``patch`` (completion flag and dates)."""
    subtask = get_subtask(db, subtask_id)
    provided = patch.model_dump(exclude_unset=True)

    errors: List[FieldError] = []
    changes = {}
    if "is_completed" in provided:
        if provided["is_completed"] is None:
            errors.append(FieldError("is_completed", "is_completed must be true or false"))
        else:
            changes["is_completed"] = provided["is_completed"]
    for field in ("start_date", "end_date"):
        if field in provided:
            changes[field] = v.date_field(errors, field, provided[field])
    v.date_order(
        errors,
        changes.get("start_date", subtask.start_date),
        changes.get("end_date", subtask.end_date),
    )
    v.raise_if_any(errors)

    with transaction(db, "Update subtask"):
        for key, value in changes.items():
            setattr(subtask, key, value)
        db.add(subtask)
        members = db.exec(
            select(SubtaskMember.employee_id).where(SubtaskMember.subtask_id == subtask_id)
        ).all()
    db.refresh(subtask)
    return _subtask_read(subtask, list(members))
