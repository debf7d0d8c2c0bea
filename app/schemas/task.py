from pydantic import BaseModel, field_validator
from typing import Any, List, Optional


class SubtaskIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_completed: bool = False
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    # Older clients send a single employee id instead of a list
    assigned_to: List[str] = []

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _coerce_single_assignee(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class TaskCreate(BaseModel):
    project_id: Optional[str] = None
    key_step_id: Optional[str] = None
    task_name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    assigner_id: Optional[str] = None
    task_members: List[str] = []
    subtasks: List[SubtaskIn] = []


class TaskUpdate(TaskCreate):
    """
    Full replace of a task.

    task_members and subtasks are the complete desired sets: an empty list
    removes every existing member or subtask.
    """


class TaskClone(BaseModel):
    task_name: Optional[str] = None


class SubtaskPatch(BaseModel):
    """Partial update; only the fields present in the request are applied."""
    is_completed: Optional[bool] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
