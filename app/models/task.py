"""
Task Model Module

This module defines the ProjectTask model, its TaskMember junction table, and the
Subtask model with its SubtaskMember junction table. Tasks and subtasks can each
have multiple assigned employees; both member sets are fully replaced on update.
"""
from typing import Optional, List
from sqlmodel import SQLModel, Field
import uuid
from datetime import datetime


class TaskMember(SQLModel, table=True):
    """
    Junction table for the many-to-many relationship between Tasks and Employees.

    Attributes:
        task_id: Foreign key to the task being assigned
        employee_id: Employee assigned to the task
    """
    __tablename__ = "task_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: str = Field(foreign_key="project_tasks.id", index=True)
    employee_id: str = Field(nullable=False)


class SubtaskMember(SQLModel, table=True):
    """
    Junction table for the many-to-many relationship between Subtasks and Employees.
    """
    __tablename__ = "subtask_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    subtask_id: str = Field(foreign_key="subtasks.id", index=True)
    employee_id: str = Field(nullable=False)


class TaskBase(SQLModel):
    """
    Base Task model containing common fields.
    """
    project_id: str = Field(foreign_key="projects.id", index=True)
    key_step_id: Optional[str] = Field(default=None, index=True)

    task_name: str = Field(nullable=False)
    description: Optional[str] = None

    # Values: "pending", "in-progress", "completed"
    status: str = Field(default="pending")
    # Values: "low", "medium", "high"
    priority: str = Field(default="medium")

    # Dates stored as ISO format strings (YYYY-MM-DD)
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    # Employee who handed the task out; defaults to the requester
    assigner_id: str = Field(nullable=False)

    # Audit timestamps
    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())
    updated_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class ProjectTask(TaskBase, table=True):
    """
    Task table model.
    """
    __tablename__ = "project_tasks"

    # Primary key
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)


class SubtaskBase(SQLModel):
    task_id: str = Field(foreign_key="project_tasks.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    is_completed: bool = False
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    # Legacy single assignee, superseded by SubtaskMember rows.
    # Only shown when a subtask has no member rows.
    assigned_to: Optional[str] = None

    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class Subtask(SubtaskBase, table=True):
    __tablename__ = "subtasks"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)


class SubtaskRead(SQLModel):
    """Subtask with its effective assignee list."""
    id: str
    task_id: str
    title: str
    description: Optional[str] = None
    is_completed: bool = False
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    assigned_to: List[str] = []


class TaskRead(TaskBase):
    """Schema for reading basic task data."""
    id: str


class EnrichedTask(TaskRead):
    """Schema for reading a task with its members and subtasks attached."""
    task_members: List[str] = []
    subtasks: List[SubtaskRead] = []
