"""
Key Step Model Module

A key step is a project milestone. Key steps form a two-level tree: a root has
no parent, a sub-milestone points at a root through parent_key_step_id. There is
no deeper nesting; app.services.key_steps refuses to create one.
"""
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field
import uuid
from datetime import datetime


class KeyStepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class KeyStepBase(SQLModel):
    """
    Descriptive fields shared by the table model and its read schema.
    """
    project_id: str = Field(foreign_key="projects.id", index=True)
    parent_key_step_id: Optional[str] = Field(default=None, index=True)

    header: Optional[str] = None
    title: str = Field(nullable=False)
    description: Optional[str] = None
    requirements: Optional[str] = None

    # Unique per sibling group by convention only
    phase: int = Field(default=1)
    status: str = Field(default=KeyStepStatus.PENDING.value)

    # Dates stored as ISO format strings (YYYY-MM-DD)
    start_date: str = Field(nullable=False)
    end_date: str = Field(nullable=False)

    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class KeyStep(KeyStepBase, table=True):
    """
    Key step table model.
    """
    __tablename__ = "key_steps"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)


class KeyStepRead(KeyStepBase):
    """Schema for reading a key step."""
    id: str
