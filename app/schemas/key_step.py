from pydantic import BaseModel
from typing import Any, Optional


class KeyStepCreate(BaseModel):
    """
    Input for creating a key step.

    Leave parent_key_step_id empty to create a root. For a sub-milestone the
    phase is allocated by the server and any phase sent here is ignored.
    """
    project_id: Optional[str] = None
    parent_key_step_id: Optional[str] = None
    header: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    phase: Optional[Any] = None
    status: Optional[str] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None


class KeyStepUpdate(BaseModel):
    """Full replace of a key step's descriptive fields."""
    header: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    phase: Optional[Any] = None
    status: Optional[str] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None


class KeyStepClone(BaseModel):
    title: Optional[str] = None


class ClonedId(BaseModel):
    new_id: str
