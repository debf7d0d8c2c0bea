from pydantic import BaseModel
from typing import Any, List, Optional


# Shared properties
class ProjectBase(BaseModel):
    title: Optional[str] = None
    project_code: Optional[str] = None
    client_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[Any] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    department: List[str] = []
    team: List[str] = []
    vendors: List[str] = []


# Properties to receive via API on creation
class ProjectCreate(ProjectBase):
    pass


# Properties to receive via API on update (full replace, not a patch)
class ProjectUpdate(ProjectBase):
    pass
