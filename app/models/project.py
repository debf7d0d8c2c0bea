"""
Project Model Module

This module defines the Project model and its one-to-many join rows (departments,
team members, vendors, files). Join rows are stored separately and hydrated into
a ProjectRead at read time.
"""
from typing import List, Optional
from sqlmodel import SQLModel, Field
import uuid

from datetime import datetime


class Project(SQLModel, table=True):
    """
    Project model representing a tracked piece of client work.

    Visibility is not stored on the project itself: it is derived from the
    project's department tags and team-membership rows (see
    app.services.visibility).

    Attributes:
        id: Unique identifier (UUID)
        project_code: Human-facing project code; defaults to a fresh UUID
        title: Project title (required)
        client_name: Client the project is delivered for
        description: Free-text description
        location: Optional site/location
        status: Free-text status, e.g. "open", "In Progress", "Completed"
        progress: Completion percentage in [0, 100]
        start_date: Start date (YYYY-MM-DD)
        end_date: End date (YYYY-MM-DD), never before start_date
        created_by_employee_id: Employee who created the project, if known
    """
    __tablename__ = "projects"

    # Primary key
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)

    # Basic project information
    project_code: str = Field(default_factory=lambda: str(uuid.uuid4()), index=True)
    title: str = Field(nullable=False)
    client_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None

    status: str = Field(default="open")
    progress: int = Field(default=0)

    # Timeline - dates stored as ISO format strings (YYYY-MM-DD)
    start_date: str = Field(nullable=False)
    end_date: str = Field(nullable=False)

    created_by_employee_id: Optional[str] = None

    # Audit timestamps
    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())
    updated_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class ProjectDepartment(SQLModel, table=True):
    """Department tag on a project. Stored already normalized."""
    __tablename__ = "project_departments"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    department: str = Field(nullable=False)


class ProjectTeamMember(SQLModel, table=True):
    """
    Junction table between Projects and Employees.

    No uniqueness is enforced: the whole set is replaced on every project update.
    """
    __tablename__ = "project_team_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    employee_id: str = Field(index=True)


class ProjectVendor(SQLModel, table=True):
    __tablename__ = "project_vendors"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    vendor_name: str = Field(nullable=False)


class ProjectFile(SQLModel, table=True):
    """File metadata attached to a project. Storage itself lives elsewhere."""
    __tablename__ = "project_files"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    file_name: str = Field(nullable=False)
    file_size: int = 0
    mime_type: Optional[str] = None
    storage_url: Optional[str] = None
    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class ProjectRead(SQLModel):
    """Project with its join rows hydrated."""
    id: str
    project_code: str
    title: str
    client_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: str
    progress: int
    start_date: str
    end_date: str
    created_by_employee_id: Optional[str] = None
    department: List[str] = []
    team: List[str] = []
    vendors: List[str] = []
