"""
Employee Model Module

This module defines the Employee directory entry and the UserAccount that links a
login identity to at most one Employee plus a role. Both are owned by the HR/identity
side of the system; this API only reads them.
"""
from typing import Optional
from sqlmodel import SQLModel, Field
import uuid
from datetime import datetime


class Employee(SQLModel, table=True):
    """
    Employee directory entry.

    Attributes:
        id: Unique identifier (UUID) automatically generated for each employee
        emp_code: Human-facing employee code (e.g., "E0001"), unique
        name: Display name
        designation: Job title
        department: Free-text department name; compared only after normalization
        email: Address used for notifications (optional)
    """
    __tablename__ = "employees"

    # Primary key - auto-generated UUID for global uniqueness
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)

    emp_code: Optional[str] = Field(default=None, unique=True, index=True)
    name: str = Field(nullable=False)
    designation: Optional[str] = None
    department: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    created_at: Optional[str] = Field(default_factory=lambda: datetime.utcnow().isoformat())


class UserAccount(SQLModel, table=True):
    """
    Login account resolved from a bearer token.

    The role is either the configured admin role (default "ADMIN") or an
    ordinary role such as "EMPLOYEE".
    """
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    username: str = Field(unique=True, index=True, nullable=False)
    employee_id: Optional[str] = Field(default=None, foreign_key="employees.id")
    role: str = Field(default="EMPLOYEE")


class EmployeeRead(SQLModel):
    """Public projection of an employee for directory listings."""
    id: str
    emp_code: Optional[str] = None
    name: str
    designation: Optional[str] = None
    department: Optional[str] = None
