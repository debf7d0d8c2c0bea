from typing import List
from fastapi import APIRouter, Depends
from sqlmodel import Session, col, select

from app.api import deps
from app.db.session import get_db, reading
from app.models.employee import Employee, EmployeeRead
from app.schemas.identity import Identity

router = APIRouter()


@router.get("", response_model=List[EmployeeRead])
def list_employees(
    db: Session = Depends(get_db),
    identity: Identity = Depends(deps.get_identity),
):
    """
    Employee directory, ordered by name.

    Used to pick team members, task members and subtask assignees.
    """
    with reading("List employees"):
        return db.exec(select(Employee).order_by(col(Employee.name))).all()
