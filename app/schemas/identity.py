from pydantic import BaseModel
from typing import Optional

from app.core.config import settings


class Identity(BaseModel):
    """The requester as seen by the visibility and notification logic."""
    role: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    emp_code: Optional[str] = None
    employee_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == settings.ADMIN_ROLE.upper()
