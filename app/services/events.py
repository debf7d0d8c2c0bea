"""
Domain events published after a write has committed.
"""
from dataclasses import dataclass

from app.core.config import settings
from app.schemas.identity import Identity


def is_completed(status: str) -> bool:
    return (status or "").strip().lower() == settings.COMPLETED_STATUS.lower()


@dataclass(frozen=True)
class ProjectStatusChanged:
    """A project's status moved from ``old_status`` to ``new_status``."""
    project_id: str
    old_status: str
    new_status: str
    actor: Identity

    @property
    def completes_project(self) -> bool:
        return is_completed(self.new_status) and not is_completed(self.old_status)
