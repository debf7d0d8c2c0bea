"""
Completion Notifier.

Consumes ProjectStatusChanged events after the status-changing write has
committed and sends one "project completed" notification to every distinct
admin email. Deliveries run in parallel; a failure for one recipient is logged
and never affects the others or the write that triggered it.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from app.core.config import settings
from app.core.errors import NotificationDispatchError
from app.models.employee import Employee, UserAccount
from app.models.project import Project, ProjectTeamMember
from app.models.task import ProjectTask, TaskMember
from app.schemas.identity import Identity
from app.services.events import ProjectStatusChanged
from app.services.notification_sink import PROJECT_COMPLETED, NotificationSink

logger = logging.getLogger(__name__)

ASSIGNER_PLACEHOLDER = "System Administrator"
ASSIGNEE_PLACEHOLDER = ("Team Member", "N/A")


@dataclass
class DispatchReport:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def admin_emails(db: Session) -> List[str]:
    """Distinct, non-empty emails of employees linked to an admin account."""
    rows = db.exec(
        select(Employee.email)
        .join(UserAccount, col(UserAccount.employee_id) == col(Employee.id))
        .where(func.upper(UserAccount.role) == settings.ADMIN_ROLE.upper())
    ).all()
    return list(dict.fromkeys(e.strip() for e in rows if e and e.strip()))


def _employee(db: Session, employee_id: Optional[str]) -> Optional[Employee]:
    if not employee_id:
        return None
    return db.get(Employee, employee_id)


def resolve_assigner(db: Session, project: Project, actor: Optional[Identity]) -> str:
    """
    Name of the person who most plausibly handed the project out.

    Tries the project's creator, then the assigner of any task in the project,
    then the requester who completed it, then a placeholder.
    """
    creator = _employee(db, project.created_by_employee_id)
    if creator and creator.name:
        return creator.name

    task_assigner = db.exec(
        select(Employee.name)
        .join(ProjectTask, col(ProjectTask.assigner_id) == col(Employee.id))
        .where(ProjectTask.project_id == project.id, col(Employee.name) != "")
        .order_by(col(ProjectTask.created_at))
    ).first()
    if task_assigner:
        return task_assigner

    if actor and actor.employee_name:
        return actor.employee_name
    return ASSIGNER_PLACEHOLDER


def resolve_assignee(db: Session, project_id: str) -> Tuple[str, str]:
    """(name, employee code) of a representative person working on the project."""
    team_member_id = db.exec(
        select(ProjectTeamMember.employee_id)
        .where(ProjectTeamMember.project_id == project_id)
        .order_by(col(ProjectTeamMember.id))
    ).first()
    member = _employee(db, team_member_id)
    if member:
        return member.name, member.emp_code or "N/A"

    task_member_id = db.exec(
        select(TaskMember.employee_id)
        .join(ProjectTask, col(ProjectTask.id) == col(TaskMember.task_id))
        .where(ProjectTask.project_id == project_id)
        .order_by(col(TaskMember.id))
    ).first()
    member = _employee(db, task_member_id)
    if member:
        return member.name, member.emp_code or "N/A"

    return ASSIGNEE_PLACEHOLDER


def completion_payload(db: Session, project: Project, actor: Optional[Identity]) -> Dict[str, object]:
    employee_name, employee_code = resolve_assignee(db, project.id)
    return {
        "title": project.title,
        "project_code": project.project_code,
        "client_name": project.client_name or "",
        "start_date": project.start_date,
        "end_date": project.end_date,
        "progress": project.progress,
        "assigner": resolve_assigner(db, project, actor),
        "employee_name": employee_name,
        "employee_code": employee_code,
    }


class CompletionNotifier:
    """
    Sends admin notifications for projects that just became "Completed".

    ``session_factory`` opens a fresh session; the notifier runs after the
    request's own session has committed, so it reads the committed state.
    """

    def __init__(
        self,
        sink: NotificationSink,
        session_factory: Callable[[], Session],
        max_workers: int = 4,
    ):
        self.sink = sink
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers)

    def _deliver(self, recipient: str, payload: Dict[str, object]) -> bool:
        try:
            self.sink.send(recipient, PROJECT_COMPLETED, payload)
            logger.info("Completion notice sent to %s", recipient)
            return True
        except NotificationDispatchError as exc:
            logger.warning("Completion notification to %s failed: %s", recipient, exc.reason)
        except Exception:
            logger.exception("Unexpected failure notifying %s", recipient)
        return False

    def handle(self, event: ProjectStatusChanged) -> DispatchReport:
        report = DispatchReport()
        if not event.completes_project:
            return report

        try:
            with self.session_factory() as db:
                project = db.get(Project, event.project_id)
                if project is None:
                    logger.warning("Completed project %s vanished before notification", event.project_id)
                    return report
                recipients = admin_emails(db)
                payload = completion_payload(db, project, event.actor)
        except SQLAlchemyError:
            logger.exception("Could not prepare completion notice for project %s", event.project_id)
            return report

        if not recipients:
            logger.info("No admin emails configured; skipping completion notice for %s", event.project_id)
            return report

        workers = min(self.max_workers, len(recipients))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda r: (r, self._deliver(r, payload)), recipients))

        for recipient, ok in results:
            (report.sent if ok else report.failed).append(recipient)
        logger.info(
            "Completion notice for project %s: %d sent, %d failed",
            event.project_id, len(report.sent), len(report.failed),
        )
        return report
