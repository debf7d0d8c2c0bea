"""
Project visibility rules.

A non-admin requester sees a project when they are on its team or when their
normalized department is one of the project's normalized department tags.
Admins and the configured bootstrap employee codes see everything. A project
with no team and no department tags is therefore visible to admins only.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from app.core.config import settings
from app.core.errors import AuthorizationError, InfrastructureError, NotFoundError
from app.models.project import Project, ProjectDepartment, ProjectTeamMember
from app.schemas.identity import Identity
from app.services import department

logger = logging.getLogger(__name__)

P = TypeVar("P")


@dataclass
class MembershipFacts:
    """Per-project department tags and team member ids, fetched in bulk."""
    departments: Dict[str, List[str]] = field(default_factory=dict)
    team: Dict[str, List[str]] = field(default_factory=dict)

    def departments_of(self, project_id: str) -> List[str]:
        return self.departments.get(project_id, [])

    def team_of(self, project_id: str) -> List[str]:
        return self.team.get(project_id, [])


def fetch_membership_facts(db: Session, project_ids: Sequence[str]) -> MembershipFacts:
    """
    Load department tags and team members for the given projects.

    Issues exactly two queries regardless of how many projects are passed.
    A data-store failure raises InfrastructureError instead of producing empty
    facts, which would otherwise read as "no visible projects".
    """
    ids = list(dict.fromkeys(project_ids))
    if not ids:
        return MembershipFacts()

    try:
        dept_rows = db.exec(
            select(ProjectDepartment).where(col(ProjectDepartment.project_id).in_(ids))
        ).all()
        team_rows = db.exec(
            select(ProjectTeamMember).where(col(ProjectTeamMember.project_id).in_(ids))
        ).all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load membership facts for %d projects", len(ids))
        raise InfrastructureError("Could not load project visibility facts") from exc

    departments: Dict[str, List[str]] = defaultdict(list)
    for row in dept_rows:
        departments[row.project_id].append(row.department)
    team: Dict[str, List[str]] = defaultdict(list)
    for row in team_rows:
        team[row.project_id].append(row.employee_id)
    return MembershipFacts(departments=dict(departments), team=dict(team))


def has_full_visibility(identity: Identity, bootstrap_codes: Optional[Iterable[str]] = None) -> bool:
    if bootstrap_codes is None:
        bootstrap_codes = settings.BOOTSTRAP_EMP_CODES
    if identity.is_admin:
        return True
    return bool(identity.emp_code) and identity.emp_code in set(bootstrap_codes)


def is_visible(project_id: str, employee_id: str, requester_department: str, facts: MembershipFacts) -> bool:
    if employee_id in facts.team_of(project_id):
        return True
    if not requester_department:
        return False
    return requester_department in department.normalize_all(facts.departments_of(project_id))


def resolve(
    identity: Identity,
    projects: Sequence[P],
    facts: MembershipFacts,
    bootstrap_codes: Optional[Iterable[str]] = None,
) -> List[P]:
    """
    Return the subset of ``projects`` the requester may see, in input order.

    ``projects`` may hold any objects with an ``id`` attribute. Raises
    AuthorizationError for a non-admin requester without an employee id.
    """
    if has_full_visibility(identity, bootstrap_codes):
        return list(projects)

    if not identity.employee_id:
        raise AuthorizationError("No employee is linked to this identity")

    requester_department = department.normalize(identity.department)
    return [
        p for p in projects
        if is_visible(p.id, identity.employee_id, requester_department, facts)
    ]


def ensure_project_visible(db: Session, identity: Identity, project_id: str) -> Project:
    """
    Load a project the requester is allowed to see.

    Raises NotFoundError when the id does not exist and AuthorizationError when it
    exists but lies outside the requester's visibility.
    """
    try:
        project = db.get(Project, project_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load project %s", project_id)
        raise InfrastructureError("Could not load project") from exc
    if project is None:
        raise NotFoundError("Project", project_id)

    if has_full_visibility(identity):
        return project

    facts = fetch_membership_facts(db, [project.id])
    if not resolve(identity, [project], facts):
        logger.info("Employee %s denied access to project %s", identity.employee_id, project_id)
        raise AuthorizationError("Project is not visible to the requester")
    return project


def visible_project_ids(db: Session, identity: Identity) -> Set[str]:
    """Ids of every project the requester can see."""
    try:
        projects = db.exec(select(Project)).all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to list projects")
        raise InfrastructureError("Could not list projects") from exc
    if has_full_visibility(identity):
        return {p.id for p in projects}
    facts = fetch_membership_facts(db, [p.id for p in projects])
    return {p.id for p in resolve(identity, projects, facts)}
