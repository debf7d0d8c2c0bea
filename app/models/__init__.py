from .employee import Employee, UserAccount
from .project import Project, ProjectDepartment, ProjectTeamMember, ProjectVendor, ProjectFile
from .key_step import KeyStep, KeyStepStatus
from .task import ProjectTask, TaskMember, Subtask, SubtaskMember

__all__ = [
    "Employee", "UserAccount",
    "Project", "ProjectDepartment", "ProjectTeamMember", "ProjectVendor", "ProjectFile",
    "KeyStep", "KeyStepStatus",
    "ProjectTask", "TaskMember", "Subtask", "SubtaskMember",
]
