"""SQLAlchemy models package."""

from taskflow.models.user import User
from taskflow.models.project import Project, ProjectMember, ProjectRole
from taskflow.models.workflow import (
    ProjectState,
    TaskType,
    Workflow,
    WorkflowStep,
    WorkflowTransition,
)
from taskflow.models.field import CustomField, TaskTypeField
from taskflow.models.task import Task, TaskFieldValue

__all__ = [
    # User
    "User",
    # Project
    "Project",
    "ProjectMember",
    "ProjectRole",
    # Workflow catalog
    "ProjectState",
    "TaskType",
    "Workflow",
    "WorkflowStep",
    "WorkflowTransition",
    # Custom fields
    "CustomField",
    "TaskTypeField",
    # Tasks
    "Task",
    "TaskFieldValue",
]
