"""Services package."""

from taskflow.services.custom_field import CustomFieldService
from taskflow.services.state import StateService
from taskflow.services.task_type import TaskTypeService
from taskflow.services.task_update import TaskPatch, TaskUpdateService
from taskflow.services.workflow import TransitionSpec, WorkflowService

__all__ = [
    "CustomFieldService",
    "StateService",
    "TaskTypeService",
    "TaskPatch",
    "TaskUpdateService",
    "TransitionSpec",
    "WorkflowService",
]
