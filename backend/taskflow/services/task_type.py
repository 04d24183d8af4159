"""Task type service."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import (
    CatalogConflictError,
    DomainValidationError,
    InputError,
    NotFoundError,
)
from taskflow.models.task import Task
from taskflow.models.workflow import TaskType, Workflow

logger = structlog.get_logger()


class TaskTypeService:
    """Service for managing task types and the workflow each one follows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_task_types(self, project_id: UUID) -> Sequence[TaskType]:
        """Get all task types of a project."""
        result = await self.db.execute(
            select(TaskType)
            .where(TaskType.project_id == project_id)
            .order_by(TaskType.name)
        )
        return result.scalars().all()

    async def get_task_type(self, task_type_id: UUID) -> TaskType:
        """Get a task type by ID."""
        task_type = await self.db.get(TaskType, task_type_id)
        if task_type is None:
            raise NotFoundError("Task type not found")
        return task_type

    async def get_project_task_type(self, project_id: UUID, task_type_id: UUID) -> TaskType:
        """Get a task type, requiring it to belong to ``project_id``."""
        task_type = await self.db.get(TaskType, task_type_id)
        if task_type is None or task_type.project_id != project_id:
            raise DomainValidationError(
                "Task type not found in this project", code="INVALID_TASK_TYPE"
            )
        return task_type

    async def create_task_type(
        self,
        project_id: UUID,
        name: str,
        workflow_id: UUID,
    ) -> TaskType:
        """Create a task type bound to a workflow of the same project."""
        name = self._clean_name(name)
        await self._ensure_unique_name(project_id, name)
        await self._ensure_project_workflow(project_id, workflow_id)

        task_type = TaskType(project_id=project_id, name=name, workflow_id=workflow_id)
        self.db.add(task_type)
        await self.db.flush()

        logger.info(
            "task_type_created",
            task_type_id=str(task_type.id),
            project_id=str(project_id),
            workflow_id=str(workflow_id),
        )
        return task_type

    async def update_task_type(
        self,
        task_type_id: UUID,
        name: str | None = None,
        workflow_id: UUID | None = None,
    ) -> TaskType:
        """Rename a task type or move it to another workflow."""
        task_type = await self.get_task_type(task_type_id)

        if name is not None:
            name = self._clean_name(name)
            if name != task_type.name:
                await self._ensure_unique_name(task_type.project_id, name)
                task_type.name = name

        if workflow_id is not None and workflow_id != task_type.workflow_id:
            await self._ensure_project_workflow(task_type.project_id, workflow_id)
            task_type.workflow_id = workflow_id

        await self.db.flush()
        logger.info("task_type_updated", task_type_id=str(task_type_id))
        return task_type

    async def delete_task_type(self, task_type_id: UUID) -> None:
        """Delete a task type no task uses; its field assignments go with it."""
        task_type = await self.get_task_type(task_type_id)

        task_count = await self.db.scalar(
            select(func.count(Task.id)).where(Task.task_type_id == task_type_id)
        )
        if task_count:
            raise CatalogConflictError(
                f"Task type '{task_type.name}' is used by {task_count} task(s)"
            )

        await self.db.delete(task_type)
        await self.db.flush()
        logger.info("task_type_deleted", task_type_id=str(task_type_id))

    async def _ensure_project_workflow(self, project_id: UUID, workflow_id: UUID) -> None:
        workflow = await self.db.get(Workflow, workflow_id)
        if workflow is None or workflow.project_id != project_id:
            raise InputError("Workflow not found in this project")

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise InputError("Task type name is required")
        if len(cleaned) > 255:
            raise InputError("Task type name cannot exceed 255 characters")
        return cleaned

    async def _ensure_unique_name(self, project_id: UUID, name: str) -> None:
        existing = await self.db.scalar(
            select(TaskType.id).where(
                TaskType.project_id == project_id,
                func.lower(TaskType.name) == name.lower(),
            )
        )
        if existing is not None:
            raise CatalogConflictError(f"Task type '{name}' already exists in this project")
