"""Task service: creation, lookup and the validated task update.

Every write runs check-then-commit. All validation happens against freshly
loaded data before any attribute of the task row is touched, and the row is
written once after every check has passed.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import Settings, get_settings
from taskflow.engine.field_values import ProposedValue, is_blank, validate_field_values
from taskflow.engine.transitions import WorkflowGraph, validate_transition
from taskflow.exceptions import (
    DomainValidationError,
    FieldValuePersistenceError,
    InputError,
    NotFoundError,
)
from taskflow.models.field import CustomField
from taskflow.models.task import Task, TaskFieldValue
from taskflow.models.workflow import ProjectState, TaskType
from taskflow.services.custom_field import CustomFieldService
from taskflow.services.membership import check_project_access, is_project_member
from taskflow.services.task_type import TaskTypeService
from taskflow.services.workflow import WorkflowService

logger = structlog.get_logger()

# Task columns a caller may set directly
TASK_COLUMNS = (
    "name",
    "description",
    "status",
    "priority",
    "due_date",
    "assignee_id",
    "task_type_id",
    "state_id",
)


@dataclass
class TaskPatch:
    """Requested task changes.

    Only keys present in ``changes`` are applied. ``field_values`` is None
    when the caller sent no custom field values at all, which is different
    from sending an empty list.
    """
    changes: dict[str, Any] = field(default_factory=dict)
    field_values: list[ProposedValue] | None = None

    def __post_init__(self) -> None:
        unknown = set(self.changes) - set(TASK_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown task attributes: {', '.join(sorted(unknown))}")


class TaskUpdateService:
    """Service for tasks, with workflow and custom field validation on every write."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.fields = CustomFieldService(db)
        self.task_types = TaskTypeService(db)
        self.workflows = WorkflowService(db)

    # =========================================================================
    # Update
    # =========================================================================

    async def update_task(self, task_id: UUID, user_id: UUID, patch: TaskPatch) -> Task:
        """Validate and apply a task update.

        Raises:
            InputError: Name missing or blank
            NotFoundError: Task missing or not owned by ``user_id``
            DomainValidationError: Assignee, type, field or workflow rule broken
        """
        name = patch.changes.get("name")
        if name is None or not str(name).strip():
            raise InputError("Name is required")

        task = await self._load_owned_task(task_id, user_id, lock=True)

        changes = dict(patch.changes)
        changes["name"] = str(name).strip()

        assignee_id = changes.get("assignee_id")
        if assignee_id is not None:
            await self._ensure_assignee(task.project_id, assignee_id)

        # A null type or state in the request keeps the current one
        for key in ("task_type_id", "state_id"):
            if key in changes and changes[key] is None:
                del changes[key]

        final_type_id = changes.get("task_type_id", task.task_type_id)
        task_type = None
        if final_type_id is not None:
            task_type = await self.task_types.get_project_task_type(
                task.project_id, final_type_id
            )

        if patch.field_values is not None:
            if task_type is not None:
                await self._validate_field_values(
                    task.id,
                    task_type,
                    patch.field_values,
                    check_kinds=self.settings.enforce_field_kinds,
                )
            else:
                await self._ensure_project_fields(task.project_id, patch.field_values)

        graph = await self._load_graph(task_type)
        final_state_id = changes.get("state_id", task.state_id)
        state_changed = final_state_id != task.state_id
        type_changed = final_type_id != task.task_type_id

        if state_changed:
            await self._ensure_project_state(task.project_id, final_state_id)
            if graph is not None:
                await self._validate_transition(task, graph, final_state_id)

        if (state_changed or type_changed) and graph is not None:
            self._ensure_state_in_workflow(graph, final_state_id)

        return await self._commit_update(task, changes, patch.field_values)

    async def _commit_update(
        self,
        task: Task,
        changes: dict[str, Any],
        field_values: list[ProposedValue] | None,
    ) -> Task:
        task_id = task.id
        for key, value in changes.items():
            setattr(task, key, value)

        if self.settings.atomic_field_values:
            if field_values:
                await self.fields.upsert_task_field_values(task_id, field_values)
            await self.db.commit()
        else:
            await self.db.commit()
            if field_values:
                try:
                    await self._write_field_values(task_id, field_values)
                except FieldValuePersistenceError as e:
                    # Degraded success: the task row stays committed
                    logger.error(
                        "field_value_persistence_failed",
                        task_id=str(task_id),
                        field_count=len(field_values),
                        error=str(e.cause),
                    )

        logger.info(
            "task_updated",
            task_id=str(task_id),
            changed=sorted(changes),
            field_value_count=len(field_values or []),
            atomic=self.settings.atomic_field_values,
        )
        return await self._get_task(task_id)

    async def _write_field_values(self, task_id: UUID, field_values: list[ProposedValue]) -> None:
        try:
            await self.fields.upsert_task_field_values(task_id, field_values)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise FieldValuePersistenceError(task_id, e) from e

    # =========================================================================
    # Create / read / delete
    # =========================================================================

    async def create_task(
        self,
        user_id: UUID,
        project_id: UUID,
        changes: dict[str, Any],
        field_values: list[ProposedValue] | None = None,
    ) -> Task:
        """Create a task owned by ``user_id``.

        Assigned fields the caller left out get their default value before
        the field values are validated.
        """
        patch = TaskPatch(changes=changes, field_values=field_values)
        name = (patch.changes.get("name") or "").strip()
        if not name:
            raise InputError("Name is required")

        await check_project_access(self.db, project_id, user_id, "member")

        assignee_id = changes.get("assignee_id")
        if assignee_id is not None:
            await self._ensure_assignee(project_id, assignee_id)

        task_type = None
        if changes.get("task_type_id") is not None:
            task_type = await self.task_types.get_project_task_type(
                project_id, changes["task_type_id"]
            )

        values = list(field_values or [])
        if task_type is not None:
            values = await self._with_defaults(task_type.id, values)
            await self._validate_field_values(
                None, task_type, values, check_kinds=self.settings.enforce_field_kinds
            )
        elif values:
            await self._ensure_project_fields(project_id, values)

        state_id = changes.get("state_id")
        if state_id is not None:
            await self._ensure_project_state(project_id, state_id)
            graph = await self._load_graph(task_type)
            if graph is not None:
                self._ensure_state_in_workflow(graph, state_id)

        task = Task(project_id=project_id, owner_id=user_id, **patch.changes)
        task.name = name
        self.db.add(task)
        await self.db.flush()

        if values:
            await self.fields.upsert_task_field_values(task.id, values)

        logger.info(
            "task_created",
            task_id=str(task.id),
            project_id=str(project_id),
            task_type_id=str(task.task_type_id) if task.task_type_id else None,
        )
        return await self._get_task(task.id)

    async def get_task(self, task_id: UUID, user_id: UUID) -> Task:
        """Get a task owned by ``user_id``."""
        return await self._load_owned_task(task_id, user_id)

    async def list_tasks(self, project_id: UUID, user_id: UUID) -> Sequence[Task]:
        """Get the caller's tasks in a project, newest first."""
        await check_project_access(self.db, project_id, user_id, "viewer")
        result = await self.db.execute(
            select(Task)
            .where(Task.project_id == project_id, Task.owner_id == user_id)
            .order_by(Task.created_at.desc())
        )
        return result.scalars().all()

    async def delete_task(self, task_id: UUID, user_id: UUID) -> None:
        """Delete a task owned by ``user_id`` together with its field values."""
        task = await self._load_owned_task(task_id, user_id)
        await self.db.delete(task)
        await self.db.flush()
        logger.info("task_deleted", task_id=str(task_id))

    # =========================================================================
    # Field values
    # =========================================================================

    async def get_field_values(self, task_id: UUID, user_id: UUID) -> list[TaskFieldValue]:
        """Values of the fields assigned to the task's current type."""
        await self._load_owned_task(task_id, user_id)
        return await self.fields.get_task_field_values(task_id, assigned_only=True)

    async def set_field_values(
        self,
        task_id: UUID,
        user_id: UUID,
        values: list[ProposedValue],
    ) -> list[TaskFieldValue]:
        """Upsert field values after full validation, kind checks included.

        A task without a type takes values for any field of its project, as
        ``update_task`` does.
        """
        task = await self._load_owned_task(task_id, user_id, lock=True)
        if task.task_type_id is not None:
            task_type = await self.task_types.get_task_type(task.task_type_id)
            await self._validate_field_values(task.id, task_type, values, check_kinds=True)
        else:
            await self._ensure_project_fields(task.project_id, values)
        await self.fields.upsert_task_field_values(task.id, values)
        return await self.fields.get_task_field_values(task.id, assigned_only=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_task(self, task_id: UUID) -> Task:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _load_owned_task(self, task_id: UUID, user_id: UUID, lock: bool = False) -> Task:
        query = select(Task).where(Task.id == task_id)
        if lock:
            # Serializes concurrent updates of one task; a no-op on SQLite
            query = query.with_for_update()
        result = await self.db.execute(query.execution_options(populate_existing=True))
        task = result.scalar_one_or_none()
        if task is None or task.owner_id != user_id:
            raise NotFoundError("Task not found")
        return task

    async def _ensure_assignee(self, project_id: UUID, assignee_id: UUID) -> None:
        if not await is_project_member(self.db, project_id, assignee_id):
            raise DomainValidationError(
                "Assignee must be a member of the project", code="INVALID_ASSIGNEE"
            )

    async def _ensure_project_state(self, project_id: UUID, state_id: UUID) -> None:
        state = await self.db.get(ProjectState, state_id)
        if state is None or state.project_id != project_id:
            raise DomainValidationError("State not found in this project", code="INVALID_STATE")

    async def _ensure_project_fields(self, project_id: UUID, values: list[ProposedValue]) -> None:
        # Untyped tasks skip assignment checks; values still need a field of the project
        field_ids = {v.field_id for v in values}
        result = await self.db.execute(
            select(CustomField.id).where(
                CustomField.project_id == project_id, CustomField.id.in_(field_ids)
            )
        )
        if set(result.scalars().all()) != field_ids:
            raise DomainValidationError(
                "Fields must belong to the task's project", code="FIELD_VALIDATION_FAILED"
            )

    async def _load_graph(self, task_type: TaskType | None) -> WorkflowGraph | None:
        if task_type is None or task_type.workflow_id is None:
            return None
        return await self.workflows.load_graph(task_type.workflow_id)

    @staticmethod
    def _ensure_state_in_workflow(graph: WorkflowGraph, state_id: UUID | None) -> None:
        if state_id is not None and not graph.has_step(state_id):
            raise DomainValidationError(
                "State is not part of the workflow for this task type",
                code="STATE_NOT_IN_WORKFLOW",
            )

    async def _validate_transition(
        self,
        task: Task,
        graph: WorkflowGraph,
        to_state_id: UUID,
    ) -> None:
        # A state outside the workflow (after a type switch) counts as no state
        from_state_id = task.state_id if graph.has_step(task.state_id) else None
        verdict = validate_transition(
            graph.workflow_id, from_state_id, to_state_id, graph.transitions
        )
        if verdict.allowed:
            return

        reachable = await self.workflows.get_states(list(verdict.reachable))
        logger.info(
            "transition_rejected",
            task_id=str(task.id),
            workflow_id=str(graph.workflow_id),
            from_state_id=str(from_state_id) if from_state_id else None,
            to_state_id=str(to_state_id),
            reason=verdict.reason.value,
        )
        raise DomainValidationError(
            verdict.message,
            code=verdict.reason.value.upper(),
            reachable_states=[{"id": str(s.id), "name": s.name} for s in reachable],
        )

    async def _validate_field_values(
        self,
        task_id: UUID | None,
        task_type: TaskType,
        values: list[ProposedValue],
        check_kinds: bool,
    ) -> None:
        assigned = await self.fields.get_assigned_fields(task_type.id)
        result = validate_field_values(
            task_type.id,
            values,
            assigned,
            check_kinds=check_kinds,
        )
        if result.is_valid:
            return

        logger.info(
            "field_values_rejected",
            task_id=str(task_id) if task_id else None,
            task_type_id=str(task_type.id),
            error_count=len(result.errors),
            codes=sorted({e.code for e in result.errors}),
        )
        raise DomainValidationError(
            result.message,
            code="FIELD_VALIDATION_FAILED",
            details=[e.to_dict() for e in result.errors],
        )

    async def _with_defaults(
        self,
        task_type_id: UUID,
        values: list[ProposedValue],
    ) -> list[ProposedValue]:
        sent = {v.field_id for v in values if not is_blank(v.value)}
        filled = list(values)
        for custom_field in await self.fields.get_task_type_fields(task_type_id):
            if custom_field.id in sent or custom_field.default_value is None:
                continue
            filled = [v for v in filled if v.field_id != custom_field.id]
            filled.append(ProposedValue(custom_field.id, custom_field.default_value))
        return filled
