"""Custom field service for field definitions, task type assignments and task values."""

import re
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.engine.field_kinds import FieldKind, get_kind_spec, validate_kind_value
from taskflow.engine.field_values import AssignedField, ProposedValue, last_value_per_field
from taskflow.exceptions import CatalogConflictError, InputError, NotFoundError
from taskflow.models.field import CustomField, TaskTypeField
from taskflow.models.task import Task, TaskFieldValue
from taskflow.models.workflow import TaskType

logger = structlog.get_logger()

FIELD_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_()]+$")
FIELD_NAME_MAX_LENGTH = 100

_UNSET = object()


class CustomFieldService:
    """Service for managing custom fields and their values."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Field Definition CRUD
    # =========================================================================

    async def list_fields(self, project_id: UUID) -> Sequence[CustomField]:
        """Get all custom fields of a project."""
        result = await self.db.execute(
            select(CustomField)
            .where(CustomField.project_id == project_id)
            .order_by(CustomField.name)
        )
        return result.scalars().all()

    async def get_field(self, field_id: UUID) -> CustomField:
        """Get a custom field by ID."""
        field = await self.db.get(CustomField, field_id)
        if field is None:
            raise NotFoundError("Field not found")
        return field

    async def create_field(
        self,
        project_id: UUID,
        name: str,
        input_kind: str,
        is_required: bool = False,
        default_value: str | None = None,
        options: list[str] | None = None,
    ) -> CustomField:
        """Create a new custom field definition for a project."""
        name = validate_field_name(name)
        kind = self._check_kind(input_kind)
        options = self._check_options(kind, options)
        default_value = self._check_default(kind, default_value, options)
        await self._ensure_unique_name(project_id, name)

        field = CustomField(
            project_id=project_id,
            name=name,
            input_kind=kind.value,
            is_required=is_required,
            default_value=default_value,
            options=options,
        )
        self.db.add(field)
        await self.db.flush()

        logger.info(
            "custom_field_created",
            field_id=str(field.id),
            project_id=str(project_id),
            input_kind=kind.value,
        )
        return field

    async def update_field(
        self,
        field_id: UUID,
        name: str | None = None,
        input_kind: str | None = None,
        is_required: bool | None = None,
        default_value=_UNSET,
        options=_UNSET,
    ) -> CustomField:
        """Update a custom field definition.

        ``default_value`` and ``options`` can be cleared by passing None;
        leaving them out keeps the stored value.
        """
        field = await self.get_field(field_id)

        if name is not None:
            name = validate_field_name(name)
            if name != field.name:
                await self._ensure_unique_name(field.project_id, name)
                field.name = name

        kind = self._check_kind(input_kind if input_kind is not None else field.input_kind)
        new_options = field.options if options is _UNSET else options
        new_options = self._check_options(kind, new_options)
        new_default = field.default_value if default_value is _UNSET else default_value
        new_default = self._check_default(kind, new_default, new_options)

        field.input_kind = kind.value
        field.options = new_options
        field.default_value = new_default
        if is_required is not None:
            field.is_required = is_required

        await self.db.flush()
        logger.info("custom_field_updated", field_id=str(field_id))
        return field

    async def delete_field(self, field_id: UUID, force: bool = False) -> None:
        """Delete a custom field.

        A field that still has stored values is only deleted with ``force``,
        which removes its values and assignments with it.
        """
        field = await self.get_field(field_id)

        value_count = await self.db.scalar(
            select(func.count(TaskFieldValue.id)).where(TaskFieldValue.field_id == field_id)
        )
        if value_count and not force:
            raise CatalogConflictError(
                f"Field '{field.name}' has values on {value_count} task(s)"
            )

        await self.db.execute(delete(TaskFieldValue).where(TaskFieldValue.field_id == field_id))
        await self.db.execute(delete(TaskTypeField).where(TaskTypeField.field_id == field_id))
        await self.db.delete(field)
        await self.db.flush()

        logger.info(
            "custom_field_deleted",
            field_id=str(field_id),
            values_deleted=value_count or 0,
        )

    # =========================================================================
    # Task Type Assignment
    # =========================================================================

    async def get_task_type_fields(self, task_type_id: UUID) -> list[CustomField]:
        """Get the fields assigned to a task type."""
        result = await self.db.execute(
            select(CustomField)
            .join(TaskTypeField, TaskTypeField.field_id == CustomField.id)
            .where(TaskTypeField.task_type_id == task_type_id)
            .order_by(CustomField.name)
        )
        return list(result.scalars().all())

    async def get_assigned_fields(self, task_type_id: UUID) -> list[AssignedField]:
        """Assigned fields reduced to what the field value validator reads."""
        return [to_assigned_field(f) for f in await self.get_task_type_fields(task_type_id)]

    async def set_task_type_fields(
        self,
        task_type_id: UUID,
        field_ids: list[UUID],
    ) -> list[CustomField]:
        """Replace the set of fields assigned to a task type."""
        task_type = await self._get_task_type(task_type_id)
        unique_ids = list(dict.fromkeys(field_ids))
        await self._ensure_project_fields(task_type.project_id, unique_ids)

        await self.db.execute(
            delete(TaskTypeField).where(TaskTypeField.task_type_id == task_type_id)
        )
        for field_id in unique_ids:
            self.db.add(TaskTypeField(task_type_id=task_type_id, field_id=field_id))
        await self.db.flush()

        logger.info(
            "task_type_fields_set",
            task_type_id=str(task_type_id),
            field_count=len(unique_ids),
        )
        return await self.get_task_type_fields(task_type_id)

    async def attach_field(self, task_type_id: UUID, field_id: UUID) -> TaskTypeField:
        """Assign one field to a task type; an existing assignment is returned as-is."""
        task_type = await self._get_task_type(task_type_id)
        await self._ensure_project_fields(task_type.project_id, [field_id])

        existing = await self._get_assignment(task_type_id, field_id)
        if existing:
            return existing

        assignment = TaskTypeField(task_type_id=task_type_id, field_id=field_id)
        self.db.add(assignment)
        await self.db.flush()

        logger.info(
            "task_type_field_attached",
            task_type_id=str(task_type_id),
            field_id=str(field_id),
        )
        return assignment

    async def detach_field(self, task_type_id: UUID, field_id: UUID) -> None:
        """Remove a field from a task type. Stored task values are kept."""
        result = await self.db.execute(
            delete(TaskTypeField).where(
                and_(
                    TaskTypeField.task_type_id == task_type_id,
                    TaskTypeField.field_id == field_id,
                )
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Field is not assigned to this task type")
        logger.info(
            "task_type_field_detached",
            task_type_id=str(task_type_id),
            field_id=str(field_id),
        )

    # =========================================================================
    # Field Value CRUD
    # =========================================================================

    async def get_task_field_values(
        self,
        task_id: UUID,
        assigned_only: bool = True,
    ) -> list[TaskFieldValue]:
        """Get the custom field values of a task.

        With ``assigned_only``, values of fields that are not assigned to
        the task's current type are left out; they stay in storage.
        """
        query = select(TaskFieldValue).where(TaskFieldValue.task_id == task_id)

        if assigned_only:
            task_type_id = await self.db.scalar(
                select(Task.task_type_id).where(Task.id == task_id)
            )
            if task_type_id is None:
                return []
            query = query.join(
                TaskTypeField,
                and_(
                    TaskTypeField.field_id == TaskFieldValue.field_id,
                    TaskTypeField.task_type_id == task_type_id,
                ),
            )

        result = await self.db.execute(query.execution_options(populate_existing=True))
        values = list(result.scalars().all())
        values.sort(key=lambda v: v.field.name)
        return values

    async def upsert_task_field_values(
        self,
        task_id: UUID,
        values: Sequence[ProposedValue],
    ) -> int:
        """Insert or update one value per field; empty strings are stored as NULL.

        A field named more than once keeps its last value.
        """
        values = last_value_per_field(values)
        for entry in values:
            value = normalize_value(entry.value)
            result = await self.db.execute(
                select(TaskFieldValue).where(
                    and_(
                        TaskFieldValue.task_id == task_id,
                        TaskFieldValue.field_id == entry.field_id,
                    )
                )
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.value = value
            else:
                self.db.add(
                    TaskFieldValue(task_id=task_id, field_id=entry.field_id, value=value)
                )

        await self.db.flush()

        if values:
            logger.info(
                "custom_field_values_set",
                task_id=str(task_id),
                count=len(values),
            )
        return len(values)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_task_type(self, task_type_id: UUID) -> TaskType:
        task_type = await self.db.get(TaskType, task_type_id)
        if task_type is None:
            raise NotFoundError("Task type not found")
        return task_type

    async def _get_assignment(self, task_type_id: UUID, field_id: UUID) -> TaskTypeField | None:
        result = await self.db.execute(
            select(TaskTypeField).where(
                and_(
                    TaskTypeField.task_type_id == task_type_id,
                    TaskTypeField.field_id == field_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def _ensure_project_fields(self, project_id: UUID, field_ids: list[UUID]) -> None:
        if not field_ids:
            return
        result = await self.db.execute(
            select(CustomField.id).where(
                CustomField.id.in_(field_ids),
                CustomField.project_id == project_id,
            )
        )
        if set(result.scalars().all()) != set(field_ids):
            raise InputError("Fields must belong to the task type's project")

    async def _ensure_unique_name(self, project_id: UUID, name: str) -> None:
        existing = await self.db.scalar(
            select(CustomField.id).where(
                CustomField.project_id == project_id,
                func.lower(CustomField.name) == name.lower(),
            )
        )
        if existing is not None:
            raise CatalogConflictError(f"Field '{name}' already exists in this project")

    @staticmethod
    def _check_kind(input_kind: str) -> FieldKind:
        try:
            return get_kind_spec(input_kind).kind
        except ValueError as e:
            raise InputError(str(e)) from e

    @staticmethod
    def _check_options(kind: FieldKind, options: list[str] | None) -> list[str] | None:
        if not get_kind_spec(kind).uses_options:
            return None
        cleaned = [str(o).strip() for o in (options or []) if str(o).strip()]
        if not cleaned:
            raise InputError(f"Options are required for {kind.value} fields")
        if len(set(cleaned)) != len(cleaned):
            raise InputError("Options must be unique")
        return cleaned

    @staticmethod
    def _check_default(
        kind: FieldKind,
        default_value: str | None,
        options: list[str] | None,
    ) -> str | None:
        default_value = normalize_value(default_value)
        if default_value is None:
            return None
        error = validate_kind_value(kind, default_value, options)
        if error:
            raise InputError(f"Default value is invalid: {error}")
        return default_value


def validate_field_name(name: str) -> str:
    """Trim a field name and check its length and characters."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise InputError("Field name is required")
    if len(cleaned) > FIELD_NAME_MAX_LENGTH:
        raise InputError(f"Field name cannot exceed {FIELD_NAME_MAX_LENGTH} characters")
    if not FIELD_NAME_PATTERN.match(cleaned):
        raise InputError(
            "Field name can only contain letters, numbers, spaces, hyphens, "
            "underscores and parentheses"
        )
    return cleaned


def normalize_value(value) -> str | None:
    """Stored form of a value: text, with empty strings as None."""
    if value is None:
        return None
    value = str(value)
    return value if value != "" else None


def to_assigned_field(field: CustomField) -> AssignedField:
    return AssignedField(
        field_id=field.id,
        name=field.name,
        is_required=field.is_required,
        input_kind=field.input_kind,
        options=tuple(field.options) if field.options else None,
    )
