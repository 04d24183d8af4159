"""Tasks API endpoints."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import get_db_session
from taskflow.engine.field_kinds import format_value
from taskflow.engine.field_values import ProposedValue
from taskflow.models.task import Task, TaskFieldValue
from taskflow.services.custom_field import CustomFieldService
from taskflow.services.task_update import TaskPatch, TaskUpdateService

router = APIRouter()
logger = structlog.get_logger()

# Columns that cannot be cleared; an explicit null leaves them unchanged
NON_NULLABLE = {"status", "priority"}


# Request/Response Models
class FieldValueInput(BaseModel):
    """A custom field value sent by the client."""

    field_id: UUID
    value: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_to_text(cls, v: Any) -> str | None:
        """Values are stored as text; checkboxes arrive as booleans."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        raise ValueError("Value must be a string, number or boolean")


class TaskCreate(BaseModel):
    """Create a new task."""

    project_id: UUID
    name: str | None = Field(None, max_length=500)
    description: str | None = None
    status: str = Field(default="todo", max_length=50)
    priority: str = Field(default="medium", pattern="^(low|medium|high|urgent)$")
    due_date: date | None = None
    assignee_id: UUID | None = None
    task_type_id: UUID | None = None
    state_id: UUID | None = None
    field_values: list[FieldValueInput] | None = None


class TaskUpdate(BaseModel):
    """Update a task. The name is always required."""

    name: str | None = Field(None, max_length=500)
    description: str | None = None
    status: str | None = Field(None, max_length=50)
    priority: str | None = Field(None, pattern="^(low|medium|high|urgent)$")
    due_date: date | None = None
    assignee_id: UUID | None = None
    task_type_id: UUID | None = None
    state_id: UUID | None = None
    field_values: list[FieldValueInput] | None = None


class FieldValuesUpdate(BaseModel):
    """Batch of custom field values for one task."""

    field_values: list[FieldValueInput]


class FieldValueResponse(BaseModel):
    """Custom field value with its field definition."""

    field_id: UUID
    field_name: str
    input_kind: str
    value: str | None
    display_value: str


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    project_id: UUID
    owner_id: UUID
    name: str
    description: str | None
    status: str
    priority: str
    due_date: date | None
    assignee_id: UUID | None
    task_type_id: UUID | None
    state_id: UUID | None
    created_at: datetime
    updated_at: datetime
    field_values: list[FieldValueResponse] = []


class TaskEnvelope(BaseModel):
    """Single task wrapped in a ``data`` key."""

    data: TaskResponse


def to_proposed(values: list[FieldValueInput] | None) -> list[ProposedValue] | None:
    if values is None:
        return None
    return [ProposedValue(field_id=v.field_id, value=v.value) for v in values]


def field_value_response(value: TaskFieldValue) -> FieldValueResponse:
    return FieldValueResponse(
        field_id=value.field_id,
        field_name=value.field.name,
        input_kind=value.field.input_kind,
        value=value.value,
        display_value=format_value(value.field.input_kind, value.value),
    )


async def build_task_response(db: AsyncSession, task: Task) -> TaskResponse:
    """Task with the values of the fields assigned to its current type."""
    values = await CustomFieldService(db).get_task_field_values(task.id, assigned_only=True)
    return TaskResponse(
        id=task.id,
        project_id=task.project_id,
        owner_id=task.owner_id,
        name=task.name,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        assignee_id=task.assignee_id,
        task_type_id=task.task_type_id,
        state_id=task.state_id,
        created_at=task.created_at,
        updated_at=task.updated_at,
        field_values=[field_value_response(v) for v in values],
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskResponse:
    """Create a new task."""
    changes = task_data.model_dump(exclude={"project_id", "field_values"}, exclude_none=True)
    changes["name"] = task_data.name
    task = await TaskUpdateService(db).create_task(
        current_user.id,
        task_data.project_id,
        changes,
        to_proposed(task_data.field_values),
    )
    return await build_task_response(db, task)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    current_user: CurrentUser,
    project_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db_session),
) -> list[TaskResponse]:
    """List the caller's tasks in a project."""
    tasks = await TaskUpdateService(db).list_tasks(project_id, current_user.id)
    return [await build_task_response(db, task) for task in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskResponse:
    """Get a task."""
    task = await TaskUpdateService(db).get_task(task_id, current_user.id)
    return await build_task_response(db, task)


@router.put("/{task_id}", response_model=TaskEnvelope)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskEnvelope:
    """Update a task, validating its workflow state and custom field values."""
    changes = updates.model_dump(exclude_unset=True, exclude={"field_values"})
    for key in NON_NULLABLE:
        if key in changes and changes[key] is None:
            del changes[key]

    patch = TaskPatch(changes=changes, field_values=to_proposed(updates.field_values))
    task = await TaskUpdateService(db).update_task(task_id, current_user.id, patch)
    return TaskEnvelope(data=await build_task_response(db, task))


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a task."""
    await TaskUpdateService(db).delete_task(task_id, current_user.id)


@router.get("/{task_id}/field-values", response_model=list[FieldValueResponse])
async def get_task_field_values(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[FieldValueResponse]:
    """Get the custom field values of a task."""
    values = await TaskUpdateService(db).get_field_values(task_id, current_user.id)
    return [field_value_response(v) for v in values]


@router.put("/{task_id}/field-values", response_model=list[FieldValueResponse])
async def set_task_field_values(
    task_id: UUID,
    payload: FieldValuesUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[FieldValueResponse]:
    """Set custom field values of a task, with per-kind value checks.

    A task without a type takes values for any field of its project.
    """
    values = await TaskUpdateService(db).set_field_values(
        task_id, current_user.id, to_proposed(payload.field_values)
    )
    return [field_value_response(v) for v in values]
