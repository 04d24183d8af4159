"""Task type endpoints, including field assignment."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.api.v1.fields import FieldResponse
from taskflow.db.session import get_db_session
from taskflow.models.field import CustomField
from taskflow.models.workflow import TaskType
from taskflow.services.custom_field import CustomFieldService
from taskflow.services.membership import check_project_access
from taskflow.services.task_type import TaskTypeService

router = APIRouter()


class TaskTypeCreate(BaseModel):
    name: str = Field(..., max_length=255)
    workflow_id: UUID


class TaskTypeUpdate(BaseModel):
    name: str | None = Field(None, max_length=255)
    workflow_id: UUID | None = None


class TaskTypeFieldsUpdate(BaseModel):
    field_ids: list[UUID]


class FieldAttach(BaseModel):
    field_id: UUID


class TaskTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    name: str
    workflow_id: UUID | None


async def _authorized_task_type(
    db: AsyncSession,
    task_type_id: UUID,
    user_id: UUID,
    role: str,
) -> TaskType:
    task_type = await TaskTypeService(db).get_task_type(task_type_id)
    await check_project_access(db, task_type.project_id, user_id, role)
    return task_type


@router.get("/projects/{project_id}/task-types", response_model=list[TaskTypeResponse])
async def list_task_types(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[TaskType]:
    """List the task types of a project."""
    await check_project_access(db, project_id, current_user.id, "viewer")
    return list(await TaskTypeService(db).list_task_types(project_id))


@router.post(
    "/projects/{project_id}/task-types",
    response_model=TaskTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task_type(
    project_id: UUID,
    task_type_data: TaskTypeCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskType:
    """Create a task type bound to a workflow."""
    await check_project_access(db, project_id, current_user.id, "admin")
    return await TaskTypeService(db).create_task_type(
        project_id, task_type_data.name, task_type_data.workflow_id
    )


@router.patch("/task-types/{task_type_id}", response_model=TaskTypeResponse)
async def update_task_type(
    task_type_id: UUID,
    updates: TaskTypeUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskType:
    """Rename a task type or move it to another workflow."""
    await _authorized_task_type(db, task_type_id, current_user.id, "admin")
    return await TaskTypeService(db).update_task_type(
        task_type_id, name=updates.name, workflow_id=updates.workflow_id
    )


@router.delete("/task-types/{task_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task_type(
    task_type_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a task type no task uses."""
    await _authorized_task_type(db, task_type_id, current_user.id, "admin")
    await TaskTypeService(db).delete_task_type(task_type_id)


@router.get("/task-types/{task_type_id}/fields", response_model=list[FieldResponse])
async def get_task_type_fields(
    task_type_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[CustomField]:
    """List the fields assigned to a task type."""
    await _authorized_task_type(db, task_type_id, current_user.id, "viewer")
    return await CustomFieldService(db).get_task_type_fields(task_type_id)


@router.put("/task-types/{task_type_id}/fields", response_model=list[FieldResponse])
async def set_task_type_fields(
    task_type_id: UUID,
    payload: TaskTypeFieldsUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[CustomField]:
    """Replace the set of fields assigned to a task type."""
    await _authorized_task_type(db, task_type_id, current_user.id, "admin")
    return await CustomFieldService(db).set_task_type_fields(task_type_id, payload.field_ids)


@router.post(
    "/task-types/{task_type_id}/fields",
    response_model=list[FieldResponse],
    status_code=status.HTTP_201_CREATED,
)
async def attach_field(
    task_type_id: UUID,
    payload: FieldAttach,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[CustomField]:
    """Assign one more field to a task type."""
    await _authorized_task_type(db, task_type_id, current_user.id, "admin")
    service = CustomFieldService(db)
    await service.attach_field(task_type_id, payload.field_id)
    return await service.get_task_type_fields(task_type_id)


@router.delete(
    "/task-types/{task_type_id}/fields/{field_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def detach_field(
    task_type_id: UUID,
    field_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Remove a field from a task type; stored task values are kept."""
    await _authorized_task_type(db, task_type_id, current_user.id, "admin")
    await CustomFieldService(db).detach_field(task_type_id, field_id)
