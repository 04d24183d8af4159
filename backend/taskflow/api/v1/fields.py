"""Custom field definition endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import get_db_session
from taskflow.engine.field_kinds import FieldKind
from taskflow.models.field import CustomField
from taskflow.services.custom_field import CustomFieldService
from taskflow.services.membership import check_project_access

router = APIRouter()


class FieldCreate(BaseModel):
    name: str = Field(..., max_length=100)
    input_kind: FieldKind
    is_required: bool = False
    default_value: str | None = None
    options: list[str] | None = None


class FieldUpdate(BaseModel):
    """Partial update; send ``null`` to clear the default value or options."""

    name: str | None = Field(None, max_length=100)
    input_kind: FieldKind | None = None
    is_required: bool | None = None
    default_value: str | None = None
    options: list[str] | None = None


class FieldResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    name: str
    input_kind: str
    is_required: bool
    default_value: str | None
    options: list[str] | None


async def _authorized_field(
    service: CustomFieldService,
    field_id: UUID,
    user_id: UUID,
    role: str,
) -> CustomField:
    field = await service.get_field(field_id)
    await check_project_access(service.db, field.project_id, user_id, role)
    return field


@router.get("/projects/{project_id}/fields", response_model=list[FieldResponse])
async def list_fields(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[CustomField]:
    """List the custom fields of a project."""
    await check_project_access(db, project_id, current_user.id, "viewer")
    return list(await CustomFieldService(db).list_fields(project_id))


@router.post(
    "/projects/{project_id}/fields",
    response_model=FieldResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_field(
    project_id: UUID,
    field_data: FieldCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> CustomField:
    """Create a custom field."""
    await check_project_access(db, project_id, current_user.id, "admin")
    return await CustomFieldService(db).create_field(
        project_id,
        name=field_data.name,
        input_kind=field_data.input_kind.value,
        is_required=field_data.is_required,
        default_value=field_data.default_value,
        options=field_data.options,
    )


@router.patch("/fields/{field_id}", response_model=FieldResponse)
async def update_field(
    field_id: UUID,
    updates: FieldUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> CustomField:
    """Update a custom field."""
    service = CustomFieldService(db)
    await _authorized_field(service, field_id, current_user.id, "admin")

    update_data = updates.model_dump(exclude_unset=True)
    if update_data.get("input_kind") is not None:
        update_data["input_kind"] = update_data["input_kind"].value
    return await service.update_field(field_id, **update_data)


@router.delete("/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_field(
    field_id: UUID,
    current_user: CurrentUser,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a custom field; ``force`` also deletes its stored values."""
    service = CustomFieldService(db)
    await _authorized_field(service, field_id, current_user.id, "admin")
    await service.delete_field(field_id, force=force)
