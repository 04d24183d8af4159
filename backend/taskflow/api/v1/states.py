"""Project state catalog endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import get_db_session
from taskflow.exceptions import NotFoundError
from taskflow.models.workflow import ProjectState
from taskflow.services.membership import check_project_access
from taskflow.services.state import StateService

router = APIRouter()


class StateCreate(BaseModel):
    name: str = Field(..., max_length=100)
    position: int | None = Field(None, ge=0)


class StateRename(BaseModel):
    name: str = Field(..., max_length=100)


class StateOrder(BaseModel):
    state_ids: list[UUID]


class StateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    name: str
    position: int


async def _project_state(service: StateService, project_id: UUID, state_id: UUID) -> ProjectState:
    state = await service.get_state(state_id)
    if state.project_id != project_id:
        raise NotFoundError("State not found")
    return state


@router.get("/projects/{project_id}/states", response_model=list[StateResponse])
async def list_states(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[ProjectState]:
    """List the states of a project in display order."""
    await check_project_access(db, project_id, current_user.id, "viewer")
    return list(await StateService(db).list_states(project_id))


@router.post(
    "/projects/{project_id}/states",
    response_model=StateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_state(
    project_id: UUID,
    state_data: StateCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectState:
    """Create a state."""
    await check_project_access(db, project_id, current_user.id, "admin")
    return await StateService(db).create_state(project_id, state_data.name, state_data.position)


@router.put("/projects/{project_id}/states/order", response_model=list[StateResponse])
async def reorder_states(
    project_id: UUID,
    order: StateOrder,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[ProjectState]:
    """Set the display order of every state of the project."""
    await check_project_access(db, project_id, current_user.id, "admin")
    return list(await StateService(db).reorder_states(project_id, order.state_ids))


@router.patch("/projects/{project_id}/states/{state_id}", response_model=StateResponse)
async def rename_state(
    project_id: UUID,
    state_id: UUID,
    state_data: StateRename,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectState:
    """Rename a state."""
    await check_project_access(db, project_id, current_user.id, "admin")
    service = StateService(db)
    await _project_state(service, project_id, state_id)
    return await service.rename_state(state_id, state_data.name)


@router.delete(
    "/projects/{project_id}/states/{state_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_state(
    project_id: UUID,
    state_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a state no workflow step or task uses."""
    await check_project_access(db, project_id, current_user.id, "admin")
    service = StateService(db)
    await _project_state(service, project_id, state_id)
    await service.delete_state(state_id)
