"""Workflow graph endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import get_db_session
from taskflow.models.workflow import Workflow, WorkflowTransition
from taskflow.services.membership import check_project_access
from taskflow.services.workflow import TransitionSpec, WorkflowService

router = APIRouter()


# Request/Response Models
class WorkflowCreate(BaseModel):
    name: str = Field(..., max_length=255)
    state_ids: list[UUID] = []


class WorkflowRename(BaseModel):
    name: str = Field(..., max_length=255)


class StepsUpdate(BaseModel):
    state_ids: list[UUID]


class TransitionInput(BaseModel):
    """An edge. Leave ``from_state_id`` empty for an entry edge, or set
    ``any_state`` for an edge reachable from every state."""

    to_state_id: UUID
    from_state_id: UUID | None = None
    any_state: bool = False

    @model_validator(mode="after")
    def wildcard_has_no_source(self) -> "TransitionInput":
        if self.any_state and self.from_state_id is not None:
            raise ValueError("A transition from any state cannot also name a source state")
        return self

    def to_spec(self) -> TransitionSpec:
        return TransitionSpec(self.to_state_id, self.from_state_id, self.any_state)


class TransitionsUpdate(BaseModel):
    transitions: list[TransitionInput]


class StepResponse(BaseModel):
    state_id: UUID
    state_name: str
    step_order: int


class TransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    from_state_id: UUID | None
    to_state_id: UUID
    any_state: bool


class WorkflowResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    steps: list[StepResponse]
    transitions: list[TransitionResponse]


class StateRef(BaseModel):
    id: UUID
    name: str


def workflow_response(workflow: Workflow) -> WorkflowResponse:
    return WorkflowResponse(
        id=workflow.id,
        project_id=workflow.project_id,
        name=workflow.name,
        steps=[
            StepResponse(state_id=s.state_id, state_name=s.state.name, step_order=s.step_order)
            for s in workflow.steps
        ],
        transitions=[TransitionResponse.model_validate(t) for t in workflow.transitions],
    )


async def _authorized_workflow(
    service: WorkflowService,
    workflow_id: UUID,
    user_id: UUID,
    role: str,
) -> Workflow:
    workflow = await service.get_workflow(workflow_id)
    await check_project_access(service.db, workflow.project_id, user_id, role)
    return workflow


@router.get("/projects/{project_id}/workflows", response_model=list[WorkflowResponse])
async def list_workflows(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[WorkflowResponse]:
    """List the workflows of a project."""
    await check_project_access(db, project_id, current_user.id, "viewer")
    workflows = await WorkflowService(db).list_workflows(project_id)
    return [workflow_response(w) for w in workflows]


@router.post(
    "/projects/{project_id}/workflows",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workflow(
    project_id: UUID,
    workflow_data: WorkflowCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Create a workflow from an ordered list of states."""
    await check_project_access(db, project_id, current_user.id, "admin")
    workflow = await WorkflowService(db).create_workflow(
        project_id, workflow_data.name, workflow_data.state_ids
    )
    return workflow_response(workflow)


@router.get("/workflows/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Get a workflow with its steps and transitions."""
    workflow = await _authorized_workflow(WorkflowService(db), workflow_id, current_user.id, "viewer")
    return workflow_response(workflow)


@router.patch("/workflows/{workflow_id}", response_model=WorkflowResponse)
async def rename_workflow(
    workflow_id: UUID,
    workflow_data: WorkflowRename,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Rename a workflow."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    await service.rename_workflow(workflow_id, workflow_data.name)
    return workflow_response(await service.get_workflow(workflow_id))


@router.delete("/workflows/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a workflow no task type uses."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    await service.delete_workflow(workflow_id)


@router.put("/workflows/{workflow_id}/steps", response_model=WorkflowResponse)
async def set_steps(
    workflow_id: UUID,
    steps: StepsUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Replace the steps of a workflow; edges touching removed steps are dropped."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    return workflow_response(await service.set_steps(workflow_id, steps.state_ids))


@router.post(
    "/workflows/{workflow_id}/transitions",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_transition(
    workflow_id: UUID,
    transition: TransitionInput,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowTransition:
    """Add one edge to a workflow."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    return await service.add_transition(
        workflow_id,
        transition.to_state_id,
        from_state_id=transition.from_state_id,
        any_state=transition.any_state,
    )


@router.put("/workflows/{workflow_id}/transitions", response_model=WorkflowResponse)
async def set_transitions(
    workflow_id: UUID,
    payload: TransitionsUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Replace every edge of a workflow."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    workflow = await service.set_transitions(
        workflow_id, [t.to_spec() for t in payload.transitions]
    )
    return workflow_response(workflow)


@router.post("/workflows/{workflow_id}/transitions/linear", response_model=WorkflowResponse)
async def add_linear_transitions(
    workflow_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowResponse:
    """Connect each step to the next one."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    return workflow_response(await service.add_linear_transitions(workflow_id))


@router.delete(
    "/workflows/{workflow_id}/transitions/{transition_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_transition(
    workflow_id: UUID,
    transition_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Remove one edge."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "admin")
    await service.remove_transition(workflow_id, transition_id)


@router.get("/workflows/{workflow_id}/reachable", response_model=list[StateRef])
async def reachable_states(
    workflow_id: UUID,
    current_user: CurrentUser,
    from_state_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db_session),
) -> list[StateRef]:
    """States a task in ``from_state_id`` may move to; omit it for a task with no state."""
    service = WorkflowService(db)
    await _authorized_workflow(service, workflow_id, current_user.id, "viewer")
    states = await service.reachable_states(workflow_id, from_state_id)
    return [StateRef(id=s.id, name=s.name) for s in states]
