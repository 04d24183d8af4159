"""State catalog service."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import CatalogConflictError, InputError, NotFoundError
from taskflow.models.task import Task
from taskflow.models.workflow import ProjectState, WorkflowStep

logger = structlog.get_logger()


class StateService:
    """Service for managing the named states of a project."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_states(self, project_id: UUID) -> Sequence[ProjectState]:
        """Get all states of a project in display order."""
        result = await self.db.execute(
            select(ProjectState)
            .where(ProjectState.project_id == project_id)
            .order_by(ProjectState.position, ProjectState.name)
        )
        return result.scalars().all()

    async def get_state(self, state_id: UUID) -> ProjectState:
        """Get a state by ID."""
        state = await self.db.get(ProjectState, state_id)
        if state is None:
            raise NotFoundError("State not found")
        return state

    async def create_state(
        self,
        project_id: UUID,
        name: str,
        position: int | None = None,
    ) -> ProjectState:
        """Create a state; appended after the last one unless a position is given."""
        name = self._clean_name(name)
        await self._ensure_unique_name(project_id, name)

        if position is None:
            max_pos_result = await self.db.execute(
                select(func.max(ProjectState.position)).where(
                    ProjectState.project_id == project_id
                )
            )
            position = (max_pos_result.scalar() or 0) + 1

        state = ProjectState(project_id=project_id, name=name, position=position)
        self.db.add(state)
        await self.db.flush()

        logger.info(
            "state_created",
            state_id=str(state.id),
            project_id=str(project_id),
            state_name=name,
        )
        return state

    async def rename_state(self, state_id: UUID, name: str) -> ProjectState:
        """Rename a state."""
        state = await self.get_state(state_id)
        name = self._clean_name(name)
        if name != state.name:
            await self._ensure_unique_name(state.project_id, name)
            state.name = name
            await self.db.flush()
            logger.info("state_renamed", state_id=str(state_id), state_name=name)
        return state

    async def reorder_states(
        self,
        project_id: UUID,
        state_order: list[UUID],
    ) -> Sequence[ProjectState]:
        """Set display positions 1..n following ``state_order``.

        The list must name every state of the project exactly once.
        """
        states = {s.id: s for s in await self.list_states(project_id)}
        if len(set(state_order)) != len(state_order):
            raise InputError("State order contains duplicates")
        if set(state_order) != set(states):
            raise InputError("State order must list every state of the project exactly once")

        for position, state_id in enumerate(state_order, start=1):
            states[state_id].position = position

        await self.db.flush()
        logger.info("states_reordered", project_id=str(project_id), count=len(state_order))
        return await self.list_states(project_id)

    async def delete_state(self, state_id: UUID) -> None:
        """Delete a state that no workflow step and no task references."""
        state = await self.get_state(state_id)

        step_count = await self.db.scalar(
            select(func.count(WorkflowStep.id)).where(WorkflowStep.state_id == state_id)
        )
        if step_count:
            raise CatalogConflictError(
                f"State '{state.name}' is used by {step_count} workflow step(s)"
            )

        task_count = await self.db.scalar(
            select(func.count(Task.id)).where(Task.state_id == state_id)
        )
        if task_count:
            raise CatalogConflictError(
                f"State '{state.name}' is used by {task_count} task(s)"
            )

        await self.db.delete(state)
        await self.db.flush()
        logger.info("state_deleted", state_id=str(state_id), project_id=str(state.project_id))

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise InputError("State name is required")
        if len(cleaned) > 100:
            raise InputError("State name cannot exceed 100 characters")
        return cleaned

    async def _ensure_unique_name(self, project_id: UUID, name: str) -> None:
        existing = await self.db.scalar(
            select(ProjectState.id).where(
                ProjectState.project_id == project_id,
                func.lower(ProjectState.name) == name.lower(),
            )
        )
        if existing is not None:
            raise CatalogConflictError(f"State '{name}' already exists in this project")
