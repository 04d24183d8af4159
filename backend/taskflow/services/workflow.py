"""Workflow service for authoring workflow graphs and loading them for validation."""

from dataclasses import dataclass
from typing import Iterable, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskflow.engine.transitions import Transition, WorkflowGraph, reachable_from
from taskflow.exceptions import CatalogConflictError, InputError, NotFoundError
from taskflow.models.workflow import (
    ProjectState,
    TaskType,
    Workflow,
    WorkflowStep,
    WorkflowTransition,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class TransitionSpec:
    """An edge requested by a caller, before validation."""
    to_state_id: UUID
    from_state_id: UUID | None = None
    any_state: bool = False


class WorkflowService:
    """Service for managing workflows, their steps and their transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Workflow CRUD
    # =========================================================================

    async def list_workflows(self, project_id: UUID) -> Sequence[Workflow]:
        """Get all workflows of a project."""
        result = await self.db.execute(
            select(Workflow)
            .options(selectinload(Workflow.steps), selectinload(Workflow.transitions))
            .where(Workflow.project_id == project_id)
            .order_by(Workflow.name)
        )
        return result.scalars().all()

    async def get_workflow(self, workflow_id: UUID) -> Workflow:
        """Get a workflow with fresh steps and transitions."""
        result = await self.db.execute(
            select(Workflow)
            .options(selectinload(Workflow.steps), selectinload(Workflow.transitions))
            .where(Workflow.id == workflow_id)
            .execution_options(populate_existing=True)
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            raise NotFoundError("Workflow not found")
        return workflow

    async def create_workflow(
        self,
        project_id: UUID,
        name: str,
        state_ids: list[UUID] | None = None,
    ) -> Workflow:
        """Create a workflow whose steps are ``state_ids`` in order."""
        name = self._clean_name(name)
        await self._ensure_unique_name(project_id, name)

        workflow = Workflow(project_id=project_id, name=name)
        self.db.add(workflow)
        await self.db.flush()

        if state_ids:
            await self._ensure_project_states(project_id, state_ids)
            self._add_steps(workflow.id, state_ids)
            await self.db.flush()

        logger.info(
            "workflow_created",
            workflow_id=str(workflow.id),
            project_id=str(project_id),
            step_count=len(state_ids or []),
        )
        return await self.get_workflow(workflow.id)

    async def rename_workflow(self, workflow_id: UUID, name: str) -> Workflow:
        """Rename a workflow."""
        workflow = await self.get_workflow(workflow_id)
        name = self._clean_name(name)
        if name != workflow.name:
            await self._ensure_unique_name(workflow.project_id, name)
            workflow.name = name
            await self.db.flush()
            logger.info("workflow_renamed", workflow_id=str(workflow_id))
        return workflow

    async def delete_workflow(self, workflow_id: UUID) -> None:
        """Delete a workflow no task type is bound to."""
        workflow = await self.get_workflow(workflow_id)

        type_count = await self.db.scalar(
            select(func.count(TaskType.id)).where(TaskType.workflow_id == workflow_id)
        )
        if type_count:
            raise CatalogConflictError(
                f"Workflow '{workflow.name}' is used by {type_count} task type(s)"
            )

        await self.db.delete(workflow)
        await self.db.flush()
        logger.info("workflow_deleted", workflow_id=str(workflow_id))

    # =========================================================================
    # Steps
    # =========================================================================

    async def set_steps(self, workflow_id: UUID, state_ids: list[UUID]) -> Workflow:
        """Replace the workflow's steps.

        Transitions that touch a state which is no longer a step are removed
        in the same operation.
        """
        workflow = await self.get_workflow(workflow_id)
        await self._ensure_project_states(workflow.project_id, state_ids)

        removed = set(workflow.state_ids) - set(state_ids)
        pruned = 0
        if removed:
            prune_result = await self.db.execute(
                delete(WorkflowTransition).where(
                    WorkflowTransition.workflow_id == workflow_id,
                    or_(
                        WorkflowTransition.from_state_id.in_(removed),
                        WorkflowTransition.to_state_id.in_(removed),
                    ),
                )
            )
            pruned = prune_result.rowcount

        await self.db.execute(
            delete(WorkflowStep).where(WorkflowStep.workflow_id == workflow_id)
        )
        # Old rows must be gone before reused step_order values are inserted
        await self.db.flush()
        self._add_steps(workflow_id, state_ids)
        await self.db.flush()

        logger.info(
            "workflow_steps_set",
            workflow_id=str(workflow_id),
            step_count=len(state_ids),
            transitions_pruned=pruned,
        )
        return await self.get_workflow(workflow_id)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def add_transition(
        self,
        workflow_id: UUID,
        to_state_id: UUID,
        from_state_id: UUID | None = None,
        any_state: bool = False,
    ) -> WorkflowTransition:
        """Add an edge; an identical existing edge is returned unchanged."""
        workflow = await self.get_workflow(workflow_id)
        spec = TransitionSpec(to_state_id, from_state_id, any_state)
        self._check_transition(workflow, spec)

        for existing in workflow.transitions:
            if self._same_edge(existing, spec):
                return existing

        transition = WorkflowTransition(
            workflow_id=workflow_id,
            from_state_id=from_state_id,
            to_state_id=to_state_id,
            any_state=any_state,
            position=self._next_position(workflow),
        )
        self.db.add(transition)
        await self.db.flush()

        logger.info(
            "workflow_transition_added",
            workflow_id=str(workflow_id),
            from_state_id=str(from_state_id) if from_state_id else None,
            to_state_id=str(to_state_id),
            any_state=any_state,
        )
        return transition

    async def set_transitions(
        self,
        workflow_id: UUID,
        transitions: Iterable[TransitionSpec],
    ) -> Workflow:
        """Replace all edges of the workflow; duplicates are collapsed."""
        workflow = await self.get_workflow(workflow_id)

        unique: list[TransitionSpec] = []
        for spec in transitions:
            self._check_transition(workflow, spec)
            if spec not in unique:
                unique.append(spec)

        await self.db.execute(
            delete(WorkflowTransition).where(WorkflowTransition.workflow_id == workflow_id)
        )
        for position, spec in enumerate(unique, start=1):
            self.db.add(
                WorkflowTransition(
                    workflow_id=workflow_id,
                    from_state_id=spec.from_state_id,
                    to_state_id=spec.to_state_id,
                    any_state=spec.any_state,
                    position=position,
                )
            )
        await self.db.flush()

        logger.info(
            "workflow_transitions_set",
            workflow_id=str(workflow_id),
            transition_count=len(unique),
        )
        return await self.get_workflow(workflow_id)

    async def remove_transition(self, workflow_id: UUID, transition_id: UUID) -> None:
        """Remove one edge of the workflow."""
        result = await self.db.execute(
            delete(WorkflowTransition).where(
                WorkflowTransition.id == transition_id,
                WorkflowTransition.workflow_id == workflow_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Transition not found")
        logger.info(
            "workflow_transition_removed",
            workflow_id=str(workflow_id),
            transition_id=str(transition_id),
        )

    async def add_linear_transitions(self, workflow_id: UUID) -> Workflow:
        """Add ``step[i] -> step[i+1]`` for each consecutive pair of steps."""
        workflow = await self.get_workflow(workflow_id)
        state_ids = workflow.state_ids

        position = self._next_position(workflow)
        added = 0
        for from_state_id, to_state_id in zip(state_ids, state_ids[1:]):
            spec = TransitionSpec(to_state_id, from_state_id)
            if any(self._same_edge(t, spec) for t in workflow.transitions):
                continue
            self.db.add(
                WorkflowTransition(
                    workflow_id=workflow_id,
                    from_state_id=from_state_id,
                    to_state_id=to_state_id,
                    position=position + added,
                )
            )
            added += 1
        await self.db.flush()

        logger.info("workflow_linear_transitions_added", workflow_id=str(workflow_id), added=added)
        return await self.get_workflow(workflow_id)

    # =========================================================================
    # Graph loading for validation
    # =========================================================================

    async def load_graph(self, workflow_id: UUID) -> WorkflowGraph:
        """Load a workflow as an immutable graph for the transition validator."""
        workflow = await self.get_workflow(workflow_id)
        return to_graph(workflow)

    async def reachable_states(
        self,
        workflow_id: UUID,
        from_state_id: UUID | None,
    ) -> list[ProjectState]:
        """States a task currently in ``from_state_id`` may move to."""
        graph = await self.load_graph(workflow_id)
        state_ids = reachable_from(from_state_id, graph.transitions)
        return await self.get_states(state_ids)

    async def get_states(self, state_ids: Sequence[UUID]) -> list[ProjectState]:
        """Load states keeping the order of ``state_ids``."""
        if not state_ids:
            return []
        result = await self.db.execute(
            select(ProjectState).where(ProjectState.id.in_(state_ids))
        )
        by_id = {s.id: s for s in result.scalars().all()}
        return [by_id[state_id] for state_id in state_ids if state_id in by_id]

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _next_position(workflow: Workflow) -> int:
        return max((t.position for t in workflow.transitions), default=0) + 1

    def _add_steps(self, workflow_id: UUID, state_ids: list[UUID]) -> None:
        for step_order, state_id in enumerate(state_ids, start=1):
            self.db.add(
                WorkflowStep(workflow_id=workflow_id, state_id=state_id, step_order=step_order)
            )

    async def _ensure_project_states(self, project_id: UUID, state_ids: list[UUID]) -> None:
        if len(set(state_ids)) != len(state_ids):
            raise InputError("A state can appear only once in a workflow")
        if not state_ids:
            return
        result = await self.db.execute(
            select(ProjectState.id).where(
                ProjectState.id.in_(state_ids),
                ProjectState.project_id == project_id,
            )
        )
        found = set(result.scalars().all())
        if found != set(state_ids):
            raise InputError("Workflow steps must be states of the same project")

    @staticmethod
    def _check_transition(workflow: Workflow, spec: TransitionSpec) -> None:
        steps = set(workflow.state_ids)
        if spec.any_state and spec.from_state_id is not None:
            raise InputError("A transition from any state cannot also name a source state")
        if spec.to_state_id not in steps:
            raise InputError("Transition target must be a step of the workflow")
        if spec.from_state_id is not None and spec.from_state_id not in steps:
            raise InputError("Transition source must be a step of the workflow")
        if spec.from_state_id is not None and spec.from_state_id == spec.to_state_id:
            raise InputError("Transition source and target must differ")

    @staticmethod
    def _same_edge(transition: WorkflowTransition, spec: TransitionSpec) -> bool:
        return (
            transition.to_state_id == spec.to_state_id
            and transition.from_state_id == spec.from_state_id
            and transition.any_state == spec.any_state
        )

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise InputError("Workflow name is required")
        if len(cleaned) > 255:
            raise InputError("Workflow name cannot exceed 255 characters")
        return cleaned

    async def _ensure_unique_name(self, project_id: UUID, name: str) -> None:
        existing = await self.db.scalar(
            select(Workflow.id).where(
                Workflow.project_id == project_id,
                func.lower(Workflow.name) == name.lower(),
            )
        )
        if existing is not None:
            raise CatalogConflictError(f"Workflow '{name}' already exists in this project")


def to_graph(workflow: Workflow) -> WorkflowGraph:
    """Convert a loaded workflow into the engine's value object."""
    return WorkflowGraph(
        workflow_id=workflow.id,
        steps=tuple(workflow.state_ids),
        transitions=tuple(
            Transition(
                to_state=t.to_state_id,
                from_state=t.from_state_id,
                any_state=t.any_state,
            )
            for t in workflow.transitions
        ),
    )
