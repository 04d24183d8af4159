"""Workflow catalog models: states, workflows, steps, transitions and task types."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow.db.base import BaseModel

if TYPE_CHECKING:
    from taskflow.models.field import TaskTypeField
    from taskflow.models.project import Project


class ProjectState(BaseModel):
    """A named state tasks of a project can occupy."""

    __tablename__ = "project_states"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_project_state_name"),
    )

    project_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Display order only, never consulted for transition legality
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project: Mapped["Project"] = relationship("Project")

    def __repr__(self) -> str:
        try:
            return f"<ProjectState {self.name} position={self.position}>"
        except Exception:
            return "<ProjectState detached>"


class Workflow(BaseModel):
    """A named subgraph of a project's states."""

    __tablename__ = "workflows"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_workflow_name"),
    )

    project_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    project: Mapped["Project"] = relationship("Project")
    steps: Mapped[list["WorkflowStep"]] = relationship(
        "WorkflowStep", back_populates="workflow", lazy="selectin",
        order_by="WorkflowStep.step_order",
        cascade="all, delete-orphan", passive_deletes=True
    )
    transitions: Mapped[list["WorkflowTransition"]] = relationship(
        "WorkflowTransition", back_populates="workflow", lazy="selectin",
        order_by="WorkflowTransition.position",
        cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def state_ids(self) -> list[UUID]:
        """Step state ids in step order."""
        return [step.state_id for step in self.steps]

    def __repr__(self) -> str:
        try:
            return f"<Workflow {self.name} project={self.project_id}>"
        except Exception:
            return "<Workflow detached>"


class WorkflowStep(BaseModel):
    """A state usable within a workflow, at a given position."""

    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "state_id", name="uq_workflow_step_state"),
        UniqueConstraint("workflow_id", "step_order", name="uq_workflow_step_order"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    state_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("project_states.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)

    workflow: Mapped["Workflow"] = relationship("Workflow", back_populates="steps")
    state: Mapped["ProjectState"] = relationship("ProjectState", lazy="joined")

    def __repr__(self) -> str:
        return f"<WorkflowStep workflow={self.workflow_id} order={self.step_order}>"


class WorkflowTransition(BaseModel):
    """A directed edge of a workflow graph.

    ``any_state`` marks a wildcard edge: reachable from every state of the
    workflow. Wildcards never store a source state. An edge with no source
    and ``any_state`` false is an entry edge and only applies to tasks that
    have no state yet.
    """

    __tablename__ = "workflow_transitions"
    __table_args__ = (
        CheckConstraint(
            "NOT any_state OR from_state_id IS NULL",
            name="ck_workflow_transition_wildcard_source",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_state_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("project_states.id", ondelete="CASCADE"),
        nullable=True,
    )
    to_state_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("project_states.id", ondelete="CASCADE"),
        nullable=False,
    )
    any_state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Edge order; reachable-state lists follow it
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    workflow: Mapped["Workflow"] = relationship("Workflow", back_populates="transitions")

    def __repr__(self) -> str:
        source = "*" if self.any_state else self.from_state_id
        return f"<WorkflowTransition {source} -> {self.to_state_id}>"


class TaskType(BaseModel):
    """Task category: picks the workflow governing state and the fields that apply."""

    __tablename__ = "task_types"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_task_type_name"),
    )

    project_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Nullable at the schema level for types that do not use states
    workflow_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("workflows.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project")
    workflow: Mapped["Workflow | None"] = relationship("Workflow")
    field_assignments: Mapped[list["TaskTypeField"]] = relationship(
        "TaskTypeField", back_populates="task_type", lazy="selectin",
        cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        try:
            return f"<TaskType {self.name} workflow={self.workflow_id}>"
        except Exception:
            return "<TaskType detached>"
