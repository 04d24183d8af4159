"""Task and custom field value models."""

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow.db.base import BaseModel

if TYPE_CHECKING:
    from taskflow.models.field import CustomField
    from taskflow.models.project import Project
    from taskflow.models.workflow import ProjectState, TaskType


class Task(BaseModel):
    """A unit of work. Its type picks the workflow that governs `state_id`."""

    __tablename__ = "tasks"

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Free-form labels kept alongside the workflow state
    status: Mapped[str] = mapped_column(String(50), default="todo")
    priority: Mapped[str] = mapped_column(String(20), default="medium")

    # Ownership and assignment
    project_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Type and workflow position
    task_type_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("task_types.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    state_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("project_states.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    project: Mapped["Project"] = relationship("Project")
    task_type: Mapped["TaskType | None"] = relationship("TaskType")
    state: Mapped["ProjectState | None"] = relationship("ProjectState")
    field_values: Mapped[list["TaskFieldValue"]] = relationship(
        "TaskFieldValue",
        back_populates="task",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Task {self.id} state={self.state_id}>"


class TaskFieldValue(BaseModel):
    """One custom field value of a task, stored as text in its canonical form."""

    __tablename__ = "task_field_values"
    __table_args__ = (
        UniqueConstraint("task_id", "field_id", name="uq_task_field_value"),
    )

    task_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("custom_fields.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    task: Mapped["Task"] = relationship("Task", back_populates="field_values")
    field: Mapped["CustomField"] = relationship("CustomField", lazy="joined")
