"""Custom field definitions and their assignment to task types."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow.db.base import BaseModel, JSONType

if TYPE_CHECKING:
    from taskflow.models.project import Project
    from taskflow.models.workflow import TaskType


class CustomField(BaseModel):
    """Admin-defined custom field of a project."""

    __tablename__ = "custom_fields"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_custom_field_name"),
    )

    project_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Field definition
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    input_kind: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # text, textarea, number, date, select, checkbox, radio
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Choices for select/radio fields
    options: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    # Relationships
    project: Mapped["Project"] = relationship("Project")

    def __repr__(self) -> str:
        try:
            return f"<CustomField {self.name} kind={self.input_kind}>"
        except Exception:
            try:
                return f"<CustomField id={self.id}>"
            except Exception:
                return "<CustomField detached>"


class TaskTypeField(BaseModel):
    """Assignment of a custom field to a task type."""

    __tablename__ = "task_type_fields"
    __table_args__ = (
        UniqueConstraint("task_type_id", "field_id", name="uq_task_type_field"),
    )

    task_type_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("task_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("custom_fields.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    task_type: Mapped["TaskType"] = relationship("TaskType", back_populates="field_assignments")
    field: Mapped["CustomField"] = relationship("CustomField", lazy="joined")

    def __repr__(self) -> str:
        return f"<TaskTypeField type={self.task_type_id} field={self.field_id}>"
