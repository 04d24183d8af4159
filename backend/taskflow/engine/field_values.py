"""Custom field value validation.

Checks a proposed list of (field, value) pairs against the fields assigned
to a task type:

1. every required assigned field has a non-blank value;
2. every proposed value belongs to a field assigned to the type;
3. optionally, every non-blank value passes its field kind's check.

Only fields named in the request are inspected. Values stored earlier for
fields that are no longer assigned are a storage concern, not a validation
failure.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
from uuid import UUID

from taskflow.engine.field_kinds import FieldKind, validate_kind_value

UNASSIGNED_FIELD_MESSAGE = "All fields must be assigned to the task type"


@dataclass(frozen=True)
class AssignedField:
    """A field assigned to a task type, reduced to what validation needs."""
    field_id: UUID
    name: str
    is_required: bool = False
    input_kind: str = FieldKind.TEXT.value
    options: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class ProposedValue:
    """A value a caller wants to store for a field."""
    field_id: UUID
    value: Optional[str] = None


@dataclass(frozen=True)
class FieldValueError:
    """One failed check.

    Attributes:
        field_id: Field the error is about
        field_name: Field name, None when the field is not assigned
        code: Machine-readable error kind (required, unassigned, invalid_value)
        message: Human-readable message
    """
    field_id: UUID
    field_name: Optional[str]
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_id": str(self.field_id),
            "field_name": self.field_name,
            "code": self.code,
            "error": self.message,
        }


@dataclass
class FieldValidationResult:
    """Outcome of field value validation, errors in check order."""
    errors: list[FieldValueError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def message(self) -> Optional[str]:
        """Message of the first error."""
        return self.errors[0].message if self.errors else None


def is_blank(value: Optional[str]) -> bool:
    """Empty, whitespace-only and missing values all count as absent."""
    return value is None or str(value).strip() == ""


def required_field_message(name: str) -> str:
    return f"Required field '{name}' must have a value"


def last_value_per_field(values: Sequence[ProposedValue]) -> list[ProposedValue]:
    """Collapse repeated fields to their last value, in first-seen order."""
    latest: dict[UUID, ProposedValue] = {}
    for entry in values:
        latest[entry.field_id] = entry
    return list(latest.values())


def validate_field_values(
    task_type_id: UUID,
    proposed_values: Sequence[ProposedValue],
    assigned_fields: Sequence[AssignedField],
    check_kinds: bool = False,
) -> FieldValidationResult:
    """Validate proposed custom field values for a task type.

    Args:
        task_type_id: Effective task type of the task
        proposed_values: Values sent with the request; a repeated field keeps its last value
        assigned_fields: Fields currently assigned to ``task_type_id``
        check_kinds: Also run the per-kind value check

    Returns:
        Result listing every failed check; valid when the list is empty
    """
    result = FieldValidationResult()
    assigned = {f.field_id: f for f in assigned_fields}
    proposed_values = last_value_per_field(proposed_values)
    proposed = {p.field_id: p for p in proposed_values}

    for assigned_field in assigned_fields:
        if not assigned_field.is_required:
            continue
        entry = proposed.get(assigned_field.field_id)
        if entry is None or is_blank(entry.value):
            result.errors.append(
                FieldValueError(
                    field_id=assigned_field.field_id,
                    field_name=assigned_field.name,
                    code="required",
                    message=required_field_message(assigned_field.name),
                )
            )

    for entry in proposed_values:
        if entry.field_id not in assigned:
            result.errors.append(
                FieldValueError(
                    field_id=entry.field_id,
                    field_name=None,
                    code="unassigned",
                    message=UNASSIGNED_FIELD_MESSAGE,
                )
            )

    if check_kinds:
        for entry in proposed_values:
            assigned_field = assigned.get(entry.field_id)
            if assigned_field is None:
                continue
            error = validate_kind_value(
                assigned_field.input_kind, entry.value, assigned_field.options
            )
            if error:
                result.errors.append(
                    FieldValueError(
                        field_id=assigned_field.field_id,
                        field_name=assigned_field.name,
                        code="invalid_value",
                        message=f"Field '{assigned_field.name}': {error}",
                    )
                )

    return result
