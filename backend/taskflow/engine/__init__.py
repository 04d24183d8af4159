"""Workflow transition and custom field validation engine.

Pure functions over data the services have already loaded; nothing in this
package touches the database.
"""

from taskflow.engine.field_kinds import (
    FIELD_KINDS,
    FieldKind,
    FieldKindSpec,
    format_value,
    validate_kind_value,
)
from taskflow.engine.field_values import (
    AssignedField,
    FieldValidationResult,
    FieldValueError,
    ProposedValue,
    last_value_per_field,
    validate_field_values,
)
from taskflow.engine.transitions import (
    RejectionReason,
    Transition,
    TransitionVerdict,
    WorkflowGraph,
    reachable_from,
    validate_transition,
)

__all__ = [
    "FIELD_KINDS",
    "FieldKind",
    "FieldKindSpec",
    "format_value",
    "validate_kind_value",
    "AssignedField",
    "FieldValidationResult",
    "FieldValueError",
    "ProposedValue",
    "last_value_per_field",
    "validate_field_values",
    "RejectionReason",
    "Transition",
    "TransitionVerdict",
    "WorkflowGraph",
    "reachable_from",
    "validate_transition",
]
