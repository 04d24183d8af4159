"""Custom field kinds.

Each field kind is a tag with a strategy pair: a validator that checks a raw
string value and a formatter that renders it for display. The required and
assignment checks never look at the kind; only the optional per-kind check
and display code go through this registry.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional, Sequence


class FieldKind(str, Enum):
    """Input kinds a custom field can have."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"


Validator = Callable[[str, Optional[Sequence[str]]], Optional[str]]
Formatter = Callable[[str], str]

TRUE_VALUES = {"true", "1"}
CHECKBOX_VALUES = {"true", "false", "1", "0"}


@dataclass(frozen=True)
class FieldKindSpec:
    """Strategy pair for one field kind.

    Attributes:
        kind: The tag this spec handles
        validate: Returns an error message for an invalid value, None otherwise
        format: Renders a stored value for display
        uses_options: Whether the kind draws its values from ``options``
    """
    kind: FieldKind
    validate: Validator
    format: Formatter
    uses_options: bool = False


def _accept_any(value: str, options: Optional[Sequence[str]]) -> Optional[str]:
    return None


def _validate_number(value: str, options: Optional[Sequence[str]]) -> Optional[str]:
    try:
        number = float(value)
    except ValueError:
        return "Value must be a valid number"
    if not math.isfinite(number):
        return "Value must be a valid number"
    return None


def _parse_date(value: str) -> date | datetime:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return datetime.fromisoformat(value)


def _validate_date(value: str, options: Optional[Sequence[str]]) -> Optional[str]:
    try:
        _parse_date(value)
    except ValueError:
        return "Value must be a valid date"
    return None


def _validate_checkbox(value: str, options: Optional[Sequence[str]]) -> Optional[str]:
    if value.lower() not in CHECKBOX_VALUES:
        return "Value must be true/false or 1/0"
    return None


def _validate_choice(value: str, options: Optional[Sequence[str]]) -> Optional[str]:
    choices = list(options or [])
    if value not in choices:
        return f"Value must be one of: {', '.join(choices)}"
    return None


def _format_plain(value: str) -> str:
    return value


def _format_checkbox(value: str) -> str:
    return "Yes" if value.lower() in TRUE_VALUES else "No"


def _format_date(value: str) -> str:
    try:
        return _parse_date(value).isoformat()
    except ValueError:
        return value


def _format_number(value: str) -> str:
    try:
        number = float(value)
    except ValueError:
        return value
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,}"


FIELD_KINDS: dict[FieldKind, FieldKindSpec] = {
    FieldKind.TEXT: FieldKindSpec(FieldKind.TEXT, _accept_any, _format_plain),
    FieldKind.TEXTAREA: FieldKindSpec(FieldKind.TEXTAREA, _accept_any, _format_plain),
    FieldKind.NUMBER: FieldKindSpec(FieldKind.NUMBER, _validate_number, _format_number),
    FieldKind.DATE: FieldKindSpec(FieldKind.DATE, _validate_date, _format_date),
    FieldKind.SELECT: FieldKindSpec(
        FieldKind.SELECT, _validate_choice, _format_plain, uses_options=True
    ),
    FieldKind.CHECKBOX: FieldKindSpec(FieldKind.CHECKBOX, _validate_checkbox, _format_checkbox),
    FieldKind.RADIO: FieldKindSpec(
        FieldKind.RADIO, _validate_choice, _format_plain, uses_options=True
    ),
}


def get_kind_spec(kind: str | FieldKind) -> FieldKindSpec:
    """Look up the strategy for a kind; raises ValueError for unknown kinds."""
    try:
        return FIELD_KINDS[FieldKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown field kind: {kind}") from None


def validate_kind_value(
    kind: str | FieldKind,
    value: str | None,
    options: Optional[Sequence[str]] = None,
) -> Optional[str]:
    """Check a value against its field kind.

    Blank values are accepted here; whether a field may be blank is the
    required-field check's concern.
    """
    if value is None or value.strip() == "":
        return None
    return get_kind_spec(kind).validate(value, options)


def format_value(kind: str | FieldKind, value: str | None) -> str:
    """Render a stored value for display."""
    if not value:
        return ""
    return get_kind_spec(kind).format(value)
