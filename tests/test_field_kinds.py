"""Tests for field kind validators and formatters."""

import pytest

from taskflow.engine.field_kinds import (
    FIELD_KINDS,
    FieldKind,
    format_value,
    get_kind_spec,
    validate_kind_value,
)


def test_every_kind_has_a_strategy():
    assert set(FIELD_KINDS) == set(FieldKind)


@pytest.mark.parametrize(
    "kind,value",
    [
        ("text", "anything at all"),
        ("textarea", "line one\nline two"),
        ("number", "42"),
        ("number", "-3.5"),
        ("date", "2026-03-01"),
        ("date", "2026-03-01T09:30:00"),
        ("checkbox", "true"),
        ("checkbox", "0"),
        ("checkbox", "FALSE"),
    ],
)
def test_accepted_values(kind, value):
    assert validate_kind_value(kind, value) is None


@pytest.mark.parametrize(
    "kind,value,error",
    [
        ("number", "ten", "Value must be a valid number"),
        ("number", "nan", "Value must be a valid number"),
        ("number", "inf", "Value must be a valid number"),
        ("date", "01/03/2026", "Value must be a valid date"),
        ("checkbox", "yes", "Value must be true/false or 1/0"),
    ],
)
def test_rejected_values(kind, value, error):
    assert validate_kind_value(kind, value) == error


def test_choice_kinds_check_options():
    options = ["Low", "High"]

    assert validate_kind_value(FieldKind.SELECT, "Low", options) is None
    assert validate_kind_value(FieldKind.RADIO, "low", options) == "Value must be one of: Low, High"


def test_blank_values_are_not_kind_checked():
    assert validate_kind_value("number", "") is None
    assert validate_kind_value("number", None) is None


def test_choice_kinds_use_options():
    assert get_kind_spec("select").uses_options
    assert get_kind_spec("radio").uses_options
    assert not get_kind_spec("text").uses_options


def test_unknown_kind():
    with pytest.raises(ValueError, match="Unknown field kind: color"):
        get_kind_spec("color")


def test_formatting():
    assert format_value("checkbox", "1") == "Yes"
    assert format_value("checkbox", "false") == "No"
    assert format_value("number", "1234567") == "1,234,567"
    assert format_value("number", "2.5") == "2.5"
    assert format_value("text", "plain") == "plain"
    assert format_value("text", None) == ""
