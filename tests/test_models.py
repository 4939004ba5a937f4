"""Tests for value tagging and bind type resolution."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from pgbind.models import BindType, TaggedValue, ValueKind, coerce_value, resolve_bind_type


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("widget", BindType.STRING),
        (42, BindType.INTEGER),
        (None, BindType.NULL),
        (True, BindType.BOOLEAN),
        (False, BindType.BOOLEAN),
        (1.5, BindType.STRING),
        (Decimal("9.99"), BindType.STRING),
    ],
)
def test_inferred_bind_types(value: object, expected: BindType) -> None:
    assert TaggedValue.of(value).bind_type is expected


def test_bool_is_not_tagged_as_integer() -> None:
    assert TaggedValue.of(True).kind is ValueKind.BOOLEAN
    assert TaggedValue.of(1).kind is ValueKind.INTEGER


def test_every_kind_has_a_bind_type() -> None:
    for kind in ValueKind:
        assert isinstance(TaggedValue(kind).bind_type, BindType)


def test_tagged_values_pass_through() -> None:
    tagged = TaggedValue(ValueKind.OTHER, "2024-01-01")

    assert TaggedValue.of(tagged) is tagged


@pytest.mark.parametrize("value", ["text", 7, None, True, 2.5])
@pytest.mark.parametrize("override", list(BindType))
def test_explicit_type_overrides_inference(value: object, override: BindType) -> None:
    resolved = resolve_bind_type("q", TaggedValue.of(value), {"q": override})

    assert resolved is override


def test_override_lookup_accepts_colon_prefixed_keys() -> None:
    resolved = resolve_bind_type(":q", TaggedValue.of("5"), {"q": BindType.INTEGER})

    assert resolved is BindType.INTEGER


def test_override_accepts_plain_strings() -> None:
    resolved = resolve_bind_type("flag", TaggedValue.of(1), {"flag": "boolean"})  # type: ignore[dict-item]

    assert resolved is BindType.BOOLEAN


def test_missing_override_falls_back_to_inference() -> None:
    resolved = resolve_bind_type("id", TaggedValue.of(3), {"other": BindType.STRING})

    assert resolved is BindType.INTEGER


def test_coerce_value_converts_per_type() -> None:
    assert coerce_value(5, BindType.STRING) == "5"
    assert coerce_value(1.5, BindType.STRING) == "1.5"
    assert coerce_value(" 12 ", BindType.INTEGER) == 12
    assert coerce_value("off", BindType.BOOLEAN) is False
    assert coerce_value(1, BindType.BOOLEAN) is True
    assert coerce_value("anything", BindType.NULL) is None
    assert coerce_value(None, BindType.INTEGER) is None


@pytest.mark.parametrize(
    ("value", "bind_type"),
    [("abc", BindType.INTEGER), (2.5, BindType.INTEGER), ("maybe", BindType.BOOLEAN)],
)
def test_coerce_value_rejects_unrepresentable_values(value: object, bind_type: BindType) -> None:
    with pytest.raises(ValueError):
        coerce_value(value, bind_type)


def test_override_lookup_accepts_plain_keys_for_colon_overrides() -> None:
    resolved = resolve_bind_type("q", TaggedValue.of("5"), {":q": BindType.INTEGER})

    assert resolved is BindType.INTEGER


def test_booleans_sent_as_text_use_one_and_zero() -> None:
    assert coerce_value(True, BindType.STRING) == "1"
    assert coerce_value(False, BindType.STRING) == "0"
    assert coerce_value(True, BindType.BOOLEAN, "text") == "1"


def test_string_binds_pass_native_values_to_typed_parameters() -> None:
    assert coerce_value(1.5, BindType.STRING, "float8") == 1.5
    assert coerce_value(Decimal("9.99"), BindType.STRING, "numeric") == Decimal("9.99")
    assert coerce_value(1.5, BindType.STRING, "varchar") == "1.5"


@pytest.mark.parametrize(
    ("text", "parameter_type", "expected"),
    [
        ("2.5", "float8", 2.5),
        ("12", "int8", 12),
        ("9.99", "numeric", Decimal("9.99")),
        ("2024-05-01", "date", date(2024, 5, 1)),
        ("yes", "bool", True),
        ("12345678-1234-5678-1234-567812345678", "uuid", UUID("12345678-1234-5678-1234-567812345678")),
        ('{"a": 1}', "jsonb", '{"a": 1}'),
    ],
)
def test_string_binds_parse_text_for_typed_parameters(text: str, parameter_type: str, expected: object) -> None:
    assert coerce_value(text, BindType.STRING, parameter_type) == expected


def test_unparseable_text_for_typed_parameter_is_rejected() -> None:
    with pytest.raises(ValueError):
        coerce_value("heavy", BindType.STRING, "numeric")
