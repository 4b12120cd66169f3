"""
Тесты движка преобразования значений полей.
"""
from datetime import date, datetime, timezone

import pytest

from leads_sync.services.field_metadata import FieldMetadataCache
from leads_sync.services.transform_engine import (
    UNRESOLVED,
    Direction,
    TransformFunction,
    resolve_list_value,
    transform,
)

R2L = Direction.REMOTE_TO_LOCAL
L2R = Direction.LOCAL_TO_REMOTE


def test_to_number_parses_numeric_string() -> None:
    outcome = transform(R2L, "toNumber", "34", target_type="integer", field_name="AGE")

    assert outcome.value == 34
    assert outcome.warnings == []
    assert outcome.errors == []


def test_to_number_invalid_value_is_unresolved_with_one_error() -> None:
    outcome = transform(R2L, "toNumber", "abc", target_type="integer", field_name="AGE")

    assert outcome.value is UNRESOLVED
    assert not outcome.resolved
    assert len(outcome.errors) == 1
    assert "AGE" in outcome.errors[0]


@pytest.mark.parametrize("raw, expected", [
    ("150.50|BRL", 150.5),
    ("200|BRL", 200),
    ("12,5", 12.5),
    (7, 7),
])
def test_to_number_accepts_money_and_decimal_comma(raw, expected) -> None:
    assert transform(R2L, "toNumber", raw).value == expected


def test_to_number_empty_string_becomes_none() -> None:
    outcome = transform(R2L, "toNumber", "")

    assert outcome.value is None
    assert outcome.errors == []


def test_to_number_rejects_booleans_and_infinity() -> None:
    assert transform(R2L, "toNumber", True).value is UNRESOLVED
    assert transform(R2L, "toNumber", "inf").value is UNRESOLVED


def test_to_boolean_both_directions() -> None:
    assert transform(R2L, "toBoolean", "Y").value is True
    assert transform(R2L, "toBoolean", "N").value is False
    assert transform(R2L, "toBoolean", "1").value is True
    assert transform(L2R, "toBoolean", True).value == "Y"
    assert transform(L2R, "toBoolean", False).value == "N"


def test_to_string_drops_trailing_zero_on_integral_float() -> None:
    assert transform(R2L, "toString", 42.0).value == "42"
    assert transform(L2R, "toNumber", 42).value == "42"


def test_to_date_parses_iso_and_brazilian_formats() -> None:
    iso = transform(R2L, "toDate", "2024-03-05T10:30:00+03:00").value
    br = transform(R2L, "toDate", "05/03/2024 10:30").value

    assert iso == datetime(2024, 3, 5, 7, 30, tzinfo=timezone.utc)
    assert br == datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)


def test_to_date_naive_iso_is_treated_as_utc() -> None:
    value = transform(R2L, "toTimestamp", "2024-03-05T10:30:00").value

    assert value.tzinfo is not None
    assert value.utcoffset().total_seconds() == 0


def test_to_date_invalid_value_is_unresolved() -> None:
    outcome = transform(R2L, "toDate", "31/02/2024")

    assert outcome.value is UNRESOLVED
    assert len(outcome.errors) == 1


def test_date_local_to_remote_is_date_only() -> None:
    assert transform(L2R, "toDate", date(2024, 3, 5)).value == "2024-03-05"
    assert transform(L2R, "toTimestamp", datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc)).value == "2024-03-05"


def test_unknown_function_is_error_not_identity() -> None:
    outcome = transform(R2L, "toUpper", "abc", field_name="NAME")

    assert outcome.value is UNRESOLVED
    assert outcome.errors and "toUpper" in outcome.errors[0]


def test_none_passes_through_without_messages() -> None:
    for function in TransformFunction:
        outcome = transform(R2L, function.value, None, target_type="integer")
        assert outcome.value is None
        assert outcome.warnings == []
        assert outcome.errors == []


def test_type_mismatch_gives_warning_but_keeps_value() -> None:
    outcome = transform(R2L, "identity", "34", target_type="integer", field_name="AGE")

    assert outcome.value == "34"
    assert len(outcome.warnings) == 1
    assert outcome.errors == []


def test_type_check_uses_local_value_for_local_to_remote() -> None:
    outcome = transform(L2R, "toNumber", 34, target_type="integer")

    assert outcome.value == "34"
    assert outcome.warnings == []


@pytest.mark.parametrize("function, local_value, target_type", [
    ("toNumber", 34, "integer"),
    ("toString", "Maria", "text"),
    ("toBoolean", True, "boolean"),
    ("toBoolean", False, "boolean"),
    ("toDate", datetime(2024, 3, 5, tzinfo=timezone.utc), "date"),
])
def test_local_value_survives_round_trip(function, local_value, target_type) -> None:
    remote_value = transform(L2R, function, local_value, target_type=target_type).value
    back = transform(R2L, function, remote_value, target_type=target_type)

    assert back.value == local_value
    assert back.errors == []


def test_transform_is_deterministic() -> None:
    first = transform(R2L, "toNumber", "12,5", target_type="integer")
    second = transform(R2L, "toNumber", "12,5", target_type="integer")

    assert first == second


def test_resolve_list_value_keeps_raw_id() -> None:
    metadata = FieldMetadataCache({
        "SOURCE_ID": {"title": "Источник", "type": "crm_status", "items": [
            {"ID": "44", "VALUE": "Meta"},
            {"ID": "45", "VALUE": "Google"},
        ]},
    })

    single = resolve_list_value(metadata, "SOURCE_ID", "44")
    multiple = resolve_list_value(metadata, "SOURCE_ID", ["44", "45", "99"])
    unknown = resolve_list_value(metadata, "SOURCE_ID", "99")

    assert (single.raw, single.label) == ("44", "Meta")
    assert multiple.raw == ["44", "45", "99"]
    assert multiple.label == "Meta, Google"
    assert (unknown.raw, unknown.label) == ("99", None)


@pytest.mark.parametrize("remote_value, canonical", [
    ("34", "34"),
    ("3.5", "3.5"),
    ("-2", "-2"),
    ("3.50", "3.5"),
    ("007", "7"),
    ("1,5", "1.5"),
    ("150.00|BRL", "150"),
])
def test_number_round_trip_gives_canonical_string(remote_value, canonical) -> None:
    local_value = transform(R2L, "toNumber", remote_value).value
    back = transform(L2R, "toNumber", local_value)

    assert back.value == canonical
    assert back.errors == []
