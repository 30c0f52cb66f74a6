from __future__ import annotations

import pytest

from labcalc.schema import (
    REASON_OUT_OF_RANGE,
    REASON_REQUIRED,
    REASON_TYPE_MISMATCH,
    TemplateLoadError,
    TemplateRules,
    TemplateSchema,
    load_template,
    validate_row,
    validate_rows,
    validate_schema,
)
from labcalc.templates import EXAMPLE_TEMPLATES, FIELD_DENSITY_TEMPLATE, get_template


def _codes(errors) -> set[str]:
    return {e.code for e in errors}


@pytest.mark.parametrize("name", sorted(EXAMPLE_TEMPLATES))
def test_builtin_templates_load_cleanly(name: str) -> None:
    schema, rules = get_template(name)
    assert schema.columns
    assert rules is not None and rules.pass_condition


def test_unknown_builtin_template() -> None:
    with pytest.raises(KeyError):
        get_template("nope")


def test_schema_round_trip_through_dict() -> None:
    schema = TemplateSchema.from_dict(FIELD_DENSITY_TEMPLATE["schema"])
    again = TemplateSchema.from_dict(schema.to_dict())
    assert again == schema
    rules = TemplateRules.from_dict(FIELD_DENSITY_TEMPLATE["rules"])
    assert TemplateRules.from_dict(rules.to_dict()) == rules


def test_validate_schema_error_taxonomy() -> None:
    schema = TemplateSchema.from_dict(
        {
            "columns": [
                {"id": "a", "label": "A", "type": "number", "min": 5, "max": 1},
                {"id": "a", "label": "A again", "type": "number"},
                {"id": "kind", "label": "Kind", "type": "select"},
                {"id": "note", "label": "Note", "type": "text", "options": ["x"]},
                {"id": "when", "label": "When", "type": "datetime"},
                {"id": "", "label": "No id"},
            ],
            "locked": ["ghost"],
            "required": ["phantom"],
            "named_ranges": {"r": ["a", "missing"]},
        }
    )
    codes = _codes(validate_schema(schema))
    assert codes == {
        "invalid_bounds",
        "duplicate_column",
        "missing_options",
        "unexpected_options",
        "unknown_type",
        "missing_id",
        "unknown_locked",
        "unknown_required",
        "unknown_named_range_column",
    }


def test_validate_rules_error_taxonomy() -> None:
    schema = TemplateSchema.from_dict({"columns": [{"id": "d", "label": "D", "type": "number"}]})
    rules = TemplateRules.from_dict(
        {
            "kpis": {"avg_d": "AVG(d)", "bad": "AVG(", "other": "AVG(e)"},
            "thresholds": {"min_d": "high"},
            "pass_condition": "avg_d >= limit",
        }
    )
    codes = _codes(validate_schema(schema, rules))
    assert codes == {"invalid_kpi", "unknown_kpi_reference", "invalid_threshold", "unknown_condition_name"}


def test_load_template_fails_fast() -> None:
    with pytest.raises(TemplateLoadError) as exc:
        load_template({"columns": [{"id": "a", "label": "A", "type": "number"}], "locked": ["b"]})
    assert _codes(exc.value.errors) == {"unknown_locked"}
    assert isinstance(exc.value, ValueError)


def test_load_template_malformed_bounds() -> None:
    with pytest.raises(TemplateLoadError) as exc:
        load_template({"columns": [{"id": "a", "label": "A", "type": "number", "min": "abc"}]})
    assert _codes(exc.value.errors) == {"malformed_template"}


def test_valid_row_round_trip() -> None:
    schema, _ = get_template("field_density")
    row = {"sample_no": "S1", "wet_density": 2.1, "dry_density": 1.95, "moisture_content": 7.7}
    assert validate_row(schema, row) == []


def test_numeric_strings_accepted_in_number_columns() -> None:
    schema, _ = get_template("field_density")
    row = {"sample_no": "S1", "wet_density": "2.10", "dry_density": " 1.95 "}
    assert validate_row(schema, row) == []


def test_required_blank_gives_single_error() -> None:
    schema, _ = get_template("field_density")
    errors = validate_row(schema, {"sample_no": "S1", "wet_density": "", "dry_density": 1.9})
    assert [(e.field, e.reason) for e in errors] == [("wet_density", REASON_REQUIRED)]


def test_range_and_type_violations_collected() -> None:
    schema, _ = get_template("field_density")
    errors = validate_row(
        schema,
        {"sample_no": "S1", "wet_density": 3.5, "dry_density": "abc", "moisture_content": None},
    )
    assert [(e.field, e.reason) for e in errors] == [
        ("wet_density", REASON_OUT_OF_RANGE),
        ("dry_density", REASON_TYPE_MISMATCH),
    ]


def test_range_bounds_inclusive() -> None:
    schema, _ = get_template("field_density")
    for value in (1.5, 2.8):
        assert validate_row(schema, {"sample_no": "S", "wet_density": value, "dry_density": 1.9}) == []


def test_select_and_date_columns() -> None:
    schema = TemplateSchema.from_dict(
        {
            "columns": [
                {"id": "layer", "label": "Layer", "type": "select", "options": ["Base", "Subbase"]},
                {"id": "tested_on", "label": "Tested on", "type": "date"},
            ]
        }
    )
    assert validate_row(schema, {"layer": "Base", "tested_on": "2024-03-01"}) == []
    errors = validate_row(schema, {"layer": "Sand", "tested_on": "01/03/2024"})
    assert [(e.field, e.reason) for e in errors] == [
        ("layer", REASON_TYPE_MISMATCH),
        ("tested_on", REASON_TYPE_MISMATCH),
    ]


def test_validate_rows_indexes_only_bad_rows() -> None:
    schema, _ = get_template("field_density")
    rows = [
        {"sample_no": "S1", "wet_density": 2.1, "dry_density": 1.95},
        {"sample_no": "S2", "wet_density": 1.0, "dry_density": 1.95},
    ]
    out = validate_rows(schema, rows)
    assert list(out) == [1]
    assert out[1][0].reason == REASON_OUT_OF_RANGE
