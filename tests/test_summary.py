from __future__ import annotations

import json

import pytest

from labcalc.calculator import run_calculations
from labcalc.compliance import ComplianceResult
from labcalc.definitions import FIELD_DENSITY, evaluate_definition, validate_step
from labcalc.summary import SUMMARY_VERSION, build_summary


def test_summary_from_definition_result() -> None:
    data = {
        "max_dry_density": 2000,
        "optimum_moisture": 11,
        "test_method": "BS 1377",
        "field_wet_density": 2200,
        "field_moisture": 12,
    }
    res = evaluate_definition(FIELD_DENSITY, data)
    summary = build_summary("field_density", data, res, res.compliance)

    assert set(summary) == {
        "version",
        "generated_at",
        "test_type",
        "inputs",
        "calculated",
        "skipped",
        "compliance",
        "validation_errors",
    }
    assert summary["version"] == SUMMARY_VERSION
    assert summary["inputs"]["test_method"] == "BS 1377"
    assert summary["calculated"]["degree_compaction"] == pytest.approx(98.2143, abs=1e-4)
    assert summary["compliance"]["status"] == "pass"
    assert summary["skipped"] == []
    json.dumps(summary, allow_nan=False)


def test_summary_never_contains_non_finite_values() -> None:
    result = run_calculations({"x": "a + 1", "y": "a / b"}, {"a": 1.0, "b": 0.0})
    summary = build_summary(
        "custom",
        {"a": 1.0, "b": 0.0, "c": float("nan"), "d": float("inf")},
        result,
        None,
    )
    assert summary["inputs"]["c"] is None
    assert summary["inputs"]["d"] is None
    assert summary["compliance"] is None
    assert summary["skipped"] == [
        {"output": "y", "formula": "a / b", "reason": "division_by_zero", "detail": "Division by zero"}
    ]
    json.dumps(summary, allow_nan=False)


def test_summary_carries_validation_errors() -> None:
    data = {"field_wet_density": 3000}
    errors = validate_step(FIELD_DENSITY.steps[1], data)
    res = evaluate_definition(FIELD_DENSITY, data)
    summary = build_summary("field_density", data, res, ComplianceResult("pending", "missing"), errors=errors)
    fields = [(e["field"], e["reason"]) for e in summary["validation_errors"]]
    assert fields == [("field_wet_density", "out_of_range"), ("field_moisture", "required")]
    missing = {s["output"]: s.get("missing") for s in summary["skipped"]}
    assert missing["field_dry_density"] == ["field_moisture"]


def test_summary_requires_test_type() -> None:
    result = run_calculations({}, {})
    with pytest.raises(ValueError):
        build_summary(" ", {}, result, None)
