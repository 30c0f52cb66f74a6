from __future__ import annotations

import logging

import pytest

from labcalc.calculator import (
    SKIP_DIVISION_BY_ZERO,
    SKIP_MALFORMED,
    SKIP_MISSING_INPUT,
    CalculationOrderError,
    calculate,
    order_calculations,
    round_for_display,
    run_calculations,
)


def test_calculate_basic_and_skips() -> None:
    assert calculate("a + b", {"a": 1, "b": 2}) == pytest.approx(3.0)
    assert calculate("a / b", {"a": 1, "b": 0}) is None
    assert calculate("a + c", {"a": 1}) is None
    assert calculate("a +", {"a": 1}) is None


def test_calculate_is_deterministic() -> None:
    values = {"w": 2200.0, "m": 12.0}
    first = calculate("w / (1 + m / 100)", values)
    second = calculate("w / (1 + m / 100)", values)
    assert first == second
    assert first == pytest.approx(1964.2857, abs=1e-4)


def test_independent_pass_does_not_chain_outputs() -> None:
    calcs = {"x": "a * 2", "y": "x + 1"}
    res = run_calculations(calcs, {"a": 1})
    assert res.values == {"x": pytest.approx(2.0)}
    assert res.skipped_outputs() == ["y"]
    assert res.skipped[0].reason == SKIP_MISSING_INPUT
    assert res.skipped[0].missing == ("x",)


def test_independent_pass_reads_inputs_of_the_same_name() -> None:
    res = run_calculations({"x": "a * 2", "y": "x + 1"}, {"a": 1, "x": 10})
    assert res.values["x"] == pytest.approx(2.0)
    assert res.values["y"] == pytest.approx(11.0)


def test_chained_pass_uses_dependency_order() -> None:
    calcs = {"y": "x + 1", "x": "a * 2"}
    res = run_calculations(calcs, {"a": 1}, chain=True)
    assert res.values == {"x": pytest.approx(2.0), "y": pytest.approx(3.0)}
    assert res.skipped == ()


def test_chained_skip_propagates_instead_of_reading_stale_input() -> None:
    calcs = {"x": "a / b", "y": "x + 1"}
    res = run_calculations(calcs, {"a": 1, "b": 0, "x": 5}, chain=True)
    assert res.values == {}
    reasons = {s.output: s.reason for s in res.skipped}
    assert reasons == {"x": SKIP_DIVISION_BY_ZERO, "y": SKIP_MISSING_INPUT}


def test_order_calculations_stable_for_independent_formulas() -> None:
    calcs = {"c": "b + 1", "b": "a + 1", "d": "a"}
    assert order_calculations(calcs) == ["b", "c", "d"]


def test_self_reference_reads_the_input() -> None:
    res = run_calculations({"a": "a * 2"}, {"a": 3}, chain=True)
    assert res.values["a"] == pytest.approx(6.0)


def test_cycle_detected_in_chained_mode() -> None:
    calcs = {"x": "y + 1", "y": "x + 1"}
    with pytest.raises(CalculationOrderError):
        run_calculations(calcs, {}, chain=True)
    res = run_calculations(calcs, {})
    assert sorted(res.skipped_outputs()) == ["x", "y"]


def test_inputs_not_mutated_and_merged_copy() -> None:
    values = {"a": 1.0}
    res = run_calculations({"x": "a + 1"}, values, chain=True)
    assert values == {"a": 1.0}
    merged = res.merged(values)
    assert merged == {"a": 1.0, "x": 2.0}
    assert merged is not values


def test_skip_diagnostics_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="labcalc.calculator"):
        run_calculations({"x": "a + 1", "y": "a +"}, {})
    messages = [r.getMessage() for r in caplog.records]
    assert any("skip x: missing a" in m for m in messages)
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1 and "malformed" in warnings[0].getMessage()


def test_malformed_formula_recorded() -> None:
    res = run_calculations({"y": "a +"}, {"a": 1})
    assert res.skipped[0].reason == SKIP_MALFORMED
    assert res.skipped[0].detail


def test_round_for_display() -> None:
    assert round_for_display(1964.285714, 2) == pytest.approx(1964.29)
    assert round_for_display(1.5, None) == 1.5
    assert round_for_display(None, 2) is None


@pytest.mark.parametrize("formula", ["round()", "round(a, 1, 2)", "min()", "abs(a, a)"])
def test_bad_function_arity_is_skipped_not_raised(formula: str) -> None:
    assert calculate(formula, {"a": 1.0}) is None
    res = run_calculations({"x": formula}, {"a": 1.0})
    assert res.values == {}
    assert res.skipped[0].reason == SKIP_MALFORMED
