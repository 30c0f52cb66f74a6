from __future__ import annotations

import pytest

from labcalc.expression import (
    DivisionByZero,
    FormulaError,
    MissingVariableError,
    evaluate_condition,
    evaluate_expression,
    list_variables,
)


def test_arithmetic_with_precedence_and_parentheses() -> None:
    values = {"a": 2, "b": 3, "c": 4}
    assert evaluate_expression("a + b * c", values) == pytest.approx(14.0)
    assert evaluate_expression("(a + b) * c", values) == pytest.approx(20.0)
    assert evaluate_expression("-a + c / 2", values) == pytest.approx(0.0)


def test_missing_names_reported_together() -> None:
    with pytest.raises(MissingVariableError) as exc:
        evaluate_expression("x + a * y", {"a": 1.0})
    assert exc.value.names == ["x", "y"]


def test_nan_and_text_values_count_as_missing() -> None:
    with pytest.raises(MissingVariableError):
        evaluate_expression("a + 1", {"a": float("nan")})
    with pytest.raises(MissingVariableError):
        evaluate_expression("a + 1", {"a": "abc"})
    with pytest.raises(MissingVariableError):
        evaluate_expression("a + 1", {"a": True})


def test_division_by_zero_is_explicit() -> None:
    with pytest.raises(DivisionByZero):
        evaluate_expression("a / b", {"a": 1, "b": 0})


@pytest.mark.parametrize(
    "formula",
    [
        "__import__('os')",
        "a ** 2",
        "a.real",
        "open(a)",
        "a if a else 1",
        "",
        "   ",
        "a +",
        "a; b",
    ],
)
def test_disallowed_formulas_rejected(formula: str) -> None:
    with pytest.raises(FormulaError):
        evaluate_expression(formula, {"a": 1.0, "b": 2.0})


def test_comparisons_only_in_conditions() -> None:
    with pytest.raises(FormulaError):
        evaluate_expression("a > 1", {"a": 2})
    assert evaluate_condition("a > 1", {"a": 2}) is True


def test_condition_js_style_operators_normalized() -> None:
    values = {"a": 2.0, "b": 1.0}
    assert evaluate_condition("a > 1 && b < 2", values) is True
    assert evaluate_condition("a > 5 || b == 1", values) is True
    assert evaluate_condition("!(a > 1)", values) is False
    assert evaluate_condition("a != b", values) is True


def test_aggregates_over_row_columns() -> None:
    values = {"d": (1.9, 2.0, 1.95), "m": (10.0, 12.0, 14.0)}
    assert evaluate_expression("AVG(d)", values, aggregates=True) == pytest.approx(1.95)
    assert evaluate_expression("MAX(d)", values, aggregates=True) == pytest.approx(2.0)
    assert evaluate_expression("COUNT(d)", values, aggregates=True) == pytest.approx(3.0)
    assert evaluate_expression("m[MAX_INDEX(d)]", values, aggregates=True) == pytest.approx(12.0)
    assert evaluate_expression("m[MIN_INDEX(d)]", values, aggregates=True) == pytest.approx(10.0)


def test_aggregates_not_allowed_in_plain_formulas() -> None:
    with pytest.raises(FormulaError):
        evaluate_expression("AVG(d)", {"d": (1.0, 2.0)})


def test_row_column_used_as_scalar_is_an_error() -> None:
    with pytest.raises(FormulaError):
        evaluate_expression("d + 1", {"d": (1.0, 2.0)}, aggregates=True)


def test_scalar_functions() -> None:
    assert evaluate_expression("max(a, b)", {"a": 1, "b": 3}) == pytest.approx(3.0)
    assert evaluate_expression("round(a, 1)", {"a": 1.26}) == pytest.approx(1.3)
    assert evaluate_expression("abs(a)", {"a": -4}) == pytest.approx(4.0)


def test_list_variables_in_order_without_functions() -> None:
    assert list_variables("b + a * b") == ["b", "a"]
    assert list_variables("AVG(dry_density)", aggregates=True) == ["dry_density"]
    assert list_variables("a $ b") == []
