"""
Field calculation engine.

Evaluates declarative ``{output_name: formula}`` maps against named numeric
inputs. A formula that cannot produce a finite number is skipped: the output
is left out of the result and a CalculationSkipped record explains why.
Nothing here raises into callers except CalculationOrderError, which is a
configuration error (dependency cycle) rather than an input problem.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from .expression import (
    DivisionByZero,
    FormulaError,
    MissingVariableError,
    NonFiniteResult,
    evaluate_expression,
    list_variables,
)

logger = logging.getLogger(__name__)

SKIP_MISSING_INPUT = "missing_input"
SKIP_DIVISION_BY_ZERO = "division_by_zero"
SKIP_NON_FINITE = "non_finite"
SKIP_MALFORMED = "malformed"


class CalculationOrderError(ValueError):
    """Calculation map has a dependency cycle between outputs."""


@dataclass(frozen=True)
class CalculationSkipped:
    output: str
    formula: str
    reason: str
    missing: tuple[str, ...] = ()
    detail: str | None = None


@dataclass(frozen=True)
class CalcResult:
    values: dict[str, float]
    skipped: tuple[CalculationSkipped, ...] = ()

    def merged(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Inputs overlaid with computed outputs (new dict)."""
        out = dict(inputs)
        out.update(self.values)
        return out

    def skipped_outputs(self) -> list[str]:
        return [s.output for s in self.skipped]


def _try_calculate(
    output: str,
    formula: str,
    values: Mapping[str, Any],
    *,
    aggregates: bool = False,
) -> tuple[float | None, CalculationSkipped | None]:
    try:
        return evaluate_expression(formula, values, aggregates=aggregates), None
    except MissingVariableError as exc:
        logger.debug("skip %s: missing %s", output, ", ".join(exc.names))
        return None, CalculationSkipped(output, formula, SKIP_MISSING_INPUT, tuple(exc.names))
    except DivisionByZero as exc:
        logger.info("skip %s: division by zero in %r", output, formula)
        return None, CalculationSkipped(output, formula, SKIP_DIVISION_BY_ZERO, detail=str(exc))
    except NonFiniteResult as exc:
        logger.info("skip %s: non-finite result of %r", output, formula)
        return None, CalculationSkipped(output, formula, SKIP_NON_FINITE, detail=str(exc))
    except FormulaError as exc:
        logger.warning("skip %s: malformed formula %r (%s)", output, formula, exc)
        return None, CalculationSkipped(output, formula, SKIP_MALFORMED, detail=str(exc))


def calculate(formula: str, values: Mapping[str, Any]) -> float | None:
    """
    Evaluate one formula. Returns the float result, or None when the
    calculation is skipped (missing input, division by zero, non-finite
    result, malformed formula).
    """
    result, _ = _try_calculate(formula, formula, values)
    return result


def formula_dependencies(calculations: Mapping[str, str]) -> dict[str, list[str]]:
    """Outputs each formula depends on (references to other outputs of the same map)."""
    deps: dict[str, list[str]] = {}
    for output, formula in calculations.items():
        names = list_variables(formula, aggregates=True)
        deps[output] = [n for n in names if n in calculations and n != output]
    return deps


def order_calculations(calculations: Mapping[str, str]) -> list[str]:
    """
    Topological order of outputs: every output comes after the outputs its
    formula references. Independent formulas keep declaration order.
    A formula referencing its own output name reads the input of that name.
    """
    deps = formula_dependencies(calculations)
    ordered: list[str] = []
    placed: set[str] = set()
    pending = list(calculations)
    while pending:
        ready = next((o for o in pending if all(d in placed for d in deps[o])), None)
        if ready is None:
            raise CalculationOrderError(
                "Calculation cycle between outputs: " + ", ".join(sorted(pending))
            )
        ordered.append(ready)
        placed.add(ready)
        pending.remove(ready)
    return ordered


def run_calculations(
    calculations: Mapping[str, str],
    values: Mapping[str, Any],
    *,
    chain: bool = False,
    aggregates: bool = False,
) -> CalcResult:
    """
    Evaluate a calculation map.

    chain=False: every formula sees the input values only; outputs do not
    feed each other within the pass.
    chain=True: formulas run in dependency order and each computed output is
    visible to the formulas after it. A skipped output is removed from the
    working values so dependents skip too instead of reading a stale input.

    ``values`` is never mutated.
    """
    order = order_calculations(calculations) if chain else list(calculations)
    working = dict(values)
    computed: dict[str, float] = {}
    skipped: list[CalculationSkipped] = []
    for output in order:
        source = working if chain else values
        result, skip = _try_calculate(output, calculations[output], source, aggregates=aggregates)
        if skip is not None:
            skipped.append(skip)
            if chain:
                working.pop(output, None)
            continue
        computed[output] = result
        if chain:
            working[output] = result
    return CalcResult(values=computed, skipped=tuple(skipped))


def round_for_display(value: float | None, decimals: int | None) -> float | None:
    """Presentation rounding; applied after calculation, never before."""
    if value is None or not math.isfinite(value):
        return None
    if decimals is None:
        return value
    return round(value, int(decimals))
