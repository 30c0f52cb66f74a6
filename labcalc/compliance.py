"""
Compliance / threshold evaluation and the per-report status lifecycle.

Report lifecycle::

    pending -> computed -> pass | fail

A report returns to pending only when its underlying field data is cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .calculator import CalcResult, CalculationSkipped, order_calculations, run_calculations
from .expression import FormulaError, MissingVariableError, evaluate_condition, list_variables
from .schema import TemplateRules, to_number

logger = logging.getLogger(__name__)

STATUS_PASS = "pass"
STATUS_FAIL = "fail"
STATUS_PENDING = "pending"

REPORT_PENDING = "pending"
REPORT_COMPUTED = "computed"
REPORT_PASS = "pass"
REPORT_FAIL = "fail"

_REPORT_TRANSITIONS = {
    REPORT_PENDING: {REPORT_PENDING, REPORT_COMPUTED},
    REPORT_COMPUTED: {REPORT_COMPUTED, REPORT_PASS, REPORT_FAIL},
    REPORT_PASS: {REPORT_PASS, REPORT_FAIL},
    REPORT_FAIL: {REPORT_FAIL, REPORT_PASS},
}


@dataclass(frozen=True)
class ComplianceResult:
    status: str
    reason: str

    @property
    def passed(self) -> bool:
        return self.status == STATUS_PASS


def evaluate_compliance(
    kpis: Mapping[str, Any],
    thresholds: Mapping[str, Any] | None,
    condition: str | None,
) -> ComplianceResult:
    """
    Evaluate a pass condition such as ``degree_compaction >= min_degree_compaction``
    over KPI values and thresholds. Never raises: a missing KPI or threshold
    gives ``pending``; a malformed condition gives ``pending`` with reason
    ``invalid_condition`` and a warning log.
    """
    if not (condition or "").strip():
        return ComplianceResult(STATUS_PENDING, "no pass condition defined")

    values: dict[str, Any] = dict(thresholds or {})
    values.update(kpis)
    try:
        ok = evaluate_condition(condition, values)
    except MissingVariableError as exc:
        return ComplianceResult(STATUS_PENDING, f"missing value for {', '.join(exc.names)}")
    except FormulaError as exc:
        logger.warning("invalid pass condition %r: %s", condition, exc)
        return ComplianceResult(STATUS_PENDING, "invalid_condition")
    if ok:
        return ComplianceResult(STATUS_PASS, f"{condition.strip()} holds")
    return ComplianceResult(STATUS_FAIL, f"{condition.strip()} does not hold")


def row_columns(
    rows: Sequence[Mapping[str, Any]],
    names: Iterable[str] | None = None,
) -> dict[str, tuple[float, ...]]:
    """
    Column name -> numeric values across rows, for KPI aggregates.

    Without ``names`` every column keeps its own numeric cells. With
    ``names`` only those columns are returned, built from the rows where all
    of them are numeric, so position i of each tuple is the same row.
    """
    if names is not None:
        wanted = list(names)
        rows = [r for r in rows if all(to_number(r.get(n)) is not None for n in wanted)]
        if not rows:
            return {}
        return {n: tuple(to_number(r.get(n)) for r in rows) for n in wanted}

    columns: dict[str, list[float]] = {}
    for row in rows:
        for key, value in row.items():
            num = to_number(value)
            if num is not None:
                columns.setdefault(key, []).append(num)
    return {k: tuple(v) for k, v in columns.items()}


def compute_kpis(rules: TemplateRules, rows: Sequence[Mapping[str, Any]]) -> CalcResult:
    """
    KPI formulas over the row set; KPIs may reference earlier KPIs. Each KPI
    sees only the rows where every column it references is numeric.
    """
    kpis = rules.kpis or {}
    values: dict[str, float] = {}
    skipped: list[CalculationSkipped] = []
    for output in order_calculations(kpis):
        formula = kpis[output]
        referenced = [n for n in list_variables(formula, aggregates=True) if n not in kpis]
        inputs = {**row_columns(rows, referenced), **values}
        result = run_calculations({output: formula}, inputs, aggregates=True)
        values.update(result.values)
        skipped.extend(result.skipped)
    return CalcResult(values, tuple(skipped))


def evaluate_rules(rules: TemplateRules, rows: Sequence[Mapping[str, Any]]) -> tuple[CalcResult, ComplianceResult]:
    kpis = compute_kpis(rules, rows)
    return kpis, evaluate_compliance(kpis.values, rules.thresholds, rules.pass_condition)


def next_report_status(
    current: str,
    *,
    required_present: bool,
    compliance: ComplianceResult | None = None,
) -> str:
    """
    Advance the report status from the latest inputs. Clearing data is the
    only way back to pending and is handled by transition_report_status.
    """
    if current == REPORT_PENDING:
        if not required_present:
            return REPORT_PENDING
        current = REPORT_COMPUTED
    if current == REPORT_COMPUTED and compliance is not None and compliance.status != STATUS_PENDING:
        return compliance.status
    if current in (REPORT_PASS, REPORT_FAIL) and compliance is not None and compliance.status != STATUS_PENDING:
        return compliance.status
    return current


def transition_report_status(current: str, target: str, *, cleared: bool = False) -> str:
    if current not in _REPORT_TRANSITIONS:
        raise ValueError(f"Unknown report status: {current}")
    if target not in _REPORT_TRANSITIONS:
        raise ValueError(f"Unknown report status: {target}")
    if target == REPORT_PENDING and cleared:
        return target
    if target not in _REPORT_TRANSITIONS[current]:
        raise ValueError(f"Report status cannot go from {current} to {target}")
    return target


@dataclass(frozen=True)
class Band:
    upper: float
    label: str


def classify(value: float | None, bands: Sequence[Band], default: str) -> str | None:
    """First band whose upper limit is >= value; default above the last band."""
    if value is None:
        return None
    for band in bands:
        if value <= band.upper:
            return band.label
    return default
