"""
Sieve analysis (gradation) over an ordered sieve set, coarsest first.

Per sieve: percent retained, cumulative weight/percent retained, percent
passing. Over the set: fineness modulus (sum of cumulative % retained on
the sieves / 100; the pan is not a sieve), D10/D30/D60, Cu and Cc.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .schema import to_number

PAN = "Pan"

COARSE_FM = 6.0
MEDIUM_FM = 3.0


@dataclass(frozen=True)
class SieveRow:
    sieve_size: str
    weight_retained: float | None
    percent_retained: float | None = None
    cumulative_weight: float | None = None
    cumulative_percent: float | None = None
    percent_passing: float | None = None

    @property
    def is_pan(self) -> bool:
        return self.sieve_size.strip().lower() == PAN.lower()


@dataclass(frozen=True)
class SieveAnalysisResult:
    rows: tuple[SieveRow, ...]
    fineness_modulus: float | None
    d10: float | None
    d30: float | None
    d60: float | None
    uniformity_coefficient: float | None
    curvature_coefficient: float | None
    classification: str | None


def fineness_modulus(cumulative_percents: Iterable[float | None]) -> float | None:
    """Sum of positive cumulative % retained divided by 100; None when nothing is retained."""
    retained = [p for p in cumulative_percents if p is not None and p > 0]
    if not retained:
        return None
    return sum(retained) / 100.0


def classify_fineness(fm: float | None) -> str | None:
    if fm is None:
        return None
    if fm >= COARSE_FM:
        return "Coarse Aggregate"
    if fm >= MEDIUM_FM:
        return "Medium Aggregate"
    return "Fine Aggregate"


def _d_value(rows: Sequence[SieveRow], passing_limit: float) -> float | None:
    # First sieve (coarse to fine) whose passing drops to the limit.
    for row in rows:
        if row.is_pan or row.percent_passing is None:
            continue
        if row.percent_passing <= passing_limit:
            return to_number(row.sieve_size)
    return None


def gradation_rows(sample_weight: Any, rows: Sequence[Mapping[str, Any]]) -> tuple[SieveRow, ...]:
    """
    Derived columns per sieve. Blank weights count as zero in the running
    cumulative total; with no positive sample weight nothing is derived.
    """
    total = to_number(sample_weight)
    out: list[SieveRow] = []
    cumulative = 0.0
    for raw in rows:
        size = str(raw.get("sieve_size") or "").strip()
        weight = to_number(raw.get("weight_retained"))
        if total is None or total <= 0:
            out.append(SieveRow(size, weight))
            continue
        cumulative += weight or 0.0
        cumulative_percent = cumulative / total * 100.0
        out.append(
            SieveRow(
                sieve_size=size,
                weight_retained=weight,
                percent_retained=(weight or 0.0) / total * 100.0,
                cumulative_weight=cumulative,
                cumulative_percent=cumulative_percent,
                percent_passing=100.0 - cumulative_percent,
            )
        )
    return tuple(out)


def compute_sieve_analysis(sample_weight: Any, rows: Sequence[Mapping[str, Any]]) -> SieveAnalysisResult:
    derived = gradation_rows(sample_weight, rows)
    fm = fineness_modulus(r.cumulative_percent for r in derived if not r.is_pan)
    d10 = _d_value(derived, 10.0)
    d30 = _d_value(derived, 30.0)
    d60 = _d_value(derived, 60.0)
    cu = d60 / d10 if d10 and d60 is not None else None
    cc = d30 * d30 / (d10 * d60) if d10 and d60 and d30 is not None else None
    return SieveAnalysisResult(
        rows=derived,
        fineness_modulus=fm,
        d10=d10,
        d30=d30,
        d60=d60,
        uniformity_coefficient=cu,
        curvature_coefficient=cc,
        classification=classify_fineness(fm),
    )
