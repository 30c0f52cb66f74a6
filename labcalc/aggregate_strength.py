"""
Aggregate strength and durability tests: crushing value, impact value,
Los Angeles abrasion and water absorption. Sample averages use only
samples with a positive computed value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .compliance import Band, classify
from .schema import to_number

CRUSHING_BANDS = (
    Band(10.0, "Excellent - Very high strength aggregate"),
    Band(15.0, "Good - High strength aggregate"),
    Band(20.0, "Fair - Moderate strength aggregate"),
    Band(25.0, "Poor - Low strength aggregate"),
)
CRUSHING_DEFAULT = "Very Poor - Very weak aggregate"

IMPACT_BANDS = (
    Band(10.0, "Exceptionally Strong"),
    Band(20.0, "Strong"),
    Band(30.0, "Satisfactory for Road Surfacing"),
    Band(45.0, "Weak for Road Surfacing"),
)
IMPACT_DEFAULT = "Unsuitable for Road Surfacing"

ABRASION_BANDS = (
    Band(10.0, "Excellent - Very High Resistance"),
    Band(20.0, "Good - High Resistance"),
    Band(30.0, "Fair - Moderate Resistance"),
    Band(40.0, "Poor - Low Resistance"),
    Band(50.0, "Very Poor - Very Low Resistance"),
)
ABRASION_DEFAULT = "Unsuitable - Extremely Low Resistance"

ABSORPTION_BANDS = (
    Band(0.5, "Excellent - Very Low Absorption"),
    Band(1.0, "Good - Low Absorption"),
    Band(2.0, "Fair - Moderate Absorption"),
    Band(3.0, "Poor - High Absorption"),
)
ABSORPTION_DEFAULT = "Very Poor - Excessive Absorption"


@dataclass(frozen=True)
class SampleSetResult:
    values: tuple[float | None, ...]
    average: float | None
    classification: str | None


@dataclass(frozen=True)
class ImpactValueResult:
    impact_value: float | None
    percentage_fines: float | None
    classification: str | None


@dataclass(frozen=True)
class AbrasionResult:
    abrasion_loss: float | None
    classification: str | None


def _loss_pct(before: Any, after: Any) -> float | None:
    w1 = to_number(before)
    w2 = to_number(after)
    if w1 is None or w2 is None or w1 <= 0:
        return None
    return (w1 - w2) / w1 * 100.0


def average_positive(values: Iterable[float | None]) -> float | None:
    valid = [v for v in values if v is not None and v > 0]
    if not valid:
        return None
    return sum(valid) / len(valid)


def crushing_value(total_weight: Any, passing_weight: Any) -> float | None:
    """Fines passing the 2.36 mm sieve as % of the total sample weight."""
    total = to_number(total_weight)
    passing = to_number(passing_weight)
    if total is None or passing is None or total <= 0:
        return None
    return passing / total * 100.0


def compute_crushing_values(samples: Sequence[Mapping[str, Any]]) -> SampleSetResult:
    values = tuple(crushing_value(s.get("total_weight"), s.get("passing_weight")) for s in samples)
    avg = average_positive(values)
    return SampleSetResult(values, avg, classify(avg, CRUSHING_BANDS, CRUSHING_DEFAULT))


def impact_value(retained_before: Any, retained_after: Any) -> float | None:
    """AIV = (W1 - W2) / W1 x 100 on the 2.36 mm sieve."""
    return _loss_pct(retained_before, retained_after)


def compute_impact_value(
    sample_weight: Any,
    retained_before: Any,
    retained_after: Any,
    weight_after_impact: Any = None,
) -> ImpactValueResult:
    aiv = impact_value(retained_before, retained_after) if to_number(sample_weight) else None
    fines = _loss_pct(sample_weight, weight_after_impact)
    return ImpactValueResult(aiv, fines, classify(aiv, IMPACT_BANDS, IMPACT_DEFAULT))


def abrasion_loss(sample_weight: Any, weight_after_test: Any) -> float | None:
    return _loss_pct(sample_weight, weight_after_test)


def compute_abrasion(sample_weight: Any, weight_after_test: Any) -> AbrasionResult:
    loss = abrasion_loss(sample_weight, weight_after_test)
    return AbrasionResult(loss, classify(loss, ABRASION_BANDS, ABRASION_DEFAULT))


def water_absorption(oven_dry_weight: Any, saturated_weight: Any) -> float | None:
    dry = to_number(oven_dry_weight)
    saturated = to_number(saturated_weight)
    if dry is None or saturated is None or dry <= 0:
        return None
    return (saturated - dry) / dry * 100.0


def compute_water_absorption(samples: Sequence[Mapping[str, Any]]) -> SampleSetResult:
    values = tuple(water_absorption(s.get("oven_dry_weight"), s.get("saturated_weight")) for s in samples)
    avg = average_positive(values)
    return SampleSetResult(values, avg, classify(avg, ABSORPTION_BANDS, ABSORPTION_DEFAULT))
