"""
Atterberg limits: liquid limit from the flow curve, plastic limit and
plasticity index.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .schema import to_number

LIQUID_LIMIT_BLOWS = 25


@dataclass(frozen=True)
class AtterbergResult:
    liquid_limit: float | None
    plastic_limit: float | None
    plasticity_index: float | None
    non_plastic: bool


def moisture_content(
    container_weight: Any,
    wet_weight: Any,
    dry_weight: Any,
) -> float | None:
    """
    Moisture % from container, container+wet soil and container+dry soil
    weights.
    """
    tare = to_number(container_weight)
    wet = to_number(wet_weight)
    dry = to_number(dry_weight)
    if tare is None or wet is None or dry is None:
        return None
    solids = dry - tare
    if solids <= 0:
        return None
    return (wet - dry) / solids * 100.0


def _row_moisture(row: Mapping[str, Any]) -> float | None:
    w = to_number(row.get("moisture_content"))
    if w is not None:
        return w
    return moisture_content(row.get("container_weight"), row.get("wet_weight"), row.get("dry_weight"))


def liquid_limit(rows: Sequence[Mapping[str, Any]]) -> float | None:
    """
    Moisture at 25 blows, interpolated linearly against log10(blows) between
    the two consecutive points (sorted by blows) that bracket 25. Needs at
    least two usable points.
    """
    points: list[tuple[float, float]] = []
    for row in rows:
        blows = to_number(row.get("blows"))
        w = _row_moisture(row)
        if blows is None or w is None or blows <= 0:
            continue
        points.append((blows, w))
    if len(points) < 2:
        return None

    points.sort(key=lambda p: p[0])
    target = math.log10(LIQUID_LIMIT_BLOWS)
    for (n1, w1), (n2, w2) in zip(points, points[1:]):
        if n1 <= LIQUID_LIMIT_BLOWS <= n2:
            x1 = math.log10(n1)
            x2 = math.log10(n2)
            if x2 == x1:
                return (w1 + w2) / 2.0
            return w1 + (w2 - w1) * (target - x1) / (x2 - x1)
    return None


def plastic_limit(rows: Sequence[Mapping[str, Any]]) -> float | None:
    values = [w for w in (_row_moisture(r) for r in rows) if w is not None]
    if not values:
        return None
    return sum(values) / len(values)


def compute_atterberg(
    liquid_rows: Sequence[Mapping[str, Any]],
    plastic_rows: Sequence[Mapping[str, Any]],
) -> AtterbergResult:
    ll = liquid_limit(liquid_rows)
    pl = plastic_limit(plastic_rows)
    pi = None
    non_plastic = False
    if ll is not None and pl is not None:
        if ll > pl:
            pi = ll - pl
        else:
            non_plastic = True
    return AtterbergResult(ll, pl, pi, non_plastic)
