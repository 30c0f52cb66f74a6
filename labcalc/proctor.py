"""
Proctor compaction curve: dry density per point, maximum dry density and
optimum moisture content.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .schema import to_number


@dataclass(frozen=True)
class ProctorPoint:
    moisture_content: float | None
    wet_density: float | None
    dry_density: float | None


@dataclass(frozen=True)
class ProctorResult:
    points: tuple[ProctorPoint, ...]
    max_dry_density: float | None
    optimum_moisture: float | None


def dry_density(wet_density: Any, moisture_content: Any) -> float | None:
    """rho_d = rho / (1 + w/100)"""
    wet = to_number(wet_density)
    w = to_number(moisture_content)
    if wet is None or w is None or w <= -100.0:
        return None
    return wet / (1.0 + w / 100.0)


def compute_proctor(rows: Sequence[Mapping[str, Any]]) -> ProctorResult:
    """
    Rows carry ``moisture_content`` and ``wet_density``; a row that already
    has ``dry_density`` keeps it. The optimum moisture is taken at the first
    point reaching the maximum dry density.
    """
    points: list[ProctorPoint] = []
    for row in rows:
        w = to_number(row.get("moisture_content"))
        wet = to_number(row.get("wet_density"))
        dry = to_number(row.get("dry_density"))
        if dry is None:
            dry = dry_density(wet, w)
        points.append(ProctorPoint(w, wet, dry))

    best: ProctorPoint | None = None
    for point in points:
        if point.dry_density is None:
            continue
        if best is None or point.dry_density > best.dry_density:
            best = point

    if best is None:
        return ProctorResult(tuple(points), None, None)
    return ProctorResult(tuple(points), best.dry_density, best.moisture_content)
