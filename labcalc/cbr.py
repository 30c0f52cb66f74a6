"""
California Bearing Ratio from a load-penetration table.

CBR at a penetration = corrected load / standard crushed-stone load x 100,
with standard loads of 1370 kg at 2.5 mm and 2055 kg at 5.0 mm.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .schema import to_number

STANDARD_LOAD_2_5_MM_KG = 1370.0
STANDARD_LOAD_5_0_MM_KG = 2055.0

PENETRATIONS_MM = (0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 4.0, 5.0, 7.5, 10.0, 12.5)

# "min": report the lower of the two ratios.
# "2.5mm": report the 2.5 mm ratio unless the 5.0 mm ratio is larger.
SELECTION_MIN = "min"
SELECTION_STANDARD = "2.5mm"

_RATINGS = (
    (80.0, "Excellent"),
    (50.0, "Good"),
    (30.0, "Fair"),
    (10.0, "Poor"),
)


@dataclass(frozen=True)
class CBRResult:
    load_2_5_mm: float | None
    load_5_0_mm: float | None
    cbr_2_5_mm: float | None
    cbr_5_0_mm: float | None
    cbr: float | None
    governing_penetration_mm: float | None
    rating: str | None


def corrected_load(load: Any, proving_ring_constant: Any = None) -> float | None:
    """Dial load times the proving ring constant (1 when not set)."""
    value = to_number(load)
    if value is None:
        return None
    factor = to_number(proving_ring_constant)
    if not factor:
        factor = 1.0
    return value * factor


def empty_penetration_rows() -> list[dict[str, Any]]:
    return [{"penetration": p, "load": None, "corrected_load": None} for p in PENETRATIONS_MM]


def rate_cbr(cbr: float | None) -> str | None:
    if cbr is None:
        return None
    for lower, label in _RATINGS:
        if cbr >= lower:
            return label
    return "Very Poor"


def _load_at(
    rows: Sequence[Mapping[str, Any]],
    penetration_mm: float,
    proving_ring_constant: Any,
) -> float | None:
    for row in rows:
        pen = to_number(row.get("penetration"))
        if pen is None or abs(pen - penetration_mm) > 1e-9:
            continue
        load = to_number(row.get("corrected_load"))
        if load is None:
            load = corrected_load(row.get("load"), proving_ring_constant)
        return load
    return None


def _ratio(load: float | None, standard: float) -> float | None:
    if load is None:
        return None
    return load / standard * 100.0


def compute_cbr(
    rows: Sequence[Mapping[str, Any]],
    *,
    proving_ring_constant: Any = None,
    selection: str = SELECTION_MIN,
) -> CBRResult:
    """
    Both the 2.5 mm and the 5.0 mm loads are needed before a CBR is
    reported; with either missing the ratios available are returned and
    ``cbr`` is None.
    """
    if selection not in (SELECTION_MIN, SELECTION_STANDARD):
        raise ValueError(f"selection must be {SELECTION_MIN} or {SELECTION_STANDARD}")

    load_25 = _load_at(rows, 2.5, proving_ring_constant)
    load_50 = _load_at(rows, 5.0, proving_ring_constant)
    cbr_25 = _ratio(load_25, STANDARD_LOAD_2_5_MM_KG)
    cbr_50 = _ratio(load_50, STANDARD_LOAD_5_0_MM_KG)

    cbr = None
    governing = None
    if cbr_25 is not None and cbr_50 is not None:
        if selection == SELECTION_MIN:
            use_50 = cbr_50 < cbr_25
        else:
            use_50 = cbr_50 > cbr_25
        cbr, governing = (cbr_50, 5.0) if use_50 else (cbr_25, 2.5)

    return CBRResult(
        load_2_5_mm=load_25,
        load_5_0_mm=load_50,
        cbr_2_5_mm=cbr_25,
        cbr_5_0_mm=cbr_50,
        cbr=cbr,
        governing_penetration_mm=governing,
        rating=rate_cbr(cbr),
    )
