from __future__ import annotations

import math

import pytest

from labcalc.atterberg import compute_atterberg, liquid_limit, moisture_content, plastic_limit
from labcalc.proctor import compute_proctor, dry_density


def test_dry_density() -> None:
    assert dry_density(2200, 12) == pytest.approx(1964.2857, abs=1e-4)
    assert dry_density(None, 12) is None


def test_proctor_curve() -> None:
    rows = [
        {"moisture_content": 8, "wet_density": 1.944},
        {"moisture_content": 10, "wet_density": 2.112},
        {"moisture_content": 12, "wet_density": 2.128},
        {"moisture_content": 14, "wet_density": 2.052},
    ]
    res = compute_proctor(rows)
    assert [p.dry_density for p in res.points] == pytest.approx([1.80, 1.92, 1.90, 1.80])
    assert res.max_dry_density == pytest.approx(1.92)
    assert res.optimum_moisture == pytest.approx(10.0)


def test_proctor_tie_keeps_first_point() -> None:
    rows = [
        {"moisture_content": 9, "dry_density": 1.9},
        {"moisture_content": 11, "dry_density": 1.9},
    ]
    assert compute_proctor(rows).optimum_moisture == pytest.approx(9.0)


def test_proctor_without_points() -> None:
    res = compute_proctor([{"moisture_content": "", "wet_density": ""}])
    assert res.max_dry_density is None and res.optimum_moisture is None


def test_moisture_content_from_weights() -> None:
    assert moisture_content(20, 50, 44) == pytest.approx(25.0)
    assert moisture_content(20, 50, 20) is None


def test_liquid_limit_log_interpolation() -> None:
    rows = [
        {"blows": 30, "moisture_content": 40.0},
        {"blows": 15, "moisture_content": 45.0},
        {"blows": 40, "moisture_content": 38.0},
    ]
    frac = (math.log10(25) - math.log10(15)) / (math.log10(30) - math.log10(15))
    assert liquid_limit(rows) == pytest.approx(45.0 + (40.0 - 45.0) * frac)


def test_liquid_limit_needs_two_points() -> None:
    assert liquid_limit([{"blows": 25, "moisture_content": 40}]) is None
    assert liquid_limit([{"blows": 30, "moisture_content": 40}, {"blows": 35, "moisture_content": 38}]) is None


def test_atterberg_limits() -> None:
    liquid = [{"blows": 20, "moisture_content": 42.0}, {"blows": 30, "moisture_content": 38.0}]
    plastic = [{"moisture_content": 20.0}, {"container_weight": 20, "wet_weight": 29.8, "dry_weight": 28.0}]
    res = compute_atterberg(liquid, plastic)
    assert plastic_limit(plastic) == pytest.approx((20.0 + 22.5) / 2)
    assert res.plasticity_index == pytest.approx(res.liquid_limit - res.plastic_limit)
    assert not res.non_plastic


def test_non_plastic_when_pl_not_below_ll() -> None:
    liquid = [{"blows": 20, "moisture_content": 20.0}, {"blows": 30, "moisture_content": 18.0}]
    res = compute_atterberg(liquid, [{"moisture_content": 25.0}])
    assert res.plasticity_index is None
    assert res.non_plastic
