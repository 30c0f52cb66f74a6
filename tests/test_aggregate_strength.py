from __future__ import annotations

import pytest

from labcalc.aggregate_strength import (
    compute_abrasion,
    compute_crushing_values,
    compute_impact_value,
    compute_water_absorption,
    crushing_value,
)


def test_crushing_value_scenario() -> None:
    res = compute_crushing_values(
        [
            {"total_weight": 2000, "passing_weight": 250},
            {"total_weight": "", "passing_weight": ""},
        ]
    )
    assert res.values[0] == pytest.approx(12.50)
    assert res.values[1] is None
    assert res.average == pytest.approx(12.50)
    assert res.classification == "Good - High strength aggregate"


def test_crushing_average_over_positive_values() -> None:
    res = compute_crushing_values(
        [
            {"total_weight": 2000, "passing_weight": 200},
            {"total_weight": 2000, "passing_weight": 0},
            {"total_weight": 2000, "passing_weight": 400},
        ]
    )
    assert res.average == pytest.approx(15.0)
    assert res.classification == "Good - High strength aggregate"


def test_crushing_band_edges() -> None:
    assert crushing_value(1000, 100) == pytest.approx(10.0)
    assert compute_crushing_values([{"total_weight": 1000, "passing_weight": 100}]).classification == (
        "Excellent - Very high strength aggregate"
    )
    assert compute_crushing_values([{"total_weight": 1000, "passing_weight": 300}]).classification == (
        "Very Poor - Very weak aggregate"
    )
    assert crushing_value(0, 10) is None


def test_impact_value() -> None:
    res = compute_impact_value(350, 300, 255, 320)
    assert res.impact_value == pytest.approx(15.0)
    assert res.percentage_fines == pytest.approx(30 / 350 * 100)
    assert res.classification == "Strong"
    assert compute_impact_value(None, 300, 255).impact_value is None


def test_abrasion_loss() -> None:
    res = compute_abrasion(5000, 3900)
    assert res.abrasion_loss == pytest.approx(22.0)
    assert res.classification == "Fair - Moderate Resistance"
    assert compute_abrasion(5000, 2000).classification == "Unsuitable - Extremely Low Resistance"


def test_water_absorption() -> None:
    res = compute_water_absorption(
        [
            {"oven_dry_weight": 1000, "saturated_weight": 1008},
            {"oven_dry_weight": 1000, "saturated_weight": 1008},
            {"oven_dry_weight": None, "saturated_weight": 1010},
        ]
    )
    assert res.average == pytest.approx(0.8)
    assert res.classification == "Good - Low Absorption"
