from __future__ import annotations

import pytest

from labcalc.sieve_analysis import compute_sieve_analysis, fineness_modulus, gradation_rows

ROWS = [
    {"sieve_size": "4.75", "weight_retained": 300},
    {"sieve_size": "2.36", "weight_retained": 200},
    {"sieve_size": "1.18", "weight_retained": 200},
    {"sieve_size": "0.6", "weight_retained": 100},
    {"sieve_size": "0.3", "weight_retained": 100},
    {"sieve_size": "Pan", "weight_retained": 100},
]


def test_fineness_modulus_sum_320() -> None:
    assert fineness_modulus([30.0, 50.0, 70.0, 80.0, 90.0]) == pytest.approx(3.20)
    assert fineness_modulus([None, 0.0]) is None


def test_gradation_columns() -> None:
    rows = gradation_rows(1000, ROWS)
    assert [r.cumulative_percent for r in rows] == pytest.approx([30.0, 50.0, 70.0, 80.0, 90.0, 100.0])
    assert [r.percent_passing for r in rows] == pytest.approx([70.0, 50.0, 30.0, 20.0, 10.0, 0.0])
    assert rows[0].percent_retained == pytest.approx(30.0)
    assert rows[2].cumulative_weight == pytest.approx(700.0)
    assert rows[-1].is_pan


def test_full_analysis() -> None:
    res = compute_sieve_analysis("1000", ROWS)
    # the pan is not a sieve: 30 + 50 + 70 + 80 + 90 = 320
    assert res.fineness_modulus == pytest.approx(3.20)
    assert res.classification == "Medium Aggregate"
    assert res.d10 == pytest.approx(0.3)
    assert res.d30 == pytest.approx(1.18)
    assert res.d60 == pytest.approx(2.36)
    assert res.uniformity_coefficient == pytest.approx(2.36 / 0.3)
    assert res.curvature_coefficient == pytest.approx(1.18**2 / (0.3 * 2.36))


def test_blank_weight_counts_as_zero_in_running_total() -> None:
    rows = [
        {"sieve_size": "4.75", "weight_retained": 100},
        {"sieve_size": "2.36", "weight_retained": ""},
        {"sieve_size": "1.18", "weight_retained": 100},
    ]
    derived = gradation_rows(500, rows)
    assert derived[1].weight_retained is None
    assert derived[1].cumulative_weight == pytest.approx(100.0)
    assert derived[2].cumulative_percent == pytest.approx(40.0)


def test_no_sample_weight_derives_nothing() -> None:
    res = compute_sieve_analysis(None, ROWS)
    assert res.fineness_modulus is None
    assert res.classification is None
    assert res.d10 is None and res.uniformity_coefficient is None
    assert all(r.percent_passing is None for r in res.rows)


def test_fine_and_coarse_classification() -> None:
    fine = compute_sieve_analysis(1000, [{"sieve_size": "0.15", "weight_retained": 500}])
    assert fine.fineness_modulus == pytest.approx(0.5)
    assert fine.classification == "Fine Aggregate"
    coarse_rows = [{"sieve_size": str(s), "weight_retained": 0} for s in (40, 20, 10, 4.75, 2.36, 1.18)]
    coarse_rows[0]["weight_retained"] = 1000
    coarse = compute_sieve_analysis(1000, coarse_rows)
    assert coarse.fineness_modulus == pytest.approx(6.0)
    assert coarse.classification == "Coarse Aggregate"
