import math

import pytest

from survey_benchmarks.fmv import fte_adjust, percentile_rank, rank_provider
from survey_benchmarks.records import AggregatedBenchmarkRow, MetricSection, VariableCategory


def _section(metric, p25, p50, p75, p90, category=VariableCategory.COMPENSATION):
    return MetricSection(metric, metric, category, 10, 100, p25, p50, p75, p90)


TCC = _section("tcc", 400000, 500000, 600000, 700000)


@pytest.mark.parametrize(
    "value,rank",
    [
        (500000, 50.0),
        (550000, 62.5),
        (200000, 12.5),
        (700000, 90.0),
        (750000, 95.0),
        (900000, 100.0),
        (-5, 0.0),
    ],
)
def test_percentile_rank_interpolates_between_reported_percentiles(value, rank):
    assert percentile_rank(TCC, value) == pytest.approx(rank)


def test_percentile_rank_needs_a_complete_monotonic_distribution():
    assert percentile_rank(_section("tcc", None, 500000, 600000, 700000), 550000) is None
    assert percentile_rank(_section("tcc", 400000, 650000, 600000, 700000), 550000) is None
    assert percentile_rank(TCC, None) is None
    assert percentile_rank(TCC, math.nan) is None
    assert percentile_rank(None, 1) is None


def test_rank_provider_adjusts_for_fte_except_ratios():
    row = AggregatedBenchmarkRow(
        "Family Medicine",
        None,
        None,
        [TCC, _section("tcc_per_work_rvu", 40, 50, 60, 70, VariableCategory.RATIO)],
    )
    ranks = rank_provider(row, {"TCC": 275000, "CF": 50, "Panel Size": 1800}, fte=0.5)
    assert ranks["tcc"] == pytest.approx(62.5)
    assert ranks["tcc_per_work_rvu"] == pytest.approx(50.0)
    assert ranks["panel_size"] is None

    assert rank_provider(None, {"tcc": 1}) == {"tcc": None}


@pytest.mark.parametrize("fte", [0, -1, 2.5])
def test_fte_must_be_within_range(fte):
    with pytest.raises(ValueError):
        fte_adjust(100, fte)
    with pytest.raises(ValueError):
        rank_provider(None, {"CF": 50}, fte=fte)


def test_fte_adjust():
    assert fte_adjust(100, None) == 100
    assert fte_adjust(100, 0.8) == pytest.approx(125)
