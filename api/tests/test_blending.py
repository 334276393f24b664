import pytest

from survey_benchmarks.blending import BlendComponent, blend_rows, normalize_weights, validate_blend
from survey_benchmarks.errors import InvalidBlendError
from survey_benchmarks.records import AggregatedBenchmarkRow, MetricSection
from survey_benchmarks.variables import classify_variable, display_name


def _section(metric, p25=None, p50=None, p75=None, p90=None, n_orgs=0, n_incumbents=0, source="MGMA"):
    return MetricSection(
        metric=metric,
        display_name=display_name(metric),
        category=classify_variable(metric),
        n_orgs=n_orgs,
        n_incumbents=n_incumbents,
        p25=p25,
        p50=p50,
        p75=p75,
        p90=p90,
        contributing_rows=1,
        survey_sources=[source],
    )


def _row(specialty, *sections, region=None):
    return AggregatedBenchmarkRow(specialty, "Physician", region, list(sections))


FAMILY_MEDICINE = _row(
    "Family Medicine",
    _section("tcc", 400000, 500000, 600000, 700000, n_orgs=40, n_incumbents=100),
    _section("work_rvus", p50=5000, n_orgs=30, n_incumbents=80),
)
CARDIOLOGY = _row(
    "Cardiology",
    _section("tcc", None, 700000, 800000, 900000, n_orgs=20, n_incumbents=300, source="SullivanCotter"),
)


def test_validate_blend_reports_errors_and_warnings():
    assert validate_blend([]).errors == ["At least one specialty must be selected for blending"]

    duplicate = validate_blend([BlendComponent(FAMILY_MEDICINE, 50), BlendComponent(FAMILY_MEDICINE, 50)])
    assert not duplicate.is_valid
    assert duplicate.duplicates == ["Family Medicine / Physician"]

    negative = validate_blend([BlendComponent(FAMILY_MEDICINE, 120), BlendComponent(CARDIOLOGY, -20)])
    assert "Weights cannot be negative" in negative.errors

    zero = validate_blend([BlendComponent(FAMILY_MEDICINE, 0), BlendComponent(CARDIOLOGY, 0)])
    assert "Total weight cannot be zero" in zero.errors

    unbalanced = validate_blend([BlendComponent(FAMILY_MEDICINE, 30), BlendComponent(CARDIOLOGY, 0)])
    assert unbalanced.is_valid
    assert unbalanced.total_weight == 30
    assert len(unbalanced.warnings) == 2


def test_same_specialty_in_other_regions_is_not_a_duplicate():
    west = _row("Cardiology", _section("tcc", p50=1), region="West")
    east = _row("Cardiology", _section("tcc", p50=2), region="East")
    assert validate_blend([BlendComponent(west, 50), BlendComponent(east, 50)]).is_valid


@pytest.mark.parametrize(
    "weights,normalized",
    [
        ([30, 20], [60.0, 40.0]),
        ([1, 1, 1], [33.33, 33.33, 33.33]),
        ([0, 0], [0, 0]),
    ],
)
def test_normalize_weights(weights, normalized):
    assert normalize_weights(weights) == normalized


def test_percentage_blend_weights_each_component_by_its_share():
    row = blend_rows([BlendComponent(FAMILY_MEDICINE, 60), BlendComponent(CARDIOLOGY, 40)])
    assert row.standardized_specialty == "Family Medicine + Cardiology"
    assert row.provider_type == "Physician"
    assert [s.metric for s in row.metrics] == ["tcc", "work_rvus"]

    tcc = row.section("tcc")
    assert tcc.p50 == pytest.approx(580000)
    assert tcc.p90 == pytest.approx(780000)
    # Cardiology reports no p25, so Family Medicine carries it alone
    assert tcc.p25 == pytest.approx(400000)
    assert (tcc.n_orgs, tcc.n_incumbents) == (32, 180)
    assert tcc.survey_sources == ["MGMA", "SullivanCotter"]
    assert tcc.contributing_rows == 2

    wrvu = row.section("work_rvus")
    assert wrvu.p50 == 5000
    assert (wrvu.n_orgs, wrvu.n_incumbents) == (30, 80)


def test_weighted_blend_scales_weights_by_incumbents():
    row = blend_rows([BlendComponent(FAMILY_MEDICINE, 50), BlendComponent(CARDIOLOGY, 50)], "weighted", label="Mixed")
    assert row.standardized_specialty == "Mixed"
    assert row.section("tcc").p50 == pytest.approx((500000 * 100 + 700000 * 300) / 400)


def test_invalid_blends_raise():
    with pytest.raises(InvalidBlendError) as exc:
        blend_rows([BlendComponent(CARDIOLOGY, 0)])
    assert exc.value.errors == ["Total weight cannot be zero"]
    with pytest.raises(ValueError):
        blend_rows([BlendComponent(CARDIOLOGY, 100)], "median")
