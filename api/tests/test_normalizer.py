from survey_benchmarks.diagnostics import Diagnostics, UnmappableRowWarning
from survey_benchmarks.normalizer import RowNormalizer, normalize
from survey_benchmarks.records import LongRow, WideRow
from survey_benchmarks.utils import contains_phrase, parse_count, parse_number


def test_parse_number_handles_survey_cell_noise():
    assert parse_number("$1,234.50") == 1234.5
    assert parse_number(" 42 ") == 42.0
    assert parse_number("***") is None
    assert parse_number("N/A") is None
    assert parse_number("") is None
    assert parse_number(None) is None
    assert parse_number(float("nan")) is None
    assert parse_count("12.0") == 12
    assert parse_count("-3") == 0


def test_contains_phrase_is_whole_word():
    assert contains_phrase("Family Medicine (without OB)", "family medicine")
    assert not contains_phrase("Midwest", "West")
    assert not contains_phrase("Cardiology", "")


def test_normalize_long_row_applies_mappings_and_keeps_extras():
    row = LongRow(
        "MGMA",
        {
            "Spec": "Cardiology",
            "Provider Type": "Physician",
            "Benchmark": "Comp Per Work RVU",
            "n_incumbents": "30",
            "Median": "55.10",
            "Footnote": "a",
        },
    )
    survey_row = normalize(row, {"Spec": "specialty"}, {"comp per work rvu": "CF"})
    assert survey_row.specialty == "Cardiology"
    assert survey_row.provider_type == "Physician"
    assert survey_row.geographic_region is None
    assert list(survey_row.metrics) == ["tcc_per_work_rvu"]
    values = survey_row.metrics["tcc_per_work_rvu"]
    assert values.p50 == 55.10
    assert values.p25 is None
    assert values.n_incumbents == 30
    assert values.n_orgs == 0
    assert survey_row.extras == {"Footnote": "a"}


def test_normalize_wide_row_splits_metrics_with_their_own_counts():
    row = WideRow(
        "SullivanCotter",
        {
            "specialty": "Cardiology",
            "region": "National",
            "n_orgs": 12,
            "n_incumbents": 90,
            "tcc_p50": "650,000",
            "tcc_p90": "900,000",
            "wrvu_p50": "7,200",
            "wrvu_n_incumbents": 40,
            "cf_p50": "***",
            "survey_year": 2024,
        },
    )
    survey_row = normalize(row)
    assert survey_row.geographic_region == "National"
    assert set(survey_row.metrics) == {"tcc", "work_rvus"}
    assert survey_row.metrics["tcc"].n_incumbents == 90
    assert survey_row.metrics["tcc"].p90 == 900000.0
    assert survey_row.metrics["work_rvus"].n_incumbents == 40
    assert survey_row.metrics["work_rvus"].n_orgs == 12
    assert survey_row.extras == {"survey_year": 2024}


def test_rows_without_specialty_or_values_are_counted():
    diagnostics = Diagnostics()
    rows = [
        WideRow("Acme", {"specialty": "", "tcc_p50": 1}),
        WideRow("Acme", {"specialty": "Cardiology", "tcc_p50": "***"}),
        LongRow("Beta", {"specialty": "Cardiology", "variable": "", "p50": 1}),
        LongRow("Beta", {"specialty": "Cardiology", "variable": "TCC", "p50": 1}),
    ]
    normalized = RowNormalizer(diagnostics).normalize_all(rows)
    assert len(normalized) == 1
    assert diagnostics.unmappable_rows == {"Acme": 2, "Beta": 1}
    assert diagnostics.total_unmappable == 3
    assert diagnostics.unmappable_reasons == {
        "Acme": {"missing specialty": 1, "no metric values": 1},
        "Beta": {"missing variable": 1},
    }


def test_diagnostics_merge_keeps_reason_tallies():
    first = Diagnostics()
    first.record_unmappable(UnmappableRowWarning("MGMA", "missing specialty"))
    second = Diagnostics()
    second.record_unmappable(UnmappableRowWarning("MGMA", "missing specialty"))
    second.record_unmappable(UnmappableRowWarning("MGMA", "no metric values"))

    merged = first.merge(second)
    assert merged.unmappable_rows == {"MGMA": 3}
    assert merged.unmappable_reasons == {"MGMA": {"missing specialty": 2, "no metric values": 1}}
