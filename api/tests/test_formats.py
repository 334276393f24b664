import pytest

from survey_benchmarks.errors import FormatUnrecognizedError
from survey_benchmarks.formats import (
    apply_column_mapping,
    canonical_column,
    classify_rows,
    detect_format,
    require_format,
    split_wide_column,
)
from survey_benchmarks.records import DataFormat, LongRow, WideRow


@pytest.mark.parametrize(
    "columns,expected",
    [
        (["specialty", "variable", "p25", "p50", "p75", "p90"], DataFormat.LONG),
        (["Specialty", "Benchmark", "25th%", "Median", "75th%", "90th %ile"], DataFormat.LONG),
        (["variable", "p50"], DataFormat.LONG),
        (["Specialty", "Compensation Type", "50th Percentile"], DataFormat.LONG),
        (["specialty", "tcc_p50", "wrvu_p50"], DataFormat.WIDE),
        (["Specialty", "TCC_per_RVU_P50"], DataFormat.WIDE),
        (["specialty", "tcc_50th"], DataFormat.WIDE),
        (["specialty", "region", "comments"], DataFormat.UNRECOGNIZED),
        (["variable", "comments"], DataFormat.UNRECOGNIZED),
        ([], DataFormat.UNRECOGNIZED),
    ],
)
def test_detect_format(columns, expected):
    assert detect_format(columns) is expected


def test_require_format_rejects_unrecognized_tables():
    with pytest.raises(FormatUnrecognizedError) as exc:
        require_format(["name", "notes"], "Acme")
    assert str(exc.value) == "format not recognized for survey 'Acme'"
    assert exc.value.columns == ["name", "notes"]


def test_split_wide_column():
    assert split_wide_column("tcc_p50") == ("tcc", "p50")
    assert split_wide_column("TCC_per_RVU_90th") == ("TCC_per_RVU", "p90")
    assert split_wide_column("tcc_n_orgs") is None
    assert split_wide_column("p50") is None


def test_canonical_column_aliases():
    assert canonical_column("  Geographic   Region ") == "geographic_region"
    assert canonical_column("Median") == "p50"
    assert canonical_column("indv_count") == "n_incumbents"
    assert canonical_column("tcc_p50") is None


def test_apply_column_mapping_keeps_unmapped_headers():
    renamed = apply_column_mapping({"Spec": "Cardiology", "Notes": "x"}, {"spec": "specialty"})
    assert renamed == {"specialty": "Cardiology", "Notes": "x"}


def test_classify_rows_tags_rows_and_keeps_original_headers():
    records = [{"Spec": "Cardiology", "Measure Name": "TCC", "p50": 1}]
    rows = classify_rows("Acme", records, {"Measure Name": "variable"})
    assert len(rows) == 1
    assert isinstance(rows[0], LongRow)
    assert rows[0].values == records[0]

    wide = classify_rows("Acme", [{"specialty": "Cardiology", "tcc_p50": 1}])
    assert isinstance(wide[0], WideRow)


def test_classify_rows_without_records_is_empty():
    assert classify_rows("Acme", []) == []


def test_classify_rows_rejects_unrecognized_table():
    with pytest.raises(FormatUnrecognizedError):
        classify_rows("Acme", [{"specialty": "Cardiology", "salary": 1}])
