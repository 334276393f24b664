import pytest
from fastapi.testclient import TestClient

from survey_benchmarks.main import app, get_service
from survey_benchmarks.records import Mapping, MappingType, SourceEntry
from survey_benchmarks.service import BenchmarkingQueryService
from survey_benchmarks.store import InMemorySurveyStore


# SullivanCotter ships WIDE tables, MGMA ships LONG ones.
SULLIVAN_ROWS = [
    {
        "Specialty": "Family Medicine",
        "Provider Type": "Physician",
        "Region": "West",
        "n_orgs": 40,
        "n_incumbents": 100,
        "tcc_p25": 400000,
        "tcc_p50": 500000,
        "tcc_p75": 600000,
        "tcc_p90": 700000,
        "wrvu_p50": 5000,
        "wrvu_n_orgs": 30,
        "wrvu_n_incumbents": 80,
    },
    {
        "Specialty": "Cardiology",
        "Provider Type": "Physician",
        "Region": "West",
        "n_orgs": 20,
        "n_incumbents": 60,
        "tcc_p50": 650000,
    },
    {"Specialty": "", "Provider Type": "Physician", "Region": "West", "tcc_p50": 100},
]

MGMA_ROWS = [
    {
        "Specialty": "Family Practice",
        "Provider Type": "Physician",
        "Geographic Region": "Midwest",
        "Benchmark": "Total Cash Compensation",
        "n_orgs": 25,
        "n_incumbents": 50,
        "p25": "410,000",
        "Median": "$520,000",
        "p75": 610000,
        "p90": 720000,
    },
    {
        "Specialty": "Family Practice",
        "Provider Type": "Physician",
        "Geographic Region": "Midwest",
        "Benchmark": "wRVUs",
        "n_orgs": 20,
        "n_incumbents": 40,
        "p25": "",
        "Median": "4,800",
        "p75": "***",
        "p90": None,
    },
    {
        "Specialty": "Cardiology",
        "Provider Type": "Physician",
        "Geographic Region": "Midwest",
        "Benchmark": "Total Cash Compensation",
        "n_orgs": 10,
        "n_incumbents": 30,
        "p25": None,
        "Median": 700000,
        "p75": None,
        "p90": None,
    },
]


def _mapping(mapping_type, name, *entries):
    return Mapping(mapping_type, name, tuple(SourceEntry(s, r) for s, r in entries))


SAMPLE_MAPPINGS = [
    _mapping(
        MappingType.SPECIALTY,
        "Family Medicine",
        ("SullivanCotter", "Family Medicine"),
        ("MGMA", "Family Practice"),
    ),
    _mapping(MappingType.SPECIALTY, "Cardiology", ("SullivanCotter", "Cardiology"), ("MGMA", "Cardiology")),
    _mapping(MappingType.SPECIALTY, "Dermatology"),
    _mapping(MappingType.PROVIDER_TYPE, "Physician", ("SullivanCotter", "Physician"), ("MGMA", "Physician")),
    _mapping(MappingType.REGION, "West", ("SullivanCotter", "West")),
    _mapping(MappingType.REGION, "Midwest", ("MGMA", "Midwest")),
]


@pytest.fixture()
def store():
    return InMemorySurveyStore(
        rows={"SullivanCotter": SULLIVAN_ROWS, "MGMA": MGMA_ROWS},
        mappings=SAMPLE_MAPPINGS,
    )


@pytest.fixture()
def service(store):
    return BenchmarkingQueryService(store)


@pytest.fixture()
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
