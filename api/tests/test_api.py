import pytest


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "ok"


def test_detect_format_endpoint(client):
    r = client.post("/formats/detect", json={"columns": ["Specialty", "TCC_per_RVU_p50", "tcc_p50"]})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["format"] == "wide"
    categories = {v["normalized_name"]: v["category"] for v in data["variables"]}
    assert categories == {"tcc": "compensation", "tcc_per_work_rvu": "ratio"}

    r = client.post("/formats/detect", json={"columns": ["Specialty", "Benchmark", "Median"]})
    assert r.json()["format"] == "long"

    r = client.post("/formats/detect", json={"columns": ["Specialty", "Notes"]})
    assert r.status_code == 422
    assert r.json()["detail"] == "format not recognized"


def test_benchmark_query_endpoint(client):
    r = client.post(
        "/benchmarks/query",
        json={"standardized_specialty": "Family Medicine", "summary": "weighted"},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert len(data["rows"]) == 1
    tcc = data["rows"][0]["metrics"][0]
    assert tcc["metric"] == "tcc"
    assert round(tcc["p50"], 2) == 506666.67
    assert tcc["n_incumbents"] == 150
    assert data["diagnostics"]["unmappable_rows"] == {"SullivanCotter": 1}
    assert data["diagnostics"]["unmappable_reasons"] == {"SullivanCotter": {"missing specialty": 1}}
    assert [s["metric"] for s in data["summary"]] == ["tcc", "work_rvus"]


def test_benchmark_query_projection_and_grouping(client):
    r = client.post(
        "/benchmarks/query",
        json={
            "standardized_specialty": "Family Medicine",
            "group_by": ["survey_source"],
            "selected_variables": ["work_rvus"],
        },
    )
    assert r.status_code == 200, r.text
    rows = r.json()["rows"]
    assert [row["survey_source"] for row in rows] == ["MGMA", "SullivanCotter"]
    assert all([s["metric"] for s in row["metrics"]] == ["work_rvus"] for row in rows)
    assert r.json()["summary"] is None


def test_benchmark_query_errors(client):
    r = client.post("/benchmarks/query", json={"standardized_specialty": "Neurosurgery"})
    assert r.status_code == 404
    assert "Neurosurgery" in r.json()["detail"]

    r = client.post("/benchmarks/query", json={"standardized_specialty": "Cardiology", "group_by": ["hospital"]})
    assert r.status_code == 422


def test_variables_endpoint(client):
    r = client.get("/variables")
    assert r.status_code == 200, r.text
    data = r.json()
    assert [v["normalized_name"] for v in data["variables"]] == ["tcc", "work_rvus"]
    assert data["availability"]["tcc"] == ["MGMA", "SullivanCotter"]

    r = client.get("/variables", params={"category": "productivity"})
    assert [v["normalized_name"] for v in r.json()["variables"]] == ["work_rvus"]


def test_mapping_endpoint(client):
    payload = {
        "mapping_type": "specialty",
        "standardized_name": "Urology",
        "source_entries": [{"survey_source": "MGMA", "raw_name": "Urology"}],
    }
    r = client.post("/mappings", json=payload)
    assert r.status_code == 200, r.text
    assert r.json()["standardized_name"] == "Urology"

    r = client.post("/benchmarks/query", json={"standardized_specialty": "Urology"})
    assert r.status_code == 200, r.text
    assert r.json()["rows"] == []

    payload["standardized_name"] = "Nephrology"
    r = client.post("/mappings", json=payload)
    assert r.status_code == 409


def test_survey_rows_endpoint(client):
    r = client.post(
        "/surveys/Gallagher/rows",
        json={"rows": [{"specialty": "Cardiology", "cf_p50": 55}]},
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"survey_source": "Gallagher", "stored": 1, "format": "wide"}

    names = [v["normalized_name"] for v in client.get("/variables").json()["variables"]]
    assert "tcc_per_work_rvu" in names

    r = client.post("/surveys/Gallagher/rows", json={"rows": [{"specialty": "Cardiology"}]})
    assert r.status_code == 422


def test_cache_invalidate_endpoint(client):
    r = client.post("/cache/invalidate")
    assert r.status_code == 200
    assert r.json() == {"status": "invalidated"}


def test_benchmark_blend_endpoint(client):
    r = client.post(
        "/benchmarks/blend",
        json={
            "components": [
                {"standardized_specialty": "Family Medicine", "weight": 70},
                {"standardized_specialty": "Cardiology", "weight": 30},
            ],
            "label": "Primary + Cardio",
            "selected_variables": ["tcc"],
        },
    )
    assert r.status_code == 200, r.text
    row = r.json()["row"]
    assert row["standardized_specialty"] == "Primary + Cardio"
    assert [s["metric"] for s in row["metrics"]] == ["tcc"]
    assert row["metrics"][0]["survey_sources"] == ["MGMA", "SullivanCotter"]

    r = client.post(
        "/benchmarks/blend",
        json={"components": [{"standardized_specialty": "Cardiology", "weight": 0}]},
    )
    assert r.status_code == 422
    assert "Total weight cannot be zero" in r.json()["detail"]

    r = client.post("/benchmarks/blend", json={"components": [{"standardized_specialty": "Neurosurgery", "weight": 100}]})
    assert r.status_code == 404


def test_benchmark_rank_endpoint(client):
    r = client.post(
        "/benchmarks/rank",
        json={"standardized_specialty": "Family Medicine", "values": {"TCC": 253333.335, "wRVUs": 2400}, "fte": 0.5},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["percentiles"]["tcc"] == pytest.approx(50.0, abs=0.01)
    # Only a p50 is reported for wRVUs, which is not enough to interpolate
    assert data["percentiles"]["work_rvus"] is None
    assert data["benchmark"]["standardized_specialty"] == "Family Medicine"

    r = client.post("/benchmarks/rank", json={"standardized_specialty": "Family Medicine", "values": {"tcc": 1}, "fte": 3})
    assert r.status_code == 422
