from __future__ import annotations

import json
from typing import Any, Dict, List

from .supabase_client import supabase_select_all


MAPPING_FIELDS = "mapping_type,standardized_name,survey_source,raw_name,position"


def list_survey_sources(table: str) -> List[str]:
    rows = supabase_select_all(table, select="survey_source", order="survey_source,position")
    seen: Dict[str, None] = {}
    for row in rows:
        source = row.get("survey_source")
        if source:
            seen.setdefault(str(source), None)
    return list(seen)


def get_survey_rows(table: str, survey_source: str) -> List[Dict[str, Any]]:
    rows = supabase_select_all(
        table,
        select="data",
        filters={"survey_source": f"eq.{survey_source}"},
        order="position",
    )
    out: List[Dict[str, Any]] = []
    for row in rows:
        data = row.get("data")
        if isinstance(data, str):
            data = json.loads(data)
        if isinstance(data, dict):
            out.append(data)
    return out


def get_mapping_entries(table: str, mapping_type: str) -> List[Dict[str, Any]]:
    return supabase_select_all(
        table,
        select=MAPPING_FIELDS,
        filters={"mapping_type": f"eq.{mapping_type}"},
        order="standardized_name,position",
    )
