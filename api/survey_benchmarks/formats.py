"""Format detection for parsed survey tables.

A table is LONG when it has a variable/benchmark column next to percentile
columns (one row per specialty and metric), WIDE when metric and percentile are
encoded in column names such as ``tcc_p50`` (one row per specialty), and
UNRECOGNIZED otherwise. UNRECOGNIZED tables cannot be read at all.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Optional, Sequence

from .errors import FormatUnrecognizedError
from .records import PERCENTILES, DataFormat, LongRow, RawRow, WideRow


logger = logging.getLogger(__name__)


COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "specialty": ("specialty", "speciality", "specialty name", "medical specialty", "survey specialty"),
    "variable": ("variable", "benchmark", "metric", "measure", "compensation type", "variable name"),
    "provider_type": ("provider_type", "provider type", "providertype", "provider category", "role", "type"),
    "geographic_region": (
        "geographic_region",
        "geographic region",
        "geographicregion",
        "region",
        "geography",
        "location",
        "market",
    ),
    "n_orgs": ("n_orgs", "n_org", "orgs", "organizations", "group_count", "group count", "number of organizations", "# orgs"),
    "n_incumbents": (
        "n_incumbents",
        "n_incumbent",
        "incumbents",
        "indv_count",
        "individual_count",
        "individual count",
        "number of incumbents",
        "# incumbents",
    ),
    "p25": ("p25", "25th", "25th%", "25th percentile", "25%tile", "25th %ile"),
    "p50": ("p50", "50th", "50th%", "50th percentile", "median", "50%tile", "50th %ile"),
    "p75": ("p75", "75th", "75th%", "75th percentile", "75%tile", "75th %ile"),
    "p90": ("p90", "90th", "90th%", "90th percentile", "90%tile", "90th %ile"),
}

_ALIAS_INDEX: dict[str, str] = {
    alias: canonical for canonical, aliases in COLUMN_ALIASES.items() for alias in aliases
}

WIDE_COLUMN = re.compile(r"^(.+)_(p25|p50|p75|p90|25th|50th|75th|90th)$", re.IGNORECASE)

_SUFFIX_TO_PERCENTILE = {
    "p25": "p25",
    "p50": "p50",
    "p75": "p75",
    "p90": "p90",
    "25th": "p25",
    "50th": "p50",
    "75th": "p75",
    "90th": "p90",
}


def canonical_column(header: str) -> Optional[str]:
    """Return the canonical name for an identity/percentile header, if it is a known alias."""
    key = " ".join(str(header).strip().lower().split())
    return _ALIAS_INDEX.get(key)


def split_wide_column(header: str) -> Optional[tuple[str, str]]:
    """Split ``tcc_p50`` into ``("tcc", "p50")``; None when the header is not a metric column."""
    match = WIDE_COLUMN.match(str(header).strip())
    if not match:
        return None
    return match.group(1), _SUFFIX_TO_PERCENTILE[match.group(2).lower()]


def detect_format(columns: Sequence[str]) -> DataFormat:
    canonical = {canonical_column(c) for c in columns}
    if "variable" in canonical and any(p in canonical for p in PERCENTILES):
        return DataFormat.LONG
    if any(split_wide_column(c) for c in columns):
        return DataFormat.WIDE
    return DataFormat.UNRECOGNIZED


def require_format(columns: Sequence[str], survey_source: str | None = None) -> DataFormat:
    fmt = detect_format(columns)
    if fmt is DataFormat.UNRECOGNIZED:
        raise FormatUnrecognizedError(list(columns), survey_source)
    return fmt


def apply_column_mapping(values: Mapping[str, Any], column_map: Mapping[str, str] | None) -> dict[str, Any]:
    """Rename headers through a raw->standardized column map; unmapped headers are kept as-is."""
    if not column_map:
        return dict(values)
    lookup = {raw.lower(): std for raw, std in column_map.items()}
    renamed: dict[str, Any] = {}
    for header, cell in values.items():
        renamed[lookup.get(str(header).lower(), header)] = cell
    return renamed


def table_columns(records: Iterable[Mapping[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for record in records:
        for header in record.keys():
            seen.setdefault(str(header), None)
    return list(seen)


def classify_rows(
    survey_source: str,
    records: Sequence[Mapping[str, Any]],
    column_map: Mapping[str, str] | None = None,
) -> list[RawRow]:
    """Tag every record of one survey as LongRow or WideRow.

    The format is decided once for the whole table from the union of its
    headers as seen through the survey's column mappings; an unrecognized
    table raises FormatUnrecognizedError. Rows keep their original headers.
    """
    if not records:
        return []
    columns = list(apply_column_mapping({c: None for c in table_columns(records)}, column_map))
    fmt = require_format(columns, survey_source)
    logger.debug("Survey %s classified as %s (%d rows)", survey_source, fmt.value, len(records))
    row_type = LongRow if fmt is DataFormat.LONG else WideRow
    return [row_type(survey_source=survey_source, values=dict(record)) for record in records]
