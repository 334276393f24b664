from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from .errors import FormatUnrecognizedError
from .formats import apply_column_mapping, canonical_column, detect_format, split_wide_column, table_columns
from .records import DataFormat, MappingType, VariableCategory, VariableDescriptor
from .utils import clean_text, parse_number
from .variables import classify_variable, display_name, normalize_variable_name

if TYPE_CHECKING:
    from .mapping import MappingResolver
    from .store import SurveyStore


logger = logging.getLogger(__name__)


def _quality(rows: Sequence[Mapping[str, Any]], p50_headers: Sequence[str]) -> float:
    if not rows:
        return 0.0
    good = 0
    for row in rows:
        if any((parse_number(row.get(h)) or 0) > 0 for h in p50_headers):
            good += 1
    return good / len(rows)


def discover(
    columns: Sequence[str],
    survey_source: Optional[str] = None,
    rows: Sequence[Mapping[str, Any]] = (),
    record_count: Optional[int] = None,
) -> list[VariableDescriptor]:
    """Catalog the metrics encoded in WIDE column names.

    A metric is reported as soon as one of its percentile columns exists; the
    others are simply absent. ``rows`` (optional, usually a sample) feed the
    data-quality ratio; ``record_count`` defaults to their number.
    """
    headers: dict[str, dict[str, str]] = {}
    for column in columns:
        split = split_wide_column(column)
        if not split:
            continue
        metric = normalize_variable_name(split[0])
        headers.setdefault(metric, {}).setdefault(split[1], column)

    found: list[VariableDescriptor] = []
    for metric, by_percentile in headers.items():
        p50 = [by_percentile["p50"]] if "p50" in by_percentile else []
        found.append(
            VariableDescriptor(
                normalized_name=metric,
                display_name=display_name(metric),
                category=classify_variable(metric),
                available_sources=[survey_source] if survey_source else [],
                record_count=len(rows) if record_count is None else record_count,
                data_quality=_quality(rows, p50),
                format=DataFormat.WIDE,
            )
        )
    return sorted(found, key=lambda d: (d.category.value, d.normalized_name))


def discover_long(
    rows: Sequence[Mapping[str, Any]],
    survey_source: Optional[str] = None,
    variable_map: Mapping[str, str] | None = None,
    sample_limit: Optional[int] = None,
) -> list[VariableDescriptor]:
    """Catalog the distinct ``variable`` values of a LONG table.

    Every row counts towards ``record_count``; data quality is measured on the
    first ``sample_limit`` rows of each variable.
    """
    lookup = {k.lower(): v for k, v in (variable_map or {}).items()}
    grouped: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        known = {canonical_column(h): v for h, v in row.items() if canonical_column(h)}
        variable = clean_text(known.get("variable"))
        if not variable:
            continue
        metric = normalize_variable_name(lookup.get(variable.lower()) or variable)
        grouped.setdefault(metric, []).append(known)

    found = [
        VariableDescriptor(
            normalized_name=metric,
            display_name=display_name(metric),
            category=classify_variable(metric),
            available_sources=[survey_source] if survey_source else [],
            record_count=len(metric_rows),
            data_quality=_quality(metric_rows[:sample_limit], ["p50"]),
            format=DataFormat.LONG,
        )
        for metric, metric_rows in grouped.items()
    ]
    return sorted(found, key=lambda d: (d.category.value, d.normalized_name))


def merge_descriptors(batches: Sequence[Sequence[VariableDescriptor]]) -> list[VariableDescriptor]:
    merged: dict[str, VariableDescriptor] = {}
    for batch in batches:
        for item in batch:
            current = merged.get(item.normalized_name)
            if current is None:
                merged[item.normalized_name] = VariableDescriptor(
                    normalized_name=item.normalized_name,
                    display_name=item.display_name,
                    category=item.category,
                    available_sources=sorted(set(item.available_sources)),
                    record_count=item.record_count,
                    data_quality=item.data_quality,
                    format=item.format,
                )
                continue
            total = current.record_count + item.record_count
            if total:
                current.data_quality = (
                    current.data_quality * current.record_count + item.data_quality * item.record_count
                ) / total
            current.record_count = total
            current.available_sources = sorted(set(current.available_sources) | set(item.available_sources))
    return sorted(merged.values(), key=lambda d: (d.category.value, d.normalized_name))


class VariableCatalog:
    """Process-wide index of discoverable variables.

    Derived from whatever the store holds; it is never authoritative and is
    dropped wholesale by ``invalidate()`` whenever survey rows change.
    """

    def __init__(
        self,
        store: "SurveyStore",
        resolver: Optional["MappingResolver"] = None,
        sample_limit: int = 100,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.sample_limit = sample_limit
        self._cache: Optional[list[VariableDescriptor]] = None

    def invalidate(self) -> None:
        self._cache = None
        logger.info("Variable discovery cache cleared")

    async def variables(self) -> list[VariableDescriptor]:
        if self._cache is None:
            self._cache = await self._build()
        return self._cache

    async def by_category(self) -> dict[VariableCategory, list[VariableDescriptor]]:
        groups: dict[VariableCategory, list[VariableDescriptor]] = {c: [] for c in VariableCategory}
        for item in await self.variables():
            groups[item.category].append(item)
        return groups

    async def availability(self) -> dict[str, list[str]]:
        return {item.normalized_name: list(item.available_sources) for item in await self.variables()}

    async def _survey_variables(self, survey_source: str) -> list[VariableDescriptor]:
        rows = await self.store.fetch_rows(survey_source)
        if not rows:
            return []
        column_map: dict[str, str] = {}
        variable_map: dict[str, str] = {}
        if self.resolver is not None:
            column_map = await self.resolver.source_map(MappingType.COLUMN, survey_source)
            variable_map = await self.resolver.source_map(MappingType.VARIABLE, survey_source)
        renamed = [apply_column_mapping(r, column_map) for r in rows]
        columns = table_columns(renamed)
        fmt = detect_format(columns)
        if fmt is DataFormat.LONG:
            return discover_long(renamed, survey_source, variable_map, self.sample_limit)
        if fmt is DataFormat.WIDE:
            if variable_map:
                columns = [_rename_prefix(c, variable_map) for c in columns]
                renamed = [{_rename_prefix(h, variable_map): v for h, v in r.items()} for r in renamed]
            return discover(columns, survey_source, renamed[: self.sample_limit], record_count=len(renamed))
        raise FormatUnrecognizedError(columns, survey_source)

    async def _build(self) -> list[VariableDescriptor]:
        sources = await self.store.list_survey_sources()
        results = await asyncio.gather(*(self._survey_variables(s) for s in sources), return_exceptions=True)
        batches: list[list[VariableDescriptor]] = []
        for source, result in zip(sources, results):
            if isinstance(result, FormatUnrecognizedError):
                logger.warning("Survey %s skipped during discovery: %s", source, result)
                continue
            if isinstance(result, BaseException):
                raise result
            batches.append(result)
        catalog = merge_descriptors(batches)
        logger.info("Discovered %d variables across %d surveys", len(catalog), len(sources))
        return catalog


def _rename_prefix(header: str, variable_map: Mapping[str, str]) -> str:
    split = split_wide_column(header)
    if not split:
        return header
    lookup = {k.lower(): v for k, v in variable_map.items()}
    mapped = lookup.get(split[0].lower())
    return f"{mapped}_{split[1]}" if mapped else header
