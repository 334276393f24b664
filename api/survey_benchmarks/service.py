from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping as MappingABC, Optional, Sequence

from .aggregation import StackingAggregator
from .blending import BlendComponent, blend_rows
from .diagnostics import Diagnostics
from .discovery import VariableCatalog
from .errors import InvalidBlendError
from .formats import apply_column_mapping, classify_rows, require_format, table_columns
from .mapping import MappingCache, MappingResolver
from .normalizer import RowNormalizer
from .records import AggregatedBenchmarkRow, BenchmarkFilter, DataFormat, Mapping, MappingType, SurveyRow, VariableDescriptor
from .store import SurveyStore
from .variables import normalize_variable_name


logger = logging.getLogger(__name__)


def _source_key(name: str) -> str:
    return " ".join(name.lower().split())


@dataclass
class QueryResult:
    rows: list[AggregatedBenchmarkRow] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def project(rows: Iterable[AggregatedBenchmarkRow], selected_variables: Optional[Sequence[str]]) -> list[AggregatedBenchmarkRow]:
    """Keep only the selected metric sections. Rows left without any section are dropped."""
    rows = list(rows)
    if not selected_variables:
        return rows
    wanted = {normalize_variable_name(v) for v in selected_variables}
    projected: list[AggregatedBenchmarkRow] = []
    for row in rows:
        sections = [s for s in row.metrics if s.metric in wanted]
        if sections:
            projected.append(replace(row, metrics=sections))
    return projected


class BenchmarkingQueryService:
    """Entry point of the engine: filter in, stacked benchmark rows out."""

    def __init__(
        self,
        store: SurveyStore,
        cache: MappingCache | None = None,
        catalog: VariableCatalog | None = None,
        discovery_sample_limit: int = 100,
    ) -> None:
        self.store = store
        self.cache = cache or MappingCache()
        self.resolver = MappingResolver(store, self.cache)
        self.aggregator = StackingAggregator(self.resolver)
        self.catalog = catalog or VariableCatalog(store, self.resolver, discovery_sample_limit)
        self._stored_sources: Optional[dict[str, str]] = None

    async def _stored_spelling(self, names: Sequence[str]) -> list[str]:
        """Map survey sources named in mappings onto the store's own spelling.

        Mappings key sources case-insensitively while stores match them exactly.
        A source the store does not hold keeps the mapping's spelling.
        """
        if self._stored_sources is None:
            self._stored_sources = {_source_key(s): s for s in await self.store.list_survey_sources()}
        resolved: list[str] = []
        for name in names:
            stored = self._stored_sources.get(_source_key(name))
            if stored is None:
                logger.debug("Survey %s is mapped but holds no rows", name)
                stored = name
            if stored not in resolved:
                resolved.append(stored)
        return resolved

    async def _load_source(self, survey_source: str) -> tuple[list[SurveyRow], Diagnostics]:
        records = await self.store.fetch_rows(survey_source)
        column_map = await self.resolver.source_map(MappingType.COLUMN, survey_source)
        variable_map = await self.resolver.source_map(MappingType.VARIABLE, survey_source)
        raw = classify_rows(survey_source, records, column_map)
        normalizer = RowNormalizer()
        rows = normalizer.normalize_all(raw, column_map, variable_map)
        logger.debug("Survey %s: %d of %d rows normalized", survey_source, len(rows), len(records))
        return rows, normalizer.diagnostics

    async def query(self, flt: BenchmarkFilter, selected_variables: Optional[Sequence[str]] = None) -> QueryResult:
        resolved = await self.resolver.resolve_filter(flt)
        # Load shared tables once, before the per-survey fan-out.
        await self.resolver.table(MappingType.COLUMN)
        await self.resolver.table(MappingType.VARIABLE)

        sources = await self._stored_spelling(resolved.specialty.survey_sources)
        loaded = await asyncio.gather(*(self._load_source(s) for s in sources))

        diagnostics = Diagnostics()
        rows: list[SurveyRow] = []
        for survey_rows, survey_diagnostics in loaded:
            rows.extend(survey_rows)
            diagnostics.merge(survey_diagnostics)

        aggregated, stack_diagnostics = await self.aggregator.aggregate(flt, rows)
        diagnostics.merge(stack_diagnostics)
        result = QueryResult(rows=project(aggregated, selected_variables), diagnostics=diagnostics)
        logger.info(
            "Query %s: %d surveys, %d rows in, %d benchmark rows out (%d unmappable)",
            flt.standardized_specialty,
            len(sources),
            len(rows),
            len(result.rows),
            diagnostics.total_unmappable,
        )
        return result

    async def blend(
        self,
        parts: Sequence[tuple[BenchmarkFilter, float]],
        method: str = "percentage",
        label: Optional[str] = None,
        selected_variables: Optional[Sequence[str]] = None,
    ) -> QueryResult:
        """Query each weighted filter collapsed, then blend the rows into one."""
        results = await asyncio.gather(
            *(self.query(replace(flt, group_by=()), selected_variables) for flt, _ in parts)
        )
        diagnostics = Diagnostics()
        components: list[BlendComponent] = []
        missing: list[str] = []
        for (flt, weight), result in zip(parts, results):
            diagnostics.merge(result.diagnostics)
            if not result.rows:
                missing.append(flt.standardized_specialty)
                continue
            components.append(BlendComponent(result.rows[0], weight))
        if missing:
            raise InvalidBlendError([f"No benchmark data for: {', '.join(missing)}"])
        blended = blend_rows(components, method, label)
        logger.info("Blended %d components into %s", len(components), blended.standardized_specialty)
        return QueryResult(rows=[blended], diagnostics=diagnostics)

    async def discover_variables(self) -> list[VariableDescriptor]:
        return await self.catalog.variables()

    async def ingest_rows(
        self, survey_source: str, records: Sequence[MappingABC[str, Any]], *, replace_existing: bool = True
    ) -> tuple[int, DataFormat]:
        """Validate the table shape, store it and drop derived caches."""
        column_map = await self.resolver.source_map(MappingType.COLUMN, survey_source)
        columns = table_columns(apply_column_mapping(r, column_map) for r in records)
        fmt = require_format(columns, survey_source)
        saved = await self.store.save_rows(survey_source, records, replace=replace_existing)
        self.invalidate()
        logger.info("Stored %d %s rows for %s", saved, fmt.value, survey_source)
        return saved, fmt

    async def save_mapping(self, mapping: Mapping) -> Mapping:
        stored = await self.store.save_mapping(mapping)
        self.invalidate()
        return stored

    def invalidate(self) -> None:
        self._stored_sources = None
        self.cache.invalidate()
        self.catalog.invalidate()
