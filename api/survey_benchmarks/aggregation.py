"""Stacking of normalized survey rows into benchmark rows.

Each metric section owns its sample sizes: ``n_orgs`` and ``n_incumbents`` of
the TCC block are summed only over rows that report TCC, never over rows that
only report wRVUs or CFs. Percentiles from different surveys are blended with
an incumbent-weighted mean, since only summary statistics (not incumbent-level
records) are available.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np

from .diagnostics import Diagnostics, PercentileMonotonicityWarning
from .mapping import MappingResolver, MappingTable, ResolvedFilter
from .records import (
    PERCENTILES,
    AggregatedBenchmarkRow,
    BenchmarkFilter,
    MappingType,
    MetricSection,
    MetricValues,
    SurveyRow,
)
from .variables import classify_variable, display_name, metric_sort_key


logger = logging.getLogger(__name__)


def blend_percentile(samples: Iterable[tuple[Optional[float], int]]) -> Optional[float]:
    """Combine one percentile reported by several rows.

    ``samples`` are ``(value, n_incumbents)`` pairs. Rows without a value are
    ignored; rows with a zero weight are left out of the weighted mean. When no
    row carries a positive weight the plain mean of the available values is used.
    """
    present = [(float(v), int(w or 0)) for v, w in samples if v is not None]
    if not present:
        return None
    weighted = [(v, w) for v, w in present if w > 0]
    if weighted:
        values, weights = zip(*weighted)
        return float(np.average(np.asarray(values, dtype=float), weights=np.asarray(weights, dtype=float)))
    return float(np.mean([v for v, _ in present]))


def _check_monotonic(row: SurveyRow, metric: str, values: MetricValues, diagnostics: Diagnostics) -> None:
    if values.is_monotonic():
        return
    warning = PercentileMonotonicityWarning(
        survey_source=row.survey_source,
        specialty=row.specialty,
        metric=metric,
        p25=values.p25,
        p50=values.p50,
        p75=values.p75,
        p90=values.p90,
    )
    diagnostics.record_monotonicity(warning)
    logger.warning(
        "Non-monotonic percentiles kept as reported: %s / %s / %s (%s, %s, %s, %s)",
        row.survey_source,
        row.specialty,
        metric,
        values.p25,
        values.p50,
        values.p75,
        values.p90,
    )


def build_sections(rows: Sequence[SurveyRow], diagnostics: Diagnostics) -> list[MetricSection]:
    """One section per metric present in ``rows``; metrics nobody reports are left out."""
    by_metric: dict[str, list[tuple[SurveyRow, MetricValues]]] = {}
    for row in rows:
        for metric, values in row.metrics.items():
            if values.has_values():
                by_metric.setdefault(metric, []).append((row, values))

    sections: list[MetricSection] = []
    for metric in sorted(by_metric, key=metric_sort_key):
        contributions = by_metric[metric]
        for row, values in contributions:
            _check_monotonic(row, metric, values, diagnostics)
        blended = {
            p: blend_percentile((values.percentile(p), values.n_incumbents) for _, values in contributions)
            for p in PERCENTILES
        }
        sections.append(
            MetricSection(
                metric=metric,
                display_name=display_name(metric),
                category=classify_variable(metric),
                n_orgs=sum(values.n_orgs for _, values in contributions),
                n_incumbents=sum(values.n_incumbents for _, values in contributions),
                contributing_rows=len(contributions),
                survey_sources=sorted({row.survey_source for row, _ in contributions}),
                **blended,
            )
        )
    return sections


def _label(table: Optional[MappingTable], survey_source: str, raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    if table is not None:
        standardized = table.standardize(survey_source, raw)
        if standardized:
            return standardized
    return raw


def stack(
    resolved: ResolvedFilter,
    rows: Iterable[SurveyRow],
    *,
    region_table: Optional[MappingTable] = None,
    provider_table: Optional[MappingTable] = None,
) -> tuple[list[AggregatedBenchmarkRow], Diagnostics]:
    """Filter, partition and aggregate rows that have already been resolved against the mappings."""
    flt = resolved.filter
    diagnostics = Diagnostics()
    partitions: dict[tuple[Optional[str], ...], list[SurveyRow]] = {}
    for row in rows:
        if not resolved.matches(row):
            continue
        key: list[Optional[str]] = []
        for dimension in flt.group_by:
            if dimension == "survey_source":
                key.append(row.survey_source)
            elif dimension == "geographic_region":
                key.append(_label(region_table, row.survey_source, row.geographic_region))
            else:
                key.append(_label(provider_table, row.survey_source, row.provider_type))
        partitions.setdefault(tuple(key), []).append(row)

    output: list[AggregatedBenchmarkRow] = []
    for key in sorted(partitions, key=lambda k: tuple(v or "" for v in k)):
        labels = dict(zip(flt.group_by, key))
        sections = build_sections(partitions[key], diagnostics)
        if not sections:
            continue
        output.append(
            AggregatedBenchmarkRow(
                standardized_specialty=flt.standardized_specialty,
                provider_type=labels.get("provider_type", flt.provider_type),
                geographic_region=labels.get("geographic_region", flt.geographic_region),
                survey_source=labels.get("survey_source"),
                metrics=sections,
            )
        )
    logger.info(
        "Stacked %d partition(s) for %s (group_by=%s)",
        len(output),
        flt.standardized_specialty,
        ",".join(flt.group_by) or "-",
    )
    return output, diagnostics


class StackingAggregator:
    def __init__(self, resolver: MappingResolver) -> None:
        self.resolver = resolver

    async def aggregate(
        self, flt: BenchmarkFilter, rows: Iterable[SurveyRow]
    ) -> tuple[list[AggregatedBenchmarkRow], Diagnostics]:
        resolved = await self.resolver.resolve_filter(flt)
        region_table = None
        provider_table = None
        if "geographic_region" in flt.group_by:
            region_table = await self.resolver.table(MappingType.REGION)
        if "provider_type" in flt.group_by:
            provider_table = await self.resolver.table(MappingType.PROVIDER_TYPE)
        return stack(resolved, rows, region_table=region_table, provider_table=provider_table)
