from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Optional

from .diagnostics import Diagnostics, UnmappableRowWarning
from .formats import apply_column_mapping, canonical_column, split_wide_column
from .records import PERCENTILES, LongRow, MetricValues, RawRow, SurveyRow, WideRow
from .utils import clean_text, parse_count, parse_number
from .variables import normalize_variable_name


logger = logging.getLogger(__name__)

_IDENTITY = {"specialty", "provider_type", "geographic_region", "variable"}
_METRIC_COUNT = re.compile(r"^(.+)_(n_orgs|n_incumbents)$", re.IGNORECASE)


def _metric_name(raw: str, variable_map: Mapping[str, str]) -> str:
    mapped = variable_map.get(raw.strip().lower())
    return normalize_variable_name(mapped or raw)


def _split_columns(values: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate known identity/count/percentile columns (by canonical name) from everything else."""
    known: dict[str, Any] = {}
    rest: dict[str, Any] = {}
    for header, cell in values.items():
        canonical = canonical_column(header)
        if canonical and canonical not in known:
            known[canonical] = cell
        else:
            rest[header] = cell
    return known, rest


def _build_long(row: LongRow, values: Mapping[str, Any], variable_map) -> tuple[Optional[SurveyRow], Optional[str]]:
    known, extras = _split_columns(values)
    specialty = clean_text(known.get("specialty"))
    if not specialty:
        return None, "missing specialty"
    variable = clean_text(known.get("variable"))
    if not variable:
        return None, "missing variable"
    metric = MetricValues(
        **{p: parse_number(known.get(p)) for p in PERCENTILES},
        n_orgs=parse_count(known.get("n_orgs")),
        n_incumbents=parse_count(known.get("n_incumbents")),
    )
    if not metric.has_values():
        return None, "no metric values"
    return (
        SurveyRow(
            survey_source=row.survey_source,
            specialty=specialty,
            provider_type=clean_text(known.get("provider_type")),
            geographic_region=clean_text(known.get("geographic_region")),
            metrics={_metric_name(variable, variable_map): metric},
            extras=extras,
        ),
        None,
    )


def _build_wide(row: WideRow, values: Mapping[str, Any], variable_map) -> tuple[Optional[SurveyRow], Optional[str]]:
    known: dict[str, Any] = {}
    percentiles: dict[str, dict[str, Optional[float]]] = {}
    counts: dict[str, dict[str, int]] = {}
    extras: dict[str, Any] = {}
    for header, cell in values.items():
        canonical = canonical_column(header)
        if canonical in _IDENTITY or canonical in ("n_orgs", "n_incumbents"):
            known.setdefault(canonical, cell)
            continue
        split = split_wide_column(header)
        if split:
            metric = _metric_name(split[0], variable_map)
            slot = percentiles.setdefault(metric, {})
            if slot.get(split[1]) is None:
                slot[split[1]] = parse_number(cell)
            continue
        count_match = _METRIC_COUNT.match(str(header).strip())
        if count_match:
            metric = _metric_name(count_match.group(1), variable_map)
            counts.setdefault(metric, {})[count_match.group(2).lower()] = parse_count(cell)
            continue
        extras[header] = cell

    specialty = clean_text(known.get("specialty"))
    if not specialty:
        return None, "missing specialty"

    row_orgs = parse_count(known.get("n_orgs"))
    row_incumbents = parse_count(known.get("n_incumbents"))
    metrics: dict[str, MetricValues] = {}
    for metric, slot in percentiles.items():
        own = counts.get(metric, {})
        values_ = MetricValues(
            **{p: slot.get(p) for p in PERCENTILES},
            n_orgs=own.get("n_orgs", row_orgs),
            n_incumbents=own.get("n_incumbents", row_incumbents),
        )
        if values_.has_values():
            metrics[metric] = values_
    if not metrics:
        return None, "no metric values"
    return (
        SurveyRow(
            survey_source=row.survey_source,
            specialty=specialty,
            provider_type=clean_text(known.get("provider_type")),
            geographic_region=clean_text(known.get("geographic_region")),
            metrics=metrics,
            extras=extras,
        ),
        None,
    )


def _build(
    row: RawRow,
    column_map: Mapping[str, str] | None,
    variable_map: Mapping[str, str] | None,
) -> tuple[Optional[SurveyRow], Optional[str]]:
    values = apply_column_mapping(row.values, column_map)
    lookup = {k.lower(): v for k, v in (variable_map or {}).items()}
    if isinstance(row, LongRow):
        return _build_long(row, values, lookup)
    return _build_wide(row, values, lookup)


def normalize(
    row: RawRow,
    column_map: Mapping[str, str] | None = None,
    variable_map: Mapping[str, str] | None = None,
) -> Optional[SurveyRow]:
    """Map one raw row to the canonical SurveyRow shape.

    Returns None when the row yields no specialty or no metric value.
    """
    survey_row, _ = _build(row, column_map, variable_map)
    return survey_row


class RowNormalizer:
    """Normalizes a batch of raw rows and counts the ones that cannot be used."""

    def __init__(self, diagnostics: Diagnostics | None = None) -> None:
        self.diagnostics = diagnostics or Diagnostics()

    def normalize_all(
        self,
        rows: Iterable[RawRow],
        column_map: Mapping[str, str] | None = None,
        variable_map: Mapping[str, str] | None = None,
    ) -> list[SurveyRow]:
        normalized: list[SurveyRow] = []
        skipped: dict[str, dict[str, int]] = {}
        for row in rows:
            survey_row, reason = _build(row, column_map, variable_map)
            if survey_row is None:
                reason = reason or "unmappable"
                self.diagnostics.record_unmappable(UnmappableRowWarning(row.survey_source, reason))
                by_reason = skipped.setdefault(row.survey_source, {})
                by_reason[reason] = by_reason.get(reason, 0) + 1
                continue
            normalized.append(survey_row)
        if skipped:
            logger.warning("Skipped unmappable rows: %s", skipped)
        return normalized
