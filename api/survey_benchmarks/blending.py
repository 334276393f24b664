"""Specialty blends.

A blend combines several already-aggregated benchmark rows (typically one per
standardized specialty) into a single row, using user-chosen weights. With the
``percentage`` method each component counts by its weight alone; ``weighted``
multiplies the weight by the section's incumbent count, so thin samples pull
less.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from .errors import InvalidBlendError
from .records import PERCENTILES, AggregatedBenchmarkRow, MetricSection
from .variables import classify_variable, display_name, metric_sort_key


logger = logging.getLogger(__name__)

BLEND_METHODS = ("percentage", "weighted")
WEIGHT_TOLERANCE = 0.01


@dataclass
class BlendComponent:
    row: AggregatedBenchmarkRow
    weight: float

    @property
    def label(self) -> str:
        parts = [self.row.standardized_specialty]
        parts += [p for p in (self.row.provider_type, self.row.geographic_region, self.row.survey_source) if p]
        return " / ".join(parts)


@dataclass
class BlendValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_weight: float = 0.0
    duplicates: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _identity(component: BlendComponent) -> str:
    return " ".join(component.label.lower().split())


def validate_blend(components: Sequence[BlendComponent]) -> BlendValidation:
    result = BlendValidation()
    if not components:
        result.errors.append("At least one specialty must be selected for blending")

    seen: set[str] = set()
    for component in components:
        key = _identity(component)
        if key in seen and component.label not in result.duplicates:
            result.duplicates.append(component.label)
        seen.add(key)
    if result.duplicates:
        result.errors.append(f"Duplicate specialties found: {', '.join(result.duplicates)}")

    result.total_weight = float(sum(c.weight for c in components))
    if components and result.total_weight == 0:
        result.errors.append("Total weight cannot be zero")
    elif components and abs(result.total_weight - 100) > WEIGHT_TOLERANCE:
        result.warnings.append(f"Total weight is {result.total_weight:.2f}%. Consider normalizing to 100%")

    if any(c.weight < 0 for c in components):
        result.errors.append("Weights cannot be negative")
    if any(c.weight == 0 for c in components):
        result.warnings.append("Some specialties have zero weight and will not contribute to the blend")
    return result


def normalize_weights(weights: Sequence[float]) -> list[float]:
    """Scale weights to sum to 100, rounded to two decimals. All-zero weights are returned unchanged."""
    total = sum(weights)
    if total == 0:
        return list(weights)
    return [round(w / total * 100, 2) for w in weights]


def _blend_value(pairs: list[tuple[Optional[float], float]]) -> Optional[float]:
    present = [(v, w) for v, w in pairs if v is not None and w > 0]
    if not present:
        return None
    values, weights = zip(*present)
    return float(np.average(np.asarray(values, dtype=float), weights=np.asarray(weights, dtype=float)))


def blend_sections(metric: str, parts: Sequence[tuple[MetricSection, float]], method: str = "percentage") -> MetricSection:
    """Blend one metric across components.

    Components that do not report a percentile are left out of that
    percentile, and the remaining weights are re-normalized. Sample sizes are
    the weight-share-weighted sums, rounded.
    """
    if method == "weighted":
        weighted = [(s, w * s.n_incumbents) for s, w in parts]
        # No incumbents anywhere: fall back to the plain weights.
        if any(w > 0 for _, w in weighted):
            parts = weighted
    total = sum(w for _, w in parts if w > 0)
    shares = [(s, (w / total) if total and w > 0 else 0.0) for s, w in parts]
    return MetricSection(
        metric=metric,
        display_name=display_name(metric),
        category=classify_variable(metric),
        n_orgs=int(round(sum(share * s.n_orgs for s, share in shares))),
        n_incumbents=int(round(sum(share * s.n_incumbents for s, share in shares))),
        contributing_rows=sum(s.contributing_rows for s, share in shares if share > 0),
        survey_sources=sorted({src for s, share in shares if share > 0 for src in s.survey_sources}),
        **{p: _blend_value([(getattr(s, p), share) for s, share in shares]) for p in PERCENTILES},
    )


def _shared(values: Sequence[Optional[str]]) -> Optional[str]:
    distinct = set(values)
    return distinct.pop() if len(distinct) == 1 else None


def blend_rows(
    components: Sequence[BlendComponent],
    method: str = "percentage",
    label: Optional[str] = None,
) -> AggregatedBenchmarkRow:
    """Blend benchmark rows into one.

    Raises InvalidBlendError when ``validate_blend`` reports errors. Weights
    need not sum to 100; they are used as relative shares.
    """
    if method not in BLEND_METHODS:
        raise ValueError(f"unknown blend method '{method}'")
    validation = validate_blend(components)
    if not validation.is_valid:
        raise InvalidBlendError(validation.errors)
    for warning in validation.warnings:
        logger.info("Blend warning: %s", warning)

    by_metric: dict[str, list[tuple[MetricSection, float]]] = {}
    for component in components:
        for section in component.row.metrics:
            by_metric.setdefault(section.metric, []).append((section, component.weight))

    rows = [c.row for c in components]
    return AggregatedBenchmarkRow(
        standardized_specialty=label or " + ".join(c.row.standardized_specialty for c in components),
        provider_type=_shared([r.provider_type for r in rows]),
        geographic_region=_shared([r.geographic_region for r in rows]),
        survey_source=_shared([r.survey_source for r in rows]),
        metrics=[blend_sections(m, by_metric[m], method) for m in sorted(by_metric, key=metric_sort_key)],
    )
