from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from .records import PERCENTILES, AggregatedBenchmarkRow, MetricSection
from .variables import classify_variable, display_name, metric_sort_key


SUMMARY_METHODS = ("simple", "weighted")


def simple_mean(values: list[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))


def weighted_mean(values: list[Optional[float]], weights: list[int]) -> Optional[float]:
    pairs = [(v, w) for v, w in zip(values, weights) if v is not None and w > 0]
    if not pairs:
        return simple_mean(values)
    vs, ws = zip(*pairs)
    return float(np.average(vs, weights=ws))


def summarize(rows: Iterable[AggregatedBenchmarkRow], method: str = "simple") -> list[MetricSection]:
    """Collapse already-aggregated rows into one summary section per metric.

    ``simple`` averages each percentile across rows; ``weighted`` weights each
    row by its section's incumbent count.
    """
    if method not in SUMMARY_METHODS:
        raise ValueError(f"unknown summary method '{method}'")
    by_metric: dict[str, list[MetricSection]] = {}
    for row in rows:
        for section in row.metrics:
            by_metric.setdefault(section.metric, []).append(section)

    out: list[MetricSection] = []
    for metric in sorted(by_metric, key=metric_sort_key):
        sections = by_metric[metric]
        weights = [s.n_incumbents for s in sections]
        values = {}
        for p in PERCENTILES:
            column = [getattr(s, p) for s in sections]
            values[p] = weighted_mean(column, weights) if method == "weighted" else simple_mean(column)
        out.append(
            MetricSection(
                metric=metric,
                display_name=display_name(metric),
                category=classify_variable(metric),
                n_orgs=sum(s.n_orgs for s in sections),
                n_incumbents=sum(weights),
                contributing_rows=sum(s.contributing_rows for s in sections),
                survey_sources=sorted({src for s in sections for src in s.survey_sources}),
                **values,
            )
        )
    return out
