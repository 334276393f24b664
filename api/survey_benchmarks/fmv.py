"""Fair-market-value positioning: where a provider's own numbers sit within a
benchmark distribution."""

from __future__ import annotations

import math
from typing import Mapping, Optional

import numpy as np

from .records import PERCENTILES, AggregatedBenchmarkRow, MetricSection, VariableCategory
from .variables import classify_variable, normalize_variable_name


MAX_FTE = 2.0


def percentile_rank(section: Optional[MetricSection], value: Optional[float]) -> Optional[float]:
    """Interpolate ``value`` onto the 0-100 scale of ``section``.

    The curve runs through (0, 0), the four reported percentiles and an
    extrapolated p100 of ``p90 + (p90 - p75)``; results are clamped to 0-100.
    None when a percentile is missing, the percentiles are not monotonic or
    the value is missing.
    """
    if section is None or value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    knots = [getattr(section, p) for p in PERCENTILES]
    if any(k is None for k in knots):
        return None
    p25, p50, p75, p90 = knots
    values = [0.0, p25, p50, p75, p90, p90 + (p90 - p75)]
    if any(a > b for a, b in zip(values, values[1:])):
        return None
    return float(np.interp(value, values, [0, 25, 50, 75, 90, 100]))


def check_fte(fte: Optional[float]) -> None:
    if fte is not None and not 0 < fte <= MAX_FTE:
        raise ValueError(f"FTE must be greater than 0 and at most {MAX_FTE:g}, got {fte}")


def fte_adjust(value: float, fte: Optional[float]) -> float:
    """Scale a value reported at ``fte`` to one full-time equivalent."""
    check_fte(fte)
    return value if fte is None else value / fte


def rank_provider(
    row: Optional[AggregatedBenchmarkRow],
    values: Mapping[str, Optional[float]],
    fte: Optional[float] = None,
) -> dict[str, Optional[float]]:
    """Percentile rank per metric. Metric names may be raw spellings ("TCC", "wRVUs").

    Ratios such as TCC per wRVU do not scale with FTE and are ranked as given.
    """
    ranks: dict[str, Optional[float]] = {}
    check_fte(fte)
    for name, value in values.items():
        metric = normalize_variable_name(name)
        adjusted = value
        if value is not None and classify_variable(metric) is not VariableCategory.RATIO:
            adjusted = fte_adjust(value, fte)
        ranks[metric] = percentile_rank(row.section(metric) if row else None, adjusted)
    return ranks
