from __future__ import annotations

# Non-fatal data-quality findings, returned alongside query results.

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class UnmappableRowWarning:
    survey_source: str
    reason: str


@dataclass(frozen=True)
class PercentileMonotonicityWarning:
    survey_source: str
    specialty: str
    metric: str
    p25: Optional[float]
    p50: Optional[float]
    p75: Optional[float]
    p90: Optional[float]


@dataclass
class Diagnostics:
    unmappable_rows: dict[str, int] = field(default_factory=dict)
    monotonicity_warnings: list[PercentileMonotonicityWarning] = field(default_factory=list)
    # survey source -> reason -> count
    unmappable_reasons: dict[str, dict[str, int]] = field(default_factory=dict)

    def record_unmappable(self, warning: UnmappableRowWarning) -> None:
        self.unmappable_rows[warning.survey_source] = self.unmappable_rows.get(warning.survey_source, 0) + 1
        reasons = self.unmappable_reasons.setdefault(warning.survey_source, {})
        reasons[warning.reason] = reasons.get(warning.reason, 0) + 1

    def record_monotonicity(self, warning: PercentileMonotonicityWarning) -> None:
        self.monotonicity_warnings.append(warning)

    def merge(self, other: "Diagnostics") -> "Diagnostics":
        for source, count in other.unmappable_rows.items():
            self.unmappable_rows[source] = self.unmappable_rows.get(source, 0) + count
        for source, reasons in other.unmappable_reasons.items():
            mine = self.unmappable_reasons.setdefault(source, {})
            for reason, count in reasons.items():
                mine[reason] = mine.get(reason, 0) + count
        self.monotonicity_warnings.extend(other.monotonicity_warnings)
        return self

    @property
    def total_unmappable(self) -> int:
        return sum(self.unmappable_rows.values())

    @property
    def has_warnings(self) -> bool:
        return bool(self.unmappable_rows or self.monotonicity_warnings)
