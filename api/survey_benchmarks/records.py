from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping as MappingABC, Optional, Union


PERCENTILES: tuple[str, ...] = ("p25", "p50", "p75", "p90")


class DataFormat(str, Enum):
    LONG = "long"
    WIDE = "wide"
    UNRECOGNIZED = "unrecognized"


class MappingType(str, Enum):
    SPECIALTY = "specialty"
    PROVIDER_TYPE = "provider_type"
    REGION = "region"
    COLUMN = "column"
    VARIABLE = "variable"


class VariableCategory(str, Enum):
    COMPENSATION = "compensation"
    PRODUCTIVITY = "productivity"
    RATIO = "ratio"
    OTHER = "other"


GROUP_DIMENSIONS: tuple[str, ...] = ("survey_source", "geographic_region", "provider_type")


@dataclass(frozen=True)
class SourceEntry:
    survey_source: str
    raw_name: str


@dataclass(frozen=True)
class Mapping:
    """Standardized taxonomy entry and the raw source names that map to it."""

    mapping_type: MappingType
    standardized_name: str
    source_entries: tuple[SourceEntry, ...] = ()


# Raw rows, tagged once by the format detector.


@dataclass(frozen=True)
class LongRow:
    survey_source: str
    values: MappingABC[str, Any]


@dataclass(frozen=True)
class WideRow:
    survey_source: str
    values: MappingABC[str, Any]


RawRow = Union[LongRow, WideRow]


@dataclass
class MetricValues:
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None
    n_orgs: int = 0
    n_incumbents: int = 0

    def percentile(self, name: str) -> Optional[float]:
        return getattr(self, name)

    def has_values(self) -> bool:
        return any(self.percentile(p) is not None for p in PERCENTILES)

    def is_monotonic(self) -> bool:
        present = [v for v in (self.percentile(p) for p in PERCENTILES) if v is not None]
        return all(a <= b for a, b in zip(present, present[1:]))


@dataclass
class SurveyRow:
    """One normalized observation from one survey."""

    survey_source: str
    specialty: str
    provider_type: Optional[str] = None
    geographic_region: Optional[str] = None
    metrics: dict[str, MetricValues] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BenchmarkFilter:
    standardized_specialty: str
    provider_type: Optional[str] = None
    geographic_region: Optional[str] = None
    group_by: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        unknown = [d for d in self.group_by if d not in GROUP_DIMENSIONS]
        if unknown:
            raise ValueError(f"unknown group_by dimension(s): {', '.join(unknown)}")


@dataclass
class VariableDescriptor:
    normalized_name: str
    display_name: str
    category: VariableCategory
    available_sources: list[str] = field(default_factory=list)
    record_count: int = 0
    data_quality: float = 0.0
    format: DataFormat = DataFormat.WIDE


@dataclass
class MetricSection:
    metric: str
    display_name: str
    category: VariableCategory
    n_orgs: int
    n_incumbents: int
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None
    contributing_rows: int = 0
    survey_sources: list[str] = field(default_factory=list)


@dataclass
class AggregatedBenchmarkRow:
    standardized_specialty: str
    provider_type: Optional[str]
    geographic_region: Optional[str]
    metrics: list[MetricSection] = field(default_factory=list)
    survey_source: Optional[str] = None

    def section(self, metric: str) -> Optional[MetricSection]:
        for block in self.metrics:
            if block.metric == metric:
                return block
        return None
