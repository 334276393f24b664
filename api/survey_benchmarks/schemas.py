from __future__ import annotations

from pydantic import BaseModel
from typing import Any, Literal, Optional

from .records import DataFormat, MappingType, VariableCategory


class FormatDetectRequest(BaseModel):
    columns: list[str]


class VariableOut(BaseModel):
    normalized_name: str
    display_name: str
    category: VariableCategory
    available_sources: list[str] = []
    record_count: int = 0
    data_quality: float = 0.0
    format: DataFormat = DataFormat.WIDE


class FormatDetectResponse(BaseModel):
    format: DataFormat
    variables: list[VariableOut] = []


class VariablesResponse(BaseModel):
    variables: list[VariableOut]
    availability: dict[str, list[str]] = {}


class BenchmarkQueryRequest(BaseModel):
    standardized_specialty: str
    provider_type: Optional[str] = None
    geographic_region: Optional[str] = None
    group_by: list[str] = []  # survey_source, geographic_region, provider_type
    selected_variables: Optional[list[str]] = None
    summary: Optional[Literal["simple", "weighted"]] = None


class MetricSectionOut(BaseModel):
    metric: str
    display_name: str
    category: VariableCategory
    n_orgs: int
    n_incumbents: int
    p25: float | None = None
    p50: float | None = None
    p75: float | None = None
    p90: float | None = None
    contributing_rows: int = 0
    survey_sources: list[str] = []


class BenchmarkRowOut(BaseModel):
    standardized_specialty: str
    provider_type: str | None = None
    geographic_region: str | None = None
    survey_source: str | None = None
    metrics: list[MetricSectionOut] = []


class MonotonicityWarningOut(BaseModel):
    survey_source: str
    specialty: str
    metric: str
    p25: float | None = None
    p50: float | None = None
    p75: float | None = None
    p90: float | None = None


class DiagnosticsOut(BaseModel):
    unmappable_rows: dict[str, int] = {}
    monotonicity_warnings: list[MonotonicityWarningOut] = []
    unmappable_reasons: dict[str, dict[str, int]] = {}


class BenchmarkQueryResponse(BaseModel):
    rows: list[BenchmarkRowOut]
    diagnostics: DiagnosticsOut
    summary: list[MetricSectionOut] | None = None


class SourceEntryIn(BaseModel):
    survey_source: str
    raw_name: str


class MappingRequest(BaseModel):
    mapping_type: MappingType
    standardized_name: str
    source_entries: list[SourceEntryIn] = []


class MappingResponse(MappingRequest):
    pass


class SurveyRowsRequest(BaseModel):
    rows: list[dict[str, Any]]
    replace: bool = True


class SurveyRowsResponse(BaseModel):
    survey_source: str
    stored: int
    format: DataFormat


class BlendComponentIn(BaseModel):
    standardized_specialty: str
    provider_type: Optional[str] = None
    geographic_region: Optional[str] = None
    weight: float


class BlendRequest(BaseModel):
    components: list[BlendComponentIn]
    method: Literal["percentage", "weighted"] = "percentage"
    label: Optional[str] = None
    selected_variables: Optional[list[str]] = None


class BlendResponse(BaseModel):
    row: BenchmarkRowOut
    diagnostics: DiagnosticsOut


class RankRequest(BaseModel):
    standardized_specialty: str
    provider_type: Optional[str] = None
    geographic_region: Optional[str] = None
    values: dict[str, Optional[float]]
    fte: Optional[float] = None


class RankResponse(BaseModel):
    percentiles: dict[str, Optional[float]]
    benchmark: BenchmarkRowOut | None = None
