from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .discovery import discover
from .errors import (
    AmbiguousMappingError,
    FormatUnrecognizedError,
    InvalidBlendError,
    MappingNotFoundError,
    StoreReadOnlyError,
    StoreUnavailable,
)
from .fmv import rank_provider
from .formats import detect_format
from .records import BenchmarkFilter, DataFormat, Mapping, SourceEntry, VariableCategory
from .schemas import (
    BenchmarkQueryRequest,
    BenchmarkQueryResponse,
    BlendRequest,
    BlendResponse,
    FormatDetectRequest,
    FormatDetectResponse,
    MappingRequest,
    MappingResponse,
    RankRequest,
    RankResponse,
    SurveyRowsRequest,
    SurveyRowsResponse,
    VariableOut,
    VariablesResponse,
)
from .service import BenchmarkingQueryService
from .store import get_store
from .summary import summarize


settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_service: Optional[BenchmarkingQueryService] = None


def get_service() -> BenchmarkingQueryService:
    global _service
    if _service is None:
        _service = BenchmarkingQueryService(get_store(settings), discovery_sample_limit=settings.discovery_sample_limit)
    return _service


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "storage_backend": settings.storage_backend}


@app.post("/formats/detect", response_model=FormatDetectResponse)
def post_detect_format(payload: FormatDetectRequest) -> FormatDetectResponse:
    fmt = detect_format(payload.columns)
    if fmt is DataFormat.UNRECOGNIZED:
        raise HTTPException(status_code=422, detail="format not recognized")
    variables = discover(payload.columns) if fmt is DataFormat.WIDE else []
    return FormatDetectResponse(format=fmt, variables=[VariableOut(**asdict(v)) for v in variables])


@app.get("/variables", response_model=VariablesResponse)
async def get_variables(
    category: Optional[VariableCategory] = None,
    service: BenchmarkingQueryService = Depends(get_service),
) -> VariablesResponse:
    try:
        variables = await service.discover_variables()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if category is not None:
        variables = [v for v in variables if v.category == category]
    return VariablesResponse(
        variables=[VariableOut(**asdict(v)) for v in variables],
        availability={v.normalized_name: list(v.available_sources) for v in variables},
    )


@app.post("/benchmarks/query", response_model=BenchmarkQueryResponse)
async def post_benchmark_query(
    payload: BenchmarkQueryRequest,
    service: BenchmarkingQueryService = Depends(get_service),
) -> BenchmarkQueryResponse:
    try:
        flt = BenchmarkFilter(
            standardized_specialty=payload.standardized_specialty,
            provider_type=payload.provider_type,
            geographic_region=payload.geographic_region,
            group_by=tuple(payload.group_by),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    try:
        result = await service.query(flt, payload.selected_variables)
    except MappingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FormatUnrecognizedError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    summary = None
    if payload.summary:
        summary = [asdict(s) for s in summarize(result.rows, payload.summary)]
    return BenchmarkQueryResponse(
        rows=[asdict(r) for r in result.rows],
        diagnostics=asdict(result.diagnostics),
        summary=summary,
    )


@app.post("/benchmarks/blend", response_model=BlendResponse)
async def post_benchmark_blend(
    payload: BlendRequest,
    service: BenchmarkingQueryService = Depends(get_service),
) -> BlendResponse:
    parts = [
        (BenchmarkFilter(c.standardized_specialty, c.provider_type, c.geographic_region), c.weight)
        for c in payload.components
    ]
    try:
        result = await service.blend(parts, payload.method, payload.label, payload.selected_variables)
    except MappingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidBlendError, FormatUnrecognizedError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return BlendResponse(row=asdict(result.rows[0]), diagnostics=asdict(result.diagnostics))


@app.post("/benchmarks/rank", response_model=RankResponse)
async def post_benchmark_rank(
    payload: RankRequest,
    service: BenchmarkingQueryService = Depends(get_service),
) -> RankResponse:
    flt = BenchmarkFilter(payload.standardized_specialty, payload.provider_type, payload.geographic_region)
    try:
        result = await service.query(flt)
        row = result.rows[0] if result.rows else None
        percentiles = rank_provider(row, payload.values, payload.fte)
    except MappingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ValueError, FormatUnrecognizedError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RankResponse(percentiles=percentiles, benchmark=asdict(row) if row else None)


@app.post("/mappings", response_model=MappingResponse)
async def post_mapping(
    payload: MappingRequest,
    service: BenchmarkingQueryService = Depends(get_service),
) -> MappingResponse:
    mapping = Mapping(
        mapping_type=payload.mapping_type,
        standardized_name=payload.standardized_name.strip(),
        source_entries=tuple(SourceEntry(e.survey_source, e.raw_name) for e in payload.source_entries),
    )
    try:
        stored = await service.save_mapping(mapping)
    except AmbiguousMappingError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StoreReadOnlyError as exc:
        raise HTTPException(status_code=501, detail=str(exc)) from exc
    return MappingResponse(
        mapping_type=stored.mapping_type,
        standardized_name=stored.standardized_name,
        source_entries=[asdict(e) for e in stored.source_entries],
    )


@app.post("/surveys/{survey_source}/rows", response_model=SurveyRowsResponse)
async def post_survey_rows(
    survey_source: str,
    payload: SurveyRowsRequest,
    service: BenchmarkingQueryService = Depends(get_service),
) -> SurveyRowsResponse:
    try:
        stored, fmt = await service.ingest_rows(survey_source, payload.rows, replace_existing=payload.replace)
    except FormatUnrecognizedError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreReadOnlyError as exc:
        raise HTTPException(status_code=501, detail=str(exc)) from exc
    return SurveyRowsResponse(survey_source=survey_source, stored=stored, format=fmt)


@app.post("/cache/invalidate")
def post_cache_invalidate(service: BenchmarkingQueryService = Depends(get_service)) -> dict[str, str]:
    service.invalidate()
    return {"status": "invalidated"}
