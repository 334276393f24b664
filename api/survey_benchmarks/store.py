"""Storage collaborators.

The engine only ever reads through the ``SurveyStore`` protocol. Three
backends are provided: an in-process store (tests, demos), a SQLModel store
(``DATABASE_URL``) and a read-only Supabase/PostgREST store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, Iterable, Mapping as MappingABC, Optional, Protocol, Sequence

from sqlmodel import Session, select

from . import supabase_repo
from .config import Settings, get_settings
from .db import get_session, init_db, make_engine
from .errors import StoreReadOnlyError
from .mapping import merge_mapping
from .models import SurveyMapping, SurveyMappingEntry, SurveyRowRecord
from .records import Mapping, MappingType, SourceEntry


logger = logging.getLogger(__name__)


class SurveyStore(Protocol):
    async def list_survey_sources(self) -> list[str]: ...

    async def fetch_rows(
        self, survey_source: str, raw_filter: Optional[MappingABC[str, Any]] = None
    ) -> list[dict[str, Any]]: ...

    async def fetch_mappings(self, mapping_type: MappingType) -> list[Mapping]: ...

    async def save_rows(self, survey_source: str, rows: Sequence[MappingABC[str, Any]], *, replace: bool = True) -> int: ...

    async def save_mapping(self, mapping: Mapping) -> Mapping: ...


def matches_raw_filter(row: MappingABC[str, Any], raw_filter: Optional[MappingABC[str, Any]]) -> bool:
    """Equality on raw header/value pairs, case-insensitive on both sides."""
    if not raw_filter:
        return True
    lowered = {str(k).lower(): v for k, v in row.items()}
    for header, wanted in raw_filter.items():
        value = lowered.get(str(header).lower())
        if value is None or str(value).strip().lower() != str(wanted).strip().lower():
            return False
    return True


def _same_name(a: str, b: str) -> bool:
    return " ".join(a.lower().split()) == " ".join(b.lower().split())


def group_mapping_entries(mapping_type: MappingType, entries: Iterable[MappingABC[str, Any]]) -> list[Mapping]:
    """Fold flat (standardized_name, survey_source, raw_name) records into Mapping values."""
    grouped: dict[str, list[SourceEntry]] = {}
    names: dict[str, str] = {}
    for entry in entries:
        name = str(entry.get("standardized_name") or "").strip()
        if not name:
            continue
        key = " ".join(name.lower().split())
        names.setdefault(key, name)
        bucket = grouped.setdefault(key, [])
        source = entry.get("survey_source")
        raw = entry.get("raw_name")
        if source and raw:
            bucket.append(SourceEntry(str(source), str(raw)))
    return [Mapping(mapping_type, names[key], tuple(grouped[key])) for key in grouped]


def _mapping_records(session: Session, mapping_type: MappingType, *, for_update: bool = False) -> list[SurveyMapping]:
    stmt = (
        select(SurveyMapping)
        .where(SurveyMapping.mapping_type == mapping_type.value)
        .order_by(SurveyMapping.standardized_name)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return list(session.exec(stmt).all())


def _to_mapping(mapping_type: MappingType, record: SurveyMapping) -> Mapping:
    entries = sorted(record.entries, key=lambda e: e.position)
    return Mapping(
        mapping_type,
        record.standardized_name,
        tuple(SourceEntry(e.survey_source, e.raw_name) for e in entries),
    )


class InMemorySurveyStore:
    def __init__(
        self,
        rows: Optional[MappingABC[str, Sequence[MappingABC[str, Any]]]] = None,
        mappings: Iterable[Mapping] = (),
    ) -> None:
        self._rows: dict[str, list[dict[str, Any]]] = {s: [dict(r) for r in rs] for s, rs in (rows or {}).items()}
        self._mappings: dict[MappingType, list[Mapping]] = {}
        for mapping in mappings:
            self._mappings.setdefault(mapping.mapping_type, []).append(mapping)

    async def list_survey_sources(self) -> list[str]:
        return sorted(self._rows)

    async def fetch_rows(self, survey_source, raw_filter=None):
        return [dict(r) for r in self._rows.get(survey_source, []) if matches_raw_filter(r, raw_filter)]

    async def fetch_mappings(self, mapping_type):
        return list(self._mappings.get(mapping_type, []))

    async def save_rows(self, survey_source, rows, *, replace=True):
        incoming = [dict(r) for r in rows]
        if replace or survey_source not in self._rows:
            self._rows[survey_source] = incoming
        else:
            self._rows[survey_source].extend(incoming)
        return len(incoming)

    async def save_mapping(self, mapping):
        existing = self._mappings.get(mapping.mapping_type, [])
        table = merge_mapping(existing, mapping)
        stored = table.get(mapping.standardized_name)
        self._mappings[mapping.mapping_type] = [
            *(m for m in existing if not _same_name(m.standardized_name, mapping.standardized_name)),
            stored,
        ]
        return stored


class SqlSurveyStore:
    """SQLModel-backed store. Sessions are synchronous and run in worker threads."""

    def __init__(self, db_url: str) -> None:
        self.engine = make_engine(db_url)
        init_db(self.engine)
        self._write_lock = threading.Lock()

    # Synchronous halves

    def _list_sources(self) -> list[str]:
        with get_session(self.engine) as session:
            sources = session.exec(select(SurveyRowRecord.survey_source).distinct()).all()
        return sorted(sources)

    def _fetch_rows(self, survey_source: str, raw_filter) -> list[dict[str, Any]]:
        with get_session(self.engine) as session:
            stmt = (
                select(SurveyRowRecord)
                .where(SurveyRowRecord.survey_source == survey_source)
                .order_by(SurveyRowRecord.position)
            )
            records = session.exec(stmt).all()
            rows = [json.loads(r.row_json) for r in records]
        return [r for r in rows if matches_raw_filter(r, raw_filter)]

    def _fetch_mappings(self, mapping_type: MappingType) -> list[Mapping]:
        with get_session(self.engine) as session:
            records = _mapping_records(session, mapping_type)
            return [_to_mapping(mapping_type, r) for r in records]

    def _save_rows(self, survey_source: str, rows: Sequence[MappingABC[str, Any]], replace: bool) -> int:
        with get_session(self.engine) as session:
            offset = 0
            if replace:
                stale = session.exec(select(SurveyRowRecord).where(SurveyRowRecord.survey_source == survey_source)).all()
                for record in stale:
                    session.delete(record)
            else:
                offset = len(
                    session.exec(select(SurveyRowRecord.id).where(SurveyRowRecord.survey_source == survey_source)).all()
                )
            for i, row in enumerate(rows):
                session.add(
                    SurveyRowRecord(
                        survey_source=survey_source,
                        position=offset + i,
                        row_json=json.dumps(dict(row), default=str),
                    )
                )
            session.commit()
        return len(rows)

    def _save_mapping(self, mapping: Mapping) -> Mapping:
        # Validation and write share one transaction; the lock serializes
        # writers on backends (SQLite) that ignore FOR UPDATE.
        with self._write_lock, get_session(self.engine) as session:
            records = _mapping_records(session, mapping.mapping_type, for_update=True)
            table = merge_mapping([_to_mapping(mapping.mapping_type, r) for r in records], mapping)
            stored = table.get(mapping.standardized_name)
            for record in records:
                if _same_name(record.standardized_name, mapping.standardized_name):
                    for entry in list(record.entries):
                        session.delete(entry)
                    session.delete(record)
            session.flush()
            record = SurveyMapping(mapping_type=stored.mapping_type.value, standardized_name=stored.standardized_name)
            session.add(record)
            session.flush()
            for i, entry in enumerate(stored.source_entries):
                session.add(
                    SurveyMappingEntry(
                        mapping_id=record.id, survey_source=entry.survey_source, raw_name=entry.raw_name, position=i
                    )
                )
            session.commit()
        return stored

    # SurveyStore

    async def list_survey_sources(self) -> list[str]:
        return await asyncio.to_thread(self._list_sources)

    async def fetch_rows(self, survey_source, raw_filter=None):
        return await asyncio.to_thread(self._fetch_rows, survey_source, raw_filter)

    async def fetch_mappings(self, mapping_type):
        return await asyncio.to_thread(self._fetch_mappings, mapping_type)

    async def save_rows(self, survey_source, rows, *, replace=True):
        return await asyncio.to_thread(self._save_rows, survey_source, list(rows), replace)

    async def save_mapping(self, mapping):
        return await asyncio.to_thread(self._save_mapping, mapping)


class SupabaseSurveyStore:
    """Read-only view over PostgREST tables: ``survey_rows(survey_source, position, data)``
    and ``survey_mappings(mapping_type, standardized_name, survey_source, raw_name, position)``."""

    def __init__(self, rows_table: str = "survey_rows", mappings_table: str = "survey_mappings") -> None:
        self.rows_table = rows_table
        self.mappings_table = mappings_table

    async def list_survey_sources(self) -> list[str]:
        return await asyncio.to_thread(supabase_repo.list_survey_sources, self.rows_table)

    async def fetch_rows(self, survey_source, raw_filter=None):
        rows = await asyncio.to_thread(supabase_repo.get_survey_rows, self.rows_table, survey_source)
        return [r for r in rows if matches_raw_filter(r, raw_filter)]

    async def fetch_mappings(self, mapping_type):
        entries = await asyncio.to_thread(supabase_repo.get_mapping_entries, self.mappings_table, mapping_type.value)
        return group_mapping_entries(mapping_type, entries)

    async def save_rows(self, survey_source, rows, *, replace=True):
        raise StoreReadOnlyError("Supabase survey store is read-only")

    async def save_mapping(self, mapping):
        raise StoreReadOnlyError("Supabase survey store is read-only")


def get_store(settings: Settings | None = None) -> SurveyStore:
    settings = settings or get_settings()
    backend = settings.storage_backend
    logger.info("Using %s survey store", backend)
    if backend == "memory":
        return InMemorySurveyStore()
    if backend == "sql":
        return SqlSurveyStore(settings.db_url)
    if backend == "supabase":
        return SupabaseSurveyStore(settings.survey_rows_table, settings.mappings_table)
    raise ValueError(f"unknown STORAGE_BACKEND '{backend}' (expected memory, sql or supabase)")
