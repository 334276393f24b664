"""Standardized taxonomy lookups.

Raw rows are never filtered by comparing them to a standardized display name:
the display name often matches no source spelling at all. Every filter goes
through the raw-name set resolved from the mapping table instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from .errors import AmbiguousMappingError, MappingNotFoundError
from .records import BenchmarkFilter, Mapping, MappingType, SourceEntry, SurveyRow
from .utils import contains_phrase

if TYPE_CHECKING:
    from .store import SurveyStore


logger = logging.getLogger(__name__)


def _key(text: str) -> str:
    return " ".join(str(text).lower().split())


class MappingTable:
    """All mappings of one type, indexed both ways. Raises on ambiguous raw names."""

    def __init__(self, mapping_type: MappingType, mappings: Iterable[Mapping]) -> None:
        self.mapping_type = mapping_type
        self._by_name: dict[str, Mapping] = {}
        self._reverse: dict[tuple[str, str], str] = {}
        for mapping in mappings:
            self._add(mapping)

    def _add(self, mapping: Mapping) -> None:
        if mapping.mapping_type != self.mapping_type:
            raise ValueError(f"cannot add a {mapping.mapping_type.value} mapping to a {self.mapping_type.value} table")
        name_key = _key(mapping.standardized_name)
        entries: dict[tuple[str, str], SourceEntry] = {}
        previous = self._by_name.get(name_key)
        if previous is not None:
            for entry in previous.source_entries:
                entries[(_key(entry.survey_source), _key(entry.raw_name))] = entry
        for entry in mapping.source_entries:
            rkey = (_key(entry.survey_source), _key(entry.raw_name))
            owner = self._reverse.get(rkey)
            if owner is not None and _key(owner) != name_key:
                raise AmbiguousMappingError(
                    self.mapping_type.value, entry.survey_source, entry.raw_name, owner, mapping.standardized_name
                )
            entries.setdefault(rkey, entry)
            self._reverse[rkey] = mapping.standardized_name
        canonical_name = previous.standardized_name if previous else mapping.standardized_name
        self._by_name[name_key] = Mapping(self.mapping_type, canonical_name, tuple(entries.values()))

    def get(self, standardized_name: str) -> Optional[Mapping]:
        return self._by_name.get(_key(standardized_name))

    def standardize(self, survey_source: str, raw_name: str) -> Optional[str]:
        return self._reverse.get((_key(survey_source), _key(raw_name)))

    def source_map(self, survey_source: str) -> dict[str, str]:
        """raw name -> standardized name for one survey source."""
        wanted = _key(survey_source)
        result: dict[str, str] = {}
        for mapping in self._by_name.values():
            for entry in mapping.source_entries:
                if _key(entry.survey_source) == wanted:
                    result[entry.raw_name] = mapping.standardized_name
        return result

    def names(self) -> list[str]:
        return sorted(m.standardized_name for m in self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)


def merge_mapping(existing: Iterable[Mapping], new: Mapping) -> MappingTable:
    """Validate ``new`` against the stored mappings of its type; it replaces any mapping with the same name."""
    others = [m for m in existing if _key(m.standardized_name) != _key(new.standardized_name)]
    return MappingTable(new.mapping_type, [*others, new])


class RawNameSet:
    """Source-scoped raw spellings resolved for one standardized name.

    With a ``table``, a raw value that the table assigns to some standardized
    name only matches when that name is this set's ``standardized_name``;
    containment is the rule for values the table does not know.
    """

    def __init__(
        self,
        entries: Iterable[SourceEntry],
        standardized_name: Optional[str] = None,
        table: Optional[MappingTable] = None,
    ) -> None:
        self.standardized_name = standardized_name
        self.table = table
        grouped: dict[str, list[str]] = {}
        self._labels: dict[str, str] = {}
        for entry in entries:
            source_key = _key(entry.survey_source)
            self._labels.setdefault(source_key, entry.survey_source)
            names = grouped.setdefault(source_key, [])
            if entry.raw_name not in names:
                names.append(entry.raw_name)
        self._by_source = {source: tuple(names) for source, names in grouped.items()}

    @property
    def survey_sources(self) -> list[str]:
        """Survey sources as spelled in the mapping, first spelling wins."""
        return sorted(self._labels.values())

    def raw_names(self, survey_source: str) -> tuple[str, ...]:
        return self._by_source.get(_key(survey_source), ())

    def matches(self, survey_source: str, value: Optional[str]) -> bool:
        if not value:
            return False
        if self.table is not None and self.standardized_name is not None:
            owner = self.table.standardize(survey_source, value)
            if owner is not None:
                return _key(owner) == _key(self.standardized_name)
        return any(contains_phrase(value, raw) for raw in self.raw_names(survey_source))


@dataclass
class ResolvedFilter:
    filter: BenchmarkFilter
    specialty: RawNameSet
    provider_type: Optional[RawNameSet] = None
    region: Optional[RawNameSet] = None

    def matches(self, row: SurveyRow) -> bool:
        if not self.specialty.matches(row.survey_source, row.specialty):
            return False
        if self.provider_type is not None and not self.provider_type.matches(row.survey_source, row.provider_type):
            return False
        if self.region is not None and not self.region.matches(row.survey_source, row.geographic_region):
            return False
        return True


class MappingCache:
    """Loaded mapping tables, keyed by type. Owned by the resolver; cleared wholesale."""

    def __init__(self) -> None:
        self._tables: dict[MappingType, MappingTable] = {}

    def get(self, mapping_type: MappingType) -> Optional[MappingTable]:
        return self._tables.get(mapping_type)

    def put(self, table: MappingTable) -> None:
        self._tables[table.mapping_type] = table

    def invalidate(self) -> None:
        if self._tables:
            logger.info("Mapping cache invalidated (%d tables)", len(self._tables))
        self._tables.clear()


class MappingResolver:
    def __init__(self, store: "SurveyStore", cache: MappingCache | None = None) -> None:
        self.store = store
        self.cache = cache or MappingCache()

    async def table(self, mapping_type: MappingType) -> MappingTable:
        table = self.cache.get(mapping_type)
        if table is None:
            mappings = await self.store.fetch_mappings(mapping_type)
            table = MappingTable(mapping_type, mappings)
            self.cache.put(table)
            logger.debug("Loaded %d %s mappings", len(table), mapping_type.value)
        return table

    async def resolve_sources(self, standardized_name: str, mapping_type: MappingType) -> list[SourceEntry]:
        table = await self.table(mapping_type)
        mapping = table.get(standardized_name)
        if mapping is None or not mapping.source_entries:
            raise MappingNotFoundError(standardized_name, mapping_type.value)
        return list(mapping.source_entries)

    async def raw_name_set(self, standardized_name: str, mapping_type: MappingType) -> RawNameSet:
        entries = await self.resolve_sources(standardized_name, mapping_type)
        return RawNameSet(entries, standardized_name, await self.table(mapping_type))

    async def standardize(self, mapping_type: MappingType, survey_source: str, raw_name: Optional[str]) -> Optional[str]:
        if not raw_name:
            return None
        table = await self.table(mapping_type)
        return table.standardize(survey_source, raw_name)

    async def source_map(self, mapping_type: MappingType, survey_source: str) -> dict[str, str]:
        table = await self.table(mapping_type)
        return table.source_map(survey_source)

    async def resolve_filter(self, flt: BenchmarkFilter) -> ResolvedFilter:
        specialty = await self.raw_name_set(flt.standardized_specialty, MappingType.SPECIALTY)
        provider_type = None
        if flt.provider_type:
            provider_type = await self.raw_name_set(flt.provider_type, MappingType.PROVIDER_TYPE)
        region = None
        if flt.geographic_region:
            region = await self.raw_name_set(flt.geographic_region, MappingType.REGION)
        return ResolvedFilter(flt, specialty, provider_type, region)
