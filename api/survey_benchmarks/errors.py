from __future__ import annotations


class BenchmarkingError(Exception):
    """Base class for errors raised by the benchmarking engine."""


class FormatUnrecognizedError(BenchmarkingError):
    """Raised when a tabular dataset is neither LONG nor WIDE. The file must be rejected."""

    def __init__(self, columns: list[str] | None = None, survey_source: str | None = None) -> None:
        self.columns = list(columns or [])
        self.survey_source = survey_source
        where = f" for survey '{survey_source}'" if survey_source else ""
        super().__init__(f"format not recognized{where}")


class MappingNotFoundError(BenchmarkingError):
    """No standardized mapping exists for the requested entity."""

    def __init__(self, standardized_name: str, mapping_type: str) -> None:
        self.standardized_name = standardized_name
        self.mapping_type = mapping_type
        super().__init__(f"no standardized {mapping_type} mapping exists for '{standardized_name}'")


class AmbiguousMappingError(BenchmarkingError):
    """A raw name maps to two different standardized names within one survey source."""

    def __init__(self, mapping_type: str, survey_source: str, raw_name: str, existing: str, conflicting: str) -> None:
        self.mapping_type = mapping_type
        self.survey_source = survey_source
        self.raw_name = raw_name
        self.existing = existing
        self.conflicting = conflicting
        super().__init__(
            f"{mapping_type} '{raw_name}' from {survey_source} is already mapped to "
            f"'{existing}', cannot also map it to '{conflicting}'"
        )


class InvalidBlendError(BenchmarkingError):
    """A specialty blend cannot be computed from the given components and weights."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid blend")


class StoreUnavailable(RuntimeError):
    pass


class StoreReadOnlyError(RuntimeError):
    pass
