import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import SQLModel, Field, Relationship


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SurveyRowRecord(SQLModel, table=True):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    survey_source: str = Field(index=True)
    position: int = Field(default=0)
    row_json: str  # JSON object, original headers preserved
    created_at: datetime = Field(default_factory=_now)


class SurveyMapping(SQLModel, table=True):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    mapping_type: str = Field(index=True)  # specialty, provider_type, region, column, variable
    standardized_name: str = Field(index=True)
    updated_at: datetime = Field(default_factory=_now)

    entries: List["SurveyMappingEntry"] = Relationship(back_populates="mapping")


class SurveyMappingEntry(SQLModel, table=True):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    mapping_id: str = Field(foreign_key="surveymapping.id", index=True)
    survey_source: str
    raw_name: str
    position: int = Field(default=0)

    mapping: Optional[SurveyMapping] = Relationship(back_populates="entries")
