"""Pydantic models for the vocabulary data model and API request/response schemas."""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# A single spreadsheet cell as delivered by the workbook range API.
CellValue = Union[str, int, float, bool, None]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (``rowNumber``, ``byFlag``...)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Vocabulary data model ---


class WordRecord(CamelModel):
    row_number: int
    order: str = ""
    flag: str = ""
    word: str = Field(min_length=1)
    part_of_speech: str = ""
    pronunciation: str = ""
    meaning: str = ""
    example_sentence: str = ""
    synonyms: str = ""
    day_of_week: str = ""
    date: str = ""


class FlagCounts(CamelModel):
    new: int = 0
    known: int = 0
    forgotten: int = 0
    learned: int = 0


class TopicStatistics(CamelModel):
    total_words: int = 0
    by_flag: FlagCounts = Field(default_factory=FlagCounts)


class WorksheetStatistics(TopicStatistics):
    total_topics: int = 0


class Topic(CamelModel):
    name: str
    start_row: int
    words: list[WordRecord] = Field(default_factory=list)
    statistics: Optional[TopicStatistics] = None


class StructuredWorksheet(CamelModel):
    name: str
    range: Optional[str] = None
    row_count: Optional[int] = None
    column_count: Optional[int] = None
    topics: list[Topic]
    statistics: WorksheetStatistics

    def to_json_dict(self) -> dict[str, Any]:
        # range and counts are left out when the source worksheet lacks them
        absent = {"range", "row_count", "column_count"} - self.model_fields_set
        return self.model_dump(mode="json", by_alias=True, exclude=absent)


# --- Server state ---


class ServerState(CamelModel):
    sheet_url: str = ""
    sheet_name: str = ""
    token: Optional[str] = None
    expires_on: Optional[datetime] = None
    user_code: Optional[str] = None
    verification_uri: Optional[str] = None


# --- API request/response schemas ---


class AuthStatusResponse(CamelModel):
    authenticated: bool
    user_code: Optional[str] = None
    verification_uri: Optional[str] = None


class AuthStartResponse(CamelModel):
    success: bool
    user_code: Optional[str] = None
    verification_uri: Optional[str] = None


class SheetUrlUpdate(CamelModel):
    sheet_url: str
    sheet_name: str = ""


class SheetUrlResponse(CamelModel):
    sheet_url: str
    sheet_name: str = ""


class SheetUrlUpdateResponse(SheetUrlResponse):
    success: bool = True
    cache_cleared: bool = False
