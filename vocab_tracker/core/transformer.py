"""Vocabulary transformer: reshapes flat worksheet rows into topics, words and statistics.

The source sheet follows a fixed column layout (A..K). Column B marks the start of a
new topic; every row with a word in column D becomes a WordRecord under the topic that
is current at that row. Statistics are counted per learning-status flag.

This module does no I/O and keeps no module-level state.
"""

import logging
from collections.abc import Sequence
from typing import Any, Optional

from vocab_tracker.core.models import (
    CellValue,
    FlagCounts,
    StructuredWorksheet,
    Topic,
    TopicStatistics,
    WordRecord,
    WorksheetStatistics,
)

logger = logging.getLogger(__name__)

Row = Sequence[CellValue]

# Fixed column positions (0-based)
COL_ORDER = 0
COL_TOPIC = 1
COL_FLAG = 2
COL_WORD = 3
COL_PART_OF_SPEECH = 4
COL_PRONUNCIATION = 5
COL_MEANING = 6
COL_EXAMPLE = 7
COL_SYNONYMS = 8
COL_DAY_OF_WEEK = 9
COL_DATE = 10

UNCATEGORIZED_TOPIC = "Uncategorized"

# Normalized flag -> FlagCounts field
FLAG_BUCKETS = {
    "n": "new",
    "y": "known",
    "?": "forgotten",
    "ok": "learned",
}

PASSTHROUGH_METADATA = ("_cached", "_cachedAt", "_fetchedAt")


def normalize_cell(value: CellValue) -> str:
    """Convert a cell value to a trimmed string. Missing cells become ""."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def get_cell(row: Optional[Row], index: int) -> str:
    """Normalized value of row[index], "" when the row is too short."""
    if not row or index >= len(row):
        return ""
    return normalize_cell(row[index])


def is_empty_row(row: Optional[Row]) -> bool:
    if not row:
        return True
    return all(normalize_cell(cell) == "" for cell in row)


def is_header_row(row: Optional[Row]) -> bool:
    """Heuristic: first cell is "Order" or second cell is "Topic"/"Session"."""
    if not row:
        return False
    first = get_cell(row, COL_ORDER).lower()
    second = get_cell(row, COL_TOPIC).lower()
    return first == "order" or second in ("topic", "session")


def parse_word(row: Row, row_number: int) -> Optional[WordRecord]:
    """Build a WordRecord from a row, or None if the word cell is empty.

    Args:
        row: cell values of one worksheet row
        row_number: 1-based row number in the worksheet
    """
    word = get_cell(row, COL_WORD)
    if not word:
        return None

    return WordRecord(
        row_number=row_number,
        order=get_cell(row, COL_ORDER),
        flag=get_cell(row, COL_FLAG),
        word=word,
        part_of_speech=get_cell(row, COL_PART_OF_SPEECH),
        pronunciation=get_cell(row, COL_PRONUNCIATION),
        meaning=get_cell(row, COL_MEANING),
        example_sentence=get_cell(row, COL_EXAMPLE),
        synonyms=get_cell(row, COL_SYNONYMS),
        day_of_week=get_cell(row, COL_DAY_OF_WEEK),
        date=get_cell(row, COL_DATE),
    )


def parse_topics(rows: Sequence[Row]) -> list[Topic]:
    """Group worksheet rows into topics in a single pass.

    A non-empty column B starts a new topic; that row may also carry the topic's
    first word. Word rows seen before any topic row go to an "Uncategorized" topic.
    Topics without words are kept.
    """
    topics: list[Topic] = []
    if not rows:
        return topics

    current: Optional[Topic] = None
    start = 1 if is_header_row(rows[0]) else 0

    for i in range(start, len(rows)):
        row = rows[i]
        if is_empty_row(row):
            continue

        row_number = i + 1
        topic_name = get_cell(row, COL_TOPIC)

        if topic_name:
            if current is not None:
                topics.append(current)
            current = Topic(name=topic_name, start_row=row_number)
        elif current is None:
            current = Topic(name=UNCATEGORIZED_TOPIC, start_row=row_number)

        word = parse_word(row, row_number)
        if word is not None:
            current.words.append(word)

    if current is not None:
        topics.append(current)

    return topics


def _count_flags(topics: Sequence[Topic]) -> tuple[int, FlagCounts]:
    total = 0
    counts = FlagCounts()
    for topic in topics:
        total += len(topic.words)
        for word in topic.words:
            bucket = FLAG_BUCKETS.get(normalize_cell(word.flag).lower())
            if bucket:
                setattr(counts, bucket, getattr(counts, bucket) + 1)
    return total, counts


def calculate_statistics(topics: Sequence[Topic]) -> WorksheetStatistics:
    """Worksheet-level statistics: topic count, word count, counts per flag."""
    total, counts = _count_flags(topics)
    return WorksheetStatistics(
        total_topics=len(topics),
        total_words=total,
        by_flag=counts,
    )


def calculate_topic_statistics(topics: Sequence[Topic]) -> TopicStatistics:
    """Topic-level statistics (no topic count). Usually called with one topic."""
    total, counts = _count_flags(topics)
    return TopicStatistics(total_words=total, by_flag=counts)


def transform_worksheet(worksheet: dict[str, Any]) -> StructuredWorksheet:
    """Parse one raw worksheet (with non-empty values) into a StructuredWorksheet."""
    topics = parse_topics(worksheet["values"])
    statistics = calculate_statistics(topics)
    for topic in topics:
        topic.statistics = calculate_topic_statistics([topic])

    logger.debug(
        f"Worksheet '{worksheet.get('name')}': {statistics.total_topics} topics, "
        f"{statistics.total_words} words"
    )
    extent = {
        field: worksheet[key]
        for field, key in (("range", "range"), ("row_count", "rowCount"), ("column_count", "columnCount"))
        if key in worksheet
    }
    return StructuredWorksheet(
        name=worksheet.get("name") or "",
        topics=topics,
        statistics=statistics,
        **extent,
    )


def transform_vocab_data(excel_data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Transform a raw workbook payload into the structured vocabulary document.

    Worksheets carrying an ``error`` or without values are passed through unchanged.
    A payload that is missing or has no worksheets is returned as-is.
    """
    if not excel_data or not excel_data.get("worksheets"):
        return excel_data

    result: dict[str, Any] = {
        "fileName": excel_data.get("fileName"),
        "fileSize": excel_data.get("fileSize"),
        "worksheets": [],
    }

    for worksheet in excel_data["worksheets"]:
        if worksheet.get("error") or not worksheet.get("values"):
            logger.info(f"Passing worksheet '{worksheet.get('name')}' through unparsed")
            result["worksheets"].append(worksheet)
            continue
        result["worksheets"].append(transform_worksheet(worksheet).to_json_dict())

    for key in PASSTHROUGH_METADATA:
        if excel_data.get(key) is not None:
            result[key] = excel_data[key]

    return result
