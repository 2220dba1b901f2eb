"""Tests for the local workbook reader: uses programmatic openpyxl workbooks."""

from datetime import datetime
from pathlib import Path

import openpyxl
import pytest

from vocab_tracker.core.transformer import transform_vocab_data
from vocab_tracker.core.workbook_reader import read_workbook_file


def _create_test_workbook(tmp_path: Path, sheets: dict[str, list[list]]) -> Path:
    """Create a test Excel file with one worksheet per entry."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    path = tmp_path / "vocab.xlsx"
    wb.save(path)
    wb.close()
    return path


class TestReadWorkbookFile:
    def test_payload_shape(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"Week 1": [
            ["Order", "Topic", "Flag", "Word"],
            [1, "Food", "n", "apple"],
        ]})
        payload = read_workbook_file(path)
        assert payload["fileName"] == "vocab.xlsx"
        assert payload["fileSize"] == path.stat().st_size
        ws = payload["worksheets"][0]
        assert ws["name"] == "Week 1"
        assert ws["range"] == "Week 1!A1:D2"
        assert ws["rowCount"] == 2
        assert ws["columnCount"] == 4
        assert ws["values"][1] == [1, "Food", "n", "apple"]

    def test_dates_become_iso_strings(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"S": [
            [1, "T", "n", "apple", None, None, None, None, None, "Mon", datetime(2024, 5, 6)],
        ]})
        ws = read_workbook_file(path)["worksheets"][0]
        assert ws["values"][0][10] == "2024-05-06T00:00:00"

    def test_blank_sheet_has_no_values(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"Blank": [], "Data": [[1, "T", "n", "a"]]})
        payload = read_workbook_file(path)
        assert payload["worksheets"][0]["values"] == []
        assert payload["worksheets"][0]["rowCount"] == 0

    def test_single_sheet(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"A": [[1]], "B": [[2]]})
        payload = read_workbook_file(path, "B")
        assert [w["name"] for w in payload["worksheets"]] == ["B"]

    def test_missing_sheet_raises(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"A": [[1]]})
        with pytest.raises(ValueError, match="not found"):
            read_workbook_file(path, "Nope")

    def test_not_a_workbook_raises(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip file")
        with pytest.raises(ValueError, match="Cannot read workbook"):
            read_workbook_file(path)

    def test_feeds_transformer(self, tmp_path):
        path = _create_test_workbook(tmp_path, {"Week 1": [
            ["Order", "Session", "Flag", "Word", "Type"],
            [1, "Reading 1", "N", "apple", "noun"],
            [2, None, "ok", "banana", "noun"],
            [None, None, None, None, None],
            [3, "Reading 2", "?", "cherry", "noun"],
        ], "Blank": []})
        result = transform_vocab_data(read_workbook_file(path))
        week = result["worksheets"][0]
        assert [t["name"] for t in week["topics"]] == ["Reading 1", "Reading 2"]
        assert week["statistics"]["totalWords"] == 3
        assert week["statistics"]["byFlag"] == {"new": 1, "known": 0, "forgotten": 1, "learned": 1}
        assert week["topics"][1]["words"][0]["rowNumber"] == 5
        assert result["worksheets"][1]["name"] == "Blank"
        assert "topics" not in result["worksheets"][1]
