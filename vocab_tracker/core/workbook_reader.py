"""Local workbook reader: loads an .xlsx file into the raw workbook payload.

Produces the same shape as the Graph reader so uploaded files go through the
same transformer:

    {"fileName", "fileSize", "worksheets": [{"name", "range", "rowCount",
     "columnCount", "values"}]}
"""

import logging
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from vocab_tracker.core.models import CellValue

logger = logging.getLogger(__name__)


def _cell_value(value: Any) -> CellValue:
    """Keep cells JSON-compatible: dates and times become ISO strings."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _read_worksheet(ws) -> dict[str, Any]:
    values = [
        [_cell_value(v) for v in row]
        for row in ws.iter_rows(values_only=True)
    ]
    # An untouched sheet reports a single empty A1 cell
    if len(values) == 1 and all(v is None for v in values[0]):
        values = []
    return {
        "name": ws.title,
        "range": f"{ws.title}!{ws.dimensions}",
        "rowCount": len(values),
        "columnCount": max((len(r) for r in values), default=0),
        "values": values,
    }


def read_workbook_file(file_path: Path, sheet_name: str = "") -> dict[str, Any]:
    """Read every worksheet, or only ``sheet_name``, from a local workbook.

    Raises ValueError if the file is not a readable workbook or the sheet is missing.
    """
    try:
        wb = openpyxl.load_workbook(file_path, read_only=False, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as e:
        raise ValueError(f"Cannot read workbook {file_path.name}: {e}") from e

    try:
        if sheet_name:
            if sheet_name not in wb.sheetnames:
                raise ValueError(f"Worksheet '{sheet_name}' not found in workbook")
            sheets = [wb[sheet_name]]
        else:
            sheets = wb.worksheets

        worksheets = []
        for ws in sheets:
            try:
                worksheets.append(_read_worksheet(ws))
            except (ValueError, TypeError) as e:
                logger.warning(f"Could not read worksheet '{ws.title}': {e}")
                worksheets.append({"name": ws.title, "error": str(e)})
    finally:
        wb.close()

    return {
        "fileName": file_path.name,
        "fileSize": file_path.stat().st_size,
        "worksheets": worksheets,
    }
