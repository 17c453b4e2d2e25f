from __future__ import annotations

import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

"""Local file readers (CSV, XLSX).

Both readers return RawRows: ``dict[str, str]`` keyed by header label in
column order. The first row of the file (or sheet) is the header; columns
with an empty header label are dropped. Cells are rendered as strings and
missing cells as "" so the mapper decides what counts as empty. Rows whose
cells are all empty are skipped.
"""

__all__ = [
    "SourceReadError",
    "EmptySourceError",
    "empty_source_message",
    "read_csv_file",
    "read_excel_sheet",
]


class SourceReadError(Exception):
    """Raised when a CSV file, workbook sheet or Google Sheet cannot be read."""


class EmptySourceError(SourceReadError):
    """Raised when a source has a header (or nothing at all) but no data rows."""


def empty_source_message(noun: str) -> str:
    return f"{noun} is empty or has no data rows"


def _cell_to_str(value: Any) -> str:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _frame_to_rows(df: pd.DataFrame, noun: str) -> list[dict[str, str]]:
    """Apply the first row as header and build RawRows from the rest."""
    if df.shape[0] < 2:
        raise EmptySourceError(empty_source_message(noun))

    labels = [_cell_to_str(c) for c in df.iloc[0].tolist()]
    rows: list[dict[str, str]] = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        cells = [_cell_to_str(v) for v in values]
        if not any(cells):
            continue
        row: dict[str, str] = {}
        for label, cell in zip(labels, cells, strict=False):
            if not label:
                continue
            row[label] = cell
        rows.append(row)

    if not rows:
        raise EmptySourceError(empty_source_message(noun))
    return rows


def read_csv_file(path: Path) -> list[dict[str, str]]:
    """Read a CSV file into RawRows.

    Raises:
        SourceReadError: File missing or unparseable
        EmptySourceError: Empty file or header without data rows
    """
    try:
        df = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except FileNotFoundError as e:
        raise SourceReadError(f"CSV file not found: {path}") from e
    except pd.errors.EmptyDataError as e:
        raise EmptySourceError(empty_source_message("CSV")) from e
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise SourceReadError(f"Failed to parse CSV {path.name}: {e}") from e
    return _frame_to_rows(df, "CSV")


def read_excel_sheet(path: Path, sheet: str | None = None) -> list[dict[str, str]]:
    """Read one sheet of an XLSX workbook into RawRows.

    Parameters
    ----------
    path: workbook path
    sheet: sheet name (None = first sheet)

    Raises
    ------
    SourceReadError: workbook missing, unreadable, or sheet not found
    EmptySourceError: sheet has no data rows
    """
    try:
        df = pd.read_excel(
            path,
            sheet_name=sheet if sheet is not None else 0,
            header=None,
            engine="openpyxl",
        )
    except FileNotFoundError as e:
        raise SourceReadError(f"Workbook not found: {path}") from e
    except (ValueError, KeyError, OSError, zipfile.BadZipFile, InvalidFileException) as e:
        raise SourceReadError(f"Failed to read {path.name}: {e}") from e
    return _frame_to_rows(df, "Sheet")
