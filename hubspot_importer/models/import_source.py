from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

"""ImportSource domain model and SourceKind enum.

An ImportSource describes where the raw rows of one import run come from:
a local CSV file, one sheet of a local XLSX workbook, or one tab of a
Google Sheet.
"""


class SourceKind(Enum):
    """Supported raw row sources."""
    CSV = "csv"
    XLSX = "xlsx"
    GOOGLE_SHEET = "google_sheet"


@dataclass(frozen=True)
class ImportSource:
    """Location of the raw rows for one import run."""
    kind: SourceKind
    path: Path | None = None  # CSV / XLSX file
    sheet: str | None = None  # XLSX sheet name (None = first sheet)
    spreadsheet_id: str | None = None  # Google Sheet id
    tab: str | None = None  # Google Sheet tab title

    @property
    def label(self) -> str:
        """Human readable name used in logs and the error log."""
        if self.kind is SourceKind.GOOGLE_SHEET:
            return f"Google Sheet: {self.spreadsheet_id}/{self.tab or 'Sheet1'}"
        name = self.path.name if self.path is not None else "<unknown>"
        if self.kind is SourceKind.XLSX and self.sheet:
            return f"{name}:{self.sheet}"
        return name

    @property
    def noun(self) -> str:
        """Short source noun for user-facing messages ("CSV", "Sheet")."""
        if self.kind is SourceKind.CSV:
            return "CSV"
        return "Sheet"
