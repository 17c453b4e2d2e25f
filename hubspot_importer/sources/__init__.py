"""Raw row sources: local CSV / XLSX files and Google Sheets."""

from .google_sheets import GoogleSheetsClient
from .reader import EmptySourceError, SourceReadError, read_csv_file, read_excel_sheet

__all__ = [
    "GoogleSheetsClient",
    "SourceReadError",
    "EmptySourceError",
    "read_csv_file",
    "read_excel_sheet",
]
