"""
Google Sheets source.

Reads spreadsheet tabs through the Drive v3 and Sheets v4 REST APIs with a
user OAuth access token (GOOGLE_ACCESS_TOKEN). Values are read as they are
displayed in the sheet (FORMATTED_VALUE).
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config.loader import DRIVE_API_BASE, SHEETS_API_BASE
from .reader import SourceReadError

logger = logging.getLogger(__name__)

DEFAULT_TAB = "Sheet1"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


class GoogleSheetsClient:
    """Async client for listing and reading Google Sheets."""

    def __init__(
        self,
        token: str | None,
        *,
        drive_base_url: str = DRIVE_API_BASE,
        sheets_base_url: str = SHEETS_API_BASE,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token or not token.strip():
            raise ValueError("GOOGLE_ACCESS_TOKEN is required for Google Sheet sources")
        self.drive_base_url = drive_base_url.rstrip("/")
        self.sheets_base_url = sheets_base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {token.strip()}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GoogleSheetsClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, params: dict[str, Any], what: str) -> dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise SourceReadError(f"Failed to {what}: {e}") from e
        if response.status_code != 200:
            logger.error(
                "Google API error on %s: %s %s",
                what,
                response.status_code,
                response.text[:500],
            )
            raise SourceReadError(f"Failed to {what}: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise SourceReadError(f"Failed to {what}: response is not JSON") from e
        if not isinstance(data, dict):
            raise SourceReadError(f"Failed to {what}: unexpected response")
        return data

    async def list_spreadsheets(self, page_size: int = 25) -> list[dict[str, Any]]:
        """
        List the user's most recently modified spreadsheets.

        Returns:
            List of {id, name, modified_time}
        """
        data = await self._get(
            f"{self.drive_base_url}/files",
            {
                "q": f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
                "orderBy": "modifiedTime desc",
                "pageSize": page_size,
                "fields": "files(id,name,modifiedTime)",
            },
            "list spreadsheets",
        )
        return [
            {
                "id": f.get("id"),
                "name": f.get("name"),
                "modified_time": f.get("modifiedTime"),
            }
            for f in data.get("files", [])
        ]

    async def list_tabs(self, spreadsheet_id: str) -> list[dict[str, Any]]:
        """Return the ``properties`` of every tab (title, sheetId, index, ...)."""
        data = await self._get(
            f"{self.sheets_base_url}/spreadsheets/{quote(spreadsheet_id, safe='')}",
            {"fields": "sheets.properties"},
            "get spreadsheet",
        )
        return [s.get("properties", {}) for s in data.get("sheets", [])]

    async def read_rows(self, spreadsheet_id: str, tab: str | None = None) -> list[dict[str, str]]:
        """
        Read one tab as RawRows.

        The first row is the header. Every later row becomes a dict keyed by
        the non-empty header labels; short rows are padded with "".

        Returns:
            RawRows, or an empty list when the tab has fewer than two rows
        """
        tab_name = tab or DEFAULT_TAB
        data = await self._get(
            f"{self.sheets_base_url}/spreadsheets/{quote(spreadsheet_id, safe='')}"
            f"/values/{quote(tab_name, safe='')}",
            {"valueRenderOption": "FORMATTED_VALUE"},
            f"read rows from {tab_name}",
        )
        values = data.get("values", [])
        if len(values) < 2:
            return []

        headers = values[0]
        rows: list[dict[str, str]] = []
        for raw in values[1:]:
            row: dict[str, str] = {}
            for i, header in enumerate(headers):
                if not header:
                    continue
                row[str(header)] = str(raw[i]) if i < len(raw) and raw[i] is not None else ""
            rows.append(row)
        logger.debug("read %d rows from %s/%s", len(rows), spreadsheet_id, tab_name)
        return rows
