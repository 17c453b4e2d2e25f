from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from ..config.loader import ImportConfig
from ..hubspot.batch_create import SleepFn
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.batch_item import BatchItem
from ..models.import_source import ImportSource, SourceKind
from ..models.run_summary import RunState, RunSummary
from ..sources.google_sheets import GoogleSheetsClient
from ..sources.reader import (
    EmptySourceError,
    SourceReadError,
    empty_source_message,
    read_csv_file,
    read_excel_sheet,
)
from .row_mapper import build_column_map, map_row
from .scheduler import ProgressCallback, run_batches

logger = logging.getLogger(__name__)

"""Service orchestration for the HubSpot bulk importer.

One import run:
1. parsing   - read the raw rows from the configured source
2. uploading - map rows to property sets and submit them in concurrent batches
3. done      - every row has an outcome; the error log is flushed

A source that cannot be read (or has no data rows) moves the run to the
error state with a single row-0 message instead; nothing is uploaded and
nothing is raised. Per-row failures never leave the scheduler.
"""


class ImportRunError(Exception):
    """Raised when the source configuration cannot be used for a run."""


async def load_source_rows(
    source: ImportSource,
    sheets: GoogleSheetsClient | None = None,
) -> list[dict[str, str]]:
    """Read all RawRows of a source.

    Raises:
        SourceReadError: Source unreadable
        EmptySourceError: Source has no data rows
        ImportRunError: Google Sheet source without a Sheets client
    """
    if source.kind is SourceKind.CSV:
        rows = read_csv_file(source.path)
    elif source.kind is SourceKind.XLSX:
        rows = read_excel_sheet(source.path, source.sheet)
    else:
        if sheets is None:
            raise ImportRunError("GOOGLE_ACCESS_TOKEN is required to read Google Sheets")
        rows = await sheets.read_rows(source.spreadsheet_id, source.tab)

    if not rows:
        raise EmptySourceError(empty_source_message(source.noun))
    return rows


def map_rows(
    rows: Sequence[Mapping[str, object]],
    column_map: Mapping[str, str | None] | None = None,
) -> list[BatchItem]:
    """Map RawRows to BatchItems tagged with their original index."""
    mapping = build_column_map(column_map)
    return [
        BatchItem(index=i, properties=map_row(raw, mapping))
        for i, raw in enumerate(rows)
    ]


def _flush_error_log(error_log: ErrorLogBuffer, summary: RunSummary) -> None:
    try:
        summary.error_log_path = error_log.flush()
    except OSError as e:
        # Reporting still works from the in-memory summary
        logger.warning("failed to write error log: %s", e)


async def run_import_async(
    config: ImportConfig,
    hubspot: Any,
    *,
    sheets: GoogleSheetsClient | None = None,
    on_progress: ProgressCallback | None = None,
    sleep: SleepFn = asyncio.sleep,
    error_log: ErrorLogBuffer | None = None,
) -> RunSummary:
    """Run one import from the configured source into HubSpot.

    Args:
        config: Loaded import configuration
        hubspot: Object with ``create_one`` / ``batch_create`` coroutines
            (a HubSpotClient in production)
        sheets: Google Sheets client, required for google_sheet sources
        on_progress: Called with a snapshot after every completed batch
        sleep: Awaitable sleep for the fallback pause
        error_log: Buffer for WARNING / FAILED rows (default: ./logs)

    Returns:
        RunSummary in state DONE, or ERROR when the source could not be read
    """
    if error_log is None:
        error_log = ErrorLogBuffer()
    source = config.source
    object_type = config.object_type

    summary = RunSummary()
    summary.start_time = datetime.now(UTC)
    summary.state = RunState.PARSING
    logger.info("Reading %s", source.label)

    try:
        rows = await load_source_rows(source, sheets)
    except (SourceReadError, ImportRunError) as e:
        message = str(e)
        logger.debug("source read failed: %s", message)
        summary.record_source_error(message)
        summary.end_time = datetime.now(UTC)
        error_log.append(
            ErrorRecord.create(
                source=source.label,
                object_type=object_type,
                row=0,
                outcome="FAILED",
                message=message,
            )
        )
        _flush_error_log(error_log, summary)
        return summary

    items = map_rows(rows, config.column_map)
    summary.total = len(items)
    summary.state = RunState.UPLOADING
    logger.info(
        "Uploading %d rows as %s (batch_size=%d concurrency=%d)",
        len(items),
        object_type,
        config.batch_size,
        config.concurrency,
    )

    async def _batch_create(property_sets: list[dict[str, str]]) -> Mapping[str, Any]:
        return await hubspot.batch_create(object_type, property_sets)

    async def _create_one(properties: dict[str, str]) -> Mapping[str, Any]:
        return await hubspot.create_one(object_type, properties)

    await run_batches(
        items,
        _batch_create,
        _create_one,
        on_progress=on_progress,
        summary=summary,
        batch_size=config.batch_size,
        concurrency=config.concurrency,
        pause_every=config.fallback_pause_every,
        pause_seconds=config.fallback_pause_seconds,
        sleep=sleep,
    )

    summary.state = RunState.DONE
    summary.end_time = datetime.now(UTC)
    for outcome in sorted(summary.outcomes, key=lambda o: o.row_number):
        error_log.append_outcome(source.label, object_type, outcome)
    _flush_error_log(error_log, summary)
    return summary


def run_import(config: ImportConfig, hubspot: Any, **kwargs: Any) -> RunSummary:
    """Synchronous wrapper around run_import_async."""
    return asyncio.run(run_import_async(config, hubspot, **kwargs))
