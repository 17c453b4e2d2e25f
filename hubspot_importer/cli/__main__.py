from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from hubspot_importer.config.loader import (
    DEFAULT_CONFIG_PATH,
    OBJECT_TYPES,
    ConfigError,
    GoogleConfig,
    HubSpotConfig,
    ImportConfig,
    load_config,
    source_from_file,
    with_overrides,
)
from hubspot_importer.hubspot.client import HubSpotClient, HubSpotError
from hubspot_importer.logging.init import log_summary, set_debug, setup_logging
from hubspot_importer.models.import_source import SourceKind
from hubspot_importer.models.run_summary import RunState, RunSummary
from hubspot_importer.services.orchestrator import ImportRunError, load_source_rows, map_rows, run_import_async
from hubspot_importer.services.progress import ProgressTracker
from hubspot_importer.services.summary import render_summary_line, render_summary_text
from hubspot_importer.sources.google_sheets import GoogleSheetsClient
from hubspot_importer.sources.reader import SourceReadError

"""CLI entrypoint.

Flow:
- Load .env (overrides the process environment) and config/import.yml
- Apply --file / --object overrides
- Read the source, upload rows to HubSpot in concurrent batches
- Log per-row warnings / failures, the summary text and the SUMMARY line

Standalone modes: --check, --list-sheets, --list-tabs, --inspect-data.

Exit codes: 0 all rows created (warnings allowed), 2 at least one row
failed, 1 fatal (config, credentials, unreadable source).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True so that tokens in .env win over stale shell variables.
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _hubspot_token() -> str | None:
    return os.getenv("HUBSPOT_PRIVATE_APP_TOKEN") or os.getenv("HUBSPOT_ACCESS_TOKEN")


def _google_token() -> str | None:
    return os.getenv("GOOGLE_ACCESS_TOKEN")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="CSV / Sheet -> HubSpot bulk importer")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to the YAML config")
    p.add_argument("--file", help="CSV or XLSX file to import (overrides config source)")
    p.add_argument("--object", choices=OBJECT_TYPES, help="HubSpot object type (overrides config)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print source headers & first mapped rows then exit")
    p.add_argument("--check", action="store_true", help="Check the HubSpot token and exit")
    p.add_argument("--list-sheets", action="store_true", help="List recent Google spreadsheets and exit")
    p.add_argument("--list-tabs", metavar="SPREADSHEET_ID", help="List the tabs of a Google spreadsheet and exit")
    return p.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> ImportConfig:
    """Load the config file and apply command-line overrides.

    Without a config file, ``--file`` and ``--object`` together are enough.
    """
    path = Path(args.config)
    file = Path(args.file) if args.file else None
    if not path.exists() and file is not None and args.object is not None:
        return ImportConfig(object_type=args.object, source=source_from_file(file))
    cfg = load_config(path)
    return with_overrides(cfg, file=file, object_type=args.object)


def _client_settings(args: argparse.Namespace) -> tuple[HubSpotConfig, GoogleConfig]:
    """API settings for the standalone modes; defaults when there is no config file."""
    path = Path(args.config)
    if not path.exists():
        return HubSpotConfig(), GoogleConfig()
    cfg = load_config(path)
    return cfg.hubspot, cfg.google


def _sheets_client(google: GoogleConfig, token: str) -> GoogleSheetsClient:
    return GoogleSheetsClient(
        token,
        drive_base_url=google.drive_base_url,
        sheets_base_url=google.sheets_base_url,
        timeout=google.timeout_seconds,
    )


def _hubspot_client(hubspot: HubSpotConfig, token: str) -> HubSpotClient:
    return HubSpotClient(
        token,
        base_url=hubspot.base_url,
        timeout=hubspot.timeout_seconds,
        rate_limit_retries=hubspot.rate_limit_retries,
    )


async def _read_rows(cfg: ImportConfig, google_token: str | None) -> list[dict[str, str]]:
    if cfg.source.kind is SourceKind.GOOGLE_SHEET and google_token:
        async with _sheets_client(cfg.google, google_token) as sheets:
            return await load_source_rows(cfg.source, sheets)
    return await load_source_rows(cfg.source)


def _inspect_data(cfg: ImportConfig) -> int:
    try:
        rows = asyncio.run(_read_rows(cfg, _google_token()))
    except (SourceReadError, ImportRunError) as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"SOURCE: {cfg.source.label} rows={len(rows)}")
    print(f"  headers={list(rows[0].keys())}")
    for item in map_rows(rows[:INSPECT_SAMPLE_ROWS], cfg.column_map):
        print(f"  row {item.row_number}: {item.properties}")
    return EXIT_SUCCESS_ALL


async def _check(hubspot: HubSpotConfig, token: str) -> None:
    async with _hubspot_client(hubspot, token) as client:
        await client.health_check()


async def _list_sheets(google: GoogleConfig, token: str) -> list[dict[str, str]]:
    async with _sheets_client(google, token) as sheets:
        return await sheets.list_spreadsheets()


async def _list_tabs(google: GoogleConfig, token: str, spreadsheet_id: str) -> list[dict]:
    async with _sheets_client(google, token) as sheets:
        return await sheets.list_tabs(spreadsheet_id)


async def _run(cfg: ImportConfig, hubspot_token: str, google_token: str | None) -> RunSummary:
    async with _hubspot_client(cfg.hubspot, hubspot_token) as hubspot:
        sheets = None
        if cfg.source.kind is SourceKind.GOOGLE_SHEET and google_token:
            sheets = _sheets_client(cfg.google, google_token)
        try:
            with ProgressTracker() as progress:
                return await run_import_async(cfg, hubspot, sheets=sheets, on_progress=progress.update)
        finally:
            if sheets is not None:
                await sheets.aclose()


def _report(summary: RunSummary) -> int:
    """Log per-row details and the summary; return the exit code."""
    logger = setup_logging()
    for w in sorted(summary.warnings, key=lambda m: m.row):
        logger.warning(f"Row {w.row}: {w.message}")
    for e in sorted(summary.errors, key=lambda m: m.row):
        if e.row == 0:
            logger.error(e.message)
        else:
            logger.error(f"Row {e.row}: {e.message}")

    if summary.state is not RunState.ERROR:
        logger.info(render_summary_text(summary))
    if summary.error_log_path is not None:
        logger.info(f"error log: {summary.error_log_path}")
    total_batches, avg_batch, p95_batch = summary.batch_stats.get_stats()
    logger.debug(f"batches={total_batches} avg_batch_sec={avg_batch:.3f} p95_batch_sec={p95_batch:.3f}")

    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(summary).removeprefix("SUMMARY "))

    if summary.state is RunState.ERROR:
        return EXIT_FATAL
    if summary.failed > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # Only read sys.argv when argv is None (tests call main([]))
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    if args.check or args.list_sheets or args.list_tabs:
        try:
            hubspot_cfg, google_cfg = _client_settings(args)
        except ConfigError as e:
            logger.error(f"config: {e}")
            return EXIT_FATAL

    if args.check:
        token = _hubspot_token()
        if not token:
            logger.error("HUBSPOT_PRIVATE_APP_TOKEN is not set")
            return EXIT_FATAL
        try:
            asyncio.run(_check(hubspot_cfg, token))
        except HubSpotError as e:
            logger.error(f"HubSpot check failed ({e.status_code}): {e.message}")
            return EXIT_FATAL
        logger.info("HubSpot token OK")
        return EXIT_SUCCESS_ALL

    if args.list_sheets:
        token = _google_token()
        if not token:
            logger.error("GOOGLE_ACCESS_TOKEN is not set")
            return EXIT_FATAL
        try:
            files = asyncio.run(_list_sheets(google_cfg, token))
        except SourceReadError as e:
            logger.error(f"sheets: {e}")
            return EXIT_FATAL
        for f in files:
            print(f"{f['id']}\t{f['name']}\t{f['modified_time']}")
        return EXIT_SUCCESS_ALL

    if args.list_tabs:
        token = _google_token()
        if not token:
            logger.error("GOOGLE_ACCESS_TOKEN is not set")
            return EXIT_FATAL
        try:
            tabs = asyncio.run(_list_tabs(google_cfg, token, args.list_tabs))
        except SourceReadError as e:
            logger.error(f"sheets: {e}")
            return EXIT_FATAL
        # titles are what source.tab expects
        for t in tabs:
            print(f"{t.get('index')}\t{t.get('title')}")
        return EXIT_SUCCESS_ALL

    try:
        cfg = _resolve_config(args)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    hubspot_token = _hubspot_token()
    if not hubspot_token:
        logger.error("HUBSPOT_PRIVATE_APP_TOKEN is not set")
        return EXIT_FATAL

    logger.info(f"Importing {cfg.source.label} -> {cfg.object_type}")
    summary = asyncio.run(_run(cfg, hubspot_token, _google_token()))
    return _report(summary)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
