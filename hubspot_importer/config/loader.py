from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.import_source import ImportSource, SourceKind

"""Config loader.

Responsibilities:
- Load YAML config (config/import.yml by default)
- Validate against the packaged JSON schema (import_schema.json)
- Apply defaults (batch size, concurrency, fallback pause, API endpoints)
- Resolve the raw ``source`` section into an ImportSource
"""

SCHEMA_PATH = Path(__file__).with_name("import_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

OBJECT_TYPES = ("contacts", "companies", "deals")
MAX_BATCH_SIZE = 100
DEFAULT_CONCURRENCY = 6
DEFAULT_FALLBACK_PAUSE_EVERY = 9
DEFAULT_FALLBACK_PAUSE_SECONDS = 1.0

HUBSPOT_API_BASE = "https://api.hubapi.com"
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
SHEETS_API_BASE = "https://sheets.googleapis.com/v4"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class HubSpotConfig:
    base_url: str = HUBSPOT_API_BASE
    timeout_seconds: float = 30.0
    rate_limit_retries: int = 0  # 0 = surface 429 immediately (batch falls back per item)


@dataclass(frozen=True)
class GoogleConfig:
    drive_base_url: str = DRIVE_API_BASE
    sheets_base_url: str = SHEETS_API_BASE
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class ImportConfig:
    object_type: str
    source: ImportSource
    batch_size: int = MAX_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    fallback_pause_every: int = DEFAULT_FALLBACK_PAUSE_EVERY
    fallback_pause_seconds: float = DEFAULT_FALLBACK_PAUSE_SECONDS
    column_map: dict[str, str | None] = field(default_factory=dict)  # overrides on top of the default dictionary
    hubspot: HubSpotConfig = field(default_factory=HubSpotConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the packaged JSON schema.

    Raises:
        ConfigError: If the schema file is missing or invalid, or the config
            data fails validation (missing keys, wrong types, extra keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def build_source(raw: dict[str, Any]) -> ImportSource:
    """Resolve the ``source`` section into an ImportSource.

    Raises:
        ConfigError: If the keys required by the source type are missing.
    """
    kind = SourceKind(raw["type"])
    if kind is SourceKind.GOOGLE_SHEET:
        if not raw.get("spreadsheet_id"):
            raise ConfigError("source.spreadsheet_id is required for google_sheet sources")
        return ImportSource(kind=kind, spreadsheet_id=raw["spreadsheet_id"], tab=raw.get("tab"))
    if not raw.get("path"):
        raise ConfigError(f"source.path is required for {kind.value} sources")
    return ImportSource(kind=kind, path=Path(raw["path"]), sheet=raw.get("sheet"))


def source_from_file(path: Path) -> ImportSource:
    """Build a CSV / XLSX source from a file path, picking the kind by suffix."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return ImportSource(kind=SourceKind.CSV, path=path)
    if suffix in (".xlsx", ".xlsm"):
        return ImportSource(kind=SourceKind.XLSX, path=path)
    raise ConfigError(f"unsupported file type: {path.name} (expected .csv or .xlsx)")


def with_overrides(
    cfg: ImportConfig,
    *,
    file: Path | None = None,
    object_type: str | None = None,
) -> ImportConfig:
    """Apply command-line overrides on top of a loaded config."""
    if object_type is not None:
        if object_type not in OBJECT_TYPES:
            raise ConfigError(f"unsupported object type: {object_type}")
        cfg = replace(cfg, object_type=object_type)
    if file is not None:
        cfg = replace(cfg, source=source_from_file(file))
    return cfg


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    hs_raw = data.get("hubspot", {})
    google_raw = data.get("google", {})
    hubspot = HubSpotConfig(
        base_url=hs_raw.get("base_url", HUBSPOT_API_BASE).rstrip("/"),
        timeout_seconds=float(hs_raw.get("timeout_seconds", 30.0)),
        rate_limit_retries=hs_raw.get("rate_limit_retries", 0),
    )
    google = GoogleConfig(
        drive_base_url=google_raw.get("drive_base_url", DRIVE_API_BASE).rstrip("/"),
        sheets_base_url=google_raw.get("sheets_base_url", SHEETS_API_BASE).rstrip("/"),
        timeout_seconds=float(google_raw.get("timeout_seconds", 60.0)),
    )
    column_map = {
        str(label).strip().lower(): target
        for label, target in (data.get("column_map") or {}).items()
    }
    return ImportConfig(
        object_type=data["object_type"],
        source=build_source(data["source"]),
        batch_size=data.get("batch_size", MAX_BATCH_SIZE),
        concurrency=data.get("concurrency", DEFAULT_CONCURRENCY),
        fallback_pause_every=data.get("fallback_pause_every", DEFAULT_FALLBACK_PAUSE_EVERY),
        fallback_pause_seconds=float(data.get("fallback_pause_seconds", DEFAULT_FALLBACK_PAUSE_SECONDS)),
        column_map=column_map,
        hubspot=hubspot,
        google=google,
    )
