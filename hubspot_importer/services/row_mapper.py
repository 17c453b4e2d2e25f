from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime

from dateutil import parser as date_parser

"""Row mapping service: raw CSV / Sheet row -> HubSpot property set.

A raw row is a mapping of column label to string value. Mapping applies a
fixed column dictionary (labels are matched lower-cased and trimmed) and
then value transforms for the call-outcome and outreach-date properties.

Mapping is lenient: a value that cannot be transformed is passed through
unchanged so that one bad cell never aborts a whole row. All functions here
are pure.
"""

__all__ = [
    "COLUMN_MAP",
    "CALL_OUTCOME_MAP",
    "CALL_OUTCOME_PROPERTY",
    "OUTREACH_DATE_PROPERTY",
    "build_column_map",
    "map_row",
    "transform_properties",
    "normalize_call_outcome",
    "parse_date_to_midnight_utc",
]

CALL_OUTCOME_PROPERTY = "last_sales_call_outcome"
OUTREACH_DATE_PROPERTY = "last_sales_outreach_date"

# Lower-cased column label -> HubSpot property (None = ignore column)
COLUMN_MAP: dict[str, str | None] = {
    "slug": None,
    "url": "website",
    "website?": "website",
    "page": "facebook_company_page",
    "ads": "facebook_ads_library",
    "rep": "last_sales_outreach_by",
    "date": OUTREACH_DATE_PROPERTY,
    "number": "phone",
    "number2": "alternate_phone_number",
    "number 2": "alternate_phone_number",
    "format": "phone_number_format",
    "notes": CALL_OUTCOME_PROPERTY,
    "email": "email",
    "email format": "email_format",
    "business": "name",
    "category": "industry1",
    "state": "state",
    "city": "city",
    "postcode": "zip",
    "apes": "pces",
    "pces": "pces",
    "rural flag": "rural_indicator",
    "rural?": "rural_indicator",
    "scraped date": None,
    "scraped": None,
    "follower count": "facebook_followers",
    "follower": "facebook_followers",
    "probability": "probability",
    "probability answered": None,
}

CALL_OUTCOME_MAP: dict[str, str] = {
    "NA": "no_answer",
    "NI": "not-interested",
    "HU": "hung_up",
    "WASTE": "waste",
    "DUPE": "dupe",
    "IN": "invalid_number",
    "OP": "op",
    "FU": "follow_up",
    "TMW": "too_much_work",
    "DNC": "do_not_call",
}

_TIMESTAMP_RE = re.compile(r"^\d{10,13}$")
_TRAILING_JUNK_RE = re.compile(r"[.\s]+$")
_SEPARATORS_RE = re.compile(r"[.\-\s]+")
_DMY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_YMD_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")

_MS_PER_DAY = 86_400_000
# Largest 10-digit value; anything above is already milliseconds
_MAX_SECONDS_TIMESTAMP = 9_999_999_999


def build_column_map(overrides: Mapping[str, str | None] | None = None) -> dict[str, str | None]:
    """Return the default column dictionary extended by config overrides."""
    column_map = dict(COLUMN_MAP)
    if overrides:
        column_map.update({label.strip().lower(): target for label, target in overrides.items()})
    return column_map


def _is_empty(value: object) -> bool:
    return value is None or str(value).strip() == ""


def map_row(
    raw_row: Mapping[str, object],
    column_map: Mapping[str, str | None] | None = None,
) -> dict[str, str]:
    """Translate one raw row into a HubSpot property set.

    - Columns whose label is not in the dictionary are dropped
    - Columns mapped to None are dropped
    - Empty values are omitted (never sent as "")
    - Later columns overwrite earlier ones mapped to the same property

    Args:
        raw_row: Column label -> raw value, in column order
        column_map: Lower-cased label -> property name (default: COLUMN_MAP)

    Returns:
        New dict of property name -> string value, with transforms applied
    """
    mapping = COLUMN_MAP if column_map is None else column_map
    properties: dict[str, str] = {}
    for label, value in raw_row.items():
        if _is_empty(value):
            continue
        key = str(label).strip().lower()
        if key not in mapping:
            continue
        target = mapping[key]
        if target is None:
            continue
        properties[target] = str(value)
    return transform_properties(properties)


def transform_properties(properties: dict[str, str]) -> dict[str, str]:
    """Apply value transforms to the properties that are present."""
    result = dict(properties)
    if result.get(CALL_OUTCOME_PROPERTY):
        result[CALL_OUTCOME_PROPERTY] = normalize_call_outcome(result[CALL_OUTCOME_PROPERTY])
    if result.get(OUTREACH_DATE_PROPERTY):
        result[OUTREACH_DATE_PROPERTY] = parse_date_to_midnight_utc(result[OUTREACH_DATE_PROPERTY])
    return result


def normalize_call_outcome(value: str) -> str:
    """Expand a call-outcome code ("NA" -> "no_answer"); unknown codes pass through."""
    code = value.upper().strip()
    if code.startswith("OP"):
        return "op"
    return CALL_OUTCOME_MAP.get(code, value)


def _midnight_ms(day: date) -> str:
    return str(int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp() * 1000))


def parse_date_to_midnight_utc(value: str) -> str:
    """Normalize a date-like value to epoch milliseconds at UTC midnight.

    Parsing order:
    1. 10-13 digit timestamp (seconds or milliseconds, by magnitude)
    2. ``.``/``-``/space separators folded to ``/``, then D/M/YYYY (day
       first) or YYYY/M/D; two-digit years are 20YY
    3. generic parsing (dateutil, day first)

    Returns the original value unchanged when nothing parses. Never raises.
    """
    if not value:
        return value
    cleaned = _TRAILING_JUNK_RE.sub("", value.strip())

    if _TIMESTAMP_RE.match(cleaned):
        ts = int(cleaned)
        ms = ts if ts > _MAX_SECONDS_TIMESTAMP else ts * 1000
        return str(ms - ms % _MS_PER_DAY)

    normalised = _SEPARATORS_RE.sub("/", cleaned)

    dmy = _DMY_RE.match(normalised)
    if dmy:
        year = int(dmy.group(3))
        if year < 100:
            year += 2000
        try:
            return _midnight_ms(date(year, int(dmy.group(2)), int(dmy.group(1))))
        except ValueError:
            pass  # impossible calendar date, try the other forms

    ymd = _YMD_RE.match(normalised)
    if ymd:
        try:
            return _midnight_ms(date(int(ymd.group(1)), int(ymd.group(2)), int(ymd.group(3))))
        except ValueError:
            pass

    try:
        parsed = date_parser.parse(cleaned, dayfirst=True)
    except (ValueError, OverflowError):
        return value
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return _midnight_ms(parsed.date())
