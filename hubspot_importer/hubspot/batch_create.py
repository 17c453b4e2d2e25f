from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..models.batch_item import BatchItem
from ..models.row_outcome import RowOutcome, RowStatus
from .client import HubSpotError, check_batch_size

"""HubSpot batch create with per-record fallback.

submit_batch() sends up to 100 property sets in one batch call. When the
batch call fails for any HubSpot reason the batch is treated as failed as a
whole and every item is re-sent on its own through create_with_retry(),
which drops one invalid property per attempt until the record is accepted
or nothing useful is left.

The batch and single create operations are passed in as coroutine
functions so the module can be driven by fakes in tests.
"""

__all__ = [
    "BatchMetrics",
    "CreateResult",
    "ErrorBody",
    "ErrorBodyKind",
    "classify_error_body",
    "extract_invalid_property",
    "create_with_retry",
    "submit_batch",
    "EXHAUSTED_MESSAGE",
    "MISSING_RESULT_MESSAGE",
]

logger = logging.getLogger(__name__)

CreateOneFn = Callable[[dict[str, str]], Awaitable[Mapping[str, Any]]]
BatchCreateFn = Callable[[list[dict[str, str]]], Awaitable[Mapping[str, Any]]]
SleepFn = Callable[[float], Awaitable[Any]]

EXHAUSTED_MESSAGE = "Exceeded property-removal retries"
MISSING_RESULT_MESSAGE = "Batch create returned no result for this record"
DEFAULT_ERROR_MESSAGE = "Create failed"

_JSON_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)


class ErrorBodyKind(Enum):
    JSON_ARRAY_MESSAGE = "json_array_message"
    VALIDATION_RESULTS = "validation_results"
    OPAQUE = "opaque"


@dataclass(frozen=True)
class ErrorBody:
    """Classified HubSpot error body.

    Attributes:
        kind: Which shape the body was recognised as
        items: Parsed JSON array embedded in the message (JSON_ARRAY_MESSAGE)
        results: ``validationResults`` list or mapping (VALIDATION_RESULTS)
        raw_text: Message text, always kept for the name-in-message fallback
    """
    kind: ErrorBodyKind
    items: tuple[Any, ...] = ()
    results: Any = None
    raw_text: str = ""


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for one submitted batch."""
    batch_size: int  # Number of items in this batch
    fallback: bool  # True when the batch call failed and items were sent one by one
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float


@dataclass(frozen=True)
class CreateResult:
    """Result of create_with_retry, before a row number is attached."""
    status: RowStatus
    skipped_fields: tuple[str, ...] = ()
    error: str | None = None
    record_id: str | None = None

    def to_outcome(self, row_number: int) -> RowOutcome:
        return RowOutcome(
            row_number=row_number,
            status=self.status,
            skipped_fields=self.skipped_fields,
            error=self.error,
            record_id=self.record_id,
        )


def _message_text(body: Any) -> str:
    if isinstance(body, str):
        return body
    if isinstance(body, Mapping):
        return str(body.get("message") or "")
    return ""


def classify_error_body(body: Any) -> ErrorBody:
    """Recognise the shape of a HubSpot error body. Never raises."""
    text = _message_text(body)
    match = _JSON_ARRAY_RE.search(text)
    if match:
        try:
            items = json.loads(match.group(0))
        except ValueError:
            items = None
        if isinstance(items, list):
            return ErrorBody(ErrorBodyKind.JSON_ARRAY_MESSAGE, items=tuple(items), raw_text=text)
    if isinstance(body, Mapping) and body.get("validationResults"):
        return ErrorBody(ErrorBodyKind.VALIDATION_RESULTS, results=body["validationResults"], raw_text=text)
    return ErrorBody(ErrorBodyKind.OPAQUE, raw_text=text)


def _name_from_items(items: Sequence[Any]) -> str | None:
    if items and isinstance(items[0], Mapping) and items[0].get("name"):
        return str(items[0]["name"])
    return None


def _name_from_validation_results(results: Any) -> str | None:
    if isinstance(results, list):
        if results and isinstance(results[0], Mapping) and results[0].get("name"):
            return str(results[0]["name"])
        return None
    if isinstance(results, Mapping):
        for key in results:
            return str(key)
    return None


def extract_invalid_property(body: ErrorBody, remaining_keys: Iterable[str] = ()) -> str | None:
    """Best-effort name of the property HubSpot rejected.

    Order: first ``name`` of a JSON array embedded in the message, then the
    first ``validationResults`` entry (its ``name``, or the first key of an
    object), then the first still-remaining property name that appears in
    the message text. Returns None when nothing matches.
    """
    name: str | None = None
    if body.kind is ErrorBodyKind.JSON_ARRAY_MESSAGE:
        name = _name_from_items(body.items)
    elif body.kind is ErrorBodyKind.VALIDATION_RESULTS:
        name = _name_from_validation_results(body.results)
    if name:
        return name
    if body.raw_text:
        for key in remaining_keys:
            if key and key in body.raw_text:
                return key
    return None


def _record_id(result: Mapping[str, Any] | None) -> str | None:
    if not result:
        return None
    value = result.get("id")
    return None if value is None else str(value)


async def create_with_retry(
    create_one_fn: CreateOneFn,
    properties: Mapping[str, str],
) -> CreateResult:
    """Create one record, dropping one rejected property per failed attempt.

    A property is only dropped when HubSpot names it, it is still being
    sent, and at least one other property would remain. Every retry sends a
    strict subset of the previous attempt's properties.

    Args:
        create_one_fn: Coroutine function taking a property dict
        properties: Initial property set (not mutated)

    Returns:
        CreateResult with CREATED, WARNING (skipped_fields set) or FAILED
    """
    remaining = dict(properties)
    skipped: list[str] = []
    for _ in range(len(remaining) + 1):
        try:
            result = await create_one_fn(dict(remaining))
        except HubSpotError as e:
            bad_property = extract_invalid_property(classify_error_body(e.body), remaining.keys())
            if bad_property and bad_property in remaining and len(remaining) > 1:
                logger.debug("Dropping rejected property %s and retrying", bad_property)
                skipped.append(bad_property)
                del remaining[bad_property]
                continue
            return CreateResult(RowStatus.FAILED, tuple(skipped), error=e.message or DEFAULT_ERROR_MESSAGE)

        if skipped:
            return CreateResult(RowStatus.WARNING, tuple(skipped), record_id=_record_id(result))
        return CreateResult(RowStatus.CREATED, record_id=_record_id(result))

    return CreateResult(RowStatus.FAILED, tuple(skipped), error=EXHAUSTED_MESSAGE)


async def _fallback(
    single_create_fn: CreateOneFn,
    items: Sequence[BatchItem],
    pause_every: int,
    pause_seconds: float,
    sleep: SleepFn,
) -> list[RowOutcome]:
    outcomes: list[RowOutcome] = []
    for i, item in enumerate(items):
        if pause_every > 0 and i > 0 and i % pause_every == 0:
            await sleep(pause_seconds)
        result = await create_with_retry(single_create_fn, item.properties)
        outcomes.append(result.to_outcome(item.row_number))
    return outcomes


async def submit_batch(
    batch_create_fn: BatchCreateFn,
    single_create_fn: CreateOneFn,
    items: Sequence[BatchItem],
    *,
    pause_every: int = 9,
    pause_seconds: float = 1.0,
    sleep: SleepFn = asyncio.sleep,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> list[RowOutcome]:
    """Submit one batch, falling back to single creates when the batch call fails.

    Parameters
    ----------
    batch_create_fn: coroutine function taking a list of property dicts
    single_create_fn: coroutine function taking one property dict
    items: at most 100 BatchItems
    pause_every: pause before every Nth fallback item (0 disables the pause)
    pause_seconds: length of the fallback pause
    sleep: awaitable sleep, replaced in tests
    metrics_callback: optional callback receiving BatchMetrics.
        Not invoked for an empty batch.

    Returns
    -------
    One RowOutcome per item, in item order.

    Raises
    ------
    BatchTooLargeError: more than 100 items (nothing is sent)
    """
    check_batch_size(len(items))
    if not items:
        return []

    start_time = time.time()
    fallback = False
    try:
        try:
            response = await batch_create_fn([dict(item.properties) for item in items])
        except HubSpotError as e:
            fallback = True
            logger.info(
                "Batch of %d (rows %d-%d) failed: %s; creating records one by one",
                len(items),
                items[0].row_number,
                items[-1].row_number,
                e.message,
            )
            return await _fallback(single_create_fn, items, pause_every, pause_seconds, sleep)

        # HubSpot returns batch-create results in input order; row attribution relies on it
        results = list(response.get("results") or [])
        outcomes: list[RowOutcome] = []
        for position, item in enumerate(items):
            if position < len(results):
                outcomes.append(
                    RowOutcome(item.row_number, RowStatus.CREATED, record_id=_record_id(results[position]))
                )
            else:
                outcomes.append(RowOutcome(item.row_number, RowStatus.FAILED, error=MISSING_RESULT_MESSAGE))
        return outcomes
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(items),
                    fallback=fallback,
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )
