from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from ..hubspot.batch_create import BatchCreateFn, BatchMetrics, CreateOneFn, SleepFn, submit_batch
from ..hubspot.client import check_batch_size
from ..models.batch_item import BatchItem
from ..models.run_summary import ProgressSnapshot, RunSummary

"""Concurrency scheduler for batch submission.

Items are cut into consecutive batches which are put on an asyncio.Queue.
A fixed number of worker tasks drain the queue, one batch at a time, so at
most ``concurrency`` batch submissions are in flight. Everything runs on
one event loop: the queue hands each batch to exactly one worker and the
RunSummary is only touched between awaits, so no locking is needed.

Once started every queued batch is attempted; there is no cancellation.
"""

__all__ = [
    "partition",
    "run_batches",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], None]


def partition(items: Sequence[BatchItem], batch_size: int) -> list[list[BatchItem]]:
    """Split items into consecutive batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    check_batch_size(batch_size)
    return [list(items[start:start + batch_size]) for start in range(0, len(items), batch_size)]


async def run_batches(
    items: Sequence[BatchItem],
    batch_create_fn: BatchCreateFn,
    single_create_fn: CreateOneFn,
    *,
    on_progress: ProgressCallback | None = None,
    summary: RunSummary | None = None,
    batch_size: int = 100,
    concurrency: int = 6,
    pause_every: int = 9,
    pause_seconds: float = 1.0,
    sleep: SleepFn = asyncio.sleep,
) -> RunSummary:
    """Submit all items in bounded-concurrency batches.

    Args:
        items: Mapped rows, each tagged with its original index
        batch_create_fn: Coroutine function creating up to 100 records
        single_create_fn: Coroutine function creating one record
        on_progress: Called with a snapshot after every completed batch
        summary: Aggregate to fold outcomes into (a new one when omitted)
        batch_size: Items per batch (1..100)
        concurrency: Maximum batches in flight
        pause_every: Fallback pause interval (items)
        pause_seconds: Fallback pause length
        sleep: Awaitable sleep used for the fallback pause

    Returns:
        The RunSummary holding one outcome per item
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    if summary is None:
        summary = RunSummary(total=len(items))

    batches = partition(items, batch_size)
    if not batches:
        return summary

    queue: asyncio.Queue[list[BatchItem]] = asyncio.Queue()
    for batch in batches:
        queue.put_nowait(batch)

    def _record_metrics(metrics: BatchMetrics) -> None:
        summary.batch_stats.add_batch_time(metrics.elapsed_seconds)

    async def _worker(worker_id: int) -> None:
        while True:
            try:
                batch = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug(
                "worker %d: batch rows %d-%d (%d items)",
                worker_id,
                batch[0].row_number,
                batch[-1].row_number,
                len(batch),
            )
            outcomes = await submit_batch(
                batch_create_fn,
                single_create_fn,
                batch,
                pause_every=pause_every,
                pause_seconds=pause_seconds,
                sleep=sleep,
                metrics_callback=_record_metrics,
            )
            summary.record_batch(outcomes)
            if on_progress is not None:
                on_progress(summary.snapshot())

    worker_count = min(concurrency, len(batches))
    logger.debug("submitting %d batches with %d workers", len(batches), worker_count)
    await asyncio.gather(*(_worker(i) for i in range(worker_count)))
    return summary
