from __future__ import annotations

import statistics
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .row_outcome import RowOutcome, RowStatus

"""Run summary models for the bulk import pipeline.

RunSummary is the running aggregate of one import run. It is mutated after
every completed batch and read (through immutable snapshots) by the
presentation layer to render live progress.
"""

__all__ = [
    "RunState",
    "RowMessage",
    "ProgressSnapshot",
    "RunSummary",
    "BatchStatsAccumulator",
]


class RunState(Enum):
    """Import run lifecycle.

    State transitions: idle → parsing → uploading → (done | error)

    ERROR is only entered when the source itself cannot be read or is empty.
    Once uploading starts the run always reaches DONE.
    """
    IDLE = "idle"
    PARSING = "parsing"
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class RowMessage:
    """Row number + message pair shown in the per-row detail list."""
    row: int  # 0 for source-level errors
    message: str


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of a RunSummary passed to progress callbacks."""
    state: RunState
    total: int
    completed: int
    failed: int
    warned: int
    errors: tuple[RowMessage, ...]
    warnings: tuple[RowMessage, ...]

    @property
    def succeeded(self) -> int:
        return self.completed - self.failed - self.warned


class BatchStatsAccumulator:
    """Helper class to accumulate batch timing statistics.

    Collects individual batch timing data and calculates summary statistics.
    """

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        """Add a batch timing measurement."""
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)


@dataclass
class RunSummary:
    """Aggregate counters and per-row outcomes for one import run.

    ``completed`` counts rows that finished processing (created, warning or
    failed) and never decreases. ``errors`` / ``warnings`` hold the detail
    messages in arrival order; arrival order across batches is not
    deterministic, row numbers are the stable identity.
    """
    total: int = 0
    completed: int = 0
    failed: int = 0
    warned: int = 0
    state: RunState = RunState.IDLE
    outcomes: list[RowOutcome] = field(default_factory=list)
    errors: list[RowMessage] = field(default_factory=list)
    warnings: list[RowMessage] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    batch_stats: BatchStatsAccumulator = field(default_factory=BatchStatsAccumulator)
    error_log_path: Path | None = None  # JSON Lines file written at the end of the run

    @property
    def succeeded(self) -> int:
        """Clean successes (created without skipped properties)."""
        return self.completed - self.failed - self.warned

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def throughput_rows_per_sec(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.completed / elapsed

    def record_batch(self, outcomes: Iterable[RowOutcome]) -> None:
        """Fold the outcomes of one completed batch into the running totals."""
        batch = list(outcomes)
        for outcome in batch:
            self.outcomes.append(outcome)
            if outcome.status is RowStatus.FAILED:
                self.failed += 1
                self.errors.append(RowMessage(outcome.row_number, outcome.message or "Failed"))
            elif outcome.status is RowStatus.WARNING:
                self.warned += 1
                self.warnings.append(RowMessage(outcome.row_number, outcome.message or ""))
        self.completed += len(batch)

    def record_source_error(self, message: str) -> None:
        """Mark the run as failed before any row was processed."""
        self.state = RunState.ERROR
        self.errors.append(RowMessage(0, message))

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            state=self.state,
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            warned=self.warned,
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
        )
