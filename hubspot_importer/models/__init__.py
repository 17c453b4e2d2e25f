"""Domain models for the HubSpot bulk importer.

This package contains the value objects that flow through an import run:
sources, batch items, per-row outcomes and the run summary.
"""

from .batch_item import BatchItem
from .error_record import ErrorRecord
from .import_source import ImportSource, SourceKind
from .row_outcome import RowOutcome, RowStatus
from .run_summary import BatchStatsAccumulator, ProgressSnapshot, RowMessage, RunState, RunSummary

__all__ = [
    # Source models
    "ImportSource",
    "SourceKind",
    # Processing models
    "BatchItem",
    "RowOutcome",
    "RowStatus",
    # Aggregation models
    "RunSummary",
    "RunState",
    "RowMessage",
    "ProgressSnapshot",
    "BatchStatsAccumulator",
    # Logging
    "ErrorRecord",
]
