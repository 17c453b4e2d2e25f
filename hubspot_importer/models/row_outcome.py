from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""RowOutcome model for the bulk import pipeline.

Every input row receives exactly one RowOutcome by the end of a run:
created, warning (created after skipping invalid properties) or failed.
"""

__all__ = [
    "RowStatus",
    "RowOutcome",
    "WARNING_MESSAGE_PREFIX",
]

WARNING_MESSAGE_PREFIX = "Sent successfully, however had to skip invalid properties: "


class RowStatus(Enum):
    """Terminal status of a single input row."""
    CREATED = "created"
    WARNING = "warning"
    FAILED = "failed"


@dataclass(frozen=True)
class RowOutcome:
    """Terminal result for one input row.

    Attributes:
        row_number: User-facing row number (original index + 2)
        status: Terminal status
        skipped_fields: Properties removed before the create succeeded (WARNING only)
        error: Error message (FAILED only)
        record_id: HubSpot record id when the API returned one
    """
    row_number: int
    status: RowStatus
    skipped_fields: tuple[str, ...] = ()
    error: str | None = None
    record_id: str | None = None

    @property
    def message(self) -> str | None:
        """Message shown next to the row number in reports (None for clean creates)."""
        if self.status is RowStatus.FAILED:
            return self.error or "Failed"
        if self.status is RowStatus.WARNING:
            return WARNING_MESSAGE_PREFIX + ", ".join(self.skipped_fields)
        return None
