from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

This module defines the ErrorRecord dataclass used for structured error logging
of per-row warnings and failures. Row 0 is the sentinel for source-level errors
where no data row could be processed.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: Source label (file name or Google Sheet id/tab)
        object_type: HubSpot object type being created
        row: Row number (header = 1). Use 0 for source-level errors
        outcome: WARNING or FAILED
        message: Error or warning message
    """
    timestamp: str  # ISO8601 UTC
    source: str
    object_type: str
    row: int
    outcome: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(source: str, object_type: str, row: int, outcome: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp.

        Parameters:
            source: Source label
            object_type: HubSpot object type (contacts, companies, deals)
            row: Row number. Use 0 for source-level errors
            outcome: WARNING or FAILED
            message: Error or warning message

        Returns:
            New ErrorRecord instance with current UTC timestamp
        """
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            object_type=object_type,
            row=row,
            outcome=outcome,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format.

        Returns:
            JSON string representation without extra keys
        """
        return json.dumps(asdict(self), ensure_ascii=False)
