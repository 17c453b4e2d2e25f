from __future__ import annotations

from dataclasses import dataclass

"""BatchItem model for the bulk import pipeline.

A BatchItem is a mapped property set tagged with the 0-based position of its
source row in the full input sequence. The position never changes when a
batch degrades to single-record creates, so outcomes stay attributed to the
right row.
"""

__all__ = [
    "BatchItem",
    "HEADER_ROW_OFFSET",
]

# 1 for the header row, 1 for 1-based spreadsheet row numbers
HEADER_ROW_OFFSET = 2


@dataclass(frozen=True)
class BatchItem:
    """Property set for one input row plus its original index."""
    index: int  # 0-based position in the full input sequence
    properties: dict[str, str]  # HubSpot property name -> value

    @property
    def row_number(self) -> int:
        """User-facing row number (header row + 1-based counting)."""
        return self.index + HEADER_ROW_OFFSET
