from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.run_summary import ProgressSnapshot

"""Progress display service with tqdm (TTY only).

The bar counts completed rows and shows warned / failed counts as postfix.
It is driven by the ProgressSnapshot passed to the scheduler's progress
callback after every batch, so it is created lazily on the first snapshot
(when the row total is known). In non-TTY environments (CI, redirected
output) no bar is drawn.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """Check if TTY output is enabled.

    Returns:
        True if stdout is a TTY and progress should be displayed, False otherwise
    """
    return sys.stdout.isatty()


class ProgressTracker:
    """Row progress bar fed by ProgressSnapshots."""

    def __init__(self, *, description: str = "Uploading rows") -> None:
        self.description = description
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        self.last_snapshot: ProgressSnapshot | None = None

    def update(self, snapshot: ProgressSnapshot) -> None:
        """Advance the bar to ``snapshot.completed``.

        Args:
            snapshot: Counters after the latest completed batch
        """
        self.last_snapshot = snapshot
        if not self.enabled:
            return
        if self.pbar is None:
            self.pbar = tqdm(
                total=snapshot.total,
                desc=self.description,
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        self.pbar.update(snapshot.completed - self.pbar.n)
        self.pbar.set_postfix(warned=snapshot.warned, failed=snapshot.failed)

    def close(self) -> None:
        """Close the progress bar."""
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
