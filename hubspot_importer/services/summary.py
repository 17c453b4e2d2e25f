from __future__ import annotations

from ..models.run_summary import ProgressSnapshot, RunSummary

"""Summary rendering for the HubSpot bulk importer.

Two renderings of the same counters:
- render_summary_text: the human readable partition of completed rows
- render_summary_line: the machine readable SUMMARY line printed last
"""

__all__ = [
    "render_summary_text",
    "render_summary_line",
    "format_number",
]


def format_number(value: float) -> str:
    """Format a metric: integers without decimals, tiny floats without exponent."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_text(summary: RunSummary | ProgressSnapshot) -> str:
    """Partition completed rows into succeeded / warned / failed.

    Zero categories are left out; when every category is zero the text is
    ``"0 succeeded"``.

    Examples:
        >>> s = RunSummary(total=100, completed=100, failed=1, warned=1)
        >>> render_summary_text(s)
        '98 succeeded, 1 succeeded with warnings, 1 failed'
    """
    parts = []
    if summary.succeeded > 0:
        parts.append(f"{summary.succeeded} succeeded")
    if summary.warned > 0:
        parts.append(f"{summary.warned} succeeded with warnings")
    if summary.failed > 0:
        parts.append(f"{summary.failed} failed")
    if not parts:
        return "0 succeeded"
    return ", ".join(parts)


def render_summary_line(summary: RunSummary) -> str:
    """Render the SUMMARY line.

    Format:
    SUMMARY rows={total} completed={completed} succeeded={succeeded}
    warned={warned} failed={failed} batches={batches}
    elapsed_sec={elapsed} throughput_rps={throughput}
    """
    total_batches, _, _ = summary.batch_stats.get_stats()
    return (
        f"SUMMARY rows={summary.total} "
        f"completed={summary.completed} "
        f"succeeded={summary.succeeded} "
        f"warned={summary.warned} "
        f"failed={summary.failed} "
        f"batches={total_batches} "
        f"elapsed_sec={format_number(summary.elapsed_seconds)} "
        f"throughput_rps={format_number(summary.throughput_rows_per_sec)}"
    )
