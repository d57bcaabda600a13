from __future__ import annotations

from ..models.processing_result import SyncSummary

"""SUMMARY line rendering.

Format:
SUMMARY rows={n} created={c} updated={u} skipped={s} errors={e}
properties_created={pc} properties_updated={pu} property_errors={pe}
missing_keys={m} deleted_keys={d} elapsed_sec={t}
(one line, single spaces)
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
]


def format_elapsed(seconds: float) -> str:
    """Integer seconds without a fraction; tiny values without scientific notation."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(summary: SyncSummary) -> str:
    """Render the SUMMARY line for a finished run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> s = SyncSummary(
        ...     total_rows=3, created=1, updated=1, skipped=1, errors=0,
        ...     properties_created=1, properties_updated=0, property_errors=0,
        ...     missing_keys=0, deleted_keys=0,
        ...     start_time=start, end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(s)  # doctest: +ELLIPSIS
        'SUMMARY rows=3 created=1 updated=1 skipped=1 errors=0 ... elapsed_sec=2'
    """
    return (
        f"SUMMARY rows={summary.total_rows} "
        f"created={summary.created} "
        f"updated={summary.updated} "
        f"skipped={summary.skipped} "
        f"errors={summary.errors} "
        f"properties_created={summary.properties_created} "
        f"properties_updated={summary.properties_updated} "
        f"property_errors={summary.property_errors} "
        f"missing_keys={summary.missing_keys} "
        f"deleted_keys={summary.deleted_keys} "
        f"elapsed_sec={format_elapsed(summary.elapsed_seconds)}"
    )
