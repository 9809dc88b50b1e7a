from __future__ import annotations

from ..models.load_result import LoadResult

"""SUMMARY line rendering for dataset loads."""

__all__ = [
    "summary_fields",
    "render_summary_line",
]


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def summary_fields(result: LoadResult) -> str:
    """The ``key=value`` body of a SUMMARY line (the label is left to the logger)."""
    return (
        f"sheets={result.total_sheets} "
        f"parsed={result.parsed_sheets} "
        f"skipped={result.skipped_sheets} "
        f"rows={result.data_rows} "
        f"dropped={result.dropped_rows} "
        f"records={len(result.records)} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )


def render_summary_line(result: LoadResult) -> str:
    """Render a SUMMARY line for one workbook load.

    Format:
    SUMMARY sheets={total} parsed={parsed} skipped={skipped} rows={rows}
    dropped={dropped} records={records} elapsed_sec={elapsed}

    Examples:
        >>> from tower_catalog.models.load_result import LoadResult, SheetStat
        >>> result = LoadResult(
        ...     records=(),
        ...     sheet_stats=[SheetStat("A", 0, 3, 0, 3), SheetStat("Notes", None, 0, 0, 0)],
        ...     elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY sheets=2 parsed=1 skipped=1 rows=3 dropped=3 records=0 elapsed_sec=2'
    """
    return f"SUMMARY {summary_fields(result)}"
