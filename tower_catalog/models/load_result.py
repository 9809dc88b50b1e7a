from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .part_record import PartRecord

"""Load statistics models.

A dataset load produces one SheetStat per workbook sheet and a LoadResult
aggregating them together with the immutable record tuple that the cache
publishes.
"""

__all__ = [
    "SheetStat",
    "LoadResult",
]


@dataclass(frozen=True)
class SheetStat:
    """Per-sheet parsing statistics."""
    sheet_name: str
    header_row: int | None  # 0-based index of the detected header, None if skipped
    data_rows: int  # rows after the header
    records: int  # rows kept
    dropped_rows: int  # rows failing the minimum-data check

    @property
    def skipped(self) -> bool:
        return self.header_row is None


@dataclass(frozen=True)
class LoadResult:
    """Aggregated result of one workbook load."""
    records: tuple[PartRecord, ...]
    sheet_stats: list[SheetStat] = field(default_factory=list)
    source: str = ""
    size_bytes: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def total_sheets(self) -> int:
        return len(self.sheet_stats)

    @property
    def skipped_sheets(self) -> int:
        return sum(1 for s in self.sheet_stats if s.skipped)

    @property
    def parsed_sheets(self) -> int:
        return self.total_sheets - self.skipped_sheets

    @property
    def data_rows(self) -> int:
        return sum(s.data_rows for s in self.sheet_stats)

    @property
    def dropped_rows(self) -> int:
        return sum(s.dropped_rows for s in self.sheet_stats)
