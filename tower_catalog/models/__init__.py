"""Domain models for the tower parts catalog.

This package contains the record, calculation and load-statistics types
shared by the parser, the services and the HTTP layer.
"""

from .load_result import LoadResult, SheetStat
from .part_record import (
    SENTINEL,
    CalculatedLine,
    CalculationResult,
    CalculationTotals,
    PartRecord,
    Selection,
)

__all__ = [
    # Records
    "SENTINEL",
    "PartRecord",
    # Calculation
    "Selection",
    "CalculatedLine",
    "CalculationResult",
    "CalculationTotals",
    # Loading
    "SheetStat",
    "LoadResult",
]
