from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..models.part_record import (
    CalculatedLine,
    CalculationResult,
    CalculationTotals,
    PartRecord,
    Selection,
)
from .query import apply_filters

"""Material calculator.

The spreadsheet lists quantities per complete tower. Some sub-assemblies are
ordered per fraction of a tower:

- bases (DIVIDE_BY_2) come in halves: quantity * multiplier / 2, unrounded
- legs (DIVIDE_BY_4) come in quarter sections: ceil(quantity * multiplier / 4)

A spreadsheet quantity of exactly 1 on one of those parts is already a
single whole piece and is scaled without division. Every other part scales
linearly with the multiplier.
"""

__all__ = [
    "DIVIDE_BY_2",
    "DIVIDE_BY_4",
    "BASE_FILTER_FIELDS",
    "scaled_quantity",
    "calculate",
]

DIVIDE_BY_2 = frozenset({"BGDA", "BSUP", "BMED", "BINF", "BDER", "BIZQ", "BSUP/MED"})

DIVIDE_BY_4 = frozenset({
    "PATA 0", "PATA 0.0", "PATA 1.5", "PATA 3", "PATA 3.0",
    "PATA 4.5", "PATA 6", "PATA 6.0", "PATA 7.5", "PATA 9", "PATA 9.0",
})

BASE_FILTER_FIELDS = ("type", "manufacturer", "head", "body")


def _part_key(name: str | None) -> str:
    return (name or "").strip().upper()


def scaled_quantity(part_division: str, original_quantity: float, multiplier: float) -> float:
    """Quantity contributed by one selection for one record."""
    key = _part_key(part_division)
    q = original_quantity * multiplier
    if (key in DIVIDE_BY_2 or key in DIVIDE_BY_4) and original_quantity == 1:
        return q
    if key in DIVIDE_BY_2:
        return q / 2
    if key in DIVIDE_BY_4:
        return math.ceil(q / 4)
    return q


def calculate(
    records: Iterable[PartRecord],
    filters: Mapping[str, Any],
    selections: Sequence[Selection],
) -> CalculationResult:
    """Scale the quantities of the selected part divisions.

    Records are narrowed by the base filters (type, manufacturer, head, body);
    part division and span filters are not applied here. A record matched by
    several selections accumulates all of their contributions. Records ending
    with no positive quantity produce no line.
    """
    wanted = [(_part_key(s.part_name), s.multiplier or 0) for s in selections]

    lines: list[CalculatedLine] = []
    for record in apply_filters(records, filters, BASE_FILTER_FIELDS):
        key = _part_key(record.part_division)
        if not key:
            continue
        original = record.quantity_per_tower or 0
        total = 0
        for part_name, multiplier in wanted:
            if part_name == key:
                total += scaled_quantity(key, original, multiplier)
        if not total > 0:  # NaN fails every comparison
            continue
        unit_weight = record.unit_weight or 0
        lines.append(
            CalculatedLine(
                id=record.id,
                short_text=record.short_text,
                description=record.description,
                part_division=record.part_division,
                position=record.position,
                original_quantity=original,
                calculated_quantity=total,
                unit_weight=unit_weight,
                total_weight=total * unit_weight,
                length2=record.length2,
                drawing_id=record.drawing_id,
                drawing_modifier=record.drawing_modifier,
            )
        )

    totals = CalculationTotals(
        total_pieces=sum(line.calculated_quantity for line in lines),
        total_weight=sum(line.total_weight for line in lines),
    )
    return CalculationResult(lines=lines, totals=totals)
