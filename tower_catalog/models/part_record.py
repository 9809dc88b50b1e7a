from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any

"""Part record and calculation result models.

Text fields are optional (``None`` when the spreadsheet cell is empty). The
string ``"-"`` is what API clients expect for a missing value, so it is
produced only when a record is serialized (``to_dict``).
"""

__all__ = [
    "SENTINEL",
    "TEXT_FIELDS",
    "PartRecord",
    "Selection",
    "CalculatedLine",
    "CalculationTotals",
    "CalculationResult",
    "display",
]

SENTINEL = "-"

TEXT_FIELDS = (
    "id",
    "short_text",
    "type",
    "manufacturer",
    "head",
    "part_division",
    "body",
    "span",
    "position",
    "description",
    "length2",
    "drawing_id",
    "drawing_modifier",
)


def display(value: str | None) -> str:
    """Serialized form of an optional text value."""
    return SENTINEL if value is None else value


@dataclass(frozen=True)
class PartRecord:
    """One normalized spreadsheet row describing a tower part."""

    id: str | None = None
    short_text: str | None = None
    type: str | None = None
    manufacturer: str | None = None
    head: str | None = None
    part_division: str | None = None
    body: str | None = None
    span: str | None = None
    position: str | None = None
    description: str | None = None
    length2: str | None = None
    quantity_per_tower: float = 0.0
    unit_weight: float = 0.0
    drawing_id: str | None = None
    drawing_modifier: str | None = None
    source_sheet: str = ""

    def has_minimum_data(self) -> bool:
        """A row is kept when it has an id, a part division or a real description."""
        return (
            self.id is not None
            or self.part_division is not None
            or (self.description is not None and len(self.description) > 3)
        )

    def text(self, field_name: str) -> str:
        """Serialized value of a text field (``"-"`` when missing)."""
        return display(getattr(self, field_name))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = display(value) if f.name in TEXT_FIELDS else value
        return out


@dataclass(frozen=True)
class Selection:
    """A tower part chosen for calculation and how many towers' worth of it."""

    part_name: str
    multiplier: float = 0.0

    @staticmethod
    def from_payload(item: dict[str, Any]) -> Selection:
        """Build from the HTTP payload shape ``{"part": ..., "quantity": ...}``.

        Missing, non-numeric or non-finite ("nan", "inf") quantities count as 0.
        """
        part = item.get("part", item.get("part_name")) or ""
        raw_qty = item.get("quantity", item.get("multiplier"))
        try:
            qty = float(raw_qty) if raw_qty not in (None, "") else 0.0
        except (TypeError, ValueError):
            qty = 0.0
        if not math.isfinite(qty):
            qty = 0.0
        return Selection(part_name=str(part), multiplier=qty)


@dataclass(frozen=True)
class CalculatedLine:
    id: str | None
    short_text: str | None
    description: str | None
    part_division: str | None
    position: str | None
    original_quantity: float
    calculated_quantity: float
    unit_weight: float
    total_weight: float
    length2: str | None
    drawing_id: str | None
    drawing_modifier: str | None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = display(value) if f.name in TEXT_FIELDS else value
        return out


@dataclass(frozen=True)
class CalculationTotals:
    total_pieces: float
    total_weight: float


@dataclass(frozen=True)
class CalculationResult:
    lines: list[CalculatedLine]
    totals: CalculationTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": len(self.lines),
            "results": [line.to_dict() for line in self.lines],
            "totals": {
                "total_pieces": self.totals.total_pieces,
                "total_weight": self.totals.total_weight,
            },
        }
