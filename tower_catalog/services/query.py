from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.part_record import PartRecord

"""Query engine over the cached dataset.

All functions are pure: they take the record tuple and a filter mapping and
never mutate either. Filters are exact matches against the serialized value
of a field (a missing value matches only "-"); empty filter values and
unknown keys are ignored, so bad input narrows nothing and never raises.
"""

__all__ = [
    "SEARCH_LIMIT",
    "OPTION_FILTER_FIELDS",
    "OPTION_FIELDS",
    "SEARCH_FILTER_FIELDS",
    "DatasetStats",
    "apply_filters",
    "get_options",
    "search",
    "dataset_stats",
]

SEARCH_LIMIT = 500

OPTION_FILTER_FIELDS = ("type", "manufacturer", "head", "body", "span")
OPTION_FIELDS = ("type", "manufacturer", "head", "body", "part_division", "span")
SEARCH_FILTER_FIELDS = ("type", "manufacturer", "head", "part_division", "body", "span")
CASE_INSENSITIVE_FIELDS = frozenset({"span"})


def _active(filters: Mapping[str, Any], allowed: Iterable[str]) -> list[tuple[str, str]]:
    """(field, value) pairs for the allowed fields that carry a non-empty value."""
    active = []
    for name in allowed:
        value = filters.get(name)
        if value is None:
            continue
        value = str(value)
        if value:
            active.append((name, value))
    return active


def apply_filters(
    records: Iterable[PartRecord],
    filters: Mapping[str, Any],
    allowed: Sequence[str],
    case_insensitive: frozenset[str] = frozenset(),
) -> Iterable[PartRecord]:
    """Lazily yield records matching every active filter (AND)."""
    active = [
        (name, value.lower() if name in case_insensitive else value, name in case_insensitive)
        for name, value in _active(filters, allowed)
    ]
    for record in records:
        for name, value, fold in active:
            stored = record.text(name)
            if (stored.lower() if fold else stored) != value:
                break
        else:
            yield record


def get_options(records: Iterable[PartRecord], filters: Mapping[str, Any]) -> dict[str, list[str]]:
    """Sorted distinct values per option field for the filtered subset."""
    seen: dict[str, set[str]] = {name: set() for name in OPTION_FIELDS}
    for record in apply_filters(records, filters, OPTION_FILTER_FIELDS):
        for name in OPTION_FIELDS:
            value = getattr(record, name)
            if value is not None:
                seen[name].add(value)
    return {name: sorted(values) for name, values in seen.items()}


def search(records: Iterable[PartRecord], filters: Mapping[str, Any]) -> list[PartRecord]:
    """First SEARCH_LIMIT matching records in dataset order.

    ``span`` is compared case-insensitively; other fields exactly.
    """
    out: list[PartRecord] = []
    for record in apply_filters(records, filters, SEARCH_FILTER_FIELDS, CASE_INSENSITIVE_FIELDS):
        out.append(record)
        if len(out) >= SEARCH_LIMIT:
            break
    return out


@dataclass(frozen=True)
class DatasetStats:
    total_records: int
    part_divisions: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)
    manufacturers: list[str] = field(default_factory=list)
    sheets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "unique_parts": len(self.part_divisions),
            "unique_types": len(self.types),
            "unique_manufacturers": len(self.manufacturers),
            "unique_sheets": len(self.sheets),
            "parts": self.part_divisions,
            "types": self.types,
            "manufacturers": self.manufacturers,
            "sheets": self.sheets,
        }


def dataset_stats(records: Sequence[PartRecord]) -> DatasetStats:
    # sheets keep workbook order; the rest are sorted
    sheets = list(dict.fromkeys(r.source_sheet for r in records))
    return DatasetStats(
        total_records=len(records),
        part_divisions=sorted({r.part_division for r in records if r.part_division is not None}),
        types=sorted({r.type for r in records if r.type is not None}),
        manufacturers=sorted({r.manufacturer for r in records if r.manufacturer is not None}),
        sheets=sheets,
    )
