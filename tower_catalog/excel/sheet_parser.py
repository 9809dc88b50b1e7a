from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..models.load_result import SheetStat
from ..models.part_record import SENTINEL, PartRecord

"""Sheet parser: one raw sheet grid -> normalized part records.

Catalog sheets are maintained by hand, one per manufacturer/type combination.
They share a loose layout:

1. A few title rows, then a header row somewhere in the first 10 rows. The
   header is recognised by its labels (see HEADER_MARKERS).
2. The sheet name encodes tower type and manufacturer, e.g.
   ``"AJIKAWA (AC - HB)"`` -> type ``AC``, manufacturer ``AJIKAWA HB``.
3. Column labels vary between sheets, so each record field is looked up
   through an ordered alias list (FIELD_ALIASES), exact label first and then
   case-insensitively.

Rows that carry no identifying data are dropped, never reported as errors.
"""

__all__ = [
    "HEADER_SCAN_ROWS",
    "FIELD_ALIASES",
    "SheetParseResult",
    "find_header_row",
    "derive_type_manufacturer",
    "resolve_columns",
    "normalize_text",
    "parse_number",
    "parse_sheet",
    "parse_sheet_detailed",
]

HEADER_SCAN_ROWS = 10
HEADER_MARKERS = ("ID ITEM", "FABRICANTE", "PARTE")
HEADER_MARKER_PAIR = ("TIPO", "CABEZA")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("ID Item", "IDItem", "ID_Item", "Material"),
    "short_text": ("Texto breve del material", "Texto breve", "TextoBreve", "Texto"),
    "type": ("TIPO", "Tipo"),
    "manufacturer": ("FABRICANTE", "Fabricante"),
    "head": ("Cabeza",),
    "part_division": ("Parte (Division)", "Parte", "Division", "Parte_Division", "Parte(Division)"),
    "body": ("Cuerpo",),
    "span": ("Tramo",),
    "position": ("Posición", "Posicion", "Pos"),
    "description": ("Descripción", "Descripcion"),
    "length2": ("Long 2 (Principal)", "Long 2", "Long2", "Long_2", "Long 2(Principal)"),
    "quantity_per_tower": ("Cantidad x Torre", "Cantidad", "Cant x Torre", "Cant", "Cantidad Torre"),
    "unit_weight": ("Peso Unitario", "Peso", "PesoUnitario", "Peso Unit"),
    "drawing_id": ("PLANO", "Plano"),
    "drawing_modifier": ("Mod Plano", "ModPlano", "Mod_Plano"),
}

NUMERIC_FIELDS = frozenset({"quantity_per_tower", "unit_weight"})

# Ordered: first match wins.
_NAME_TYPE_SUBTYPE = re.compile(r"([A-Z\s]+)\s*\(([A-Z]+)\s*-\s*([A-Z]+)\)", re.IGNORECASE)
_NAME_TYPE = re.compile(r"([A-Z\s]+)\s*\(([A-Z0-9]+)\)", re.IGNORECASE)
_TYPE_SEP_NAME = re.compile(r"([A-Z]+)[_\-](.+)", re.IGNORECASE | re.DOTALL)

# Leading numeric prefix, as a spreadsheet user would read "5.5 kg".
_NUMBER_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class SheetParseResult:
    records: list[PartRecord]
    stat: SheetStat


def _cell_text(value: Any) -> str:
    """Plain text of a cell as shown in the sheet ('' for empty cells)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def normalize_text(value: Any) -> str | None:
    """Trimmed cell text, or None for empty/blank/"-" cells."""
    text = _cell_text(value).strip()
    if not text or text == SENTINEL:
        return None
    return text


def parse_number(value: Any) -> float:
    """Parse a quantity or weight cell.

    Thousands separators are stripped ("1,234" -> 1234.0). Empty, non-numeric
    and negative values yield 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        m = _NUMBER_PREFIX.match(str(value).replace(",", ""))
        if not m:
            return 0.0
        num = float(m.group())
    if math.isnan(num) or math.isinf(num) or num < 0:
        return 0.0
    return num


def find_header_row(rows: Sequence[Sequence[Any]]) -> int | None:
    """Index of the header row within the first HEADER_SCAN_ROWS rows."""
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        joined = "|".join(_cell_text(c) for c in row).upper()
        if any(marker in joined for marker in HEADER_MARKERS):
            return i
        if all(marker in joined for marker in HEADER_MARKER_PAIR):
            return i
    return None


def derive_type_manufacturer(sheet_name: str) -> tuple[str, str]:
    """Split a sheet name into (type, manufacturer)."""
    m = _NAME_TYPE_SUBTYPE.fullmatch(sheet_name)
    if m:
        manufacturer = m.group(1).strip().upper()
        subtype = m.group(3).strip().upper()
        return m.group(2).strip().upper(), f"{manufacturer} {subtype}"

    m = _NAME_TYPE.fullmatch(sheet_name)
    if m:
        return m.group(2).strip().upper(), m.group(1).strip().upper()

    m = _TYPE_SEP_NAME.fullmatch(sheet_name)
    if m:
        return m.group(1).strip().upper(), m.group(2).strip().upper()

    return sheet_name.upper(), sheet_name.upper()


def resolve_columns(headers: Sequence[str]) -> dict[str, int | None]:
    """Map each record field to a column index using FIELD_ALIASES.

    Empty header labels are ignored. When a label repeats, its last column
    wins.
    """
    positions: dict[str, int] = {}
    for idx, label in enumerate(headers):
        if label:
            positions[label] = idx

    resolved: dict[str, int | None] = {}
    for field_name, aliases in FIELD_ALIASES.items():
        resolved[field_name] = None
        for alias in aliases:
            if alias in positions:
                resolved[field_name] = positions[alias]
                break
            lowered = alias.lower()
            found = next((positions[k] for k in positions if k.lower() == lowered), None)
            if found is not None:
                resolved[field_name] = found
                break
    return resolved


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(not _cell_text(c).strip() for c in row)


def _build_record(
    row: Sequence[Any],
    columns: dict[str, int | None],
    sheet_name: str,
    sheet_type: str | None,
    sheet_manufacturer: str | None,
) -> PartRecord:
    values: dict[str, Any] = {}
    for field_name, idx in columns.items():
        raw = row[idx] if idx is not None and idx < len(row) else None
        if field_name in NUMERIC_FIELDS:
            values[field_name] = parse_number(raw)
        else:
            values[field_name] = normalize_text(raw)
    values["type"] = sheet_type or values["type"]
    values["manufacturer"] = sheet_manufacturer or values["manufacturer"]
    return PartRecord(source_sheet=sheet_name, **values)


def parse_sheet_detailed(sheet_name: str, rows: Sequence[Sequence[Any]]) -> SheetParseResult:
    """Parse one sheet grid, returning kept records plus per-sheet statistics."""
    header_idx = find_header_row(rows)
    if header_idx is None:
        return SheetParseResult(
            records=[],
            stat=SheetStat(sheet_name=sheet_name, header_row=None, data_rows=0, records=0, dropped_rows=0),
        )

    headers = [_cell_text(c).strip() for c in rows[header_idx]]
    columns = resolve_columns(headers)
    sheet_type, sheet_manufacturer = (normalize_text(v) for v in derive_type_manufacturer(sheet_name))

    records: list[PartRecord] = []
    data_rows = 0
    dropped = 0
    for row in rows[header_idx + 1:]:
        if _is_blank_row(row):
            continue
        data_rows += 1
        record = _build_record(row, columns, sheet_name, sheet_type, sheet_manufacturer)
        if record.has_minimum_data():
            records.append(record)
        else:
            dropped += 1

    return SheetParseResult(
        records=records,
        stat=SheetStat(
            sheet_name=sheet_name,
            header_row=header_idx,
            data_rows=data_rows,
            records=len(records),
            dropped_rows=dropped,
        ),
    )


def parse_sheet(sheet_name: str, rows: Sequence[Sequence[Any]]) -> list[PartRecord]:
    """Parse one sheet grid into part records (header-less sheets yield [])."""
    return parse_sheet_detailed(sheet_name, rows).records
