from __future__ import annotations

import io

import pandas as pd

from ..models.part_record import CalculationResult

"""Excel export of a material calculation.

Column labels follow the report the catalog's users already work with.
"""

EXPORT_COLUMNS = {
    "id": "ID Item",
    "short_text": "Texto breve",
    "description": "Descripción",
    "part_division": "Parte",
    "position": "Posición",
    "original_quantity": "Cant. Original",
    "calculated_quantity": "Cant. Calculada",
    "unit_weight": "Peso Unit. (kg)",
    "total_weight": "Peso Total (kg)",
    "length2": "Long 2",
    "drawing_id": "Plano",
    "drawing_modifier": "Mod Plano",
}

SHEET_NAME = "Materiales"


def calculation_to_frame(result: CalculationResult) -> pd.DataFrame:
    """Lines plus a trailing totals row."""
    rows = [line.to_dict() for line in result.lines]
    df = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
    totals = {name: "" for name in EXPORT_COLUMNS}
    totals["position"] = "TOTAL"
    totals["calculated_quantity"] = result.totals.total_pieces
    totals["total_weight"] = result.totals.total_weight
    df = pd.concat([df, pd.DataFrame([totals])], ignore_index=True)
    return df.rename(columns=EXPORT_COLUMNS)


def calculation_to_excel(result: CalculationResult) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        calculation_to_frame(result).to_excel(writer, sheet_name=SHEET_NAME, index=False)
    return buf.getvalue()
