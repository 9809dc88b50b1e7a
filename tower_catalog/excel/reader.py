from __future__ import annotations

import io
from typing import Any

import pandas as pd

from ..errors import DecodeError

"""Workbook reader.

Decodes spreadsheet bytes with pandas (openpyxl engine for .xlsx) into raw
grids: one list of rows per sheet, cells as Python values with empty cells as
``None``. No header handling happens here; the sheet parser locates the
header itself because catalog sheets carry title rows of varying height.

Every string is kept exactly as typed (``keep_default_na=False``) so values
such as "NA" or "N/A" survive as part descriptions instead of becoming NaN.
"""

__all__ = [
    "Grid",
    "open_workbook",
    "read_workbook",
    "frame_to_grid",
]

Grid = list[list[Any]]


def open_workbook(data: bytes) -> pd.ExcelFile:
    """Open workbook bytes, failing with DecodeError on anything unreadable.

    A workbook without sheets is rejected too.
    """
    if not data:
        raise DecodeError("workbook is empty (0 bytes)")
    try:
        xls = pd.ExcelFile(io.BytesIO(data))
    except Exception as e:  # openpyxl / zipfile / engine detection errors vary
        raise DecodeError(f"not a valid workbook: {e}") from e
    if not xls.sheet_names:
        raise DecodeError("workbook contains no sheets")
    return xls


def frame_to_grid(df: pd.DataFrame) -> Grid:
    """Convert a header-less DataFrame into rows of plain values (NaN -> None)."""
    if df.empty:
        return []
    clean = df.astype(object).where(pd.notna(df), None)
    return clean.values.tolist()


def read_workbook(data: bytes) -> dict[str, Grid]:
    """Read workbook bytes returning raw grids keyed by sheet name.

    The returned dict preserves the workbook's sheet order.
    """
    xls = open_workbook(data)
    grids: dict[str, Grid] = {}
    for name in xls.sheet_names:
        try:
            df = xls.parse(name, header=None, dtype=object, keep_default_na=False)
        except Exception as e:
            raise DecodeError(f"sheet '{name}' could not be read: {e}") from e
        grids[str(name)] = frame_to_grid(df)
    return grids
