from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Per-sheet progress for CLI loads (tqdm).

The bar is drawn only when the caller asks for it and stdout is a terminal;
the HTTP server and CI runs load silently so their logs stay free of
control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Sheet-by-sheet progress of one workbook load.

    Args:
        total_sheets: sheets in the workbook
        description: bar label, suffixed with the sheet being parsed
        enabled: caller opt-in (still requires a TTY)
    """

    def __init__(self, total_sheets: int, *, description: str = "Parsing sheets", enabled: bool = True) -> None:
        self.total_sheets = total_sheets
        self.description = description
        self.current_sheet = 0
        self.records = 0
        self.enabled = enabled and is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_sheets,
                desc=description,
                unit="sheet",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def start_sheet(self, sheet_name: str) -> None:
        self.current_sheet += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({sheet_name})")

    def finish_sheet(self, records: int = 0) -> None:
        """Advance by one sheet; ``records`` is what the sheet contributed."""
        self.records += records
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        bar, self.pbar = self.pbar, None
        if bar is not None:
            bar.close()

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
