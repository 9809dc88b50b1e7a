from __future__ import annotations

"""Typed load failures shared by the reader, the loader and the cache.

Callers distinguish "no data available" (a LoadError) from "no results
matched" (an empty list); query and calculation functions never raise these
themselves.
"""

__all__ = [
    "LoadError",
    "SourceUnavailable",
    "UpstreamUnavailable",
    "DecodeError",
]


class LoadError(Exception):
    """Base exception: the catalog workbook could not be obtained or read."""

    error_type = "load_error"


class SourceUnavailable(LoadError):
    """The workbook bytes could not be fetched (file missing, unreadable)."""


class UpstreamUnavailable(SourceUnavailable):
    """Remote blob fetch timed out, failed to connect or returned non-2xx."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(LoadError):
    """Bytes are not a workbook, the workbook is corrupt or has no sheets."""
