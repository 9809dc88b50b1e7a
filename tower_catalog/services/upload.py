from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import PurePath
from typing import Any

from ..errors import DecodeError, LoadError
from ..excel.reader import open_workbook
from .cache import CacheManager
from .loader import CatalogSource

logger = logging.getLogger(__name__)

"""Workbook upload flow.

1. Validate extension and content (bytes must open as a workbook with sheets)
2. Replace the workbook in the configured source
3. Invalidate the cache, then pre-warm it with a forced reload

Validation happens before anything touches the source, so a rejected upload
leaves the current catalog untouched.
"""

__all__ = [
    "ALLOWED_EXTENSIONS",
    "ValidationError",
    "UploadResult",
    "validate_upload",
    "handle_upload",
]

ALLOWED_EXTENSIONS = frozenset({".xlsx", ".xls"})


class ValidationError(Exception):
    """Uploaded file rejected (wrong extension, empty, not a workbook)."""

    error_type = "validation_error"


@dataclass(frozen=True)
class UploadResult:
    file_name: str
    size_bytes: int
    sheet_count: int
    stored_at: str
    uploaded_at: datetime
    record_count: int | None
    cache_version: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_size": f"{self.size_bytes / 1024:.2f} KB",
            "sheet_count": self.sheet_count,
            "stored_at": self.stored_at,
            "uploaded_at": self.uploaded_at.isoformat().replace("+00:00", "Z"),
            "record_count": self.record_count,
            "cache_version": self.cache_version,
        }


def validate_upload(file_name: str | None, data: bytes) -> int:
    """Check an uploaded workbook; returns its sheet count.

    Raises:
        ValidationError: missing name, wrong extension, empty or undecodable bytes
    """
    if not file_name:
        raise ValidationError("no file provided")
    if PurePath(file_name.lower()).suffix not in ALLOWED_EXTENSIONS:
        raise ValidationError("file must be an Excel workbook (.xlsx or .xls)")
    if not data:
        raise ValidationError("uploaded file is empty")
    try:
        xls = open_workbook(data)
    except DecodeError as e:
        raise ValidationError(f"file is not a valid Excel workbook: {e}") from e
    return len(xls.sheet_names)


def handle_upload(
    file_name: str,
    data: bytes,
    source: CatalogSource,
    cache: CacheManager,
    *,
    prewarm: bool = True,
) -> UploadResult:
    """Validate, store and activate a new catalog workbook.

    LoadError from ``source.store`` propagates. A failed pre-warm load is
    logged and reported as ``record_count=None``; the upload itself stands.
    """
    sheet_count = validate_upload(file_name, data)
    logger.info(f"upload accepted: {file_name} ({len(data)} bytes, {sheet_count} sheets)")

    stored_at = source.store(data, file_name)
    cache.invalidate()

    record_count: int | None = None
    if prewarm:
        try:
            record_count = len(cache.get_dataset(force_reload=True))
        except LoadError as e:
            # the new workbook is stored; the next read retries the load
            logger.warning(f"upload stored but catalog reload failed: {e}")

    return UploadResult(
        file_name=file_name,
        size_bytes=len(data),
        sheet_count=sheet_count,
        stored_at=stored_at,
        uploaded_at=datetime.now(UTC),
        record_count=record_count,
        cache_version=cache.version,
    )
