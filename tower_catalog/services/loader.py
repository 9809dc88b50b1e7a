from __future__ import annotations

import logging
import os
import tempfile
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import requests

from ..config.loader import SourceConfig
from ..errors import LoadError, SourceUnavailable, UpstreamUnavailable
from ..excel.reader import read_workbook
from ..excel.sheet_parser import parse_sheet_detailed
from ..logging.init import log_summary
from ..models.load_result import LoadResult, SheetStat
from ..models.part_record import PartRecord
from .progress import ProgressTracker
from .summary import summary_fields

logger = logging.getLogger(__name__)

"""Dataset loader: workbook bytes -> immutable tuple of part records.

Sources
-------
- LocalFileSource: a workbook on disk (development, single-host deployments)
- RemoteBlobSource: a workbook published at a blob storage URL

Freshness is decided by the cache manager alone, so remote fetches defeat
every HTTP-level cache: each request carries a unique query string and
no-cache request headers.
"""

__all__ = [
    "CatalogSource",
    "LocalFileSource",
    "RemoteBlobSource",
    "DatasetLoader",
    "load_dataset",
    "source_from_config",
]

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class CatalogSource(Protocol):
    def describe(self) -> str: ...

    def fetch_bytes(self) -> bytes: ...

    def store(self, data: bytes, file_name: str) -> str: ...


class LocalFileSource:
    """Workbook stored on the local filesystem."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def describe(self) -> str:
        return f"file {self.path}"

    def fetch_bytes(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError as e:
            raise SourceUnavailable(f"workbook not found: {self.path}") from e
        except OSError as e:
            raise SourceUnavailable(f"workbook not readable: {self.path}: {e}") from e

    def store(self, data: bytes, file_name: str) -> str:
        """Replace the workbook atomically; readers never see a half-written file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".upload-", suffix=self.path.suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, self.path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise SourceUnavailable(f"could not write workbook {self.path}: {e}") from e
        return str(self.path)


class RemoteBlobSource:
    """Workbook published at a blob storage URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        upload_url: str | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.upload_url = upload_url
        self.token = token
        self._session = session or requests.Session()

    def describe(self) -> str:
        return f"blob {self.url}"

    def fetch_bytes(self) -> bytes:
        cache_buster = {"t": str(int(time.time() * 1000)), "r": uuid.uuid4().hex}
        try:
            resp = self._session.get(
                self.url,
                params=cache_buster,
                headers=NO_CACHE_HEADERS,
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as e:
            raise UpstreamUnavailable(f"blob fetch timed out after {self.timeout_seconds}s") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"blob fetch failed: {e}") from e
        if not resp.ok:
            raise UpstreamUnavailable(
                f"blob fetch returned HTTP {resp.status_code} {resp.reason}", status_code=resp.status_code
            )
        return resp.content

    def store(self, data: bytes, file_name: str) -> str:
        """PUT the workbook to the configured upload URL, returning its public URL."""
        if not self.upload_url:
            raise SourceUnavailable("remote source has no upload URL configured")
        headers = {"Content-Type": XLSX_CONTENT_TYPE, "x-add-random-suffix": "0"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self._session.put(self.upload_url, data=data, headers=headers, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"blob upload failed: {e}") from e
        if not resp.ok:
            raise UpstreamUnavailable(
                f"blob upload returned HTTP {resp.status_code} {resp.reason}", status_code=resp.status_code
            )
        try:
            return str(resp.json().get("url") or self.url)
        except ValueError:
            return self.url


def source_from_config(cfg: SourceConfig) -> CatalogSource:
    """Remote blob when a blob URL is configured, otherwise the local workbook."""
    if cfg.blob_url:
        return RemoteBlobSource(
            cfg.blob_url,
            timeout_seconds=cfg.timeout_seconds,
            upload_url=cfg.blob_upload_url,
            token=cfg.blob_token,
        )
    return LocalFileSource(cfg.local_path)


def load_dataset(source: CatalogSource, *, show_progress: bool = False) -> LoadResult:
    """Fetch, decode and parse the catalog workbook.

    Sheets are parsed in workbook order and their records concatenated in
    that order. Sheets without a recognisable header contribute nothing.

    Raises:
        SourceUnavailable / UpstreamUnavailable: bytes could not be fetched
        DecodeError: bytes are not a readable workbook
    """
    start_time = datetime.now(UTC)
    t0 = time.perf_counter()
    logger.info(f"Loading catalog from {source.describe()}")

    data = source.fetch_bytes()
    logger.debug(f"fetched {len(data) / 1024 / 1024:.2f} MB")
    grids = read_workbook(data)

    records: list[PartRecord] = []
    stats: list[SheetStat] = []
    with ProgressTracker(len(grids), enabled=show_progress) as progress:
        for sheet_name, rows in grids.items():
            progress.start_sheet(sheet_name)
            parsed = parse_sheet_detailed(sheet_name, rows)
            if parsed.stat.skipped:
                logger.debug(f"sheet '{sheet_name}' skipped: no header in first rows")
            records.extend(parsed.records)
            stats.append(parsed.stat)
            progress.finish_sheet(records=parsed.stat.records)
            progress.set_postfix(records=len(records))

    result = LoadResult(
        records=tuple(records),
        sheet_stats=stats,
        source=source.describe(),
        size_bytes=len(data),
        start_time=start_time,
        end_time=datetime.now(UTC),
        elapsed_seconds=time.perf_counter() - t0,
    )
    log_summary(summary_fields(result))
    return result


class DatasetLoader:
    """Callable handed to the cache manager; remembers the last LoadResult."""

    def __init__(self, source: CatalogSource, *, show_progress: bool = False) -> None:
        self.source = source
        self.show_progress = show_progress
        self.last_result: LoadResult | None = None

    def __call__(self) -> tuple[PartRecord, ...]:
        try:
            result = load_dataset(self.source, show_progress=self.show_progress)
        except LoadError as e:
            logger.error(f"load failed ({type(e).__name__}): {e}")
            raise
        self.last_result = result
        return result.records
