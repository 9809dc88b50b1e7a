from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from ..errors import LoadError
from ..models.part_record import PartRecord

logger = logging.getLogger(__name__)

"""Dataset cache with TTL, explicit invalidation and a version counter.

The cached dataset is an immutable tuple published by a single reference
assignment, so request threads iterating an old tuple are unaffected by a
reload. Reloads are serialized: callers that queued behind an in-flight load
reuse its outcome instead of fetching the workbook again.
"""

__all__ = [
    "CacheInfo",
    "CacheManager",
    "DEFAULT_TTL_SECONDS",
]

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class _Entry:
    records: tuple[PartRecord, ...]
    loaded_at: float


@dataclass(frozen=True)
class CacheInfo:
    """Read-only snapshot of the cache state."""
    has_data: bool
    record_count: int
    age_seconds: int
    is_expired: bool
    time_to_expire: int
    version: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CacheManager:
    """Holds the catalog dataset between requests.

    Args:
        load: callable returning the freshly loaded records; raises LoadError
        ttl_seconds: maximum age of a cached dataset
        clock: monotonic time source (injected by tests)
    """

    def __init__(
        self,
        load: Callable[[], Sequence[PartRecord]],
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._load = load
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: _Entry | None = None
        self._version = 0
        self._attempts = 0  # finished load attempts, successful or not
        self._last_error: LoadError | None = None

    @property
    def version(self) -> int:
        return self._version

    def _is_fresh(self, entry: _Entry) -> bool:
        return (self._clock() - entry.loaded_at) < self.ttl_seconds

    def get_dataset(self, force_reload: bool = False) -> tuple[PartRecord, ...]:
        """Return the cached dataset, loading it when missing, expired or forced.

        On LoadError the previous dataset is returned if there is one;
        otherwise the error propagates.
        """
        entry = self._entry
        if not force_reload and entry is not None and self._is_fresh(entry):
            return entry.records

        observed = self._attempts
        with self._lock:
            if self._attempts != observed:
                # a load finished while we were waiting for the lock
                if self._entry is not None:
                    return self._entry.records
                if self._last_error is not None:
                    raise self._last_error

            entry = self._entry
            if not force_reload and entry is not None and self._is_fresh(entry):
                return entry.records

            logger.info(f"{'forced' if force_reload else 'cache miss'}: reloading catalog (v{self._version})")
            try:
                records = tuple(self._load())
            except LoadError as e:
                self._attempts += 1
                self._last_error = e
                if entry is not None:
                    logger.warning(f"reload failed, serving stale dataset ({len(entry.records)} records): {e}")
                    return entry.records
                raise

            self._entry = _Entry(records=records, loaded_at=self._clock())
            self._attempts += 1
            self._last_error = None
            logger.info(f"cache updated: {len(records)} records (v{self._version})")
            return records

    def invalidate(self) -> None:
        """Drop the cached dataset so the next read reloads regardless of TTL."""
        with self._lock:
            self._entry = None
            self._last_error = None
            self._version += 1
        logger.info(f"cache invalidated (v{self._version})")

    def info(self) -> CacheInfo:
        entry = self._entry
        if entry is None:
            return CacheInfo(
                has_data=False,
                record_count=0,
                age_seconds=0,
                is_expired=False,
                time_to_expire=0,
                version=self._version,
            )
        age = self._clock() - entry.loaded_at
        expired = age >= self.ttl_seconds
        return CacheInfo(
            has_data=True,
            record_count=len(entry.records),
            age_seconds=int(age),
            is_expired=expired,
            time_to_expire=0 if expired else int(self.ttl_seconds - age),
            version=self._version,
        )
