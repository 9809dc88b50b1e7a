from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from ..models.part_record import SENTINEL

logger = logging.getLogger(__name__)

"""Engineering drawing index.

Drawings are JPEG scans stored under a directory tree (one sub-directory per
tower family, by convention). A record's drawing id is the file stem, so the
index maps ``stem -> public URL``. The index can be written to JSON once at
deploy time and read back by the server; without a file it is built from the
directory on first lookup.
"""

__all__ = [
    "build_drawing_index",
    "write_drawing_index",
    "DrawingIndex",
]


def build_drawing_index(directory: Path, url_prefix: str = "/planos") -> dict[str, str]:
    """Walk ``directory`` recursively and index every .jpg by file stem.

    Paths are visited in sorted order; when a stem repeats the first path wins.
    A missing directory yields an empty index.
    """
    index: dict[str, str] = {}
    if not directory.is_dir():
        logger.warning(f"drawings directory not found: {directory}")
        return index
    prefix = url_prefix.rstrip("/")
    for path in sorted(directory.rglob("*")):
        if not path.is_file() or path.suffix.lower() != ".jpg":
            continue
        if path.stem in index:
            continue
        index[path.stem] = f"{prefix}/{path.relative_to(directory).as_posix()}"
    return index


def write_drawing_index(directory: Path, output: Path, url_prefix: str = "/planos") -> int:
    """Build the index and write it as JSON; returns the number of drawings."""
    index = build_drawing_index(directory, url_prefix)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(index, indent=2, ensure_ascii=False), encoding="utf-8")
    return len(index)


class DrawingIndex:
    """Lazily loaded drawing lookup used by the HTTP layer."""

    def __init__(self, directory: Path, url_prefix: str = "/planos", index_path: Path | None = None) -> None:
        self.directory = directory
        self.url_prefix = url_prefix
        self.index_path = index_path
        self._index: dict[str, str] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if self.index_path is not None and self.index_path.exists():
            try:
                data = json.loads(self.index_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                logger.warning(f"drawing index {self.index_path} unreadable, rebuilding: {e}")
            else:
                return {str(k): str(v) for k, v in data.items()}
        return build_drawing_index(self.directory, self.url_prefix)

    def refresh(self) -> int:
        with self._lock:
            self._index = index = self._load()
        return len(index)

    def _current(self) -> dict[str, str]:
        index = self._index
        if index is None:
            with self._lock:
                index = self._index
                if index is None:
                    self._index = index = self._load()
        return index

    def lookup(self, drawing_id: str | None) -> str | None:
        """Public URL for a drawing id, or None when unknown."""
        if not drawing_id or drawing_id.strip() in ("", SENTINEL):
            return None
        return self._current().get(drawing_id.strip())
