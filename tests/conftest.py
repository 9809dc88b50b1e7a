# Shared pytest fixtures
from __future__ import annotations

import io
import struct
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

from tower_catalog.config.loader import CacheConfig, CatalogConfig, DrawingsConfig, SourceConfig
from tower_catalog.logging.init import reset_logging

HEADER = [
    "ID Item", "Texto breve del material", "Cabeza", "Parte (Division)", "Cuerpo", "Tramo",
    "Posición", "Descripción", "Long 2 (Principal)", "Cantidad x Torre", "Peso Unitario",
    "PLANO", "Mod Plano",
]


def workbook_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    """Serialize {sheet name: rows} into .xlsx bytes (no header/index added)."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet, header=False, index=False)
    return buf.getvalue()


def _biff_record(code: int, data: bytes = b"") -> bytes:
    return struct.pack("<HH", code, len(data)) + data


def _biff_unicode(text: str, lenlen: str) -> bytes:
    raw = text.encode("utf-16-le")
    return struct.pack("<" + lenlen + "B", len(raw) // 2, 0x01) + raw


def _cfb_dir_entry(name: str, etype: int, child: int = -1, first_sid: int = -1, size: int = 0) -> bytes:
    raw = (name + "\0").encode("utf-16-le") if name else b""
    entry = raw.ljust(64, b"\0") + struct.pack("<HBBiii", len(raw), etype, 1, -1, -1, child)
    entry += b"\0" * 36 + struct.pack("<iI", first_sid, size)
    return entry.ljust(128, b"\0")


def xls_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    """Serialize {sheet name: rows} into legacy .xls (BIFF8) bytes.

    Cells are written as text (LABEL records); None cells are left empty.
    The Workbook stream sits in an OLE2 container: header, one allocation
    sector, one directory sector, then the stream padded to 4096 bytes or
    more so no mini-stream is needed.
    """
    bof = struct.pack("<HHHHII", 0x0600, 0x0005, 0x0DBB, 0x07CC, 0, 0x06)
    sheet_bof = struct.pack("<HHHHII", 0x0600, 0x0010, 0x0DBB, 0x07CC, 0, 0x06)
    names = list(sheets)
    bodies = []
    for name in names:
        body = _biff_record(0x0809, sheet_bof)
        for r, row in enumerate(sheets[name]):
            for c, value in enumerate(row):
                if value is None:
                    continue
                body += _biff_record(0x0204, struct.pack("<HHH", r, c, 0) + _biff_unicode(str(value), "H"))
        bodies.append(body + _biff_record(0x000A))

    globals_len = len(_biff_record(0x0809, bof)) + len(_biff_record(0x000A))
    globals_len += sum(len(_biff_record(0x0085, b"\0" * 6 + _biff_unicode(n, "B"))) for n in names)
    stream = _biff_record(0x0809, bof)
    offset = globals_len
    for name, body in zip(names, bodies):
        stream += _biff_record(0x0085, struct.pack("<iBB", offset, 0, 0) + _biff_unicode(name, "B"))
        offset += len(body)
    stream += _biff_record(0x000A) + b"".join(bodies)

    size = max(4096, -(-len(stream) // 512) * 512)
    stream = stream.ljust(size, b"\0")
    n_secs = size // 512
    # sector 0: allocation table, 1: directory, 2..: Workbook stream
    sat = [-3, -2] + list(range(3, 2 + n_secs)) + [-2]
    sat += [-1] * (128 - len(sat))
    header = b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1" + b"\0" * 16
    header += struct.pack("<HH", 0x003E, 3) + b"\xFE\xFF" + struct.pack("<HH", 9, 6) + b"\0" * 10
    header += struct.pack("<iiiiiiii", 1, 1, 0, 4096, -2, 0, -2, 0)
    header += struct.pack("<109i", 0, *([-1] * 108))
    directory = _cfb_dir_entry("Root Entry", 5, child=1, first_sid=-2)
    directory += _cfb_dir_entry("Workbook", 2, first_sid=2, size=size)
    directory += _cfb_dir_entry("", 0) * 2
    return header + struct.pack("<128i", *sat) + directory + stream


def catalog_sheets() -> dict[str, list[list[object]]]:
    """A small catalog: two parsed sheets and one notes sheet without header."""
    return {
        "AJIKAWA (AC - HB)": [
            ["DESGLOSE TORRE AC", None, None, None, None, None, None, None, None, None, None, None, None],
            HEADER,
            ["M1", "ANGULO 50X5", "C1", "BSUP", "K0", "T1", "101", "Angulo principal", "1200", "2", "5.5", "AC-01", "A"],
            ["M2", "ANGULO 60X6", "C1", "PATA 3", "K0", "T1", "102", "Pata montante", "3000", "3", "10", "AC-02", None],
            ["M3", "PERNO 16", "C1", "TORNILLO", "K0", "t2", "103", "Perno galvanizado", None, "4", "0.25", None, None],
            [None, None, None, None, None, None, None, "ab", None, "1", "1", None, None],
        ],
        "SADELEC (AS)": [
            HEADER,
            ["S1", "PLACA 8", "C2", "BINF", "K1", "T1", "201", "Placa base", "400", "1", "12", "AS-01", None],
            ["S2", "ANGULO 45X4", "C2", "PATA 6", "K1", "T2", "202", "Pata extension", "1500", "1,200", "2", "AS-02", None],
        ],
        "Notas": [
            ["Revision 3"],
            ["Sin datos"],
        ],
    }


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _fresh_logging():
    # each test gets a handler bound to its own captured stdout
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "public" / "planos").mkdir(parents=True)
    monkeypatch.chdir(tmp_path)
    for var in ("EXCEL_BLOB_URL", "EXCEL_BLOB_UPLOAD_URL", "BLOB_READ_WRITE_TOKEN", "CATALOG_CONFIG"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source:
  local_path: ./data/catalog.xlsx
  timeout_seconds: 5
cache:
  ttl_seconds: 300
drawings:
  directory: ./public/planos
  url_prefix: /planos
server:
  port: 5055
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "catalog.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_workbook() -> Callable[..., Path]:
    def _make(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(workbook_bytes(sheets))
        return path

    return _make


@pytest.fixture()
def catalog_workbook(temp_workdir: Path, make_workbook) -> Path:
    return make_workbook(temp_workdir / "data" / "catalog.xlsx", catalog_sheets())


@pytest.fixture()
def catalog_config(temp_workdir: Path) -> CatalogConfig:
    return CatalogConfig(
        source=SourceConfig(local_path=temp_workdir / "data" / "catalog.xlsx"),
        cache=CacheConfig(ttl_seconds=300),
        drawings=DrawingsConfig(directory=temp_workdir / "public" / "planos"),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
