from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from conftest import catalog_sheets, workbook_bytes, xls_bytes
from tower_catalog.config.loader import SourceConfig
from tower_catalog.errors import DecodeError, SourceUnavailable, UpstreamUnavailable
from tower_catalog.logging.init import setup_logging
from tower_catalog.services.loader import (
    NO_CACHE_HEADERS,
    DatasetLoader,
    LocalFileSource,
    RemoteBlobSource,
    load_dataset,
    source_from_config,
)


class FakeSession:
    """Records requests and replays a canned response or exception."""

    def __init__(self, response=None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[tuple[str, str, dict]] = []

    def _reply(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def get(self, url, **kwargs):
        return self._reply("GET", url, **kwargs)

    def put(self, url, **kwargs):
        return self._reply("PUT", url, **kwargs)


def _response(status: int = 200, content: bytes = b"", payload=None):
    def _json():
        if payload is None:
            raise ValueError("no json")
        return payload

    return SimpleNamespace(
        ok=200 <= status < 300, status_code=status, reason="Reason", content=content, json=_json
    )


class TestLocalSource:
    def test_load_local_workbook(self, catalog_workbook):
        result = load_dataset(LocalFileSource(catalog_workbook))
        assert [r.id for r in result.records] == ["M1", "M2", "M3", "S1", "S2"]
        assert result.total_sheets == 3
        assert result.skipped_sheets == 1
        assert result.dropped_rows == 1
        assert result.size_bytes == catalog_workbook.stat().st_size
        assert isinstance(result.records, tuple)

    def test_records_carry_sheet_derived_fields(self, catalog_workbook):
        records = load_dataset(LocalFileSource(catalog_workbook)).records
        m1, s2 = records[0], records[-1]
        assert (m1.type, m1.manufacturer, m1.source_sheet) == ("AC", "AJIKAWA HB", "AJIKAWA (AC - HB)")
        assert (s2.type, s2.manufacturer) == ("AS", "SADELEC")
        assert s2.quantity_per_tower == 1200
        assert m1.length2 == "1200"

    def test_load_legacy_xls_workbook(self, catalog_workbook, temp_workdir):
        path = temp_workdir / "data" / "catalogo.xls"
        path.write_bytes(xls_bytes(catalog_sheets()))
        legacy = load_dataset(LocalFileSource(path))
        modern = load_dataset(LocalFileSource(catalog_workbook))
        assert [r.id for r in legacy.records] == ["M1", "M2", "M3", "S1", "S2"]
        assert legacy.records == modern.records
        assert legacy.skipped_sheets == 1

    def test_missing_file(self, temp_workdir):
        with pytest.raises(SourceUnavailable, match="not found"):
            load_dataset(LocalFileSource(temp_workdir / "data" / "nope.xlsx"))

    def test_corrupt_file(self, temp_workdir):
        path = temp_workdir / "data" / "broken.xlsx"
        path.write_bytes(b"this is not excel")
        with pytest.raises(DecodeError):
            load_dataset(LocalFileSource(path))

    def test_store_replaces_workbook(self, temp_workdir):
        path = temp_workdir / "data" / "catalog.xlsx"
        path.write_bytes(b"old")
        stored = LocalFileSource(path).store(b"new", "upload.xlsx")
        assert stored == str(path)
        assert path.read_bytes() == b"new"
        assert [p.name for p in path.parent.iterdir()] == ["catalog.xlsx"]

    def test_summary_is_logged(self, catalog_workbook, capsys):
        setup_logging()
        load_dataset(LocalFileSource(catalog_workbook))
        out = capsys.readouterr().out
        summary = [line for line in out.splitlines() if line.startswith("SUMMARY ")]
        assert len(summary) == 1
        assert "sheets=3 parsed=2 skipped=1" in summary[0]
        assert "records=5" in summary[0]


class TestRemoteSource:
    def test_fetch_defeats_http_caches(self):
        session = FakeSession(_response(content=b"bytes"))
        source = RemoteBlobSource("https://blob.example/catalog.xlsx", timeout_seconds=7, session=session)

        assert source.fetch_bytes() == b"bytes"
        source.fetch_bytes()

        (_, url, first), (_, _, second) = session.calls
        assert url == "https://blob.example/catalog.xlsx"
        assert first["headers"] == NO_CACHE_HEADERS
        assert first["timeout"] == 7
        assert set(first["params"]) == {"t", "r"}
        assert first["params"]["r"] != second["params"]["r"]

    def test_non_2xx_is_upstream_unavailable(self):
        source = RemoteBlobSource("https://blob.example/x.xlsx", session=FakeSession(_response(503)))
        with pytest.raises(UpstreamUnavailable) as excinfo:
            source.fetch_bytes()
        assert excinfo.value.status_code == 503

    @pytest.mark.parametrize(
        "exc", [requests.Timeout("slow"), requests.ConnectionError("refused")]
    )
    def test_transport_errors(self, exc):
        source = RemoteBlobSource("https://blob.example/x.xlsx", session=FakeSession(exc=exc))
        with pytest.raises(UpstreamUnavailable):
            source.fetch_bytes()

    def test_load_from_remote(self):
        data = workbook_bytes(catalog_sheets())
        source = RemoteBlobSource("https://blob.example/x.xlsx", session=FakeSession(_response(content=data)))
        assert len(load_dataset(source).records) == 5

    def test_store_puts_with_token(self):
        session = FakeSession(_response(payload={"url": "https://blob.example/new.xlsx"}))
        source = RemoteBlobSource(
            "https://blob.example/x.xlsx",
            upload_url="https://blob.example/upload",
            token="secret",
            session=session,
        )
        assert source.store(b"data", "new.xlsx") == "https://blob.example/new.xlsx"
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("PUT", "https://blob.example/upload")
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["data"] == b"data"

    def test_store_without_upload_url(self):
        source = RemoteBlobSource("https://blob.example/x.xlsx", session=FakeSession())
        with pytest.raises(SourceUnavailable):
            source.store(b"data", "new.xlsx")


def test_source_from_config(tmp_path):
    local = source_from_config(SourceConfig(local_path=tmp_path / "c.xlsx"))
    assert isinstance(local, LocalFileSource)
    remote = source_from_config(SourceConfig(local_path=tmp_path / "c.xlsx", blob_url="https://b/x.xlsx"))
    assert isinstance(remote, RemoteBlobSource)
    assert remote.describe() == "blob https://b/x.xlsx"


def test_dataset_loader_remembers_last_result(catalog_workbook):
    loader = DatasetLoader(LocalFileSource(catalog_workbook))
    assert loader.last_result is None
    records = loader()
    assert len(records) == 5
    assert loader.last_result is not None
    assert loader.last_result.records == records


def test_dataset_loader_logs_and_reraises(temp_workdir, capsys):
    setup_logging()
    loader = DatasetLoader(LocalFileSource(temp_workdir / "missing.xlsx"))
    with pytest.raises(SourceUnavailable):
        loader()
    assert "ERROR load failed (SourceUnavailable)" in capsys.readouterr().out
