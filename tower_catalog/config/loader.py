from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/catalog.yml``)
- Validate against ``catalog_schema.json``
- Apply defaults for optional sections
- Apply environment overrides (values loaded from ``.env`` by the CLI)

Environment variables take precedence over the file:
  EXCEL_BLOB_URL          remote workbook URL (switches to the blob source)
  EXCEL_BLOB_UPLOAD_URL   URL receiving uploaded workbooks (HTTP PUT)
  BLOB_READ_WRITE_TOKEN   bearer token for the upload URL
"""

SCHEMA_PATH = Path(__file__).parent / "catalog_schema.json"
DEFAULT_CONFIG_PATH = Path("config/catalog.yml")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_TIMEOUT_SECONDS = 30.0


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class SourceConfig:
    local_path: Path
    blob_url: str | None = None
    blob_upload_url: str | None = None
    blob_token: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = DEFAULT_TTL_SECONDS


@dataclass(frozen=True)
class DrawingsConfig:
    directory: Path = Path("public/planos")
    url_prefix: str = "/planos"
    index_path: Path | None = None


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 5000
    max_upload_mb: float = 50.0


@dataclass(frozen=True)
class CatalogConfig:
    source: SourceConfig
    cache: CacheConfig = CacheConfig()
    drawings: DrawingsConfig = DrawingsConfig()
    server: ServerConfig = ServerConfig()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or invalid, or config data violating it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def config_from_dict(data: dict[str, Any], env: Mapping[str, str] | None = None) -> CatalogConfig:
    """Build a CatalogConfig from already-parsed config data."""
    _validate_config_schema(data)
    env = os.environ if env is None else env

    src = data["source"]
    source = SourceConfig(
        local_path=Path(src["local_path"]),
        blob_url=env.get("EXCEL_BLOB_URL") or src.get("blob_url"),
        blob_upload_url=env.get("EXCEL_BLOB_UPLOAD_URL") or src.get("blob_upload_url"),
        blob_token=env.get("BLOB_READ_WRITE_TOKEN") or None,
        timeout_seconds=float(src.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
    )

    cache_raw = data.get("cache") or {}
    cache = CacheConfig(ttl_seconds=float(cache_raw.get("ttl_seconds", DEFAULT_TTL_SECONDS)))

    dr = data.get("drawings") or {}
    index_path = dr.get("index_path")
    drawings = DrawingsConfig(
        directory=Path(dr.get("directory", "public/planos")),
        url_prefix=dr.get("url_prefix", "/planos"),
        index_path=Path(index_path) if index_path else None,
    )

    srv = data.get("server") or {}
    server = ServerConfig(
        host=srv.get("host", "127.0.0.1"),
        port=int(srv.get("port", 5000)),
        max_upload_mb=float(srv.get("max_upload_mb", 50.0)),
    )
    return CatalogConfig(source=source, cache=cache, drawings=drawings, server=server)


def load_config(path: Path, env: Mapping[str, str] | None = None) -> CatalogConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")
    return config_from_dict(data, env=env)
