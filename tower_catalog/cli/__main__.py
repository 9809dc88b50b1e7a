from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from tower_catalog.config.loader import DEFAULT_CONFIG_PATH, CatalogConfig, ConfigError, load_config
from tower_catalog.errors import LoadError
from tower_catalog.logging.init import set_debug, setup_logging

"""CLI entrypoint.

Commands:
- load            fetch + parse the configured workbook, print the SUMMARY line
- inspect         print each sheet's detected header and first parsed records
- serve           run the HTTP API
- index-drawings  write the drawing index JSON

Config resolution: --config, then $CATALOG_CONFIG, then config/catalog.yml.
``.env`` is loaded first so blob URLs and tokens can live outside the YAML.
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1

DEFAULT_DRAWING_INDEX = Path("public/indice-planos.json")


def _load_env_file(path: Path, override: bool = False) -> None:
    """Load .env using python-dotenv; a missing file is not an error."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="tower-catalog", description="Transmission tower parts catalog")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help="Path to catalog.yml")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("load", help="Load the workbook and print a SUMMARY line")

    insp = sub.add_parser("inspect", help="Print sheet headers & first parsed records then exit")
    insp.add_argument("--rows", type=int, default=3, help="Records to show per sheet")

    srv = sub.add_parser("serve", help="Run the HTTP API")
    srv.add_argument("--host", default=None)
    srv.add_argument("--port", type=int, default=None)

    idx = sub.add_parser("index-drawings", help="Write the drawing index JSON")
    idx.add_argument("--output", type=Path, default=None)
    return p.parse_args(argv)


def _cmd_load(cfg: CatalogConfig) -> int:
    from tower_catalog.services.loader import load_dataset, source_from_config

    logger = setup_logging()
    try:
        result = load_dataset(source_from_config(cfg.source), show_progress=True)
    except LoadError as e:
        logger.error(f"load: {e}")
        return EXIT_FATAL
    for stat in result.sheet_stats:
        if stat.skipped:
            logger.warning(f"sheet skipped (no header): {stat.sheet_name}")
    return EXIT_SUCCESS


def _cmd_inspect(cfg: CatalogConfig, rows: int) -> int:
    from tower_catalog.excel.reader import read_workbook
    from tower_catalog.excel.sheet_parser import parse_sheet_detailed
    from tower_catalog.services.loader import source_from_config

    logger = setup_logging()
    source = source_from_config(cfg.source)
    try:
        grids = read_workbook(source.fetch_bytes())
    except LoadError as e:
        logger.error(f"inspect: {e}")
        return EXIT_FATAL
    print(f"SOURCE: {source.describe()}")
    for name, grid in grids.items():
        parsed = parse_sheet_detailed(name, grid)
        if parsed.stat.skipped:
            print(f"  SHEET: {name} skipped (no header in first rows)")
            continue
        header = [str(c) for c in grid[parsed.stat.header_row] if c is not None]
        print(
            f"  SHEET: {name} header_row={parsed.stat.header_row} cols={header} "
            f"records={parsed.stat.records} dropped={parsed.stat.dropped_rows}"
        )
        for record in parsed.records[:rows]:
            print("    ", record.to_dict())
    return EXIT_SUCCESS


def _cmd_serve(cfg: CatalogConfig, host: str | None, port: int | None) -> int:
    from tower_catalog.api.app import create_app

    app = create_app(cfg)
    app.run(host=host or cfg.server.host, port=port or cfg.server.port, threaded=True)
    return EXIT_SUCCESS


def _cmd_index_drawings(cfg: CatalogConfig, output: Path | None) -> int:
    from tower_catalog.services.drawings import write_drawing_index

    logger = setup_logging()
    target = output or cfg.drawings.index_path or DEFAULT_DRAWING_INDEX
    count = write_drawing_index(cfg.drawings.directory, target, cfg.drawings.url_prefix)
    logger.info(f"drawing index written: {target} ({count} drawings)")
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # Only read the process arguments when none are given; an explicit [] must
    # not pick up the test runner's own flags.
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"))

    config_path = args.config or Path(os.getenv("CATALOG_CONFIG", str(DEFAULT_CONFIG_PATH)))
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(logger)

    if args.command == "load":
        return _cmd_load(cfg)
    if args.command == "inspect":
        return _cmd_inspect(cfg, args.rows)
    if args.command == "serve":
        return _cmd_serve(cfg, args.host, args.port)
    if args.command == "index-drawings":
        return _cmd_index_drawings(cfg, args.output)
    return EXIT_FATAL  # pragma: no cover (argparse rejects unknown commands)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
