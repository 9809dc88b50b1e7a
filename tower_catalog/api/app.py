"""
Tower Catalog API - Flask application factory

Thin HTTP layer over the catalog services: option lists, search, material
calculation (JSON and Excel), workbook upload, drawing lookup and stats.
Every handler reads the dataset through the cache manager; nothing here
mutates records.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from flask import Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from ..config.loader import CatalogConfig
from ..errors import LoadError
from ..models.part_record import Selection
from ..services.cache import CacheManager
from ..services.calculator import calculate
from ..services.drawings import DrawingIndex
from ..services.export import calculation_to_excel
from ..services.loader import CatalogSource, DatasetLoader, source_from_config
from ..services.query import OPTION_FILTER_FIELDS, SEARCH_FILTER_FIELDS, dataset_stats, get_options, search
from ..services.upload import ValidationError, handle_upload

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

EXPORT_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class CatalogState:
    """Collaborators shared by all request handlers."""
    config: CatalogConfig
    source: CatalogSource
    cache: CacheManager
    drawings: DrawingIndex
    loader: DatasetLoader | None = None


def _state() -> CatalogState:
    return current_app.extensions["tower_catalog"]


def _error(message: str, status: int, error_type: str) -> tuple[Any, int]:
    return jsonify({"success": False, "error": error_type, "message": message}), status


def _query_filters(fields: tuple[str, ...]) -> dict[str, str]:
    return {name: request.args.get(name, "").strip() for name in fields}


def _calculation_request() -> tuple[dict[str, Any], list[Selection]]:
    body = request.get_json(silent=True) or {}
    filters = body.get("filters") if isinstance(body, dict) else None
    raw = (body.get("selections") or body.get("parts")) if isinstance(body, dict) else None
    if not isinstance(filters, dict):
        filters = {}
    if not isinstance(raw, list):
        raw = []
    selections = [Selection.from_payload(item) for item in raw if isinstance(item, dict)]
    return filters, selections


def create_app(
    config: CatalogConfig,
    *,
    source: CatalogSource | None = None,
    cache: CacheManager | None = None,
    drawings: DrawingIndex | None = None,
) -> Flask:
    """Build the Flask app. Collaborators can be injected (tests, custom sources)."""
    app = Flask(__name__)
    CORS(app)
    app.config["MAX_CONTENT_LENGTH"] = int(config.server.max_upload_mb * 1024 * 1024)

    source = source or source_from_config(config.source)
    loader = None
    if cache is None:
        loader = DatasetLoader(source)
        cache = CacheManager(loader, ttl_seconds=config.cache.ttl_seconds)
    drawings = drawings or DrawingIndex(
        config.drawings.directory, config.drawings.url_prefix, config.drawings.index_path
    )
    app.extensions["tower_catalog"] = CatalogState(
        config=config, source=source, cache=cache, drawings=drawings, loader=loader
    )

    @app.after_request
    def _no_store(response):
        if request.path.startswith("/api/"):
            response.headers.update(NO_STORE_HEADERS)
        return response

    @app.errorhandler(LoadError)
    def _load_error(e: LoadError):
        logger.error(f"{request.path}: catalog unavailable: {e}")
        return _error(f"catalog data unavailable: {e}", 500, e.error_type)

    @app.errorhandler(ValidationError)
    def _validation_error(e: ValidationError):
        logger.info(f"{request.path}: rejected: {e}")
        return _error(str(e), 400, e.error_type)

    @app.errorhandler(413)
    def _too_large(e):
        return _error(f"file exceeds {config.server.max_upload_mb:g} MB", 413, "validation_error")

    @app.route("/api/health", methods=["GET"])
    def health_check():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": "Tower Catalog API",
            "cache": _state().cache.info().to_dict(),
        })

    @app.route("/api/options", methods=["GET"])
    def options():
        filters = _query_filters(OPTION_FILTER_FIELDS)
        records = _state().cache.get_dataset()
        return jsonify({"success": True, "options": get_options(records, filters)})

    @app.route("/api/search", methods=["GET"])
    def search_parts():
        filters = _query_filters(SEARCH_FILTER_FIELDS)
        if not filters["part_division"]:
            filters["part_division"] = request.args.get("part", "").strip()
        records = _state().cache.get_dataset()
        results = search(records, filters)
        logger.debug(f"search {filters} -> {len(results)} records")
        return jsonify({
            "success": True,
            "count": len(results),
            "results": [r.to_dict() for r in results],
        })

    @app.route("/api/calculate", methods=["POST"])
    def calculate_materials():
        filters, selections = _calculation_request()
        if not selections:
            return _error("select at least one part", 400, "validation_error")
        result = calculate(_state().cache.get_dataset(), filters, selections)
        logger.info(f"calculate: {len(selections)} parts -> {len(result.lines)} lines")
        return jsonify({"success": True, **result.to_dict()})

    @app.route("/api/calculate/export", methods=["POST"])
    def export_materials():
        filters, selections = _calculation_request()
        if not selections:
            return _error("select at least one part", 400, "validation_error")
        result = calculate(_state().cache.get_dataset(), filters, selections)
        if not result.lines:
            return _error("no data to export", 400, "validation_error")
        stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        return send_file(
            io.BytesIO(calculation_to_excel(result)),
            mimetype=EXPORT_MIMETYPE,
            as_attachment=True,
            download_name=f"materiales-{stamp}.xlsx",
        )

    @app.route("/api/upload-excel", methods=["POST"])
    def upload_excel():
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return _error("no file provided", 400, "validation_error")
        file_name = secure_filename(upload.filename) or upload.filename
        state = _state()
        result = handle_upload(file_name, upload.read(), state.source, state.cache)
        return jsonify({
            "success": True,
            "message": "catalog workbook updated",
            "stats": result.to_dict(),
        })

    @app.route("/api/stats", methods=["GET"])
    def stats():
        state = _state()
        records = state.cache.get_dataset()
        payload: dict[str, Any] = {
            "success": True,
            "stats": dataset_stats(records).to_dict(),
            "cache": state.cache.info().to_dict(),
        }
        last = state.loader.last_result if state.loader is not None else None
        if last is not None:
            payload["last_load"] = {
                "source": last.source,
                "sheets": last.total_sheets,
                "skipped_sheets": last.skipped_sheets,
                "dropped_rows": last.dropped_rows,
                "elapsed_seconds": round(last.elapsed_seconds, 3),
            }
        return jsonify(payload)

    @app.route("/api/drawings/<path:drawing_id>", methods=["GET"])
    def find_drawing(drawing_id: str):
        url = _state().drawings.lookup(drawing_id)
        if url is None:
            return _error("drawing not found", 404, "not_found")
        return jsonify({"success": True, "drawing_id": drawing_id, "url": url})

    return app
