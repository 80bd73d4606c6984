"""Azure Functions entry point — climate-ops imagery-to-polygon pipeline.

Registers the HTTP API using the Python v2 programming model.

All business logic lives in the climate_ops package. This file is purely
the wiring layer between HTTP bindings and application code.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

import azure.functions as func

from climate_ops.core.config import PipelineConfig
from climate_ops.core.exceptions import PipelineError
from climate_ops.orchestrators.ingress import (
    config_summary,
    error_response,
    handle_analyze,
    handle_ingest,
    handle_polygons,
    handle_precache,
    handle_preprocess,
    handle_token_test,
    handle_upload,
    parse_json_body,
)
from climate_ops.orchestrators.pipeline import ClimateOpsPipeline

if TYPE_CHECKING:
    from collections.abc import Callable

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

logger = logging.getLogger("climate_ops.function_app")

_pipeline: ClimateOpsPipeline | None = None
_pipeline_lock = threading.Lock()

_RAW_BODY_PREFIXES = ("image/", "application/octet-stream")


def get_pipeline() -> ClimateOpsPipeline:
    """Build the pipeline from app settings on first use (fails fast on bad config)."""
    global _pipeline  # noqa: PLW0603
    with _pipeline_lock:
        if _pipeline is None:
            config = PipelineConfig.from_env()
            _pipeline = ClimateOpsPipeline.from_config(config)
            logger.info(
                "Pipeline initialised | storage=%s | placeholder_mode=%s",
                config.storage_type,
                _pipeline.placeholder_mode,
            )
        return _pipeline


def _json_response(body: dict[str, Any], status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(body),
        status_code=status_code,
        mimetype="application/json",
    )


def _run(route: str, handler: Callable[[], dict[str, Any]]) -> func.HttpResponse:
    """Invoke *handler*, mapping pipeline errors to structured responses."""
    try:
        return _json_response(handler())
    except PipelineError as exc:
        status, body = error_response(exc)
        return _json_response(body, status)
    except Exception:
        logger.exception("Unhandled error | route=%s", route)
        return _json_response(
            {"ok": False, "error": {"category": "permanent", "code": "INTERNAL_ERROR"}},
            500,
        )


# ---------------------------------------------------------------------------
# HTTP: pipeline stages
# ---------------------------------------------------------------------------


@app.function_name("ingest")
@app.route(route="ingest", methods=["POST"])
def ingest(req: func.HttpRequest) -> func.HttpResponse:
    """Acquire imagery for ``{bbox, date}``, or store a raw image body as an upload."""
    content_type = req.headers.get("content-type", "")

    def _handle() -> dict[str, Any]:
        if content_type.lower().startswith(_RAW_BODY_PREFIXES):
            return handle_upload(
                get_pipeline(),
                req.get_body(),
                content_type=content_type,
                sensor_id=req.params.get("sensor", ""),
            )
        return handle_ingest(get_pipeline(), parse_json_body(req.get_body()))

    return _run("ingest", _handle)


@app.function_name("preprocess")
@app.route(route="preprocess", methods=["POST"])
def preprocess(req: func.HttpRequest) -> func.HttpResponse:
    """Normalise and resize a stored artifact."""
    return _run("preprocess", lambda: handle_preprocess(get_pipeline(), parse_json_body(req.get_body())))


@app.function_name("polygons")
@app.route(route="polygons", methods=["POST"])
def polygons(req: func.HttpRequest) -> func.HttpResponse:
    """Extract risk polygons from a stored artifact as GeoJSON."""
    return _run("polygons", lambda: handle_polygons(get_pipeline(), parse_json_body(req.get_body())))


@app.function_name("analyze")
@app.route(route="analyze", methods=["POST"])
def analyze(req: func.HttpRequest) -> func.HttpResponse:
    """Ingest, preprocess, extract and score in one call."""
    return _run("analyze", lambda: handle_analyze(get_pipeline(), parse_json_body(req.get_body())))


# ---------------------------------------------------------------------------
# HTTP: catalog and diagnostics
# ---------------------------------------------------------------------------


@app.function_name("list_artifacts")
@app.route(route="list", methods=["GET"])
def list_artifacts(req: func.HttpRequest) -> func.HttpResponse:
    """List stored artifact names."""
    return _run("list", lambda: {"ok": True, "artifacts": get_pipeline().list_artifacts()})


@app.function_name("config")
@app.route(route="config", methods=["GET"])
def config(req: func.HttpRequest) -> func.HttpResponse:
    """Non-secret configuration summary."""
    return _run("config", lambda: config_summary(get_pipeline().config))


@app.function_name("token_test")
@app.route(route="token-test", methods=["POST"])
def token_test(req: func.HttpRequest) -> func.HttpResponse:
    """Check that provider credentials resolve to a bearer token."""
    return _run("token-test", lambda: handle_token_test(get_pipeline(), parse_json_body(req.get_body())))


@app.function_name("precache")
@app.route(route="precache", methods=["POST"])
def precache(req: func.HttpRequest) -> func.HttpResponse:
    """Ingest a batch of AOIs and write ``catalog.json``."""
    return _run("precache", lambda: handle_precache(get_pipeline(), parse_json_body(req.get_body())))
