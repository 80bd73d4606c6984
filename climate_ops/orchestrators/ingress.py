"""Thin HTTP boundary helpers for the Azure Functions entrypoints.

Keeps ``function_app.py`` down to route bindings and handoff:

- **parse_json_body** — decode a request body into a dict, raising
  ``ContractError`` for anything else.
- **handle_*** — turn a request body into a pipeline call and a
  JSON-ready ``{"ok": True, ...}`` result.
- **error_response** — map a ``PipelineError`` to an HTTP status and an
  ``{"ok": False, "error": {...}}`` body.
- **config_summary** — non-secret view of the active configuration.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from climate_ops.activities.acquire_imagery import AcquisitionExhaustedError
from climate_ops.core.constants import (
    DEFAULT_MIN_AREA,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_TARGET_WIDTH,
    DEFAULT_THRESHOLD,
)
from climate_ops.core.exceptions import (
    ArtifactNotFoundError,
    ContractError,
    InvalidRequestError,
    RequestCancelledError,
)
from climate_ops.providers.base import ProviderError
from climate_ops.providers.sensors import resolve_sensor_priority
from climate_ops.utils.helpers import parse_number, parse_request_bbox, parse_request_date

if TYPE_CHECKING:
    from climate_ops.core.config import PipelineConfig
    from climate_ops.core.exceptions import PipelineError
    from climate_ops.orchestrators.pipeline import ClimateOpsPipeline

logger = logging.getLogger("climate_ops.orchestrators.ingress")

_TOKEN_PREVIEW_CHARS = 8


# ---------------------------------------------------------------------------
# Request decoding
# ---------------------------------------------------------------------------


def parse_json_body(raw: bytes | str | None) -> dict[str, Any]:
    """Decode a JSON object body; an empty body is an empty dict.

    Raises:
        ContractError: If the body is not a JSON object.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Request body is not valid JSON: {exc}"
        raise ContractError(msg, stage="ingress", code="INVALID_JSON") from exc
    if not isinstance(parsed, dict):
        msg = f"Request body must be a JSON object, got {type(parsed).__name__}"
        raise ContractError(msg, stage="ingress", code="INVALID_INPUT_TYPE")
    return parsed


def _require_artifact_name(body: dict[str, Any]) -> str:
    name = body.get("artifact_name") or body.get("filename")
    if not name or not isinstance(name, str):
        msg = "artifact_name is required"
        raise InvalidRequestError(msg)
    return name


def _parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_ingest(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """``{bbox, date, sensor_priority?, token?, placeholder?}`` -> acquisition result."""
    bbox = parse_request_bbox(body.get("bbox"))
    requested_date = parse_request_date(body.get("date"), default_today=True)
    result = pipeline.ingest(
        bbox,  # type: ignore[arg-type]
        requested_date,
        sensor_priority=resolve_sensor_priority(body.get("sensor_priority")),
        token=str(body.get("token") or ""),
        placeholder=_parse_flag(body.get("placeholder", False)),
    )
    return result.to_dict()


def handle_upload(
    pipeline: ClimateOpsPipeline,
    data: bytes,
    *,
    content_type: str = "",
    sensor_id: str = "",
) -> dict[str, Any]:
    """Raw image body -> ``"upload"`` acquisition result."""
    if sensor_id:
        resolve_sensor_priority([sensor_id])
    return pipeline.ingest_upload(data, content_type=content_type, sensor_id=sensor_id).to_dict()


def handle_preprocess(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """``{artifact_name, bbox?, target_width?, output_format?}`` -> preprocess result."""
    width = parse_number(body.get("target_width"), "target_width", DEFAULT_TARGET_WIDTH)
    if not float(width).is_integer():
        msg = f"target_width must be an integer, got {body.get('target_width')!r}"
        raise InvalidRequestError(msg)
    result = pipeline.preprocess(
        _require_artifact_name(body),
        bbox=parse_request_bbox(body.get("bbox"), required=False),
        target_width=int(width),
        output_format=str(body.get("output_format") or DEFAULT_OUTPUT_FORMAT),
    )
    return {"ok": True, **result.to_dict()}


def handle_polygons(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """``{artifact_name, threshold?, min_area?, bbox?}`` -> FeatureCollection."""
    name = _require_artifact_name(body)
    collection = pipeline.extract(
        name,
        threshold=parse_number(body.get("threshold"), "threshold", DEFAULT_THRESHOLD),
        min_area=parse_number(body.get("min_area"), "min_area", DEFAULT_MIN_AREA),
        bbox=parse_request_bbox(body.get("bbox"), required=False),
    )
    return {
        "ok": True,
        "artifact_name": name,
        "polygon_count": len(collection),
        "collection": collection.to_geojson(),
    }


def handle_analyze(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """``{bbox, date, weather_available?, sensor_priority?, token?}`` -> full analysis."""
    bbox = parse_request_bbox(body.get("bbox"))
    return pipeline.analyze(
        bbox,  # type: ignore[arg-type]
        parse_request_date(body.get("date"), default_today=True),
        weather_available=_parse_flag(body.get("weather_available", False)),
        sensor_priority=resolve_sensor_priority(body.get("sensor_priority")),
        token=str(body.get("token") or ""),
    )


def handle_precache(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """``{aois: [{id, bbox, date}]}`` -> per-AOI catalog."""
    aois = body.get("aois")
    if not isinstance(aois, list) or not all(isinstance(a, dict) for a in aois):
        msg = "aois must be a list of {id, bbox, date} objects"
        raise InvalidRequestError(msg)
    return {"ok": True, "catalog": pipeline.precache_aois(aois)}


def handle_token_test(pipeline: ClimateOpsPipeline, body: dict[str, Any]) -> dict[str, Any]:
    """Resolve a token without fetching imagery; only a short preview is returned."""
    token = pipeline.check_credentials(str(body.get("token") or ""))
    return {"ok": True, "token_preview": token[:_TOKEN_PREVIEW_CHARS] + "..."}


def config_summary(config: PipelineConfig) -> dict[str, Any]:
    """Non-secret view of the active configuration."""
    return {
        "ok": True,
        "provider_configured": bool(config.processing_url),
        "placeholder_mode": not config.processing_url,
        "has_access_token": bool(config.access_token),
        "has_client_credentials": config.has_client_credentials,
        "storage_type": config.storage_type,
        "cache_ttl_seconds": config.cache_ttl_s,
        "fallback_offsets_days": list(config.fallback_offsets_days),
    }


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def status_for_error(exc: PipelineError) -> int:
    """HTTP status for a pipeline error."""
    if isinstance(exc, (ArtifactNotFoundError, AcquisitionExhaustedError)):
        return 404
    if isinstance(exc, RequestCancelledError):
        return 504
    if isinstance(exc, ProviderError):
        return 502
    if exc.category in ("validation", "contract"):
        return 400
    return 500


def error_response(exc: PipelineError) -> tuple[int, dict[str, Any]]:
    """Return ``(status, body)`` for *exc* and log it at a matching level."""
    status = status_for_error(exc)
    log = logger.error if status >= 500 else logger.warning
    log("Request failed | status=%d | code=%s | stage=%s | error=%s", status, exc.code, exc.stage, exc)
    return status, {"ok": False, "error": exc.to_error_dict()}
