"""Tests for the HTTP boundary helpers (request decoding, handlers, error mapping)."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from climate_ops.activities.acquire_imagery import AcquisitionExhaustedError
from climate_ops.activities.preprocess_imagery import PreprocessError
from climate_ops.core.config import PipelineConfig
from climate_ops.core.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    ContractError,
    InvalidRequestError,
    PipelineError,
    RasterDecodeError,
    RequestCancelledError,
)
from climate_ops.models import BoundingBox, PolygonCollection, RiskPolygon
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
    status_for_error,
)
from climate_ops.providers.base import PayloadValidationError, ProviderAuthError, ProviderTransportError
from climate_ops.providers.sensors import DEFAULT_SENSOR_PROFILES, LANDSAT_8

BBOX = [10.0, 45.0, 10.1, 45.1]


@pytest.fixture()
def pipeline() -> MagicMock:
    return MagicMock()


# ---------------------------------------------------------------------------
# parse_json_body
# ---------------------------------------------------------------------------


class TestParseJsonBody:
    def test_object(self) -> None:
        assert parse_json_body(b'{"a": 1}') == {"a": 1}

    def test_empty_body(self) -> None:
        assert parse_json_body(b"") == {}
        assert parse_json_body(None) == {}

    def test_invalid_json(self) -> None:
        with pytest.raises(ContractError) as info:
            parse_json_body(b"{not json")
        assert info.value.code == "INVALID_JSON"

    def test_non_object(self) -> None:
        with pytest.raises(ContractError) as info:
            parse_json_body(b"[1, 2]")
        assert info.value.code == "INVALID_INPUT_TYPE"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestHandleIngest:
    def test_parses_request(self, pipeline) -> None:
        pipeline.ingest.return_value.to_dict.return_value = {"ok": True}
        result = handle_ingest(
            pipeline,
            {"bbox": BBOX, "date": "2025-06-01", "sensor_priority": ["landsat-8"], "token": "t"},
        )
        assert result == {"ok": True}
        args, kwargs = pipeline.ingest.call_args
        assert args == (BoundingBox(*BBOX), date(2025, 6, 1))
        assert kwargs["sensor_priority"] == (LANDSAT_8,)
        assert kwargs["token"] == "t"
        assert kwargs["placeholder"] is False

    def test_defaults(self, pipeline) -> None:
        handle_ingest(pipeline, {"bbox": BBOX, "placeholder": "true"})
        _args, kwargs = pipeline.ingest.call_args
        assert kwargs["sensor_priority"] == DEFAULT_SENSOR_PROFILES
        assert kwargs["placeholder"] is True

    def test_missing_bbox(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="bbox"):
            handle_ingest(pipeline, {"date": "2025-06-01"})
        pipeline.ingest.assert_not_called()

    def test_bad_date(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="YYYY-MM-DD"):
            handle_ingest(pipeline, {"bbox": BBOX, "date": "June 1st"})

    def test_unknown_sensor(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="Unknown sensor"):
            handle_ingest(pipeline, {"bbox": BBOX, "sensor_priority": ["modis"]})


class TestHandleUpload:
    def test_passes_through(self, pipeline) -> None:
        pipeline.ingest_upload.return_value.to_dict.return_value = {"ok": True}
        assert handle_upload(pipeline, b"data", content_type="image/png", sensor_id="sentinel-1") == {"ok": True}
        pipeline.ingest_upload.assert_called_once_with(
            b"data", content_type="image/png", sensor_id="sentinel-1"
        )

    def test_unknown_sensor(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError):
            handle_upload(pipeline, b"data", sensor_id="modis")


class TestHandlePreprocess:
    def test_parses_request(self, pipeline) -> None:
        pipeline.preprocess.return_value.to_dict.return_value = {"width": 512}
        result = handle_preprocess(
            pipeline,
            {"artifact_name": "a.png", "target_width": "512", "output_format": "webp", "bbox": BBOX},
        )
        assert result == {"ok": True, "width": 512}
        pipeline.preprocess.assert_called_once_with(
            "a.png", bbox=BoundingBox(*BBOX), target_width=512, output_format="webp"
        )

    def test_filename_alias_and_defaults(self, pipeline) -> None:
        handle_preprocess(pipeline, {"filename": "a.png"})
        pipeline.preprocess.assert_called_once_with(
            "a.png", bbox=None, target_width=1024, output_format="png"
        )

    def test_fractional_width(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="integer"):
            handle_preprocess(pipeline, {"artifact_name": "a.png", "target_width": 10.5})

    def test_missing_name(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="artifact_name"):
            handle_preprocess(pipeline, {})


class TestHandlePolygons:
    def test_returns_feature_collection(self, pipeline) -> None:
        square = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0), (0.0, 0.0))
        pipeline.extract.return_value = PolygonCollection((RiskPolygon(square, 5.0),))
        result = handle_polygons(pipeline, {"artifact_name": "a.png", "threshold": 100, "min_area": "25"})
        assert result["ok"] is True
        assert result["polygon_count"] == 1
        assert result["collection"]["type"] == "FeatureCollection"
        pipeline.extract.assert_called_once_with("a.png", threshold=100.0, min_area=25.0, bbox=None)

    def test_defaults(self, pipeline) -> None:
        pipeline.extract.return_value = PolygonCollection()
        result = handle_polygons(pipeline, {"artifact_name": "a.png"})
        assert result["polygon_count"] == 0
        pipeline.extract.assert_called_once_with("a.png", threshold=128.0, min_area=10.0, bbox=None)

    def test_non_numeric_threshold(self, pipeline) -> None:
        with pytest.raises(InvalidRequestError, match="threshold"):
            handle_polygons(pipeline, {"artifact_name": "a.png", "threshold": "high"})


class TestOtherHandlers:
    def test_analyze(self, pipeline) -> None:
        pipeline.analyze.return_value = {"ok": True}
        assert handle_analyze(pipeline, {"bbox": BBOX, "date": "2025-06-01", "weather_available": 1}) == {
            "ok": True
        }
        args, kwargs = pipeline.analyze.call_args
        assert args == (BoundingBox(*BBOX), date(2025, 6, 1))
        assert kwargs["weather_available"] is True

    def test_precache(self, pipeline) -> None:
        pipeline.precache_aois.return_value = {"a": None}
        assert handle_precache(pipeline, {"aois": [{"id": "a"}]}) == {"ok": True, "catalog": {"a": None}}

    @pytest.mark.parametrize("body", [{}, {"aois": "x"}, {"aois": [1, 2]}])
    def test_precache_rejects_bad_aois(self, pipeline, body) -> None:
        with pytest.raises(InvalidRequestError):
            handle_precache(pipeline, body)

    def test_token_preview_only(self, pipeline) -> None:
        pipeline.check_credentials.return_value = "abcdefghijklmnop"
        result = handle_token_test(pipeline, {"token": "caller"})
        assert result == {"ok": True, "token_preview": "abcdefgh..."}
        pipeline.check_credentials.assert_called_once_with("caller")


class TestConfigSummary:
    def test_no_secrets(self) -> None:
        cfg = PipelineConfig(
            processing_url="https://hub.test/process",
            access_token="secret-token",
            client_id="cid",
            client_secret="secret-value",
        )
        summary = config_summary(cfg)
        assert summary["provider_configured"] is True
        assert summary["placeholder_mode"] is False
        assert summary["has_access_token"] is True
        assert summary["has_client_credentials"] is True
        assert "secret" not in repr(summary)

    def test_placeholder_mode(self) -> None:
        summary = config_summary(PipelineConfig())
        assert summary["placeholder_mode"] is True
        assert summary["storage_type"] == "local"


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (ArtifactNotFoundError("a.png"), 404),
            (AcquisitionExhaustedError([date(2025, 6, 1)], ["sentinel-2"]), 404),
            (RequestCancelledError("deadline"), 504),
            (ProviderTransportError("hub", "503", status_code=503), 502),
            (ProviderAuthError("hub", "401"), 502),
            (PayloadValidationError("hub", "empty"), 502),
            (InvalidRequestError("bad"), 400),
            (PreprocessError("bad format"), 400),
            (ContractError("bad json"), 400),
            (ConfigurationError("no creds"), 500),
            (RasterDecodeError("garbage", size_bytes=3), 500),
            (PipelineError("boom"), 500),
        ],
    )
    def test_status(self, error: PipelineError, status: int) -> None:
        assert status_for_error(error) == status

    def test_error_response_body(self) -> None:
        status, body = error_response(AcquisitionExhaustedError([date(2025, 6, 1)], ["sentinel-2"]))
        assert status == 404
        assert body["ok"] is False
        assert body["error"]["code"] == "IMAGERY_UNAVAILABLE"
        assert body["error"]["dates_searched"] == ["2025-06-01"]
