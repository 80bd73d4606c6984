"""Imagery-to-polygon pipeline.

Coordinates the activities for one request at a time:

1. ``ingest`` — acquire (or placeholder / upload) and store a raw artifact
2. ``preprocess`` — normalised display artifact
3. ``extract`` — risk polygons from a stored artifact
4. ``analyze`` — all of the above plus confidence scoring

The pipeline owns its collaborators explicitly: an ``ArtifactCache``, an
``ArtifactStore`` and a ``RasterSource`` are injected (or built from
configuration by ``from_config``). Independent requests may run
concurrently; the cache is the only shared mutable state.

Cache semantics:
    ingest      keyed by (bbox, date, sensors) -> AcquisitionResult
    preprocess  keyed by (artifact, bbox, width, format) -> PreprocessResult
    extract     keyed by (artifact, threshold, min_area, bbox) -> PolygonCollection

A hit whose backing artifact has vanished from the store is a miss.
Placeholder results are never cached, so a later request can pick up
real imagery as soon as the provider has it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from climate_ops.activities.acquire_imagery import (
    AcquisitionExhaustedError,
    acquire_imagery,
    build_placeholder_artifact,
    ingest_upload,
)
from climate_ops.activities.extract_polygons import ExtractionSettings, extract_polygons
from climate_ops.activities.preprocess_imagery import PreprocessResult, preprocess_imagery
from climate_ops.activities.score_confidence import ConfidenceWeights, score_confidence
from climate_ops.core.cache import ArtifactCache, fingerprint
from climate_ops.core.constants import (
    DEFAULT_MIN_AREA,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_TARGET_WIDTH,
    DEFAULT_THRESHOLD,
)
from climate_ops.core.deadline import RequestDeadline
from climate_ops.core.exceptions import PipelineError
from climate_ops.models.imagery import AcquisitionRequest, AcquisitionResult
from climate_ops.providers.sensors import DEFAULT_SENSOR_PROFILES
from climate_ops.providers.sentinel_hub import SentinelHubClient
from climate_ops.storage import get_artifact_store
from climate_ops.utils.helpers import build_provider_config, parse_request_bbox, parse_request_date

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import date

    from climate_ops.core.config import PipelineConfig
    from climate_ops.models.geometry import BoundingBox, PolygonCollection
    from climate_ops.models.imagery import RasterArtifact, SensorProfile
    from climate_ops.providers.base import RasterSource
    from climate_ops.storage.base import ArtifactStore

logger = logging.getLogger("climate_ops.orchestrators.pipeline")

CATALOG_ARTIFACT = "catalog.json"


class ClimateOpsPipeline:
    """Runs the imagery-to-polygon pipeline against injected collaborators."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        store: ArtifactStore,
        source: RasterSource,
        cache: ArtifactCache | None = None,
        confidence_weights: ConfidenceWeights | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._source = source
        self._cache = cache or ArtifactCache(
            default_ttl_s=config.cache_ttl_s, maxsize=config.cache_max_entries
        )
        self._weights = confidence_weights or ConfidenceWeights()
        self._settings = ExtractionSettings(
            max_contours=config.max_contours,
            max_coverage_ratio=config.max_coverage_ratio,
            merge_overlap_ratio=config.merge_overlap_ratio,
        )

    @classmethod
    def from_config(cls, config: PipelineConfig) -> ClimateOpsPipeline:
        """Build the store, source and cache described by *config*."""
        return cls(
            config,
            store=get_artifact_store(config),
            source=SentinelHubClient(build_provider_config(config)),
        )

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def store(self) -> ArtifactStore:
        return self._store

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    @property
    def placeholder_mode(self) -> bool:
        """True when no processing endpoint is configured."""
        return not self._source.is_configured

    def new_deadline(self) -> RequestDeadline:
        return RequestDeadline(self._config.request_timeout_s)

    def close(self) -> None:
        self._source.close()

    # ------------------------------------------------------------------
    # ingest
    # ------------------------------------------------------------------

    def ingest(
        self,
        bbox: BoundingBox,
        requested_date: date,
        *,
        sensor_priority: Sequence[SensorProfile] = (),
        token: str = "",
        placeholder: bool = False,
        deadline: RequestDeadline | None = None,
    ) -> AcquisitionResult:
        """Acquire imagery for *bbox* and *requested_date* and store it.

        Args:
            bbox: Request extent.
            requested_date: Requested acquisition date.
            sensor_priority: Sensor order; defaults to all sensors.
            token: Caller-supplied bearer token.
            placeholder: Substitute a placeholder when acquisition is
                exhausted instead of raising.
            deadline: Request deadline; a fresh one is created if omitted.

        Raises:
            AcquisitionExhaustedError: If nothing was found and
                *placeholder* is false.
            ConfigurationError / ProviderAuthError / RequestCancelledError.
        """
        deadline = deadline or self.new_deadline()
        profiles = tuple(sensor_priority) or DEFAULT_SENSOR_PROFILES
        key = fingerprint(
            "ingest",
            bbox=bbox.as_list(),
            date=requested_date.isoformat(),
            sensors=[p.sensor_id for p in profiles],
        )
        cached = self._cached_if_backed(key, lambda r: r.artifact_name)
        if cached is not None:
            logger.info("ingest cache hit | key=%s | artifact=%s", key, cached.artifact_name)
            return replace(cached, from_cache=True)

        if self.placeholder_mode:
            logger.warning("No processing endpoint configured; ingest runs in placeholder mode")
            artifact = build_placeholder_artifact(bbox, requested_date)
            return self._store_artifact(artifact, (requested_date,))

        request = AcquisitionRequest(
            bbox=bbox, date=requested_date, sensor_priority=profiles, token=token
        )
        try:
            artifact, searched = acquire_imagery(
                self._source,
                request,
                deadline=deadline,
                max_attempts=self._config.fetch_max_attempts,
                retry_base_s=self._config.fetch_retry_base_s,
                fallback_offsets_days=self._config.fallback_offsets_days,
            )
        except AcquisitionExhaustedError as exc:
            if not placeholder:
                raise
            artifact = build_placeholder_artifact(bbox, requested_date)
            return self._store_artifact(artifact, exc.dates_searched)

        result = self._store_artifact(artifact, searched)
        self._cache.set(key, result)
        return result

    def ingest_upload(
        self,
        data: bytes,
        *,
        content_type: str = "",
        sensor_id: str = "",
    ) -> AcquisitionResult:
        """Store caller-supplied imagery bytes as an ``"upload"`` artifact."""
        artifact = ingest_upload(data, content_type=content_type, sensor_id=sensor_id)
        return self._store_artifact(artifact, ())

    def _store_artifact(
        self,
        artifact: RasterArtifact,
        dates_searched: Sequence[date],
    ) -> AcquisitionResult:
        locator = self._store.save(artifact.data, artifact.name, content_type=artifact.encoding)
        return AcquisitionResult(
            artifact_name=artifact.name,
            locator=locator,
            provenance=artifact.provenance,
            size_bytes=artifact.size_bytes,
            dates_searched=tuple(dates_searched),
        )

    # ------------------------------------------------------------------
    # preprocess / extract
    # ------------------------------------------------------------------

    def preprocess(
        self,
        artifact_name: str,
        *,
        bbox: BoundingBox | None = None,
        target_width: int = DEFAULT_TARGET_WIDTH,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
    ) -> PreprocessResult:
        key = fingerprint(
            "preprocess",
            artifact=artifact_name,
            bbox=bbox.as_list() if bbox else None,
            width=target_width,
            format=output_format.lower(),
        )
        cached = self._cached_if_backed(key, lambda r: r.output_artifact_name)
        if cached is not None:
            logger.info("preprocess cache hit | key=%s | output=%s", key, cached.output_artifact_name)
            return cached

        result = preprocess_imagery(
            self._store,
            artifact_name,
            bbox=bbox,
            target_width=target_width,
            output_format=output_format,
        )
        self._cache.set(key, result)
        return result

    def extract(
        self,
        artifact_name: str,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        min_area: float = DEFAULT_MIN_AREA,
        bbox: BoundingBox | None = None,
    ) -> PolygonCollection:
        key = fingerprint(
            "polygons",
            artifact=artifact_name,
            threshold=threshold,
            min_area=min_area,
            bbox=bbox.as_list() if bbox else None,
        )
        cached = self._cached_if_backed(key, lambda _collection: artifact_name)
        if cached is not None:
            logger.info("extract cache hit | key=%s | polygons=%d", key, len(cached))
            return cached

        collection = extract_polygons(
            self._store,
            artifact_name,
            threshold=threshold,
            min_area=min_area,
            bbox=bbox,
            settings=self._settings,
        )
        self._cache.set(key, collection)
        return collection

    # ------------------------------------------------------------------
    # analyze
    # ------------------------------------------------------------------

    def analyze(
        self,
        bbox: BoundingBox,
        requested_date: date,
        *,
        weather_available: bool = False,
        sensor_priority: Sequence[SensorProfile] = (),
        token: str = "",
        deadline: RequestDeadline | None = None,
    ) -> dict[str, Any]:
        """Ingest, preprocess, extract and score in one request.

        Polygons are traced on the preprocessed artifact; its name keeps the
        sensor token, so the sensor preset still applies.

        Exhausted acquisition degrades to placeholder imagery, which the
        confidence scores reflect.
        """
        deadline = deadline or self.new_deadline()
        acquisition = self.ingest(
            bbox,
            requested_date,
            sensor_priority=sensor_priority,
            token=token,
            placeholder=True,
            deadline=deadline,
        )
        deadline.check("preprocess")
        processed = self.preprocess(acquisition.artifact_name, bbox=bbox)
        deadline.check("extract")
        collection = self.extract(processed.output_artifact_name, bbox=bbox)
        confidence = score_confidence(
            acquisition.size_bytes,
            len(collection),
            acquisition.provenance.source,
            weather_available,
            self._weights,
        )
        logger.info(
            "analyze completed | artifact=%s | source=%s | polygons=%d | overall=%d",
            acquisition.artifact_name,
            acquisition.provenance.source,
            len(collection),
            confidence.overall,
        )
        return {
            "ok": True,
            "acquisition": acquisition.to_dict(),
            "preprocessed": processed.to_dict(),
            "collection": collection.to_geojson(),
            "polygon_count": len(collection),
            "confidence": confidence.to_dict(),
        }

    # ------------------------------------------------------------------
    # catalog
    # ------------------------------------------------------------------

    def list_artifacts(self) -> list[str]:
        return self._store.list()

    def check_credentials(self, token: str = "") -> str:
        """Resolve a bearer token the way ``ingest`` would, or raise."""
        return self._source.authenticate(token, self.new_deadline())

    def precache_aois(self, aois: Iterable[dict[str, Any]]) -> dict[str, Any]:
        """Ingest each AOI and save a ``catalog.json`` artifact.

        Each catalog entry is the acquisition result, ``None`` when the
        provider had nothing, or ``{"error": ...}`` for any other
        pipeline failure. One failing AOI never stops the batch.
        """
        catalog: dict[str, Any] = {}
        for index, aoi in enumerate(aois):
            aoi_id = str(aoi.get("id") or f"aoi-{index}")
            try:
                bbox = parse_request_bbox(aoi.get("bbox"))
                requested_date = parse_request_date(aoi.get("date"), default_today=True)
                result = self.ingest(bbox, requested_date)  # type: ignore[arg-type]
                catalog[aoi_id] = result.to_dict()
            except AcquisitionExhaustedError as exc:
                logger.warning("precache: no imagery | aoi=%s | range=%s", aoi_id, exc.date_range)
                catalog[aoi_id] = None
            except PipelineError as exc:
                logger.warning("precache: failed | aoi=%s | code=%s | error=%s", aoi_id, exc.code, exc)
                catalog[aoi_id] = {"error": exc.to_error_dict()}

        payload = json.dumps(catalog, indent=2, sort_keys=True).encode()
        locator = self._store.save(payload, CATALOG_ARTIFACT, content_type="application/json")
        logger.info("precache completed | aois=%d | catalog=%s", len(catalog), locator)
        return catalog

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cached_if_backed(self, key: str, artifact_of: Any) -> Any | None:
        """Cached value for *key* unless its backing artifact is gone."""
        cached = self._cache.get(key)
        if cached is None:
            return None
        backing = artifact_of(cached)
        if not self._store.exists(backing):
            logger.info("Stale cache entry dropped | key=%s | missing=%s", key, backing)
            self._cache.delete(key)
            return None
        return cached
