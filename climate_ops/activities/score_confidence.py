"""Score confidence activity — turn acquisition and extraction facts into scores.

Pure and deterministic: the same inputs always give the same
``ConfidenceMetrics``. Every constant lives on ``ConfidenceWeights`` so
deployments can retune without code changes.

    imagery quality    = min(cap, base + size_bytes / bytes_per_point), or
                         unknown_size_quality when the size is unknown or 0
    polygon confidence = min(polygon_cap, polygon_base + per_polygon * count)
    satellite          = round(mean(imagery quality, polygon confidence))
    weather            = weather_available or weather_unavailable
    documents          = (real_source or placeholder_source)
                         + with_polygons if count > 0
    overall            = round(w_s * satellite + w_w * weather + w_d * documents)

Rounding is half-up; every score is clamped to [0, 100].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from climate_ops.core.constants import PLACEHOLDER_SOURCE
from climate_ops.models._validation import ModelValidationError, check_min
from climate_ops.models.confidence import ConfidenceMetrics
from climate_ops.utils.helpers import round_half_up

logger = logging.getLogger("climate_ops.activities.score_confidence")


@dataclass(frozen=True, slots=True)
class ConfidenceWeights:
    """Tunable constants for ``score_confidence``."""

    imagery_base: float = 30.0
    imagery_bytes_per_point: float = 5000.0
    imagery_cap: float = 100.0
    unknown_size_quality: float = 65.0
    polygon_base: float = 40.0
    polygon_per_item: float = 8.0
    polygon_cap: float = 90.0
    weather_available: int = 70
    weather_unavailable: int = 45
    documents_real_source: int = 40
    documents_placeholder_source: int = 20
    documents_with_polygons: int = 20
    satellite_weight: float = 0.40
    weather_weight: float = 0.35
    documents_weight: float = 0.25

    def __post_init__(self) -> None:
        if self.imagery_bytes_per_point <= 0:
            raise ModelValidationError(
                "ConfidenceWeights",
                "imagery_bytes_per_point",
                self.imagery_bytes_per_point,
                "must be > 0",
            )
        for name in ("polygon_per_item", "satellite_weight", "weather_weight", "documents_weight"):
            check_min("ConfidenceWeights", name, getattr(self, name), 0)


def score_confidence(
    artifact_size_bytes: int | None,
    polygon_count: int,
    provenance_source: str,
    weather_available: bool,
    weights: ConfidenceWeights | None = None,
) -> ConfidenceMetrics:
    """Compute confidence scores for one analysis result.

    Args:
        artifact_size_bytes: Raw artifact size; ``None`` or 0 means unknown.
        polygon_count: Number of extracted polygons.
        provenance_source: Artifact provenance source (sensor id,
            ``"placeholder"`` or ``"upload"``).
        weather_available: Whether a real weather reading was obtained.
        weights: Scoring constants.

    Raises:
        ValueError: If a count or size is negative.
    """
    w = weights or ConfidenceWeights()
    if polygon_count < 0:
        msg = f"polygon_count must be >= 0, got {polygon_count}"
        raise ValueError(msg)
    if artifact_size_bytes is not None and artifact_size_bytes < 0:
        msg = f"artifact_size_bytes must be >= 0, got {artifact_size_bytes}"
        raise ValueError(msg)

    if not artifact_size_bytes:
        imagery_quality = w.unknown_size_quality
    else:
        imagery_quality = min(
            w.imagery_cap, w.imagery_base + artifact_size_bytes / w.imagery_bytes_per_point
        )
    polygon_confidence = min(w.polygon_cap, w.polygon_base + w.polygon_per_item * polygon_count)
    satellite = _clamp(round_half_up((imagery_quality + polygon_confidence) / 2))

    weather = _clamp(w.weather_available if weather_available else w.weather_unavailable)

    is_real_source = bool(provenance_source) and provenance_source != PLACEHOLDER_SOURCE
    documents = w.documents_real_source if is_real_source else w.documents_placeholder_source
    if polygon_count > 0:
        documents += w.documents_with_polygons
    documents = _clamp(documents)

    overall = _clamp(
        round_half_up(
            w.satellite_weight * satellite
            + w.weather_weight * weather
            + w.documents_weight * documents
        )
    )

    metrics = ConfidenceMetrics(
        satellite=satellite,
        weather=weather,
        documents=documents,
        overall=overall,
    )
    logger.debug(
        "Confidence scored | size=%s | polygons=%d | source=%s | weather=%s | overall=%d",
        artifact_size_bytes,
        polygon_count,
        provenance_source,
        weather_available,
        metrics.overall,
    )
    return metrics


def _clamp(value: float) -> int:
    return int(max(0, min(100, value)))
