"""Typed models for imagery acquisition.

Defines the data structures exchanged between the pipeline and the
raster source client:

- ``Modality`` / ``ExtractionPreset`` / ``SensorProfile``: acquisition and
  processing recipe per sensor
- ``Provenance``: where an artifact came from
- ``RasterArtifact``: opaque payload plus encoding and provenance
- ``AcquisitionRequest`` / ``AcquisitionResult``: the acquisition contract
- ``ProviderConfig``: endpoint and credential configuration

Design notes:
- All models are frozen dataclasses for immutability.
- Explicit units on every numeric field.
- No magic strings: modality values are an enum.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from climate_ops.core.constants import (
    FETCH_TIMEOUT_SECONDS,
    PLACEHOLDER_SOURCE,
    SENTINEL_HUB_TOKEN_URL,
    TOKEN_TIMEOUT_SECONDS,
)
from climate_ops.models._validation import (
    ModelValidationError,
    check_min,
    check_non_empty,
)

if TYPE_CHECKING:
    from climate_ops.models.geometry import BoundingBox


class Modality(enum.Enum):
    """Imaging modality of a sensor."""

    OPTICAL = "optical"
    RADAR = "radar"


@dataclass(frozen=True, slots=True)
class ExtractionPreset:
    """Contour extraction parameters tuned for one sensor.

    Attributes:
        threshold: Iso-contour level on the sensor's scaled output.
        min_area: Minimum polygon area (m² when geo-referenced).
    """

    threshold: float
    min_area: float

    def __post_init__(self) -> None:
        check_min("ExtractionPreset", "min_area", self.min_area, 0)


@dataclass(frozen=True, slots=True)
class SensorProfile:
    """A named acquisition and processing recipe for one sensor.

    Attributes:
        sensor_id: Stable identifier, also embedded in artifact names.
        modality: Optical or radar.
        data_type: Provider collection identifier (e.g. ``"sentinel-2-l2a"``).
        resolution: Nominal ground resolution label (e.g. ``"10m"``).
        evalscript: Band selection / index formula run provider-side.
        output_format: MIME type of the payload (``"image/tiff"``).
        preset: Extraction parameters that override caller values.
    """

    sensor_id: str
    modality: Modality
    data_type: str
    resolution: str
    evalscript: str
    output_format: str
    preset: ExtractionPreset

    def __post_init__(self) -> None:
        check_non_empty("SensorProfile", "sensor_id", self.sensor_id)
        check_non_empty("SensorProfile", "data_type", self.data_type)
        if "_" in self.sensor_id:
            raise ModelValidationError(
                "SensorProfile",
                "sensor_id",
                self.sensor_id,
                "must not contain '_' (used as the artifact name separator)",
            )


@dataclass(frozen=True, slots=True)
class Provenance:
    """Origin of a raster artifact.

    Attributes:
        source: Sensor id, ``"placeholder"`` or ``"upload"``.
        acquisition_date: Date the imagery was acquired for, if known.
        requested_date: Date the caller asked for, if any.
    """

    source: str
    acquisition_date: date | None = None
    requested_date: date | None = None

    def __post_init__(self) -> None:
        check_non_empty("Provenance", "source", self.source)

    @property
    def is_placeholder(self) -> bool:
        return self.source == PLACEHOLDER_SOURCE

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "acquisition_date": self.acquisition_date.isoformat() if self.acquisition_date else None,
            "requested_date": self.requested_date.isoformat() if self.requested_date else None,
        }


@dataclass(frozen=True, slots=True)
class RasterArtifact:
    """An opaque raster payload with its declared encoding and provenance."""

    name: str
    data: bytes
    encoding: str
    provenance: Provenance

    def __post_init__(self) -> None:
        check_non_empty("RasterArtifact", "name", self.name)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class AcquisitionRequest:
    """Caller request for imagery.

    Attributes:
        bbox: Request extent.
        date: Requested acquisition date.
        sensor_priority: Sensor profiles in acquisition priority order.
            Empty means the default priority list.
        token: Optional caller-supplied bearer token.
    """

    bbox: BoundingBox
    date: date
    sensor_priority: tuple[SensorProfile, ...] = ()
    token: str = ""


@dataclass(frozen=True, slots=True)
class AcquisitionResult:
    """Outcome of a successful acquisition (or a substituted placeholder)."""

    artifact_name: str
    locator: str
    provenance: Provenance
    size_bytes: int
    dates_searched: tuple[date, ...] = ()
    from_cache: bool = False
    ok: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "artifact_name": self.artifact_name,
            "locator": self.locator,
            "provenance": self.provenance.to_dict(),
            "size_bytes": self.size_bytes,
            "dates_searched": [d.isoformat() for d in self.dates_searched],
            "from_cache": self.from_cache,
        }


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Configuration for the imagery provider.

    Attributes:
        name: Provider identifier.
        process_url: Processing API endpoint.
        token_url: OAuth client-credentials endpoint.
        access_token: Static bearer token (skips the exchange).
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        token_timeout_s: Credential exchange timeout in seconds.
        fetch_timeout_s: Imagery request timeout in seconds.
        extra_params: Provider-specific parameters.
    """

    name: str
    process_url: str = ""
    token_url: str = SENTINEL_HUB_TOKEN_URL
    access_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    token_timeout_s: float = TOKEN_TIMEOUT_SECONDS
    fetch_timeout_s: float = FETCH_TIMEOUT_SECONDS
    extra_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_non_empty("ProviderConfig", "name", self.name)
        check_min("ProviderConfig", "token_timeout_s", self.token_timeout_s, 0)
        check_min("ProviderConfig", "fetch_timeout_s", self.fetch_timeout_s, 0)

    def __repr__(self) -> str:
        # Never leak secrets into logs.
        return (
            f"ProviderConfig(name={self.name!r}, process_url={self.process_url!r}, "
            f"token_url={self.token_url!r}, access_token={'***' if self.access_token else ''!r}, "
            f"client_id={self.client_id!r}, client_secret={'***' if self.client_secret else ''!r})"
        )
