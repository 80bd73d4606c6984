"""Sensor profiles: what to request from each sensor and how to read it.

``DEFAULT_SENSOR_PROFILES`` is the fixed acquisition priority list.
Every evalscript returns a single band scaled to 0-255, so one
threshold scale fits all sensors:

- ``sentinel-2``: NDWI from B03/B08, ``(ndwi + 1) * 127.5``.
- ``sentinel-1``: VV backscatter in dB, ``(vv_db + 30) * 8.5`` clamped.
- ``landsat-8``: NDWI from B3/B5, same scaling as Sentinel-2.

Presets are starting points tuned by eye against sample scenes; they
override caller-supplied extraction parameters when a sensor id is
recognised in an artifact name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from climate_ops.core.exceptions import InvalidRequestError
from climate_ops.models.imagery import ExtractionPreset, Modality, SensorProfile
from climate_ops.utils.artifact_names import name_tokens

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

TIFF_OUTPUT = "image/tiff"

_SENTINEL_2_NDWI = """//VERSION=3
function setup() {
  return {input: [{bands: ["B03", "B08"], units: "REFLECTANCE"}], output: {bands: 1}};
}
function evaluatePixel(sample) {
  const ndwi = (sample.B03 - sample.B08) / (sample.B03 + sample.B08 + 1e-6);
  return [Math.round((ndwi + 1.0) * 127.5)];
}
"""

_SENTINEL_1_VV = """//VERSION=3
function setup() {
  return {input: [{bands: ["VV"], units: "DB"}], output: {bands: 1}};
}
function evaluatePixel(sample) {
  const scaled = Math.round((sample.VV + 30.0) * 8.5);
  return [Math.max(0, Math.min(255, scaled))];
}
"""

_LANDSAT_8_NDWI = """//VERSION=3
function setup() {
  return {input: [{bands: ["B3", "B5"], units: "REFLECTANCE"}], output: {bands: 1}};
}
function evaluatePixel(sample) {
  const ndwi = (sample.B3 - sample.B5) / (sample.B3 + sample.B5 + 1e-6);
  return [Math.round((ndwi + 1.0) * 127.5)];
}
"""

SENTINEL_2 = SensorProfile(
    sensor_id="sentinel-2",
    modality=Modality.OPTICAL,
    data_type="sentinel-2-l2a",
    resolution="10m",
    evalscript=_SENTINEL_2_NDWI,
    output_format=TIFF_OUTPUT,
    preset=ExtractionPreset(threshold=140.0, min_area=500.0),
)

SENTINEL_1 = SensorProfile(
    sensor_id="sentinel-1",
    modality=Modality.RADAR,
    data_type="sentinel-1-grd",
    resolution="10m",
    evalscript=_SENTINEL_1_VV,
    output_format=TIFF_OUTPUT,
    preset=ExtractionPreset(threshold=60.0, min_area=1000.0),
)

LANDSAT_8 = SensorProfile(
    sensor_id="landsat-8",
    modality=Modality.OPTICAL,
    data_type="landsat-8-l2",
    resolution="30m",
    evalscript=_LANDSAT_8_NDWI,
    output_format=TIFF_OUTPUT,
    preset=ExtractionPreset(threshold=140.0, min_area=2000.0),
)

DEFAULT_SENSOR_PROFILES: tuple[SensorProfile, ...] = (SENTINEL_2, SENTINEL_1, LANDSAT_8)


def get_sensor_profile(
    sensor_id: str,
    profiles: Iterable[SensorProfile] = DEFAULT_SENSOR_PROFILES,
) -> SensorProfile:
    """Look up a profile by id.

    Raises:
        InvalidRequestError: If *sensor_id* is not a known sensor.
    """
    for profile in profiles:
        if profile.sensor_id == sensor_id:
            return profile
    known = ", ".join(p.sensor_id for p in DEFAULT_SENSOR_PROFILES)
    msg = f"Unknown sensor {sensor_id!r}; expected one of: {known}"
    raise InvalidRequestError(msg)


def resolve_sensor_priority(sensor_ids: Sequence[str] | None) -> tuple[SensorProfile, ...]:
    """Map requested sensor ids to profiles, keeping the caller's order.

    ``None`` or an empty list selects ``DEFAULT_SENSOR_PROFILES``.
    """
    if not sensor_ids:
        return DEFAULT_SENSOR_PROFILES
    if isinstance(sensor_ids, str):
        sensor_ids = [s.strip() for s in sensor_ids.split(",") if s.strip()]
    resolved: list[SensorProfile] = []
    for sensor_id in sensor_ids:
        profile = get_sensor_profile(str(sensor_id))
        if profile not in resolved:
            resolved.append(profile)
    return tuple(resolved)


def find_sensor_in_name(
    artifact_name: str,
    profiles: Iterable[SensorProfile] = DEFAULT_SENSOR_PROFILES,
) -> SensorProfile | None:
    """Return the profile whose id appears as a token of *artifact_name*.

    ``"sentinel-2_3f0c9a0d5b1e2c47.tiff"`` and
    ``"processed_sentinel-2_3f0c_ab12.png"`` both match ``sentinel-2``;
    ``"my-sentinel-2-scene.png"`` does not.
    """
    tokens = set(name_tokens(artifact_name))
    for profile in profiles:
        if profile.sensor_id in tokens:
            return profile
    return None
