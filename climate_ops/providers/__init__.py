"""Raster imagery sources.

- RasterSource: abstract contract (authenticate + single fetch)
- SentinelHubClient: Sentinel Hub Process API
- sensors: sensor profiles and the default acquisition priority
"""

from climate_ops.providers.base import (
    PayloadValidationError,
    ProviderAuthError,
    ProviderError,
    ProviderRequestError,
    ProviderTransportError,
    RasterSource,
)
from climate_ops.providers.sensors import (
    DEFAULT_SENSOR_PROFILES,
    find_sensor_in_name,
    get_sensor_profile,
    resolve_sensor_priority,
)
from climate_ops.providers.sentinel_hub import SentinelHubClient, build_process_body

__all__ = [
    "DEFAULT_SENSOR_PROFILES",
    "PayloadValidationError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderRequestError",
    "ProviderTransportError",
    "RasterSource",
    "SentinelHubClient",
    "build_process_body",
    "find_sensor_in_name",
    "get_sensor_profile",
    "resolve_sensor_priority",
]
