"""Shared pipeline constants — single source of truth.

Centralises endpoints, timeouts, guard limits, and other literals that
are shared between providers, activities, and the orchestrator.
Everything tunable at runtime is also exposed through ``PipelineConfig``;
these are the defaults.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Sentinel Hub endpoints
# ---------------------------------------------------------------------------

SENTINEL_HUB_TOKEN_URL: str = "https://services.sentinel-hub.com/oauth/token"
"""OAuth client-credentials token endpoint."""

SENTINEL_HUB_PROCESS_URL: str = "https://services.sentinel-hub.com/api/v1/process"
"""Process API endpoint (used when ``SENTINEL_HUB_PROCESSING_URL`` is unset but credentials exist)."""

WGS84_CRS_URI: str = "http://www.opengis.net/def/crs/EPSG/0/4326"

# ---------------------------------------------------------------------------
# Timeouts and retry budget
# ---------------------------------------------------------------------------

TOKEN_TIMEOUT_SECONDS: float = 15.0
FETCH_TIMEOUT_SECONDS: float = 120.0
REQUEST_TIMEOUT_SECONDS: float = 300.0

FETCH_MAX_ATTEMPTS: int = 4
"""One initial attempt plus three retries."""

FETCH_RETRY_BASE_SECONDS: float = 1.0

# ---------------------------------------------------------------------------
# Temporal fallback
# ---------------------------------------------------------------------------

FALLBACK_OFFSETS_DAYS: tuple[int, ...] = (7, 14, 21, 30, 45, 60)
"""Days subtracted from the requested date, tried in order after a failed sweep."""

# ---------------------------------------------------------------------------
# Extraction defaults and noise guards
# ---------------------------------------------------------------------------

DEFAULT_THRESHOLD: float = 128.0
DEFAULT_MIN_AREA: float = 10.0

MAX_RAW_CONTOURS: int = 500
MAX_COVERAGE_RATIO: float = 0.30
MERGE_OVERLAP_RATIO: float = 0.10

# ---------------------------------------------------------------------------
# Cache and preprocessing
# ---------------------------------------------------------------------------

CACHE_TTL_SECONDS: float = 3600.0
CACHE_MAX_ENTRIES: int = 1024

DEFAULT_TARGET_WIDTH: int = 1024
DEFAULT_OUTPUT_FORMAT: str = "png"

PLACEHOLDER_SIZE_PX: int = 1024

# ---------------------------------------------------------------------------
# Provenance sources that are not real sensors
# ---------------------------------------------------------------------------

PLACEHOLDER_SOURCE: str = "placeholder"
UPLOAD_SOURCE: str = "upload"
