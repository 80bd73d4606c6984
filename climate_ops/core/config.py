"""Pipeline configuration loaded from environment variables.

All configuration values have sensible defaults. Azure Functions app
settings (or ``local.settings.json`` for local dev) are the source of
truth.

``from_env()`` raises ``ConfigValidationError`` if any numeric value is
out of its valid range, so bad configuration is caught at startup
rather than on the first request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from climate_ops.core import constants
from climate_ops.core.exceptions import PipelineError

STORAGE_LOCAL = "local"
STORAGE_BLOB = "blob"


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Loaded once at host startup and threaded through the pipeline.

    Attributes:
        processing_url: Sentinel Hub Process API URL. Empty means no
            provider is configured and ingestion runs in placeholder mode.
        token_url: OAuth client-credentials token endpoint.
        access_token: Static bearer token; skips the credential exchange.
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        storage_type: ``"local"`` or ``"blob"``.
        data_dir: Root directory for the local artifact store.
        artifact_container: Blob container for the blob artifact store.
        storage_connection_string: Azure Storage connection string.
        cache_ttl_s: Artifact cache entry lifetime in seconds.
        cache_max_entries: Artifact cache size bound.
        fetch_max_attempts: Attempt budget per sensor request (>= 1).
        fetch_retry_base_s: First retry delay in seconds; doubles per attempt.
        token_timeout_s: Timeout for the credential exchange.
        fetch_timeout_s: Timeout for an imagery request.
        request_timeout_s: Overall deadline for one pipeline request.
        fallback_offsets_days: Days back from the requested date to retry.
        max_contours: Raw contour ceiling before the result is treated as noise.
        max_coverage_ratio: Polygon/bbox area ratio ceiling (0-1).
        merge_overlap_ratio: Intersection share of the smaller polygon
            above which two polygons are merged (0-1).
    """

    processing_url: str = ""
    token_url: str = constants.SENTINEL_HUB_TOKEN_URL
    access_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    storage_type: str = STORAGE_LOCAL
    data_dir: str = "data"
    artifact_container: str = "climate-ops-artifacts"
    storage_connection_string: str = ""
    cache_ttl_s: float = constants.CACHE_TTL_SECONDS
    cache_max_entries: int = constants.CACHE_MAX_ENTRIES
    fetch_max_attempts: int = constants.FETCH_MAX_ATTEMPTS
    fetch_retry_base_s: float = constants.FETCH_RETRY_BASE_SECONDS
    token_timeout_s: float = constants.TOKEN_TIMEOUT_SECONDS
    fetch_timeout_s: float = constants.FETCH_TIMEOUT_SECONDS
    request_timeout_s: float = constants.REQUEST_TIMEOUT_SECONDS
    fallback_offsets_days: tuple[int, ...] = constants.FALLBACK_OFFSETS_DAYS
    max_contours: int = constants.MAX_RAW_CONTOURS
    max_coverage_ratio: float = constants.MAX_COVERAGE_RATIO
    merge_overlap_ratio: float = constants.MERGE_OVERLAP_RATIO

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``FETCH_MAX_ATTEMPTS=abc``).
        """
        config = cls(
            processing_url=(
                os.getenv("SENTINEL_HUB_PROCESSING_URL")
                or os.getenv("SENTINELHUB_PROCESSING_URL", "")
            ),
            token_url=os.getenv("SENTINEL_HUB_TOKEN_URL", constants.SENTINEL_HUB_TOKEN_URL),
            access_token=(
                os.getenv("SENTINEL_HUB_ACCESS_TOKEN") or os.getenv("SENTINELHUB_ACCESS_TOKEN", "")
            ),
            client_id=os.getenv("SENTINEL_HUB_CLIENT_ID", ""),
            client_secret=os.getenv("SENTINEL_HUB_CLIENT_SECRET", ""),
            storage_type=os.getenv("STORAGE_TYPE", STORAGE_LOCAL),
            data_dir=os.getenv("DATA_DIR", "data"),
            artifact_container=os.getenv("ARTIFACT_CONTAINER", "climate-ops-artifacts"),
            storage_connection_string=os.getenv("AzureWebJobsStorage", ""),  # noqa: SIM112
            cache_ttl_s=float(os.getenv("CACHE_TTL_SECONDS", "3600")),
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "1024")),
            fetch_max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", "4")),
            fetch_retry_base_s=float(os.getenv("FETCH_RETRY_BASE_SECONDS", "1.0")),
            token_timeout_s=float(os.getenv("TOKEN_TIMEOUT_SECONDS", "15")),
            fetch_timeout_s=float(os.getenv("FETCH_TIMEOUT_SECONDS", "120")),
            request_timeout_s=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "300")),
            fallback_offsets_days=_parse_offsets(
                os.getenv("FALLBACK_OFFSETS_DAYS", "7,14,21,30,45,60")
            ),
            max_contours=int(os.getenv("MAX_CONTOURS", "500")),
            max_coverage_ratio=float(os.getenv("MAX_COVERAGE_RATIO", "0.3")),
            merge_overlap_ratio=float(os.getenv("MERGE_OVERLAP_RATIO", "0.1")),
        )
        _validate(config)
        return config


def _parse_offsets(raw: str) -> tuple[int, ...]:
    """Parse a comma-separated list of day offsets (``"7,14,21"``)."""
    return tuple(int(part) for part in raw.split(",") if part.strip())


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.storage_type not in (STORAGE_LOCAL, STORAGE_BLOB):
        raise ConfigValidationError(
            "STORAGE_TYPE",
            config.storage_type,
            f"must be {STORAGE_LOCAL!r} or {STORAGE_BLOB!r}",
        )

    if config.storage_type == STORAGE_BLOB and not config.storage_connection_string:
        raise ConfigValidationError(
            "AzureWebJobsStorage",
            config.storage_connection_string,
            "must not be empty when STORAGE_TYPE is 'blob'",
        )

    if config.storage_type == STORAGE_LOCAL and not config.data_dir:
        raise ConfigValidationError("DATA_DIR", config.data_dir, "must not be empty")

    if config.cache_ttl_s <= 0:
        raise ConfigValidationError("CACHE_TTL_SECONDS", config.cache_ttl_s, "must be > 0 (seconds)")

    if config.cache_max_entries < 1:
        raise ConfigValidationError("CACHE_MAX_ENTRIES", config.cache_max_entries, "must be >= 1")

    if config.fetch_max_attempts < 1:
        raise ConfigValidationError("FETCH_MAX_ATTEMPTS", config.fetch_max_attempts, "must be >= 1")

    if config.fetch_retry_base_s < 0:
        raise ConfigValidationError(
            "FETCH_RETRY_BASE_SECONDS", config.fetch_retry_base_s, "must be >= 0 (seconds)"
        )

    for key, value in (
        ("TOKEN_TIMEOUT_SECONDS", config.token_timeout_s),
        ("FETCH_TIMEOUT_SECONDS", config.fetch_timeout_s),
        ("REQUEST_TIMEOUT_SECONDS", config.request_timeout_s),
    ):
        if value <= 0:
            raise ConfigValidationError(key, value, "must be > 0 (seconds)")

    if any(offset <= 0 for offset in config.fallback_offsets_days):
        raise ConfigValidationError(
            "FALLBACK_OFFSETS_DAYS", config.fallback_offsets_days, "every offset must be > 0 (days)"
        )

    if list(config.fallback_offsets_days) != sorted(set(config.fallback_offsets_days)):
        raise ConfigValidationError(
            "FALLBACK_OFFSETS_DAYS",
            config.fallback_offsets_days,
            "must be strictly increasing",
        )

    if config.max_contours < 1:
        raise ConfigValidationError("MAX_CONTOURS", config.max_contours, "must be >= 1")

    for key, value in (
        ("MAX_COVERAGE_RATIO", config.max_coverage_ratio),
        ("MERGE_OVERLAP_RATIO", config.merge_overlap_ratio),
    ):
        if not 0.0 < value <= 1.0:
            raise ConfigValidationError(key, value, "must be in (0, 1]")
