"""RasterSource abstract base class.

Defines the contract every imagery source must implement. The
acquisition activity interacts exclusively with this interface and
owns retry, sensor fallback, and temporal fallback; a source only knows
how to authenticate and perform one request.

Lifecycle:
    1. ``authenticate(token_override)`` — resolve a bearer token.
    2. ``fetch(bbox, date, profile, token)`` — one imagery request,
       returning the raw payload bytes.
    3. ``close()`` — release the underlying HTTP client.

Sources are context managers, so ``with SentinelHubClient(cfg) as src:``
closes the client on exit.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from climate_ops.core.exceptions import PipelineError

if TYPE_CHECKING:
    from datetime import date

    from climate_ops.core.deadline import RequestDeadline
    from climate_ops.models.geometry import BoundingBox
    from climate_ops.models.imagery import ProviderConfig, SensorProfile


class RasterSource(abc.ABC):
    """Abstract base class for raster imagery sources.

    The constructor receives a ``ProviderConfig`` carrying endpoints and
    credentials. Concrete sources construct one HTTP client and reuse it
    for every call until ``close()``.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        """Return the provider name from configuration."""
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        """Return the provider configuration (read-only)."""
        return self._config

    @property
    def is_configured(self) -> bool:
        """Whether a processing endpoint is available at all."""
        return bool(self._config.process_url)

    # ------------------------------------------------------------------
    # Abstract methods
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def authenticate(
        self,
        token_override: str = "",
        deadline: RequestDeadline | None = None,
    ) -> str:
        """Resolve a bearer token for subsequent ``fetch`` calls.

        Precedence: *token_override*, then a statically configured token,
        then a client-credentials exchange.

        Raises:
            ConfigurationError: If no credential source is configured.
            ProviderAuthError: If the credential exchange fails.
        """

    @abc.abstractmethod
    def fetch(
        self,
        bbox: BoundingBox,
        acquisition_date: date,
        profile: SensorProfile,
        token: str,
        deadline: RequestDeadline | None = None,
    ) -> bytes:
        """Perform a single imagery request and return the raw payload.

        No retry happens here; the caller decides based on the raised
        error's ``retryable`` flag.

        Raises:
            ProviderTransportError: Network failure, timeout, 429 or 5xx
                (retryable).
            ProviderRequestError: Any other non-success response.
        """

    def close(self) -> None:  # noqa: B027
        """Release network resources. The default holds none."""

    def __enter__(self) -> RasterSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Provider exceptions
# ---------------------------------------------------------------------------


class ProviderError(PipelineError):
    """Base exception for raster source errors.

    Attributes:
        provider: Name of the provider that raised the error.
        message: Human-readable error description.
        retryable: Whether the caller should retry the operation.
    """

    default_stage = "provider"
    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        retryable: bool = False,
    ) -> None:
        self.provider = provider
        super().__init__(
            message,
            retryable=retryable,
            code=self.default_code,
            stage=self.default_stage,
        )

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"


class ProviderAuthError(ProviderError):
    """Credential exchange failed or the provider rejected the token."""

    default_code = "PROVIDER_AUTH_FAILED"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(provider, message, retryable=False)


class ProviderTransportError(ProviderError):
    """Network failure, timeout, throttling, or a provider 5xx. Retryable."""

    default_code = "PROVIDER_TRANSPORT_FAILED"

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(provider, message, retryable=True)


class ProviderRequestError(ProviderError):
    """The provider answered with a non-retryable error status."""

    default_code = "PROVIDER_REQUEST_FAILED"

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(provider, message, retryable=False)


class PayloadValidationError(ProviderError):
    """A response payload is empty or does not match its declared encoding.

    Treated as "no data" for that attempt and never retried.
    """

    default_code = "PAYLOAD_INVALID"

    def __init__(self, provider: str, message: str, *, size_bytes: int = 0, excerpt: str = "") -> None:
        self.size_bytes = size_bytes
        self.excerpt = excerpt
        super().__init__(provider, message, retryable=False)

    @property
    def category(self) -> str:
        return "validation"
