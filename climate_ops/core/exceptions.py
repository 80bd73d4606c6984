"""Unified pipeline exception taxonomy.

Provides a shared base exception hierarchy for all pipeline stages and
providers. Every domain exception inherits from ``PipelineError`` and
carries structured context fields that enable consistent retry
decisions, HTTP status mapping, and operator diagnostics.

Taxonomy categories
-------------------
- ``ValidationError``   — input/contract violations, never retryable.
- ``TransientError``    — temporary failures (network, throttle), retryable.
- ``PermanentError``    — unrecoverable domain failures, not retryable.
- ``ContractError``     — payload/schema drift between stages, never retryable.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for HTTP responses and logging.

Noise-guard rejections (too many contours, excessive coverage) are not
errors: extraction returns an empty collection and logs a warning.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"acquire_imagery"``, ``"extract_polygons"``).
        code: Machine-readable error code (e.g. ``"RASTER_DECODE_FAILED"``).
        retryable: Whether the caller may retry the operation.
        correlation_id: Request correlation identifier.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Payload or schema drift between pipeline stages. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Shared concrete errors
# ---------------------------------------------------------------------------


class ConfigurationError(PermanentError):
    """Required configuration (e.g. provider credentials) is missing.

    Fatal for the request: surfaced immediately, never retried.
    """

    default_stage = "config"
    default_code = "CONFIGURATION_MISSING"


class RequestCancelledError(PermanentError):
    """The request deadline expired or the caller cancelled the request."""

    default_stage = "request"
    default_code = "REQUEST_CANCELLED"


class RasterDecodeError(PermanentError):
    """A raster payload could not be decoded.

    Attributes:
        size_bytes: Length of the undecodable payload.
        excerpt: Hex excerpt of the first bytes, for diagnosis.
    """

    default_stage = "decode_raster"
    default_code = "RASTER_DECODE_FAILED"

    def __init__(self, message: str, *, size_bytes: int = 0, excerpt: str = "") -> None:
        self.size_bytes = size_bytes
        self.excerpt = excerpt
        super().__init__(f"{message} (size={size_bytes} bytes, head={excerpt or '-'})")


class ArtifactNotFoundError(PermanentError):
    """A named artifact does not exist in the artifact store."""

    default_stage = "storage"
    default_code = "ARTIFACT_NOT_FOUND"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Artifact not found: {name}")


class InvalidRequestError(ValidationError):
    """A caller-supplied request field is missing or malformed."""

    default_stage = "request"
    default_code = "INVALID_REQUEST"
