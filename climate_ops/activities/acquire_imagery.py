"""Acquire imagery activity — authenticate, sweep sensors, fall back in time.

For a bounding box and date this activity resolves a bearer token, then
tries each sensor profile in priority order until one returns a payload
that matches its declared encoding. If the whole sweep comes up empty
it repeats for ``date - offset`` over the configured fallback offsets,
stopping at the first success.

Each sensor request is retried with exponential back-off, but only for
transient failures (transport errors, HTTP 429 and 5xx). Anything else
fails that sensor immediately and the sweep moves on. Back-off waits on
the request deadline, so cancellation interrupts it.

Exhaustion raises ``AcquisitionExhaustedError``; the orchestrator may
substitute ``build_placeholder_artifact`` instead.

Error handling:
    ConfigurationError / ProviderAuthError: fatal, propagate untouched.
    RequestCancelledError: propagates untouched.
    Per-sensor failures: logged and swallowed into the sweep.
"""

from __future__ import annotations

import hashlib
import io
import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from PIL import Image, ImageDraw, ImageFont

from climate_ops.core.cache import fingerprint
from climate_ops.core.constants import (
    FALLBACK_OFFSETS_DAYS,
    FETCH_MAX_ATTEMPTS,
    FETCH_RETRY_BASE_SECONDS,
    PLACEHOLDER_SIZE_PX,
    PLACEHOLDER_SOURCE,
    UPLOAD_SOURCE,
)
from climate_ops.core.deadline import RequestDeadline
from climate_ops.core.exceptions import InvalidRequestError, PermanentError
from climate_ops.core.raster import (
    FORMAT_EXTENSIONS,
    MIME_PNG,
    matches_encoding,
    payload_excerpt,
    sniff_encoding,
)
from climate_ops.models.imagery import Provenance, RasterArtifact
from climate_ops.providers.base import PayloadValidationError, ProviderError
from climate_ops.providers.sensors import DEFAULT_SENSOR_PROFILES
from climate_ops.utils.artifact_names import build_raw_artifact_name, sanitise_token
from climate_ops.utils.helpers import format_date_range

if TYPE_CHECKING:
    from collections.abc import Sequence

    from climate_ops.models.geometry import BoundingBox
    from climate_ops.models.imagery import AcquisitionRequest, SensorProfile
    from climate_ops.providers.base import RasterSource

logger = logging.getLogger("climate_ops.activities.acquire_imagery")

_PLACEHOLDER_BACKGROUND = (58, 64, 72)
_PLACEHOLDER_TEXT = (230, 230, 230)


class AcquisitionExhaustedError(PermanentError):
    """No sensor returned usable imagery for the date or any fallback date.

    Attributes:
        dates_searched: Every date tried, in search order.
        sensors: Sensor ids tried on each date.
        date_range: Human-readable span of ``dates_searched``.
    """

    default_stage = "acquire_imagery"
    default_code = "IMAGERY_UNAVAILABLE"

    def __init__(self, dates_searched: Sequence[date], sensors: Sequence[str]) -> None:
        self.dates_searched = tuple(dates_searched)
        self.sensors = tuple(sensors)
        self.date_range = format_date_range(self.dates_searched)
        msg = (
            f"No imagery available from {', '.join(self.sensors) or 'any sensor'} "
            f"for {self.date_range or 'the requested date'}"
        )
        super().__init__(msg)

    def to_error_dict(self) -> dict[str, object]:
        payload = super().to_error_dict()
        payload["dates_searched"] = [d.isoformat() for d in self.dates_searched]
        payload["date_range"] = self.date_range
        return payload


def acquire_imagery(
    source: RasterSource,
    request: AcquisitionRequest,
    *,
    deadline: RequestDeadline | None = None,
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    retry_base_s: float = FETCH_RETRY_BASE_SECONDS,
    fallback_offsets_days: Sequence[int] = FALLBACK_OFFSETS_DAYS,
) -> tuple[RasterArtifact, tuple[date, ...]]:
    """Acquire a validated raster payload for *request*.

    Args:
        source: Configured raster source.
        request: Bounding box, date, sensor priority and optional token.
        deadline: Request deadline; unbounded when omitted.
        max_attempts: Attempt budget per sensor request.
        retry_base_s: First back-off delay, doubling per retry.
        fallback_offsets_days: Days to step back after a failed sweep.

    Returns:
        The acquired artifact and every date searched (the last one is
        the acquisition date).

    Raises:
        AcquisitionExhaustedError: If nothing was found on any date.
        ConfigurationError: If the source has no credentials.
        ProviderAuthError: If the credential exchange failed.
        RequestCancelledError: If the deadline expired or was cancelled.
    """
    deadline = deadline or RequestDeadline()
    profiles = request.sensor_priority or DEFAULT_SENSOR_PROFILES

    logger.info(
        "acquire_imagery started | bbox=%s | date=%s | sensors=%s",
        request.bbox.as_list(),
        request.date.isoformat(),
        ",".join(p.sensor_id for p in profiles),
    )

    token = source.authenticate(request.token, deadline)

    candidates = [request.date] + [request.date - timedelta(days=d) for d in fallback_offsets_days]
    searched: list[date] = []
    for when in candidates:
        deadline.check("acquisition sweep")
        searched.append(when)
        if when != request.date:
            logger.warning(
                "Falling back to earlier date | requested=%s | trying=%s",
                request.date.isoformat(),
                when.isoformat(),
            )
        for profile in profiles:
            payload = _acquire_from_sensor(
                source,
                request.bbox,
                when,
                profile,
                token,
                deadline=deadline,
                max_attempts=max_attempts,
                retry_base_s=retry_base_s,
            )
            if payload is None:
                continue

            name = build_raw_artifact_name(
                profile.sensor_id,
                fingerprint(
                    "raw",
                    bbox=request.bbox.as_list(),
                    date=when.isoformat(),
                    sensor=profile.sensor_id,
                ),
                FORMAT_EXTENSIONS.get(profile.output_format, "bin"),
            )
            artifact = RasterArtifact(
                name=name,
                data=payload,
                encoding=profile.output_format,
                provenance=Provenance(
                    source=profile.sensor_id,
                    acquisition_date=when,
                    requested_date=request.date,
                ),
            )
            logger.info(
                "acquire_imagery completed | sensor=%s | date=%s | dates_searched=%d | size=%d bytes",
                profile.sensor_id,
                when.isoformat(),
                len(searched),
                artifact.size_bytes,
            )
            return artifact, tuple(searched)

    error = AcquisitionExhaustedError(searched, [p.sensor_id for p in profiles])
    logger.error("acquire_imagery exhausted | %s", error.message)
    raise error


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _acquire_from_sensor(
    source: RasterSource,
    bbox: BoundingBox,
    when: date,
    profile: SensorProfile,
    token: str,
    *,
    deadline: RequestDeadline,
    max_attempts: int,
    retry_base_s: float,
) -> bytes | None:
    """One sensor, one date: fetch with retry and validate, or ``None``."""
    try:
        payload = _fetch_with_retry(
            source,
            bbox,
            when,
            profile,
            token,
            deadline=deadline,
            max_attempts=max_attempts,
            retry_base_s=retry_base_s,
        )
        _validate_payload(payload, profile, source.name)
    except ProviderError as exc:
        logger.warning(
            "No data from sensor | sensor=%s | date=%s | code=%s | error=%s",
            profile.sensor_id,
            when.isoformat(),
            exc.code,
            exc,
        )
        return None
    return payload


def _fetch_with_retry(
    source: RasterSource,
    bbox: BoundingBox,
    when: date,
    profile: SensorProfile,
    token: str,
    *,
    deadline: RequestDeadline,
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    retry_base_s: float = FETCH_RETRY_BASE_SECONDS,
) -> bytes:
    """Call ``source.fetch()`` with exponential back-off.

    Retries only errors marked ``retryable``; others propagate on the
    first occurrence. The delay before retry *n* is
    ``retry_base_s * 2 ** (n - 1)``.

    Raises:
        ProviderError: The last error once the budget is spent, or the
            first non-retryable one.
        RequestCancelledError: If a back-off wait is interrupted.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return source.fetch(bbox, when, profile, token, deadline)
        except ProviderError as exc:
            if not exc.retryable:
                raise
            if attempt >= max_attempts:
                logger.error(
                    "Fetch retries exhausted | sensor=%s | date=%s | attempts=%d | error=%s",
                    profile.sensor_id,
                    when.isoformat(),
                    attempt,
                    exc,
                )
                raise
            delay = retry_base_s * 2 ** (attempt - 1)
            logger.warning(
                "Fetch attempt %d/%d failed (retryable) | sensor=%s | date=%s | retry_in=%.1fs | error=%s",
                attempt,
                max_attempts,
                profile.sensor_id,
                when.isoformat(),
                delay,
                exc,
            )
            deadline.sleep(delay)

    msg = f"max_attempts must be >= 1, got {max_attempts}"
    raise ValueError(msg)


def _validate_payload(payload: bytes, profile: SensorProfile, provider: str) -> None:
    """Reject empty payloads and payloads that contradict their encoding."""
    if not matches_encoding(payload, profile.output_format):
        msg = (
            f"{profile.sensor_id} payload does not match {profile.output_format} "
            f"(size={len(payload)} bytes, head={payload_excerpt(payload, 8) or '-'})"
        )
        raise PayloadValidationError(
            provider,
            msg,
            size_bytes=len(payload),
            excerpt=payload_excerpt(payload),
        )


# ---------------------------------------------------------------------------
# Substitute artifacts
# ---------------------------------------------------------------------------


def build_placeholder_artifact(
    bbox: BoundingBox,
    requested_date: date,
    *,
    size_px: int = PLACEHOLDER_SIZE_PX,
) -> RasterArtifact:
    """Render a labelled placeholder PNG for degraded mode.

    The image is uniform apart from the caption, so extraction on it
    yields few or no polygons and scoring marks it as low confidence.
    """
    image = Image.new("RGB", (size_px, size_px), _PLACEHOLDER_BACKGROUND)
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()
    bbox_label = ", ".join(f"{v:.4f}" for v in bbox.as_list())
    lines = (
        "Placeholder imagery",
        f"bbox: [{bbox_label}]",
        f"date: {requested_date.isoformat()}",
    )
    for i, line in enumerate(lines):
        draw.text((24, 24 + 20 * i), line, fill=_PLACEHOLDER_TEXT, font=font)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    name = build_raw_artifact_name(
        PLACEHOLDER_SOURCE,
        fingerprint("placeholder", bbox=bbox.as_list(), date=requested_date.isoformat()),
        "png",
    )
    logger.warning(
        "Using placeholder imagery | bbox=%s | date=%s | artifact=%s",
        bbox.as_list(),
        requested_date.isoformat(),
        name,
    )
    return RasterArtifact(
        name=name,
        data=buffer.getvalue(),
        encoding=MIME_PNG,
        provenance=Provenance(source=PLACEHOLDER_SOURCE, requested_date=requested_date),
    )


def ingest_upload(
    data: bytes,
    *,
    content_type: str = "",
    sensor_id: str = "",
) -> RasterArtifact:
    """Wrap caller-supplied bytes as an ``"upload"`` artifact.

    The encoding is sniffed from magic bytes, falling back to
    *content_type*. A *sensor_id* is embedded in the name so extraction
    applies that sensor's preset.

    Raises:
        InvalidRequestError: If the body is empty or contradicts a
            declared image content type.
    """
    if not data:
        msg = "Upload body is empty"
        raise InvalidRequestError(msg)

    sniffed = sniff_encoding(data)
    declared = content_type.split(";", 1)[0].strip().lower()
    if sniffed in FORMAT_EXTENSIONS:
        encoding = sniffed
    elif declared in FORMAT_EXTENSIONS:
        msg = f"Upload body does not match declared content type {declared}"
        raise InvalidRequestError(msg)
    else:
        encoding = declared or sniffed

    digest = hashlib.sha256(data).hexdigest()
    source = f"{UPLOAD_SOURCE}_{sanitise_token(sensor_id)}" if sensor_id else UPLOAD_SOURCE
    name = f"{source}_{digest[:16]}.{FORMAT_EXTENSIONS.get(encoding, 'bin')}"

    logger.info("Upload ingested | artifact=%s | encoding=%s | size=%d bytes", name, encoding, len(data))
    return RasterArtifact(
        name=name,
        data=data,
        encoding=encoding,
        provenance=Provenance(source=UPLOAD_SOURCE),
    )
