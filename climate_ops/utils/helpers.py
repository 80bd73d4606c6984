"""Shared helper functions used across activities and the HTTP layer.

Centralises request parsing and numeric conventions so every stage
interprets dates, bounding boxes, and rounding the same way.
"""

from __future__ import annotations

import math
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from climate_ops.core.exceptions import InvalidRequestError
from climate_ops.models.geometry import BoundingBox
from climate_ops.models.imagery import ProviderConfig

if TYPE_CHECKING:
    from collections.abc import Sequence

    from climate_ops.core.config import PipelineConfig

SENTINEL_HUB = "sentinel_hub"


def build_provider_config(config: PipelineConfig) -> ProviderConfig:
    """Build the Sentinel Hub ``ProviderConfig`` from pipeline configuration."""
    return ProviderConfig(
        name=SENTINEL_HUB,
        process_url=config.processing_url,
        token_url=config.token_url,
        access_token=config.access_token,
        client_id=config.client_id,
        client_secret=config.client_secret,
        token_timeout_s=config.token_timeout_s,
        fetch_timeout_s=config.fetch_timeout_s,
    )


def parse_request_date(value: Any, *, default_today: bool = False) -> date:
    """Parse a ``YYYY-MM-DD`` request date.

    Args:
        value: Date string, ``date`` instance, or empty.
        default_today: Return today's UTC date when *value* is empty.

    Raises:
        InvalidRequestError: If the value is missing or malformed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        if default_today:
            return datetime.now(UTC).date()
        msg = "date is required (YYYY-MM-DD)"
        raise InvalidRequestError(msg)
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        msg = f"date must be YYYY-MM-DD, got {value!r}"
        raise InvalidRequestError(msg) from exc


def parse_request_bbox(value: Any, *, required: bool = True) -> BoundingBox | None:
    """Parse a ``[minLon, minLat, maxLon, maxLat]`` request field.

    Raises:
        InvalidRequestError: If the field is missing (when required) or invalid.
    """
    if value is None or value == "":
        if required:
            msg = "bbox is required as [minLon, minLat, maxLon, maxLat]"
            raise InvalidRequestError(msg)
        return None
    if isinstance(value, BoundingBox):
        return value
    if not isinstance(value, (list, tuple)):
        msg = f"bbox must be a list of four numbers, got {type(value).__name__}"
        raise InvalidRequestError(msg)
    try:
        return BoundingBox.from_sequence(value)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid bbox: {exc}") from exc


def parse_number(value: Any, name: str, default: float) -> float:
    """Parse an optional numeric request field, raising ``InvalidRequestError``."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        msg = f"{name} must be a number, got {value!r}"
        raise InvalidRequestError(msg)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be a number, got {value!r}"
        raise InvalidRequestError(msg) from exc
    if not math.isfinite(number):
        msg = f"{name} must be finite, got {value!r}"
        raise InvalidRequestError(msg)
    return number


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (``2.5 -> 3``)."""
    return math.floor(value + 0.5)


def format_date_range(dates: Sequence[date]) -> str:
    """Human-readable span of searched dates, oldest first."""
    if not dates:
        return ""
    oldest, newest = min(dates), max(dates)
    if oldest == newest:
        return oldest.isoformat()
    return f"{oldest.isoformat()} to {newest.isoformat()}"
