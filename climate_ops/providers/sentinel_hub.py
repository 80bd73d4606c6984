"""Sentinel Hub raster source.

Implements ``RasterSource`` against the Sentinel Hub Process API:

- Token resolution: request override, then a static access token, then
  an OAuth client-credentials exchange (``grant_type=client_credentials``,
  form encoded). Exchanged tokens are reused until shortly before expiry.
- One POST per ``fetch`` with a JSON process body (EPSG:4326 bounds,
  full-day time range, evalscript, single ``default`` response).

A single ``httpx.Client`` is constructed per source and reused for all
calls; pass ``client=`` to inject one (tests use ``httpx.MockTransport``).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Any

import httpx

from climate_ops.core.constants import WGS84_CRS_URI
from climate_ops.core.exceptions import ConfigurationError
from climate_ops.providers.base import (
    ProviderAuthError,
    ProviderRequestError,
    ProviderTransportError,
    RasterSource,
)

if TYPE_CHECKING:
    from datetime import date

    from climate_ops.core.deadline import RequestDeadline
    from climate_ops.models.geometry import BoundingBox
    from climate_ops.models.imagery import ProviderConfig, SensorProfile

logger = logging.getLogger("climate_ops.providers.sentinel_hub")

# Refresh exchanged tokens this many seconds before they expire.
_TOKEN_EXPIRY_MARGIN_S = 60.0
_DEFAULT_TOKEN_LIFETIME_S = 3600.0

_ERROR_BODY_EXCERPT = 300


class SentinelHubClient(RasterSource):
    """Sentinel Hub Process API client.

    Example::

        with SentinelHubClient(provider_config) as source:
            token = source.authenticate()
            payload = source.fetch(bbox, date(2025, 6, 1), SENTINEL_2, token)
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        client: httpx.Client | None = None,
        clock: Any = time.monotonic,
    ) -> None:
        super().__init__(config)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(follow_redirects=True)
        self._clock = clock
        self._token: str = ""
        self._token_expires_at: float = 0.0
        self._token_lock = threading.Lock()

    # ------------------------------------------------------------------
    # authenticate
    # ------------------------------------------------------------------

    def authenticate(
        self,
        token_override: str = "",
        deadline: RequestDeadline | None = None,
    ) -> str:
        if token_override:
            return token_override
        if self.config.access_token:
            return self.config.access_token
        if not (self.config.client_id and self.config.client_secret):
            msg = (
                "No Sentinel Hub credentials configured: set SENTINEL_HUB_ACCESS_TOKEN "
                "or SENTINEL_HUB_CLIENT_ID and SENTINEL_HUB_CLIENT_SECRET"
            )
            raise ConfigurationError(msg)

        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token
            token, lifetime_s = self._exchange_credentials(deadline)
            self._token = token
            self._token_expires_at = self._clock() + max(0.0, lifetime_s - _TOKEN_EXPIRY_MARGIN_S)
            return token

    def _exchange_credentials(self, deadline: RequestDeadline | None) -> tuple[str, float]:
        timeout = self._timeout(self.config.token_timeout_s, deadline)
        try:
            response = self._client.post(
                self.config.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"Token exchange failed: {exc}"
            raise ProviderAuthError(self.name, msg) from exc

        if response.is_error:
            msg = (
                f"Token exchange rejected with HTTP {response.status_code}: "
                f"{response.text[:_ERROR_BODY_EXCERPT]}"
            )
            raise ProviderAuthError(self.name, msg)

        try:
            body = response.json()
        except ValueError as exc:
            msg = "Token exchange returned a non-JSON body"
            raise ProviderAuthError(self.name, msg) from exc

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            msg = "Token exchange response has no access_token"
            raise ProviderAuthError(self.name, msg)

        try:
            lifetime_s = float(body.get("expires_in") or _DEFAULT_TOKEN_LIFETIME_S)
        except (TypeError, ValueError) as exc:
            msg = f"Token exchange returned a non-numeric expires_in: {body.get('expires_in')!r}"
            raise ProviderAuthError(self.name, msg) from exc
        logger.info("Sentinel Hub token obtained | expires_in=%.0fs", lifetime_s)
        return str(token), lifetime_s

    # ------------------------------------------------------------------
    # fetch
    # ------------------------------------------------------------------

    def fetch(
        self,
        bbox: BoundingBox,
        acquisition_date: date,
        profile: SensorProfile,
        token: str,
        deadline: RequestDeadline | None = None,
    ) -> bytes:
        if not self.config.process_url:
            msg = "SENTINEL_HUB_PROCESSING_URL is not configured"
            raise ConfigurationError(msg)

        body = build_process_body(bbox, acquisition_date, profile)
        timeout = self._timeout(self.config.fetch_timeout_s, deadline)
        try:
            response = self._client.post(
                self.config.process_url,
                json=body,
                headers={
                    "Accept": profile.output_format or "application/octet-stream",
                    "Authorization": f"Bearer {token}",
                },
                timeout=timeout,
            )
        except httpx.TransportError as exc:
            msg = f"{profile.sensor_id} request failed: {exc!r}"
            raise ProviderTransportError(self.name, msg) from exc

        status = response.status_code
        if status == httpx.codes.TOO_MANY_REQUESTS or status >= 500:
            msg = f"{profile.sensor_id} request returned HTTP {status}"
            raise ProviderTransportError(self.name, msg, status_code=status)
        if response.is_error:
            msg = (
                f"{profile.sensor_id} request returned HTTP {status}: "
                f"{response.text[:_ERROR_BODY_EXCERPT]}"
            )
            raise ProviderRequestError(self.name, msg, status_code=status)

        logger.debug(
            "Sentinel Hub response | sensor=%s | date=%s | status=%d | content_type=%s | size=%d",
            profile.sensor_id,
            acquisition_date.isoformat(),
            status,
            response.headers.get("content-type", ""),
            len(response.content),
        )
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _timeout(nominal_s: float, deadline: RequestDeadline | None) -> float:
        return nominal_s if deadline is None else deadline.timeout(nominal_s)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def build_process_body(
    bbox: BoundingBox,
    acquisition_date: date,
    profile: SensorProfile,
) -> dict[str, Any]:
    """Build a Process API request body for one sensor and one day."""
    day = acquisition_date.isoformat()
    return {
        "input": {
            "bounds": {
                "bbox": bbox.as_list(),
                "properties": {"crs": WGS84_CRS_URI},
            },
            "data": [
                {
                    "type": profile.data_type,
                    "dataFilter": {
                        "timeRange": {"from": f"{day}T00:00:00Z", "to": f"{day}T23:59:59Z"},
                    },
                }
            ],
        },
        "evalscript": profile.evalscript,
        "output": {
            "responses": [
                {"identifier": "default", "format": {"type": profile.output_format}},
            ],
        },
    }
