"""Preprocess imagery activity — normalise a raw raster for display and extraction.

Operations (in order):
1. Decode the stored artifact (rasterio; any GDAL-readable format).
2. Crop to the request bounding box, best effort. Raw payloads carry no
   usable pixel mapping for the box, so this always degrades to the
   full frame and says so in the log.
3. Contrast-normalise each band with a 1-99 percentile stretch to 0-255.
4. Resize to the target width, preserving aspect ratio (Lanczos).
5. Re-encode as PNG, JPEG, WebP or TIFF and store under a deterministic
   name, so the same request always overwrites the same artifact.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from climate_ops.core.cache import fingerprint
from climate_ops.core.constants import DEFAULT_OUTPUT_FORMAT, DEFAULT_TARGET_WIDTH
from climate_ops.core.exceptions import ValidationError
from climate_ops.core.raster import MIME_JPEG, MIME_PNG, MIME_TIFF, MIME_WEBP, decode_bands
from climate_ops.utils.artifact_names import build_processed_artifact_name

if TYPE_CHECKING:
    from climate_ops.models.geometry import BoundingBox
    from climate_ops.storage.base import ArtifactStore

logger = logging.getLogger("climate_ops.activities.preprocess_imagery")

STRETCH_PERCENTILES = (1.0, 99.0)
MAX_TARGET_WIDTH = 8192


@dataclass(frozen=True, slots=True)
class OutputFormat:
    pil_format: str
    mime_type: str
    extension: str


OUTPUT_FORMATS: dict[str, OutputFormat] = {
    "png": OutputFormat("PNG", MIME_PNG, "png"),
    "jpeg": OutputFormat("JPEG", MIME_JPEG, "jpg"),
    "jpg": OutputFormat("JPEG", MIME_JPEG, "jpg"),
    "webp": OutputFormat("WEBP", MIME_WEBP, "webp"),
    "tiff": OutputFormat("TIFF", MIME_TIFF, "tiff"),
    "tif": OutputFormat("TIFF", MIME_TIFF, "tiff"),
}


class PreprocessError(ValidationError):
    """Raised for unusable preprocessing parameters. Never retryable."""

    default_stage = "preprocess_imagery"
    default_code = "PREPROCESS_INVALID"


@dataclass(frozen=True, slots=True)
class PreprocessResult:
    """Outcome of ``preprocess_imagery``.

    Attributes:
        output_artifact_name: Name of the stored normalised artifact.
        locator: Store locator of that artifact.
        width: Output width in pixels.
        height: Output height in pixels.
        cropped: Whether a bounding-box crop was applied.
        output_format: Output format key (``"png"``, ``"jpeg"``, ...).
        size_bytes: Encoded output size.
    """

    output_artifact_name: str
    locator: str
    width: int
    height: int
    cropped: bool
    output_format: str
    size_bytes: int

    def to_dict(self) -> dict[str, object]:
        return {
            "output_artifact_name": self.output_artifact_name,
            "locator": self.locator,
            "width": self.width,
            "height": self.height,
            "cropped": self.cropped,
            "output_format": self.output_format,
            "size_bytes": self.size_bytes,
        }


def preprocess_imagery(
    store: ArtifactStore,
    artifact_name: str,
    *,
    bbox: BoundingBox | None = None,
    target_width: int = DEFAULT_TARGET_WIDTH,
    output_format: str = DEFAULT_OUTPUT_FORMAT,
) -> PreprocessResult:
    """Decode, normalise, resize and re-encode a stored raster.

    Args:
        store: Artifact store holding *artifact_name*.
        artifact_name: Source artifact name or locator.
        bbox: Optional crop extent (see module notes).
        target_width: Output width in pixels.
        output_format: ``png``, ``jpeg``, ``webp`` or ``tiff``.

    Raises:
        PreprocessError: On an unsupported format or invalid width.
        ArtifactNotFoundError: If the source artifact does not exist.
        RasterDecodeError: If the source cannot be decoded.
    """
    fmt = OUTPUT_FORMATS.get(output_format.lower().strip())
    if fmt is None:
        supported = ", ".join(sorted({"png", "jpeg", "webp", "tiff"}))
        msg = f"Unsupported output format {output_format!r}; expected one of: {supported}"
        raise PreprocessError(msg)
    if isinstance(target_width, bool) or not isinstance(target_width, int):
        msg = f"target_width must be an integer, got {target_width!r}"
        raise PreprocessError(msg)
    if not 0 < target_width <= MAX_TARGET_WIDTH:
        msg = f"target_width must be in 1..{MAX_TARGET_WIDTH}, got {target_width}"
        raise PreprocessError(msg)

    logger.info(
        "preprocess_imagery started | artifact=%s | target_width=%d | format=%s",
        artifact_name,
        target_width,
        fmt.extension,
    )
    start_time = time.monotonic()

    data = store.load(artifact_name)
    bands = decode_bands(data, name=artifact_name)
    bands, cropped = _crop_to_bbox(bands, bbox, artifact_name)

    image = _to_image(stretch_contrast(bands))
    width, height = image.size
    out_height = max(1, round(height * target_width / width))
    image = image.resize((target_width, out_height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format=fmt.pil_format)
    encoded = buffer.getvalue()

    key = fingerprint(
        "preprocess",
        source=artifact_name,
        bbox=bbox.as_list() if bbox else None,
        width=target_width,
        format=fmt.extension,
    )
    output_name = build_processed_artifact_name(artifact_name, key, fmt.extension)
    locator = store.save(encoded, output_name, content_type=fmt.mime_type)

    logger.info(
        "preprocess_imagery completed | artifact=%s | output=%s | size=%dx%d | "
        "bytes=%d | cropped=%s | duration=%.2fs",
        artifact_name,
        output_name,
        target_width,
        out_height,
        len(encoded),
        cropped,
        time.monotonic() - start_time,
    )

    return PreprocessResult(
        output_artifact_name=output_name,
        locator=locator,
        width=target_width,
        height=out_height,
        cropped=cropped,
        output_format=fmt.extension,
        size_bytes=len(encoded),
    )


def stretch_contrast(
    bands: np.ndarray,
    percentiles: tuple[float, float] = STRETCH_PERCENTILES,
) -> np.ndarray:
    """Percentile-stretch each band of ``(bands, h, w)`` to uint8 0-255.

    A band with no spread between the percentiles is clipped as-is.
    """
    out = np.empty(bands.shape, dtype=np.uint8)
    for i, band in enumerate(bands):
        finite = band[np.isfinite(band)]
        if finite.size == 0:
            out[i] = 0
            continue
        lo, hi = np.percentile(finite, percentiles)
        clean = np.nan_to_num(band, nan=lo, posinf=hi, neginf=lo)
        if hi <= lo:
            out[i] = np.clip(clean, 0, 255).astype(np.uint8)
            continue
        scaled = (clean - lo) * (255.0 / (hi - lo))
        out[i] = np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
    return out


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _crop_to_bbox(
    bands: np.ndarray,
    bbox: BoundingBox | None,
    artifact_name: str,
) -> tuple[np.ndarray, bool]:
    """Return the crop window for *bbox*; always the full frame today.

    The bounding box is the request extent, and raw payloads are
    rendered for exactly that extent, so there is no sub-window to
    compute without real geo-referencing.
    """
    if bbox is not None:
        logger.warning(
            "Crop unavailable, using full frame | artifact=%s | bbox=%s | size=%dx%d",
            artifact_name,
            bbox.as_list(),
            bands.shape[2],
            bands.shape[1],
        )
    return bands, False


def _to_image(stretched: np.ndarray) -> Image.Image:
    """Greyscale for 1-2 bands, RGB from the first three otherwise."""
    if stretched.shape[0] >= 3:
        return Image.fromarray(np.ascontiguousarray(np.moveaxis(stretched[:3], 0, -1)))
    return Image.fromarray(np.ascontiguousarray(stretched[0]))
