"""Raster payload decoding and format sniffing.

Raster artifacts are opaque byte payloads. This module turns them into
numpy arrays via rasterio (any GDAL-readable format: GeoTIFF, PNG,
JPEG, WebP) and reduces multi-band payloads to a single intensity grid.

The decoded arrays carry no geo reference; geographic mapping is
supplied separately as a ``BoundingBox`` at contour time.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.io import MemoryFile

from climate_ops.core.exceptions import RasterDecodeError

logger = logging.getLogger("climate_ops.core.raster")

# ITU-R BT.601 luma weights for R, G, B.
LUMINANCE_WEIGHTS = (0.299, 0.587, 0.114)

_EXCERPT_BYTES = 32

PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"
TIFF_MAGIC_LE = b"II"
TIFF_MAGIC_BE = b"MM"
WEBP_MAGIC = b"RIFF"

MIME_PNG = "image/png"
MIME_JPEG = "image/jpeg"
MIME_TIFF = "image/tiff"
MIME_WEBP = "image/webp"

FORMAT_EXTENSIONS = {
    MIME_PNG: "png",
    MIME_JPEG: "jpg",
    MIME_TIFF: "tiff",
    MIME_WEBP: "webp",
}


def payload_excerpt(data: bytes, length: int = _EXCERPT_BYTES) -> str:
    """Hex excerpt of the first *length* bytes for diagnostics."""
    return data[:length].hex()


def matches_encoding(data: bytes, encoding: str) -> bool:
    """Check *data* against the magic header of its declared *encoding*.

    Known image encodings must carry their format's magic bytes.
    A payload whose encoding is unknown is accepted iff it is non-empty.
    """
    if not data:
        return False
    fmt = encoding.lower()
    if "png" in fmt:
        return len(data) > 8 and data.startswith(PNG_MAGIC)
    if "tif" in fmt:
        return len(data) > 4 and data[:2] in (TIFF_MAGIC_LE, TIFF_MAGIC_BE)
    if "jpeg" in fmt or "jpg" in fmt:
        return data.startswith(JPEG_MAGIC)
    if "webp" in fmt:
        return len(data) > 12 and data.startswith(WEBP_MAGIC) and data[8:12] == b"WEBP"
    return True


def sniff_encoding(data: bytes) -> str:
    """Best-effort MIME type from magic bytes; ``application/octet-stream`` if unknown."""
    if data.startswith(PNG_MAGIC):
        return MIME_PNG
    if data.startswith(JPEG_MAGIC):
        return MIME_JPEG
    if data[:2] in (TIFF_MAGIC_LE, TIFF_MAGIC_BE):
        return MIME_TIFF
    if data.startswith(WEBP_MAGIC) and data[8:12] == b"WEBP":
        return MIME_WEBP
    return "application/octet-stream"


def decode_bands(data: bytes, *, name: str = "") -> np.ndarray:
    """Decode a raster payload into a ``(bands, height, width)`` float64 array.

    Raises:
        RasterDecodeError: If the payload is empty, unreadable, or has no
            usable bands or pixels.
    """
    if not data:
        raise RasterDecodeError(f"Empty raster payload {name!r}", size_bytes=0)

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with MemoryFile(data) as memfile, memfile.open() as dataset:
                if dataset.count < 1 or dataset.width <= 0 or dataset.height <= 0:
                    msg = (
                        f"Raster {name!r} has no usable pixels "
                        f"(bands={dataset.count}, size={dataset.width}x{dataset.height})"
                    )
                    raise RasterDecodeError(
                        msg, size_bytes=len(data), excerpt=payload_excerpt(data)
                    )
                bands = dataset.read().astype(np.float64)
                logger.debug(
                    "Raster decoded | name=%s | driver=%s | bands=%d | size=%dx%d | dtype=%s",
                    name,
                    dataset.driver,
                    dataset.count,
                    dataset.width,
                    dataset.height,
                    dataset.dtypes[0],
                )
    except RasterDecodeError:
        raise
    except (RasterioError, OSError, ValueError) as exc:
        logger.error(
            "Raster decode failed | name=%s | size=%d | head=%s | error=%s",
            name,
            len(data),
            payload_excerpt(data),
            exc,
        )
        raise RasterDecodeError(
            f"Unable to read raster {name!r}: {exc}",
            size_bytes=len(data),
            excerpt=payload_excerpt(data),
        ) from exc

    return bands


def to_intensity(bands: np.ndarray) -> np.ndarray:
    """Reduce a ``(bands, height, width)`` array to a 2-D intensity grid.

    - 1 band: used directly.
    - 2 bands (grey + alpha): the grey band.
    - 3+ bands: ``0.299 R + 0.587 G + 0.114 B``; any alpha band is ignored.
    """
    if bands.ndim != 3:
        msg = f"Expected a (bands, height, width) array, got shape {bands.shape}"
        raise ValueError(msg)
    if bands.shape[0] < 3:
        return np.array(bands[0], dtype=np.float64)
    r_weight, g_weight, b_weight = LUMINANCE_WEIGHTS
    return r_weight * bands[0] + g_weight * bands[1] + b_weight * bands[2]


def decode_intensity_grid(data: bytes, *, name: str = "") -> np.ndarray:
    """Decode *data* straight into an intensity grid of shape (height, width)."""
    return to_intensity(decode_bands(data, name=name))
