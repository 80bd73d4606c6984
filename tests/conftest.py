"""Shared pytest fixtures for the climate-ops test suite."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from climate_ops.models.geometry import BoundingBox
from climate_ops.storage.local import LocalArtifactStore

# ---------------------------------------------------------------------------
# Synthetic rasters
# ---------------------------------------------------------------------------

GRID_SIZE = 100


def encode_raster(array: np.ndarray, fmt: str = "PNG") -> bytes:
    """Encode a uint8 ``(h, w)`` or ``(h, w, bands)`` array with Pillow."""
    buffer = io.BytesIO()
    Image.fromarray(np.asarray(array, dtype=np.uint8)).save(buffer, format=fmt)
    return buffer.getvalue()


def square_blob(
    size: int = GRID_SIZE,
    start: int = 20,
    stop: int = 60,
    value: int = 255,
) -> np.ndarray:
    """Zero grid with one filled square ``[start:stop, start:stop]``."""
    grid = np.zeros((size, size), dtype=np.uint8)
    grid[start:stop, start:stop] = value
    return grid


@pytest.fixture()
def raster_encoder() -> Callable[..., bytes]:
    """Return ``encode_raster(array, fmt="PNG") -> bytes``."""
    return encode_raster


@pytest.fixture()
def blob_grid() -> np.ndarray:
    """100x100 grid with a single 40x40 blob at rows/cols 20-59."""
    return square_blob()


@pytest.fixture()
def blob_png(blob_grid: np.ndarray) -> bytes:
    return encode_raster(blob_grid, "PNG")


@pytest.fixture()
def blob_tiff(blob_grid: np.ndarray) -> bytes:
    return encode_raster(blob_grid, "TIFF")


# ---------------------------------------------------------------------------
# Geometry and storage
# ---------------------------------------------------------------------------


@pytest.fixture()
def bbox() -> BoundingBox:
    """A ~8 km x 11 km box in northern Italy."""
    return BoundingBox(10.0, 45.0, 10.1, 45.1)


@pytest.fixture()
def local_store(tmp_path: Path) -> LocalArtifactStore:
    return LocalArtifactStore(tmp_path / "artifacts")
