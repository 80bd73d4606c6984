"""Extract polygons activity — iso-contours of a raster as risk polygons.

Steps (in order):
1. Decode the artifact into an intensity grid (see ``core.raster``).
2. If the artifact name carries a known sensor id, that sensor's preset
   replaces the caller's threshold and minimum area.
3. Trace iso-contours at the threshold (``skimage.measure.find_contours``).
4. Noise guard: more than ``max_contours`` raw contours yields an empty
   collection.
5. Map pixel to geographic coordinates through the bounding box
   (``lon = min_lon + x / width * dx``, ``lat = max_lat - y / height * dy``)
   and close every ring. Without a bounding box pixel coordinates are kept.
6. Drop degenerate rings and repair self-intersections with ``buffer(0)``.
   Rings enclosed by an odd number of other rings are gaps inside a
   feature and become holes of their smallest enclosing ring. Drop
   polygons under the minimum area (geodesic m² with a bounding box,
   pixel² without), measured net of holes.
7. Noise guard: a union of kept polygons covering more than
   ``max_coverage_ratio`` of the bounding box yields an empty collection.
8. Merge overlapping polygons until no pair overlaps by more than
   ``merge_overlap_ratio`` of the smaller one.

Noise guard rejections are not errors. They log a warning and return an
empty ``PolygonCollection``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from shapely import STRtree
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.polygon import orient
from shapely.ops import unary_union
from skimage import measure

from climate_ops.core.constants import (
    DEFAULT_MIN_AREA,
    DEFAULT_THRESHOLD,
    MAX_COVERAGE_RATIO,
    MAX_RAW_CONTOURS,
    MERGE_OVERLAP_RATIO,
)
from climate_ops.core.raster import decode_intensity_grid
from climate_ops.models._validation import ModelValidationError, check_min, check_range
from climate_ops.models.geometry import PolygonCollection, RiskPolygon, geodesic_area_m2
from climate_ops.providers.sensors import find_sensor_in_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from shapely.geometry import LinearRing
    from shapely.geometry.base import BaseGeometry

    from climate_ops.models.geometry import BoundingBox
    from climate_ops.storage.base import ArtifactStore

logger = logging.getLogger("climate_ops.activities.extract_polygons")

_MIN_DISTINCT_VERTICES = 3


@dataclass(frozen=True, slots=True)
class ExtractionSettings:
    """Noise guard and merge tuning for contour extraction.

    Attributes:
        max_contours: Raw contour ceiling; above it the raster is noise.
        max_coverage_ratio: Polygon area / bbox area ceiling (0-1].
        merge_overlap_ratio: Intersection share of the smaller polygon
            above which a pair is merged (0-1].
    """

    max_contours: int = MAX_RAW_CONTOURS
    max_coverage_ratio: float = MAX_COVERAGE_RATIO
    merge_overlap_ratio: float = MERGE_OVERLAP_RATIO

    def __post_init__(self) -> None:
        check_min("ExtractionSettings", "max_contours", self.max_contours, 1)
        check_range("ExtractionSettings", "max_coverage_ratio", self.max_coverage_ratio, 0, 1)
        check_range("ExtractionSettings", "merge_overlap_ratio", self.merge_overlap_ratio, 0, 1)
        if self.max_coverage_ratio == 0 or self.merge_overlap_ratio == 0:
            raise ModelValidationError(
                "ExtractionSettings", "ratio", 0, "coverage and overlap ratios must be > 0"
            )


def extract_polygons(
    store: ArtifactStore,
    artifact_name: str,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    min_area: float = DEFAULT_MIN_AREA,
    bbox: BoundingBox | None = None,
    settings: ExtractionSettings | None = None,
) -> PolygonCollection:
    """Extract risk polygons from a stored raster.

    Args:
        store: Artifact store holding *artifact_name*.
        artifact_name: Artifact name or locator.
        threshold: Iso-contour level on the intensity grid.
        min_area: Minimum polygon area (m² with *bbox*, pixel² without).
        bbox: Geographic extent the raster covers.
        settings: Noise guard and merge tuning.

    Raises:
        ArtifactNotFoundError: If the artifact does not exist.
        RasterDecodeError: If the artifact cannot be decoded.
    """
    profile = find_sensor_in_name(artifact_name)
    if profile is not None:
        logger.info(
            "Sensor preset applied | artifact=%s | sensor=%s | threshold=%s->%s | min_area=%s->%s",
            artifact_name,
            profile.sensor_id,
            threshold,
            profile.preset.threshold,
            min_area,
            profile.preset.min_area,
        )
        threshold = profile.preset.threshold
        min_area = profile.preset.min_area

    start_time = time.monotonic()
    grid = decode_intensity_grid(store.load(artifact_name), name=artifact_name)
    collection = extract_from_grid(
        grid,
        threshold=threshold,
        min_area=min_area,
        bbox=bbox,
        settings=settings,
        label=artifact_name,
    )
    logger.info(
        "extract_polygons completed | artifact=%s | polygons=%d | total_area=%.1f | duration=%.2fs",
        artifact_name,
        len(collection),
        collection.total_area,
        time.monotonic() - start_time,
    )
    return collection


def extract_from_grid(
    grid: np.ndarray,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    min_area: float = DEFAULT_MIN_AREA,
    bbox: BoundingBox | None = None,
    settings: ExtractionSettings | None = None,
    label: str = "",
) -> PolygonCollection:
    """Contour, filter, guard and merge an intensity grid (steps 3-8)."""
    settings = settings or ExtractionSettings()
    if grid.ndim != 2 or grid.size == 0:
        msg = f"Intensity grid must be a non-empty 2-D array, got shape {grid.shape}"
        raise ValueError(msg)

    height, width = grid.shape
    contours = measure.find_contours(grid, level=threshold)
    if len(contours) > settings.max_contours:
        logger.warning(
            "Noise guard: too many contours | artifact=%s | contours=%d | limit=%d",
            label,
            len(contours),
            settings.max_contours,
        )
        return PolygonCollection()

    rings: list[Polygon] = []
    for contour in contours:
        ring = _contour_to_ring(contour, width, height, bbox)
        if ring is None:
            continue
        rings.extend(_repair(Polygon(ring)))

    geometries = [part for shell in nest_rings(rings) for part in _repair(shell)]
    kept = [g for g in geometries if _area(g, bbox) >= min_area]

    if bbox is not None and kept:
        covered = _area(unary_union(kept), bbox)
        ratio = covered / bbox.geodesic_area_m2()
        if ratio > settings.max_coverage_ratio:
            logger.warning(
                "Noise guard: coverage too high | artifact=%s | coverage=%.3f | limit=%.3f",
                label,
                ratio,
                settings.max_coverage_ratio,
            )
            return PolygonCollection()

    merged = merge_polygons(kept, settings.merge_overlap_ratio)
    polygons = [_to_risk_polygon(part, bbox) for geometry in merged for part in _parts(geometry)]

    logger.debug(
        "Contours processed | artifact=%s | raw=%d | kept=%d | merged=%d",
        label,
        len(contours),
        len(kept),
        len(polygons),
    )
    return PolygonCollection.ordered(polygons)


def merge_polygons(
    geometries: Sequence[BaseGeometry],
    overlap_ratio: float = MERGE_OVERLAP_RATIO,
) -> list[BaseGeometry]:
    """Merge overlapping polygons to a fixed point.

    Works over an index-addressed arena: a merge appends the union as a
    new slot and marks both inputs dead. Scanning restarts after every
    merge and stops once no live pair qualifies. Pair order is fixed, so
    the result is deterministic.
    """
    arena: list[BaseGeometry] = list(geometries)
    live = [True] * len(arena)

    merged_pair = True
    while merged_pair:
        merged_pair = False
        for i in range(len(arena)):
            if not live[i]:
                continue
            for j in range(i + 1, len(arena)):
                if live[j] and _should_merge(arena[i], arena[j], overlap_ratio):
                    arena.append(unary_union([arena[i], arena[j]]))
                    live.append(True)
                    live[i] = live[j] = False
                    merged_pair = True
                    break
            if merged_pair:
                break

    return [geometry for geometry, alive in zip(arena, live, strict=True) if alive]


def nest_rings(rings: Sequence[Polygon]) -> list[Polygon]:
    """Rebuild holes from independently traced contour rings.

    ``find_contours`` traces a feature's outline and the outline of each
    gap inside it as separate rings. A ring enclosed by an odd number of
    other rings is a gap: it becomes a hole of its smallest enclosing
    ring. Rings at even depth are returned as shells, in input order.
    """
    if len(rings) < 2:
        return list(rings)

    tree = STRtree(rings)
    holes: list[list[LinearRing]] = [[] for _ in rings]
    shells: list[int] = []
    for index, ring in enumerate(rings):
        enclosing = [int(i) for i in tree.query(ring, predicate="within") if i != index]
        if len(enclosing) % 2 == 0:
            shells.append(index)
            continue
        parent = min(enclosing, key=lambda i: (rings[i].area, i))
        holes[parent].append(ring.exterior)

    return [Polygon(rings[i].exterior, holes[i]) if holes[i] else rings[i] for i in shells]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _contour_to_ring(
    contour: np.ndarray,
    width: int,
    height: int,
    bbox: BoundingBox | None,
) -> list[tuple[float, float]] | None:
    """``(row, col)`` contour to a closed ``(x, y)`` ring, or ``None`` if degenerate."""
    xs = contour[:, 1]
    ys = contour[:, 0]
    if bbox is not None:
        xs = bbox.min_lon + xs / width * bbox.width_deg
        ys = bbox.max_lat - ys / height * bbox.height_deg
    ring = list(zip(xs.tolist(), ys.tolist(), strict=True))
    if len(set(ring)) < _MIN_DISTINCT_VERTICES:
        return None
    if ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def _repair(polygon: Polygon) -> list[Polygon]:
    """Return *polygon*, or its ``buffer(0)`` repair split into parts."""
    if not polygon.is_valid:
        return [p for p in _parts(polygon.buffer(0)) if not p.is_empty]
    return [polygon] if not polygon.is_empty else []


def _parts(geometry: BaseGeometry) -> Iterable[Polygon]:
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return list(geometry.geoms)
    return [g for g in getattr(geometry, "geoms", ()) if isinstance(g, Polygon)]


def _area(geometry: BaseGeometry, bbox: BoundingBox | None) -> float:
    """Geodesic m² with a bbox, planar area without; holes are subtracted."""
    if bbox is None:
        return float(geometry.area)
    return sum(
        geodesic_area_m2(list(part.exterior.coords))
        - sum(geodesic_area_m2(list(hole.coords)) for hole in part.interiors)
        for part in _parts(geometry)
    )


def _to_risk_polygon(part: Polygon, bbox: BoundingBox | None) -> RiskPolygon:
    oriented = orient(part, sign=1.0)
    return RiskPolygon(
        ring=_coords(oriented.exterior),
        area=_area(oriented, bbox),
        georeferenced=bbox is not None,
        holes=tuple(_coords(hole) for hole in oriented.interiors),
    )


def _coords(ring: LinearRing) -> tuple[tuple[float, float], ...]:
    return tuple((float(x), float(y)) for x, y in ring.coords)


def _should_merge(a: BaseGeometry, b: BaseGeometry, overlap_ratio: float) -> bool:
    smaller = min(a.area, b.area)
    if smaller <= 0 or not a.intersects(b):
        return False
    return a.intersection(b).area > overlap_ratio * smaller
