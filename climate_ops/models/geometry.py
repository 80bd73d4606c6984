"""Geometric models: bounding boxes and extracted risk polygons.

All geographic coordinates are WGS 84 ``(lon, lat)`` pairs. Areas are
geodesic square metres when a polygon is geo-referenced and planar
square pixels when it is not (extraction without a bounding box).

A ``BoundingBox`` is the only geo reference the pipeline has: the caller
asserts that it maps linearly onto the raster's pixel space.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from pyproj import Geod

from climate_ops.models._validation import ModelValidationError, check_range

_GEOD = Geod(ellps="WGS84")

MIN_RING_POINTS = 4
"""Three distinct vertices plus the closing point."""


def geodesic_area_m2(coords: Sequence[tuple[float, float]]) -> float:
    """Geodesic area of a ring in square metres (winding-order agnostic)."""
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    area_m2, _perimeter = _GEOD.polygon_area_perimeter(lons, lats)
    return abs(area_m2)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Geographic request extent ``(min_lon, min_lat, max_lon, max_lat)``.

    Immutable and passed by value through the pipeline.
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        check_range("BoundingBox", "min_lon", self.min_lon, -180, 180)
        check_range("BoundingBox", "max_lon", self.max_lon, -180, 180)
        check_range("BoundingBox", "min_lat", self.min_lat, -90, 90)
        check_range("BoundingBox", "max_lat", self.max_lat, -90, 90)
        if self.min_lon >= self.max_lon:
            raise ModelValidationError(
                "BoundingBox", "min_lon", self.min_lon, f"must be < max_lon ({self.max_lon})"
            )
        if self.min_lat >= self.max_lat:
            raise ModelValidationError(
                "BoundingBox", "min_lat", self.min_lat, f"must be < max_lat ({self.max_lat})"
            )

    @classmethod
    def from_sequence(cls, values: Sequence[object]) -> BoundingBox:
        """Build from ``[minLon, minLat, maxLon, maxLat]``.

        Raises:
            ModelValidationError: If the sequence is not four numbers or
                violates the ordering invariants.
        """
        if isinstance(values, (str, bytes)) or len(values) != 4:
            raise ModelValidationError(
                "BoundingBox", "bbox", values, "must be [minLon, minLat, maxLon, maxLat]"
            )
        try:
            min_lon, min_lat, max_lon, max_lat = (float(v) for v in values)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ModelValidationError(
                "BoundingBox", "bbox", values, "all four values must be numbers"
            ) from exc
        return cls(min_lon, min_lat, max_lon, max_lat)

    def as_list(self) -> list[float]:
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]

    @property
    def width_deg(self) -> float:
        return self.max_lon - self.min_lon

    @property
    def height_deg(self) -> float:
        return self.max_lat - self.min_lat

    def ring(self) -> list[tuple[float, float]]:
        """Closed counter-clockwise exterior ring of the box."""
        return [
            (self.min_lon, self.min_lat),
            (self.max_lon, self.min_lat),
            (self.max_lon, self.max_lat),
            (self.min_lon, self.max_lat),
            (self.min_lon, self.min_lat),
        ]

    def geodesic_area_m2(self) -> float:
        return geodesic_area_m2(self.ring())


Ring = tuple[tuple[float, float], ...]


def _check_ring(field_name: str, ring: Ring) -> None:
    if len(ring) < MIN_RING_POINTS:
        raise ModelValidationError(
            "RiskPolygon", field_name, len(ring), f"needs at least {MIN_RING_POINTS} points"
        )
    if ring[0] != ring[-1]:
        raise ModelValidationError("RiskPolygon", field_name, ring[0], "ring must be closed")


@dataclass(frozen=True, slots=True)
class RiskPolygon:
    """A closed ring of coordinate pairs with its computed area.

    Attributes:
        ring: Exterior ring; first and last points are equal.
        area: Geodesic m² if geo-referenced, else planar pixel². Net of
            any holes.
        georeferenced: Whether ``ring`` holds ``(lon, lat)`` or ``(x, y)`` pixels.
        holes: Closed interior rings cut out of the exterior.
    """

    ring: Ring
    area: float
    georeferenced: bool = True
    holes: tuple[Ring, ...] = ()

    def __post_init__(self) -> None:
        _check_ring("ring", self.ring)
        for hole in self.holes:
            _check_ring("holes", hole)
        if self.area < 0:
            raise ModelValidationError("RiskPolygon", "area", self.area, "must be >= 0")

    def to_feature(self) -> dict[str, object]:
        """Return a GeoJSON Feature; holes follow the exterior as interior rings."""
        return {
            "type": "Feature",
            "properties": {
                "area": self.area,
                "area_unit": "m2" if self.georeferenced else "px2",
            },
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[x, y] for x, y in ring] for ring in (self.ring, *self.holes)],
            },
        }


@dataclass(frozen=True, slots=True)
class PolygonCollection:
    """Ordered, immutable set of extracted polygons.

    Order is not semantically meaningful but is kept stable (largest
    area first) so repeated runs compare equal.
    """

    polygons: tuple[RiskPolygon, ...] = field(default_factory=tuple)

    @classmethod
    def ordered(cls, polygons: Sequence[RiskPolygon]) -> PolygonCollection:
        return cls(tuple(sorted(polygons, key=lambda p: (-p.area, p.ring))))

    def __len__(self) -> int:
        return len(self.polygons)

    def __iter__(self) -> Iterator[RiskPolygon]:
        return iter(self.polygons)

    @property
    def total_area(self) -> float:
        return sum(p.area for p in self.polygons)

    def to_geojson(self) -> dict[str, object]:
        """Return a GeoJSON FeatureCollection (possibly empty)."""
        return {
            "type": "FeatureCollection",
            "features": [p.to_feature() for p in self.polygons],
        }
