"""Tests for the extract_polygons activity.

Covers:
- Single blob extraction, geo-referenced and in pixel space
- Holes rebuilt from nested contour rings
- Minimum-area filtering
- Noise guards (contour count, coverage ratio)
- Overlap merging to a fixed point
- Sensor preset override by artifact name
"""

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box

from climate_ops.activities.extract_polygons import (
    ExtractionSettings,
    extract_from_grid,
    extract_polygons,
    merge_polygons,
    nest_rings,
)
from climate_ops.core.exceptions import ArtifactNotFoundError, RasterDecodeError
from climate_ops.models import BoundingBox, ModelValidationError, PolygonCollection

from conftest import square_blob


# ---------------------------------------------------------------------------
# Single blob
# ---------------------------------------------------------------------------


class TestSingleBlob:
    def test_georeferenced_blob(self, local_store, blob_png, bbox) -> None:
        local_store.save(blob_png, "blob.png")
        collection = extract_polygons(local_store, "blob.png", bbox=bbox)

        assert len(collection) == 1
        polygon = collection.polygons[0]
        assert polygon.georeferenced is True
        lons = [x for x, _ in polygon.ring]
        lats = [y for _, y in polygon.ring]
        assert min(lons) == pytest.approx(10.0195, abs=1e-3)
        assert max(lons) == pytest.approx(10.0595, abs=1e-3)
        assert min(lats) == pytest.approx(45.0405, abs=1e-3)
        assert max(lats) == pytest.approx(45.0805, abs=1e-3)
        expected = BoundingBox(10.0195, 45.0405, 10.0595, 45.0805).geodesic_area_m2()
        assert polygon.area == pytest.approx(expected, rel=0.02)

    def test_ring_closed_and_counter_clockwise(self, local_store, blob_png, bbox) -> None:
        local_store.save(blob_png, "blob.png")
        ring = extract_polygons(local_store, "blob.png", bbox=bbox).polygons[0].ring
        assert ring[0] == ring[-1]
        signed = sum(x0 * y1 - x1 * y0 for (x0, y0), (x1, y1) in zip(ring, ring[1:], strict=False))
        assert signed > 0

    def test_pixel_space_without_bbox(self, blob_grid) -> None:
        collection = extract_from_grid(blob_grid.astype(float), threshold=128, min_area=10)
        assert len(collection) == 1
        polygon = collection.polygons[0]
        assert polygon.georeferenced is False
        assert polygon.area == pytest.approx(1600, rel=0.02)
        assert polygon.to_feature()["properties"]["area_unit"] == "px2"  # type: ignore[index]

    def test_tiff_input(self, local_store, blob_tiff, bbox) -> None:
        local_store.save(blob_tiff, "blob.tiff")
        assert len(extract_polygons(local_store, "blob.tiff", bbox=bbox)) == 1

    def test_uniform_grid_yields_nothing(self) -> None:
        collection = extract_from_grid(np.zeros((50, 50)), threshold=128)
        assert collection == PolygonCollection()
        assert collection.to_geojson()["features"] == []

    def test_deterministic(self, local_store, blob_png, bbox) -> None:
        local_store.save(blob_png, "blob.png")
        first = extract_polygons(local_store, "blob.png", bbox=bbox)
        second = extract_polygons(local_store, "blob.png", bbox=bbox)
        assert first == second


# ---------------------------------------------------------------------------
# Holes
# ---------------------------------------------------------------------------


class TestHoles:
    def test_gap_inside_blob_becomes_hole(self) -> None:
        grid = square_blob(start=20, stop=60)
        grid[30:50, 30:50] = 0
        collection = extract_from_grid(grid.astype(float), threshold=128, min_area=0)

        assert len(collection) == 1
        polygon = collection.polygons[0]
        assert len(polygon.holes) == 1
        assert polygon.area == pytest.approx(1200, rel=0.02)
        coords = polygon.to_feature()["geometry"]["coordinates"]  # type: ignore[index]
        assert len(coords) == 2

    def test_hole_is_clockwise(self) -> None:
        grid = square_blob(start=20, stop=60)
        grid[30:50, 30:50] = 0
        hole = extract_from_grid(grid.astype(float), threshold=128, min_area=0).polygons[0].holes[0]
        signed = sum(x0 * y1 - x1 * y0 for (x0, y0), (x1, y1) in zip(hole, hole[1:], strict=False))
        assert signed < 0

    def test_holed_blob_passes_coverage_guard(self, bbox) -> None:
        # 50x50 blob (25 % of the frame) around a 30x30 gap.
        grid = square_blob(start=20, stop=70)
        grid[30:60, 30:60] = 0
        collection = extract_from_grid(grid.astype(float), threshold=128, min_area=10, bbox=bbox)

        assert len(collection) == 1
        outer = BoundingBox(10.0195, 45.0305, 10.0695, 45.0805).geodesic_area_m2()
        gap = BoundingBox(10.0295, 45.0405, 10.0595, 45.0705).geodesic_area_m2()
        assert collection.polygons[0].area == pytest.approx(outer - gap, rel=0.02)

    def test_island_inside_hole_is_separate(self) -> None:
        grid = square_blob(start=10, stop=90)
        grid[20:80, 20:80] = 0
        grid[40:60, 40:60] = 255
        collection = extract_from_grid(grid.astype(float), threshold=128, min_area=0)

        assert len(collection) == 2
        frame, island = collection.polygons
        assert len(frame.holes) == 1
        assert island.holes == ()
        assert island.area == pytest.approx(400, rel=0.02)

    def test_nest_rings_depth_parity(self) -> None:
        rings = [box(0, 0, 10, 10), box(2, 2, 8, 8), box(4, 4, 6, 6)]
        shells = nest_rings(rings)
        assert len(shells) == 2
        assert shells[0].area == pytest.approx(100 - 36)
        assert shells[1].area == pytest.approx(4)

    def test_nest_rings_disjoint_untouched(self) -> None:
        rings = [box(0, 0, 1, 1), box(5, 5, 6, 6)]
        assert nest_rings(rings) == rings


# ---------------------------------------------------------------------------
# Filtering and noise guards
# ---------------------------------------------------------------------------


class TestFiltering:
    def test_min_area_drops_small_blobs(self) -> None:
        grid = square_blob()
        grid[80:83, 80:83] = 255
        collection = extract_from_grid(grid.astype(float), threshold=128, min_area=10)
        assert len(collection) == 1
        assert collection.polygons[0].area > 1000

    def test_min_area_zero_keeps_everything(self) -> None:
        grid = square_blob()
        grid[80:83, 80:83] = 255
        collection = extract_from_grid(grid.astype(float), threshold=128, min_area=0)
        assert len(collection) == 2
        # Largest first.
        assert collection.polygons[0].area > collection.polygons[1].area

    def test_too_many_contours(self) -> None:
        grid = np.zeros((100, 100))
        grid[1::3, 1::3] = 255
        collection = extract_from_grid(grid, threshold=128, min_area=0)
        assert len(collection) == 0

    def test_contour_limit_is_configurable(self) -> None:
        grid = np.zeros((100, 100))
        grid[10:20, 10:20] = 255
        grid[40:50, 40:50] = 255
        settings = ExtractionSettings(max_contours=1)
        assert len(extract_from_grid(grid, threshold=128, min_area=0, settings=settings)) == 0

    def test_coverage_guard(self, bbox) -> None:
        grid = square_blob(start=20, stop=80).astype(float)
        assert len(extract_from_grid(grid, threshold=128, min_area=10, bbox=bbox)) == 0

    def test_coverage_under_limit_kept(self, bbox) -> None:
        grid = square_blob(start=20, stop=70).astype(float)
        assert len(extract_from_grid(grid, threshold=128, min_area=10, bbox=bbox)) == 1

    def test_coverage_guard_needs_bbox(self) -> None:
        grid = square_blob(start=20, stop=80).astype(float)
        assert len(extract_from_grid(grid, threshold=128, min_area=10)) == 1

    def test_rejects_non_2d_grid(self) -> None:
        with pytest.raises(ValueError, match="2-D"):
            extract_from_grid(np.zeros((2, 3, 3)))


class TestExtractionSettings:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_contours": 0},
            {"max_coverage_ratio": 0.0},
            {"max_coverage_ratio": 1.5},
            {"merge_overlap_ratio": 0.0},
        ],
    )
    def test_invalid(self, kwargs) -> None:
        with pytest.raises(ModelValidationError):
            ExtractionSettings(**kwargs)


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


class TestMergePolygons:
    def test_overlap_above_ratio_merged(self) -> None:
        merged = merge_polygons([box(0, 0, 10, 10), box(8, 0, 18, 10)], 0.10)
        assert len(merged) == 1
        assert merged[0].area == pytest.approx(180)

    def test_overlap_below_ratio_kept(self) -> None:
        merged = merge_polygons([box(0, 0, 10, 10), box(9.5, 0, 19.5, 10)], 0.10)
        assert len(merged) == 2

    def test_disjoint_kept(self) -> None:
        assert len(merge_polygons([box(0, 0, 1, 1), box(5, 5, 6, 6)])) == 2

    def test_merge_reaches_fixed_point(self) -> None:
        # a+b overlap; their union then overlaps c.
        shapes = [box(0, 0, 10, 10), box(5, 0, 15, 10), box(14, 0, 24, 10)]
        merged = merge_polygons(shapes, 0.05)
        assert len(merged) == 1
        assert merged[0].area == pytest.approx(240)

    def test_no_pair_left_over_ratio(self) -> None:
        shapes = [box(i * 3, 0, i * 3 + 4, 4) for i in range(6)]
        merged = merge_polygons(shapes, 0.10)
        for i, a in enumerate(merged):
            for b in merged[i + 1 :]:
                smaller = min(a.area, b.area)
                assert a.intersection(b).area <= 0.10 * smaller

    def test_contained_polygon_absorbed(self) -> None:
        merged = merge_polygons([box(0, 0, 10, 10), box(2, 2, 4, 4)])
        assert len(merged) == 1
        assert merged[0].area == pytest.approx(100)

    def test_empty_input(self) -> None:
        assert merge_polygons([]) == []


# ---------------------------------------------------------------------------
# Sensor presets
# ---------------------------------------------------------------------------


class TestSensorPresets:
    def test_preset_overrides_threshold(self, local_store, raster_encoder) -> None:
        data = raster_encoder(square_blob(value=135))
        local_store.save(data, "sentinel-2_abc.png")
        local_store.save(data, "scene.png")
        assert len(extract_polygons(local_store, "sentinel-2_abc.png", threshold=128, min_area=0)) == 0
        assert len(extract_polygons(local_store, "scene.png", threshold=128, min_area=0)) == 1

    def test_preset_overrides_min_area(self, local_store, raster_encoder) -> None:
        # 10x10 px blob: ~100 px², below the landsat-8 preset of 2000.
        data = raster_encoder(square_blob(start=10, stop=20))
        local_store.save(data, "landsat-8_abc.png")
        assert len(extract_polygons(local_store, "landsat-8_abc.png", min_area=0)) == 0

    def test_radar_preset_threshold(self, local_store, raster_encoder) -> None:
        data = raster_encoder(square_blob(start=10, stop=60, value=100))
        local_store.save(data, "sentinel-1_abc.png")
        collection = extract_polygons(local_store, "sentinel-1_abc.png", threshold=200)
        assert len(collection) == 1


class TestStoreErrors:
    def test_missing_artifact(self, local_store) -> None:
        with pytest.raises(ArtifactNotFoundError):
            extract_polygons(local_store, "missing.png")

    def test_undecodable_artifact(self, local_store) -> None:
        local_store.save(b"\x00\x01\x02 definitely not a raster", "junk.png")
        with pytest.raises(RasterDecodeError):
            extract_polygons(local_store, "junk.png")
