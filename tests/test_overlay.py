"""Tests for river overlay rasterization."""

import geopandas as gpd
import numpy as np
import pytest
from rasterio import Affine
from shapely.geometry import LineString, MultiLineString


@pytest.fixture
def unit_grid():
    """10 x 10 grid of 1-unit pixels with the origin at (0, 10)."""
    return Affine(1.0, 0.0, 0.0, 0.0, -1.0, 10.0), (10, 10)


def _network(geometries, widths):
    from src.hydroterrain.rivers import RiverNetwork

    features = gpd.GeoDataFrame({"width": widths}, geometry=geometries, crs="EPSG:3857")
    return RiverNetwork(features, "EPSG:3857")


class TestLineToPixels:
    """Tests for line_to_pixels."""

    def test_pixel_centers(self, unit_grid):
        from src.hydroterrain.overlay import line_to_pixels

        transform, _ = unit_grid

        pixels = line_to_pixels(LineString([(0.5, 9.5), (9.5, 0.5)]), transform)

        assert pixels == [(0.0, 0.0), (9.0, 9.0)]


class TestRasterizeRiverOverlay:
    """Tests for rasterize_river_overlay."""

    def test_output_matches_grid(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid
        overlay = rasterize_river_overlay(_network([LineString([(0.5, 5.5), (9.5, 5.5)])], [1]), transform, shape)

        assert overlay.shape == (10, 10, 4)
        assert overlay.dtype == np.uint8

    def test_horizontal_line_lands_on_its_row(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid
        network = _network([LineString([(0.5, 5.5), (9.5, 5.5)])], [1])

        overlay = rasterize_river_overlay(network, transform, shape, color="#387B9C")

        # y = 5.5 is the centre of row 4
        assert np.all(overlay[4, :, 3] == 255)
        assert tuple(overlay[4, 5]) == (56, 123, 156, 255)
        assert not np.any(overlay[0, :, 3])

    def test_width_zero_is_not_drawn(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid
        network = _network([LineString([(0.5, 5.5), (9.5, 5.5)])], [0])

        overlay = rasterize_river_overlay(network, transform, shape)

        assert not np.any(overlay[..., 3])

    def test_wider_rivers_cover_more_pixels(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid
        line = LineString([(0.5, 5.5), (9.5, 5.5)])

        thin = rasterize_river_overlay(_network([line], [1]), transform, shape)
        thick = rasterize_river_overlay(_network([line], [5]), transform, shape)

        assert np.count_nonzero(thick[..., 3]) > np.count_nonzero(thin[..., 3])

    def test_multilinestring_parts_are_drawn(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid
        geometry = MultiLineString([[(0.5, 8.5), (9.5, 8.5)], [(0.5, 1.5), (9.5, 1.5)]])

        overlay = rasterize_river_overlay(_network([geometry], [1]), transform, shape)

        assert np.all(overlay[1, :, 3] == 255)
        assert np.all(overlay[8, :, 3] == 255)

    def test_empty_network(self, unit_grid):
        from src.hydroterrain.overlay import rasterize_river_overlay

        transform, shape = unit_grid

        overlay = rasterize_river_overlay(_network([], []), transform, shape)

        assert not np.any(overlay)
