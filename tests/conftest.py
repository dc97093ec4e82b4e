"""Pytest configuration and fixtures for hydroterrain tests."""
import io
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pytest
from PIL import Image
from rasterio import Affine
from shapely.geometry import LineString, Point, box

from src import config as defaults

# Longitude/latitude extents of the synthetic administrative polygons
CUNDINAMARCA_BOX = (-74.9, 3.7, -73.0, 5.8)
BOGOTA_BOX = (-74.45, 3.7, -73.99, 4.85)
BOYACA_BOX = (-74.0, 5.8, -72.0, 7.0)

TEST_ZOOM = 6


def encode_terrarium(elevation: np.ndarray) -> np.ndarray:
    """Encode elevations as Terrarium RGB pixels (inverse of decode_terrarium)."""
    value = np.asarray(elevation, dtype=np.float64) + 32768.0
    r = np.floor(value / 256.0)
    g = np.floor(value - r * 256.0)
    b = np.round((value - r * 256.0 - g) * 256.0)
    return np.stack([r, g, b], axis=-1).clip(0, 255).astype(np.uint8)


def terrarium_png(elevation: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(encode_terrarium(elevation)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeTileSource:
    """
    Tile source returning synthetic elevations that increase southwards.

    Elevation equals 1000 m plus the global pixel row of the tile mosaic, so
    the northern edge of any mosaic is always lower than its southern edge.
    """

    def __init__(self):
        self.requests = []

    def fetch_tile(self, zoom, x, y):
        self.requests.append((zoom, x, y))
        rows = np.arange(256, dtype=np.float32) + y * 256
        return np.repeat(rows[:, None], 256, axis=1) + 1000.0


@pytest.fixture
def admin_boundaries():
    """Administrative polygons in EPSG:4326 with a NAME_1 attribute."""
    return gpd.GeoDataFrame(
        {
            "NAME_1": ["Cundinamarca", "Bogotá D.C.", "Boyacá"],
            "NAME_2": ["Fusagasugá", "Bogotá", "Tunja"],
        },
        geometry=[box(*CUNDINAMARCA_BOX), box(*BOGOTA_BOX), box(*BOYACA_BOX)],
        crs="EPSG:4326",
    )


@pytest.fixture
def boundary(admin_boundaries):
    """Resolved Bogotá + Cundinamarca boundary."""
    from src.hydroterrain.boundary import resolve_boundary

    return resolve_boundary(admin_boundaries, defaults.REGION_NAMES)


@pytest.fixture
def river_features():
    """River lines (plus one stray point) in EPSG:4326 with ORD_FLOW codes."""
    return gpd.GeoDataFrame(
        {
            "HYRIV_ID": [1, 2, 3, 4, 5],
            "ORD_FLOW": [4, 3, 5, 9, 2],
        },
        geometry=[
            # Fully inside the boundary
            LineString([(-74.3, 4.3), (-74.1, 4.7), (-73.9, 5.1)]),
            # Crosses the eastern edge at lon -73.0
            LineString([(-73.5, 5.0), (-72.5, 5.0)]),
            # Far outside
            LineString([(-71.0, 6.5), (-70.5, 6.6)]),
            # Inside, flow order without a width class
            LineString([(-74.6, 4.0), (-74.5, 4.2)]),
            # Not a line
            Point(-74.2, 4.5),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def fake_tile_source():
    return FakeTileSource()


@pytest.fixture
def working_raster():
    """20 x 30 raster in the working CRS with elevation rising eastwards."""
    from src.hydroterrain.elevation import ElevationRaster

    data = np.tile(np.linspace(2500.0, 3200.0, 30, dtype=np.float32), (20, 1))
    data[0, 0] = np.nan
    transform = Affine(100.0, 0.0, 1_000_000.0, 0.0, -100.0, 1_002_000.0)
    return ElevationRaster(data, transform, defaults.WORKING_CRS)


@pytest.fixture
def working_network():
    """Two rivers inside working_raster's extent; the second is never drawn."""
    from src.hydroterrain.rivers import RiverNetwork

    features = gpd.GeoDataFrame(
        {"ORD_FLOW": [4, 9], "width": np.array([14, 0], dtype=np.int64)},
        geometry=[
            LineString([(1_000_500.0, 1_001_000.0), (1_002_500.0, 1_001_000.0)]),
            LineString([(1_001_000.0, 1_000_200.0), (1_001_000.0, 1_001_800.0)]),
        ],
        crs=defaults.WORKING_CRS,
    )
    return RiverNetwork(features, defaults.WORKING_CRS)


@pytest.fixture
def pipeline_config(tmp_path):
    """Configuration rooted in a temporary directory with no remote light."""
    from src.hydroterrain.context import PipelineConfig

    return PipelineConfig.from_defaults(
        tmp_path / "data",
        elevation_zoom=TEST_ZOOM,
        environment_light_url=None,
        rivers_url=None,
        gadm_url_template=None,
    )


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent
