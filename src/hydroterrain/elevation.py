"""
Elevation grid acquisition and reprojection.

Elevation samples come from Terrarium-encoded terrain tiles (the AWS Terrain
Tiles service) at a configured zoom level. The tiles covering the boundary
are mosaicked in Web Mercator, warped into the boundary's native CRS and
clipped exactly to the boundary, then reprojected into the working CRS.

HeightMatrix orientation:
    The height matrix keeps the raster layout. Row 0 is the northern edge
    and column 0 the western edge (upper-left origin, north-up), so
    height[r, c] is the sample at pixel (row=r, col=c) of the reprojected
    raster, whose transform maps (c, r) to working-CRS coordinates.

Usage::

    from src.hydroterrain.elevation import TerrainTileSource, build_elevation_grid

    source = TerrainTileSource(config.terrain_tile_url, cache_dir=config.tile_cache_dir)
    grid = build_elevation_grid(boundary, config.working_crs, zoom=9, source=source)
    grid.height.shape == grid.reprojected.shape  # True
"""

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import rasterio
import rasterio.mask
import requests
from PIL import Image, UnidentifiedImageError
from rasterio import Affine
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile
from rasterio.transform import array_bounds
from rasterio.warp import Resampling, calculate_default_transform, reproject, transform_bounds
from shapely.geometry import mapping
from tqdm import tqdm

from src.hydroterrain.boundary import BoundaryGeometry, BoundingBox
from src.hydroterrain.errors import AcquisitionError, ReprojectionError
from src.hydroterrain.projection import GEOGRAPHIC_CRS, same_crs

logger = logging.getLogger(__name__)

WEB_MERCATOR_CRS = "EPSG:3857"
ORIGIN_SHIFT = 20037508.342789244  # half the Web Mercator world width, meters
TILE_SIZE = 256


@dataclass(frozen=True, eq=False)
class ElevationRaster:
    """Gridded elevation (NaN = no data) with its affine transform and CRS."""

    data: np.ndarray
    transform: Affine
    crs: str

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def bounds(self) -> BoundingBox:
        west, south, east, north = array_bounds(self.data.shape[0], self.data.shape[1], self.transform)
        return BoundingBox(west, south, east, north)

    @property
    def resolution(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)


@dataclass(frozen=True, eq=False)
class ElevationGrid:
    """Outputs of the elevation stage."""

    raw: ElevationRaster  # clipped, boundary CRS
    reprojected: ElevationRaster  # working CRS
    height: np.ndarray  # HeightMatrix


# =============================================================================
# Terrain tiles
# =============================================================================


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> Tuple[int, int]:
    """
    Slippy-map tile indices (x, y) containing a lon/lat point.

    Examples:
        >>> lonlat_to_tile(0.0, 0.0, 1)
        (1, 1)
        >>> lonlat_to_tile(-74.08, 4.6, 9)
        (150, 249)
    """
    n = 2**zoom
    lat = max(min(lat, 85.0511), -85.0511)
    x = int((lon + 180.0) / 360.0 * n)
    y = int((1.0 - math.asinh(math.tan(math.radians(lat))) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tile_range(bbox: BoundingBox, zoom: int) -> Tuple[int, int, int, int]:
    """
    Tile index range (x_min, x_max, y_min, y_max) covering a lon/lat box.

    Tile rows grow southwards, so the north-west corner gives the minimum y.
    """
    x_min, y_min = lonlat_to_tile(bbox.xmin, bbox.ymax, zoom)
    x_max, y_max = lonlat_to_tile(bbox.xmax, bbox.ymin, zoom)
    return x_min, x_max, y_min, y_max


def tile_resolution(zoom: int) -> float:
    """Web Mercator pixel size in meters for a 256 px tile at zoom."""
    return 2 * ORIGIN_SHIFT / (TILE_SIZE * 2**zoom)


def decode_terrarium(rgb: np.ndarray) -> np.ndarray:
    """
    Decode Terrarium RGB pixels to elevation in meters.

    elevation = R * 256 + G + B / 256 - 32768
    """
    rgb = rgb.astype(np.float64)
    elevation = rgb[..., 0] * 256.0 + rgb[..., 1] + rgb[..., 2] / 256.0 - 32768.0
    return elevation.astype(np.float32)


class TerrainTileSource:
    """
    Fetches Terrarium tiles over HTTP with an on-disk tile cache.

    A cached tile file is reused whenever it exists; no freshness check is made.

    Attributes:
        url_template: URL with {z}, {x}, {y} placeholders
        cache_dir: Directory for cached PNG tiles (None disables caching)
        timeout: Request timeout in seconds
    """

    def __init__(self, url_template: str, cache_dir: Optional[Path] = None, timeout: float = 60):
        self.url_template = url_template
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self.timeout = timeout
        self.stats = {"tiles_downloaded": 0, "tiles_cached": 0}

    def tile_path(self, zoom: int, x: int, y: int) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / str(zoom) / str(x) / f"{y}.png"

    def _read_tile_bytes(self, zoom: int, x: int, y: int) -> bytes:
        path = self.tile_path(zoom, x, y)
        if path is not None and path.exists():
            self.stats["tiles_cached"] += 1
            return path.read_bytes()

        url = self.url_template.format(z=zoom, x=x, y=y)
        logger.debug(f"Fetching tile {zoom}/{x}/{y}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise AcquisitionError(f"Failed to fetch elevation tile {zoom}/{x}/{y}: {e}") from e

        content = response.content
        self.stats["tiles_downloaded"] += 1
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return content

    def fetch_tile(self, zoom: int, x: int, y: int) -> np.ndarray:
        """Return one tile as a (256, 256) float32 elevation array."""
        content = self._read_tile_bytes(zoom, x, y)
        try:
            with Image.open(io.BytesIO(content)) as image:
                rgb = np.asarray(image.convert("RGB"))
        except (UnidentifiedImageError, OSError) as e:
            raise AcquisitionError(f"Elevation tile {zoom}/{x}/{y} is not a readable image: {e}") from e
        return decode_terrarium(rgb)


def mosaic_tiles(source, bbox: BoundingBox, zoom: int) -> ElevationRaster:
    """
    Assemble the tiles covering a lon/lat box into one Web Mercator raster.

    Args:
        source: Object with fetch_tile(zoom, x, y) -> (256, 256) array
        bbox: Box in geographic coordinates
        zoom: Tile zoom level

    Returns:
        ElevationRaster in EPSG:3857
    """
    x_min, x_max, y_min, y_max = tile_range(bbox, zoom)
    n_cols = x_max - x_min + 1
    n_rows = y_max - y_min + 1
    logger.info(f"Requesting {n_cols * n_rows} elevation tiles at zoom {zoom}")

    data = np.full((n_rows * TILE_SIZE, n_cols * TILE_SIZE), np.nan, dtype=np.float32)
    tiles = [(x, y) for y in range(y_min, y_max + 1) for x in range(x_min, x_max + 1)]
    for x, y in tqdm(tiles, desc="Elevation tiles", leave=False):
        tile = source.fetch_tile(zoom, x, y)
        if tile.shape != (TILE_SIZE, TILE_SIZE):
            raise AcquisitionError(f"Tile {zoom}/{x}/{y} has shape {tile.shape}, expected {TILE_SIZE}x{TILE_SIZE}")
        row = (y - y_min) * TILE_SIZE
        col = (x - x_min) * TILE_SIZE
        data[row : row + TILE_SIZE, col : col + TILE_SIZE] = tile

    res = tile_resolution(zoom)
    west = -ORIGIN_SHIFT + x_min * TILE_SIZE * res
    north = ORIGIN_SHIFT - y_min * TILE_SIZE * res
    transform = Affine(res, 0, west, 0, -res, north)

    logger.info(f"Mosaic shape: {data.shape}, resolution {res:.1f} m")
    return ElevationRaster(data, transform, WEB_MERCATOR_CRS)


# =============================================================================
# Raster operations
# =============================================================================


def reproject_raster(
    raster: ElevationRaster,
    dst_crs: str,
    resampling: Resampling = Resampling.bilinear,
) -> ElevationRaster:
    """
    Warp a raster into dst_crs.

    Output dimensions and transform come from calculate_default_transform
    over the full source extent.

    Raises:
        ReprojectionError: If the transform is undefined over the extent or
            the result holds no valid sample
    """
    logger.info(f"Reprojecting raster {raster.shape} from {raster.crs} to {dst_crs}")
    height, width = raster.shape

    try:
        dst_transform, dst_width, dst_height = calculate_default_transform(
            raster.crs,
            dst_crs,
            width,
            height,
            *array_bounds(height, width, raster.transform),
        )
        dst_data = np.full((dst_height, dst_width), np.nan, dtype=np.float32)
        reproject(
            source=raster.data.astype(np.float32),
            destination=dst_data,
            src_transform=raster.transform,
            src_crs=raster.crs,
            src_nodata=np.nan,
            dst_transform=dst_transform,
            dst_crs=dst_crs,
            dst_nodata=np.nan,
            resampling=resampling,
        )
    except (RasterioError, ValueError) as e:
        raise ReprojectionError(f"Cannot reproject {raster.crs} -> {dst_crs}: {e}") from e

    if not np.any(np.isfinite(dst_data)):
        raise ReprojectionError(f"Reprojection to {dst_crs} produced no valid elevation samples")

    logger.info(f"Reprojection complete. New shape: {dst_data.shape}")
    logger.debug(f"Value range: {np.nanmin(dst_data):.2f} to {np.nanmax(dst_data):.2f}")
    return ElevationRaster(dst_data, dst_transform, str(dst_crs))


def clip_raster_to_boundary(raster: ElevationRaster, boundary: BoundaryGeometry) -> ElevationRaster:
    """
    Clip a raster exactly to the boundary in the boundary's native CRS.

    The raster is warped into the boundary CRS if needed, cropped to the
    boundary extent, and cells outside the boundary are set to NaN.
    """
    if not same_crs(raster.crs, boundary.crs):
        raster = reproject_raster(raster, boundary.crs)

    height, width = raster.shape
    try:
        with MemoryFile() as memfile:
            with memfile.open(
                driver="GTiff",
                height=height,
                width=width,
                count=1,
                dtype="float32",
                crs=raster.crs,
                transform=raster.transform,
                nodata=np.nan,
            ) as dataset:
                dataset.write(raster.data.astype(np.float32), 1)
            with memfile.open() as dataset:
                clipped, clipped_transform = rasterio.mask.mask(
                    dataset, [mapping(boundary.geometry)], crop=True, nodata=np.nan, filled=True
                )
    except ValueError as e:
        raise AcquisitionError(f"Elevation samples do not cover the boundary: {e}") from e

    data = clipped[0]
    logger.info(f"Clipped elevation raster to boundary: {data.shape}")
    return ElevationRaster(data, clipped_transform, boundary.crs)


def raster_to_height_matrix(raster: ElevationRaster) -> np.ndarray:
    """
    Convert a raster to a dense HeightMatrix.

    The matrix has exactly the raster's (rows, cols) with row 0 = north and
    column 0 = west. NaN marks cells outside the boundary.
    """
    if raster.data.ndim != 2:
        raise ValueError(f"Expected a 2D raster, got shape {raster.data.shape}")
    return np.array(raster.data, dtype=np.float64, copy=True)


def build_elevation_grid(
    boundary: BoundaryGeometry,
    working_crs: str,
    zoom: int,
    source,
) -> ElevationGrid:
    """
    Acquire elevation for the boundary and derive the HeightMatrix.

    Args:
        boundary: Region boundary (the same value used for the river network)
        working_crs: Target CRS
        zoom: Terrain tile zoom level
        source: Tile source with fetch_tile(zoom, x, y)

    Returns:
        ElevationGrid(raw, reprojected, height)
    """
    bbox = boundary.bbox
    if not same_crs(boundary.crs, GEOGRAPHIC_CRS):
        try:
            bbox = BoundingBox(*transform_bounds(boundary.crs, GEOGRAPHIC_CRS, *bbox))
        except (RasterioError, ValueError) as e:
            raise ReprojectionError(f"Cannot express boundary extent in {GEOGRAPHIC_CRS}: {e}") from e

    mosaic = mosaic_tiles(source, bbox, zoom)
    raw = clip_raster_to_boundary(mosaic, boundary)
    reprojected = reproject_raster(raw, working_crs)
    height = raster_to_height_matrix(reprojected)

    logger.info(f"Height matrix: {height.shape[0]} rows x {height.shape[1]} cols")
    return ElevationGrid(raw, reprojected, height)
