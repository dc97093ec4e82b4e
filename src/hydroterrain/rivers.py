"""
River network extraction.

Turns a continental line dataset (HydroRIVERS) into the river network of one
region. The steps run in a fixed order:

1. bounding box of the boundary
2. read only the features intersecting that box
3. drop features that are not lines
4. intersect every line with the boundary
5. classify a stroke width from the flow-order code
6. reproject into the working CRS

Width-0 rivers (flow orders outside the width table) are kept in the network;
they are simply not drawn.

Usage::

    from src.hydroterrain.rivers import ensure_river_dataset, extract_river_network

    shapefile = ensure_river_dataset(config)
    network = extract_river_network(shapefile, boundary, config.working_crs)
"""

import logging
import math
import numbers
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import geopandas as gpd
import numpy as np
import requests
from shapely.geometry import GeometryCollection, LineString, MultiLineString
from shapely.geometry.base import BaseGeometry
from shapely.ops import linemerge

from src.hydroterrain.boundary import BoundaryGeometry, BoundingBox
from src.hydroterrain.downloads import extract_archive, fetch_if_missing
from src.hydroterrain.errors import AcquisitionFailure, EmptyIntersection, SourceMissing
from src.hydroterrain.projection import same_crs

logger = logging.getLogger(__name__)

# Flow order (1 = largest channel in HydroRIVERS) -> stroke width in pixels
WIDTH_BY_FLOW_ORDER: Dict[int, int] = {2: 18, 3: 16, 4: 14, 5: 12, 6: 10, 7: 6, 8: 3}
DEFAULT_WIDTH = 0

LINE_TYPES = ("LineString", "MultiLineString")


@dataclass(frozen=True, eq=False)
class RiverNetwork:
    """Classified river features (geometry, flow order, width) and their CRS."""

    features: gpd.GeoDataFrame
    crs: str

    def __len__(self) -> int:
        return len(self.features)

    @property
    def is_empty(self) -> bool:
        return self.features.empty

    @property
    def widths(self) -> np.ndarray:
        return self.features["width"].to_numpy()

    @property
    def bounds(self) -> Optional[BoundingBox]:
        if self.is_empty:
            return None
        return BoundingBox(*self.features.total_bounds)


def classify_width(
    flow_order,
    table: Mapping[int, int] = WIDTH_BY_FLOW_ORDER,
    default: int = DEFAULT_WIDTH,
) -> int:
    """
    Map a flow-order code to a stroke width.

    The mapping is total: codes missing from the table, negative codes,
    None and NaN all map to default.

    Examples:
        >>> classify_width(4)
        14
        >>> classify_width(9)
        0
        >>> classify_width(-2)
        0
    """
    if flow_order is None:
        return default
    if isinstance(flow_order, numbers.Integral):
        return table.get(int(flow_order), default)
    try:
        value = float(flow_order)
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(value) or not value.is_integer():
        return default
    return table.get(int(value), default)


def ensure_river_dataset(config) -> Path:
    """
    Make sure the river shapefile is available locally.

    The shapefile is used as-is when present. Otherwise the archive is
    downloaded (only if it is not already on disk) and extracted.

    Returns:
        Path to the shapefile

    Raises:
        SourceMissing: If the dataset is absent and no URL is configured
        AcquisitionFailure: If the download or extraction fails
    """
    shapefile = Path(config.rivers_shapefile_path)
    if shapefile.exists():
        logger.info(f"River dataset already exists at {shapefile}, download skipped")
        return shapefile

    archive = Path(config.rivers_archive_path)
    if config.rivers_url is None and not archive.exists():
        raise SourceMissing(f"River dataset not found at {shapefile} and no download URL configured")

    try:
        if config.rivers_url is not None:
            fetch_if_missing(config.rivers_url, archive, timeout=config.timeout)
        extract_archive(archive, config.rivers_dir)
    except (requests.exceptions.RequestException, OSError, zipfile.BadZipFile) as e:
        raise AcquisitionFailure(f"Failed to obtain river dataset: {e}") from e

    if not shapefile.exists():
        raise SourceMissing(f"Archive {archive.name} does not contain {config.rivers_shapefile}")

    return shapefile


def load_rivers(source, bbox: BoundingBox, crs: str) -> gpd.GeoDataFrame:
    """
    Read only the features of source that intersect bbox.

    Args:
        source: Path to a vector dataset, or an in-memory GeoDataFrame
        bbox: Box in crs
        crs: CRS of bbox; the result is returned in this CRS

    Returns:
        GeoDataFrame of intersecting features
    """
    box_series = gpd.GeoSeries([bbox.to_polygon()], crs=crs)

    if isinstance(source, gpd.GeoDataFrame):
        data = source if source.crs is None or same_crs(source.crs, crs) else source.to_crs(crs)
        rivers = data[data.intersects(bbox.to_polygon())]
    else:
        path = Path(source)
        if not path.exists():
            raise SourceMissing(f"River dataset not found: {path}")
        rivers = gpd.read_file(path, bbox=box_series)

    if rivers.crs is None:
        rivers = rivers.set_crs(crs)
    elif not same_crs(rivers.crs, crs):
        rivers = rivers.to_crs(crs)

    logger.info(f"Loaded {len(rivers)} river features intersecting {tuple(round(v, 4) for v in bbox)}")
    return rivers


def filter_line_features(rivers: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Drop every feature whose geometry is not a (multi)line."""
    is_line = rivers.geom_type.isin(LINE_TYPES)
    dropped = int((~is_line).sum())
    if dropped:
        logger.debug(f"Discarded {dropped} non-line features")
    return rivers[is_line]


def _line_parts(geometry: BaseGeometry) -> Optional[BaseGeometry]:
    """Keep only the line components of an intersection result."""
    if geometry is None or geometry.is_empty:
        return None
    if isinstance(geometry, (LineString, MultiLineString)):
        return geometry
    if isinstance(geometry, GeometryCollection):
        lines = []
        for part in geometry.geoms:
            if isinstance(part, LineString):
                lines.append(part)
            elif isinstance(part, MultiLineString):
                lines.extend(part.geoms)
        lines = [line for line in lines if not line.is_empty]
        if not lines:
            return None
        return lines[0] if len(lines) == 1 else linemerge(MultiLineString(lines))
    # Points where a river only touches the boundary
    return None


def clip_to_boundary(rivers: gpd.GeoDataFrame, boundary: BoundaryGeometry) -> gpd.GeoDataFrame:
    """
    Intersect every feature with the boundary.

    A river crossing the boundary is truncated into the sub-segments lying
    within or on it. Features left with no line part are dropped.
    """
    if rivers.empty:
        return rivers.copy()

    clipped = rivers.copy()
    parts = [_line_parts(g) for g in rivers.geometry.intersection(boundary.geometry)]
    clipped[rivers.geometry.name] = gpd.GeoSeries(parts, index=rivers.index, crs=rivers.crs)
    clipped = clipped[clipped.geometry.notna()]
    clipped = clipped[~clipped.geometry.is_empty]

    logger.info(f"{len(clipped)}/{len(rivers)} river features intersect the boundary")
    return clipped


def classify_widths(
    rivers: gpd.GeoDataFrame,
    order_column: str = "ORD_FLOW",
    table: Mapping[int, int] = WIDTH_BY_FLOW_ORDER,
) -> gpd.GeoDataFrame:
    """Add a 'width' column from the flow-order code. No rows are removed."""
    classified = rivers.copy()
    if order_column in classified.columns:
        classified["width"] = [classify_width(code, table) for code in classified[order_column]]
    else:
        logger.warning(f"Column '{order_column}' not found, all rivers get width {DEFAULT_WIDTH}")
        classified["width"] = DEFAULT_WIDTH
    classified["width"] = classified["width"].astype(np.int64)

    counts = classified["width"].value_counts().sort_index()
    logger.debug(f"Width classes: {counts.to_dict()}")
    return classified


def extract_river_network(
    source,
    boundary: BoundaryGeometry,
    working_crs: str,
    order_column: str = "ORD_FLOW",
    width_table: Mapping[int, int] = WIDTH_BY_FLOW_ORDER,
    require_features: bool = True,
) -> RiverNetwork:
    """
    Extract the region's river network in the working CRS.

    Args:
        source: River dataset path or GeoDataFrame
        boundary: Region boundary (the same value used for elevation)
        working_crs: Target CRS of the network
        order_column: Flow-order attribute name
        width_table: Flow order -> width lookup
        require_features: Raise EmptyIntersection when nothing survives
            clipping (False returns an empty network)

    Returns:
        RiverNetwork in working_crs
    """
    bbox = boundary.bbox
    rivers = load_rivers(source, bbox, boundary.crs)
    rivers = filter_line_features(rivers)
    rivers = clip_to_boundary(rivers, boundary)
    rivers = classify_widths(rivers, order_column, width_table)

    if rivers.empty:
        if require_features:
            raise EmptyIntersection("No river features intersect the boundary")
        logger.warning("River network is empty after clipping to the boundary")

    rivers = rivers.to_crs(working_crs).reset_index(drop=True)
    logger.info(f"River network: {len(rivers)} features in working CRS")
    return RiverNetwork(rivers, working_crs)
