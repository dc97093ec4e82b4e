"""
Working coordinate reference system helpers.

Every layer is reprojected into one working CRS before compositing. The
default is a local transverse Mercator (unit scale, GRS80 ellipsoid) with
its origin near the study region, which keeps distortion low there.
"""

import logging
from functools import lru_cache
from typing import Sequence, Tuple

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from src.hydroterrain.errors import ReprojectionError

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"


def transverse_mercator_crs(
    lat_0: float,
    lon_0: float,
    false_easting: float = 1_000_000,
    false_northing: float = 1_000_000,
    ellps: str = "GRS80",
) -> str:
    """
    Build a PROJ string for a local transverse Mercator projection.

    Args:
        lat_0: Latitude of origin in degrees
        lon_0: Central meridian in degrees
        false_easting: x_0 in meters
        false_northing: y_0 in meters
        ellps: Ellipsoid name

    Returns:
        PROJ string usable by pyproj, rasterio and geopandas

    Examples:
        >>> transverse_mercator_crs(4.5962, -74.0775)[:11]
        '+proj=tmerc'
    """
    return (
        f"+proj=tmerc +lat_0={lat_0} +lon_0={lon_0} +k=1 "
        f"+x_0={false_easting} +y_0={false_northing} +ellps={ellps} "
        f"+towgs84=0,0,0,0,0,0,0 +units=m +no_defs"
    )


def as_crs(crs) -> CRS:
    """Parse any CRS description, raising ReprojectionError if it is invalid."""
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise ReprojectionError(f"Invalid CRS {crs!r}: {e}") from e


def same_crs(a, b) -> bool:
    """True if two CRS descriptions denote the same system."""
    return as_crs(a) == as_crs(b)


@lru_cache(maxsize=16)
def _transformer(src: str, dst: str) -> Transformer:
    return Transformer.from_crs(as_crs(src), as_crs(dst), always_xy=True)


def transform_points(
    xs: Sequence[float], ys: Sequence[float], src_crs: str, dst_crs: str
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Transform coordinates between two CRS (x=longitude/easting first).

    Raises:
        ReprojectionError: If any point has no defined image in dst_crs
    """
    xs_out, ys_out = _transformer(str(src_crs), str(dst_crs)).transform(
        np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)
    )
    xs_out = np.atleast_1d(np.asarray(xs_out, dtype=np.float64))
    ys_out = np.atleast_1d(np.asarray(ys_out, dtype=np.float64))
    if not (np.all(np.isfinite(xs_out)) and np.all(np.isfinite(ys_out))):
        raise ReprojectionError(f"Transform {src_crs} -> {dst_crs} undefined for some points")
    return xs_out, ys_out


def to_working_crs(lon, lat, working_crs: str):
    """Project geographic lon/lat into the working CRS."""
    return transform_points(lon, lat, GEOGRAPHIC_CRS, working_crs)


def from_working_crs(x, y, working_crs: str):
    """Inverse of to_working_crs."""
    return transform_points(x, y, working_crs, GEOGRAPHIC_CRS)
