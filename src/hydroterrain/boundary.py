"""
Administrative boundary resolution.

Fetches the administrative polygons of a country at one subdivision level
(GADM 4.1), keeps the rows whose region name is in the target set, and
unions them into a single BoundaryGeometry. The boundary is computed once
per run and shared by the river and elevation stages.

Usage::

    from src.hydroterrain.boundary import resolve_region_boundary
    from src.hydroterrain.context import PipelineConfig

    boundary = resolve_region_boundary(PipelineConfig.from_defaults())
    print(boundary.bbox)
"""

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, NamedTuple, Optional

import geopandas as gpd
import requests
from shapely import wkt
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import make_valid

from src.hydroterrain.downloads import extract_archive, fetch_if_missing
from src.hydroterrain.errors import DataUnavailable, EmptySelection, InvalidGeometry
from src.hydroterrain.projection import GEOGRAPHIC_CRS

logger = logging.getLogger(__name__)


class BoundingBox(NamedTuple):
    """Axis-aligned box (xmin, ymin, xmax, ymax) in the CRS of its source."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    @classmethod
    def from_geometry(cls, geometry: BaseGeometry) -> "BoundingBox":
        return cls(*geometry.bounds)

    def contains(self, other: "BoundingBox") -> bool:
        return (
            self.xmin <= other.xmin
            and self.ymin <= other.ymin
            and self.xmax >= other.xmax
            and self.ymax >= other.ymax
        )

    def to_polygon(self) -> Polygon:
        return box(self.xmin, self.ymin, self.xmax, self.ymax)

    def to_wkt(self) -> str:
        return self.to_polygon().wkt


@dataclass(frozen=True)
class BoundaryGeometry:
    """Unioned region polygon and its CRS. Valid and non-empty."""

    geometry: BaseGeometry
    crs: str

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_geometry(self.geometry)

    def to_geoseries(self) -> gpd.GeoSeries:
        return gpd.GeoSeries([self.geometry], crs=self.crs)

    @classmethod
    def from_wkt(cls, text: str, crs: str) -> "BoundaryGeometry":
        return cls(_polygonal(wkt.loads(text)), crs)


def gadm_filename(country: str, level: int) -> str:
    """Local GeoJSON name for a GADM 4.1 layer, e.g. 'gadm41_COL_2.json'."""
    return f"gadm41_{country.upper()}_{level}.json"


def fetch_admin_boundaries(
    country: str,
    level: int,
    boundary_dir: Path,
    url_template: Optional[str] = None,
    timeout: float = 300,
) -> gpd.GeoDataFrame:
    """
    Load all administrative polygons of a country at one level.

    The GeoJSON is reused when already present in boundary_dir; otherwise it
    is downloaded from url_template (formatted with country and level).

    Args:
        country: ISO 3166-1 alpha-3 code (e.g. "COL")
        level: Administrative subdivision level (0 = country)
        boundary_dir: Directory holding GADM files
        url_template: Download URL template, or None for local files only
        timeout: Request timeout in seconds

    Returns:
        GeoDataFrame of polygons with GADM attributes (NAME_1, NAME_2, ...)

    Raises:
        DataUnavailable: If the fetch fails, the file is unreadable or empty
    """
    boundary_dir = Path(boundary_dir)
    local_path = boundary_dir / gadm_filename(country, level)

    if not local_path.exists():
        if url_template is None:
            raise DataUnavailable(f"No boundary file at {local_path} and no download URL configured")

        url = url_template.format(country=country.upper(), level=level)
        try:
            if url.endswith(".zip"):
                archive = boundary_dir / Path(url).name
                fetch_if_missing(url, archive, timeout=timeout)
                extract_archive(archive, boundary_dir)
            else:
                fetch_if_missing(url, local_path, timeout=timeout)
        except (requests.exceptions.RequestException, OSError, zipfile.BadZipFile) as e:
            raise DataUnavailable(f"Failed to fetch boundaries for {country} level {level}: {e}") from e

        if not local_path.exists():
            raise DataUnavailable(f"Download from {url} did not produce {local_path.name}")
    else:
        logger.info(f"Boundary file {local_path.name} already exists, download skipped")

    try:
        admin = gpd.read_file(local_path)
    except Exception as e:
        raise DataUnavailable(f"Could not read {local_path}: {e}") from e

    if admin.empty:
        raise DataUnavailable(f"{local_path.name} contains no features")

    if admin.crs is None:
        admin = admin.set_crs(GEOGRAPHIC_CRS)

    logger.info(f"Loaded {len(admin)} level-{level} polygons for {country}")
    return admin


def _polygonal(geometry: BaseGeometry) -> BaseGeometry:
    """Return the polygonal part of a geometry, repaired if invalid."""
    if not geometry.is_valid:
        logger.debug("Union is invalid, repairing with make_valid")
        geometry = make_valid(geometry)

    if isinstance(geometry, GeometryCollection) and not isinstance(geometry, MultiPolygon):
        parts = [g for g in geometry.geoms if isinstance(g, (Polygon, MultiPolygon))]
        geometry = unary_union(parts) if parts else GeometryCollection()

    if geometry.is_empty or not isinstance(geometry, (Polygon, MultiPolygon)):
        raise InvalidGeometry(f"Boundary is not a non-empty polygon (got {geometry.geom_type})")

    return geometry


def resolve_boundary(
    admin: gpd.GeoDataFrame,
    region_names: Iterable[str],
    name_column: str = "NAME_1",
) -> BoundaryGeometry:
    """
    Filter administrative polygons by region name and union them.

    Args:
        admin: Administrative polygons
        region_names: Exact names to keep
        name_column: Attribute holding the region name

    Returns:
        BoundaryGeometry in the CRS of admin

    Raises:
        DataUnavailable: If name_column is missing
        EmptySelection: If no row matches
        InvalidGeometry: If the union is not a valid polygon
    """
    names = set(region_names)
    if name_column not in admin.columns:
        raise DataUnavailable(f"Boundary data has no '{name_column}' attribute")

    selected = admin[admin[name_column].isin(names)]
    if selected.empty:
        raise EmptySelection(f"No features with {name_column} in {sorted(names)}")

    logger.info(f"Selected {len(selected)} polygons matching {sorted(names)}")

    geometry = _polygonal(unary_union(list(selected.geometry)))
    crs = admin.crs.to_string() if admin.crs is not None else GEOGRAPHIC_CRS

    boundary = BoundaryGeometry(geometry, crs)
    logger.info(f"Boundary bbox: {tuple(round(v, 4) for v in boundary.bbox)} ({crs})")
    return boundary


def resolve_region_boundary(config) -> BoundaryGeometry:
    """Fetch and resolve the configured region boundary."""
    admin = fetch_admin_boundaries(
        config.country_code,
        config.admin_level,
        config.boundary_dir,
        url_template=config.gadm_url_template,
        timeout=config.timeout,
    )
    return resolve_boundary(admin, config.region_names, config.region_name_column)
