"""
River and elevation terrain map package.

Core functionality:
- Boundary resolution from administrative polygons
- River network extraction with flow-order stroke widths
- Elevation grid acquisition, clipping and reprojection
- Scene composition (relief texture + river overlay + render parameters)
- HydroTerrainPipeline tying the stages together with stage artifacts
"""

from .context import PipelineConfig
from .boundary import BoundaryGeometry, BoundingBox, resolve_boundary, resolve_region_boundary
from .rivers import RiverNetwork, classify_width, extract_river_network
from .elevation import ElevationGrid, ElevationRaster, TerrainTileSource, build_elevation_grid
from .scene import RenderSettings, Scene, SceneRenderer, compose_scene
from .pipeline import HydroTerrainPipeline

__all__ = [
    "PipelineConfig",
    "BoundaryGeometry",
    "BoundingBox",
    "resolve_boundary",
    "resolve_region_boundary",
    "RiverNetwork",
    "classify_width",
    "extract_river_network",
    "ElevationGrid",
    "ElevationRaster",
    "TerrainTileSource",
    "build_elevation_grid",
    "RenderSettings",
    "Scene",
    "SceneRenderer",
    "compose_scene",
    "HydroTerrainPipeline",
]
