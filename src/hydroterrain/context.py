"""
Run configuration passed explicitly to every pipeline stage.

Stages never read the working directory or module globals for paths; they
receive a PipelineConfig (or the specific values taken from it).

Example:
    from src.hydroterrain.context import PipelineConfig

    config = PipelineConfig.from_defaults(base_dir="data/cundinamarca")
    config.ensure_directories()
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

from src import config as defaults


@dataclass(frozen=True)
class PipelineConfig:
    """Static settings and directories for one pipeline run."""

    boundary_dir: Path
    rivers_dir: Path
    tile_cache_dir: Path
    artifact_dir: Path

    country_code: str = defaults.COUNTRY_CODE
    admin_level: int = defaults.ADMIN_LEVEL
    region_names: Tuple[str, ...] = defaults.REGION_NAMES
    region_name_column: str = defaults.REGION_NAME_COLUMN
    gadm_url_template: Optional[str] = defaults.GADM_URL_TEMPLATE

    working_crs: str = defaults.WORKING_CRS

    rivers_url: Optional[str] = defaults.RIVERS_URL
    rivers_archive: str = defaults.RIVERS_ARCHIVE
    rivers_shapefile: Path = defaults.RIVERS_SHAPEFILE
    flow_order_column: str = defaults.FLOW_ORDER_COLUMN
    river_widths: Dict[int, int] = field(default_factory=lambda: dict(defaults.RIVER_WIDTHS))

    elevation_zoom: int = defaults.ELEVATION_ZOOM
    terrain_tile_url: str = defaults.TERRAIN_TILE_URL

    environment_light_url: Optional[str] = defaults.ENVIRONMENT_LIGHT_URL

    relief_colors: Tuple[str, str] = defaults.RELIEF_COLORS
    relief_steps: int = defaults.RELIEF_STEPS
    river_color: str = defaults.RIVER_COLOR

    bundle_name: str = defaults.BUNDLE_NAME
    timeout: float = defaults.DEFAULT_TIMEOUT

    @classmethod
    def from_defaults(cls, base_dir: Path | str | None = None, **overrides) -> "PipelineConfig":
        """
        Build a configuration rooted at base_dir.

        Args:
            base_dir: Root for data directories. If None, uses config.DATA_DIR.
            **overrides: Any other field to override.

        Returns:
            PipelineConfig
        """
        if base_dir is None:
            dirs = {
                "boundary_dir": defaults.BOUNDARY_DIR,
                "rivers_dir": defaults.RIVERS_DIR,
                "tile_cache_dir": defaults.TILE_CACHE,
                "artifact_dir": defaults.ARTIFACT_DIR,
            }
        else:
            base = Path(base_dir)
            dirs = {
                "boundary_dir": base / "boundaries",
                "rivers_dir": base / "rivers",
                "tile_cache_dir": base / "cache" / "tiles",
                "artifact_dir": base / "artifacts",
            }
        dirs.update(overrides)
        return cls(**dirs)

    @property
    def rivers_archive_path(self) -> Path:
        return self.rivers_dir / self.rivers_archive

    @property
    def rivers_shapefile_path(self) -> Path:
        return self.rivers_dir / self.rivers_shapefile

    @property
    def bundle_path(self) -> Path:
        return self.artifact_dir / self.bundle_name

    def with_overrides(self, **changes) -> "PipelineConfig":
        return replace(self, **changes)

    def ensure_directories(self) -> None:
        """Create the data directories for this run."""
        for directory in (self.boundary_dir, self.rivers_dir, self.tile_cache_dir, self.artifact_dir):
            Path(directory).mkdir(parents=True, exist_ok=True)
