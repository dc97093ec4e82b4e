"""
Scene composition for the terrain renderer.

compose_scene() is the last stage of the pipeline. It shades the height
matrix, draws the river network on the same pixel grid, composites both at
full opacity and bundles the result with fixed camera and render parameters.
Every layer consistency check fails fast: layers are never cropped or
stretched to fit.

The Scene is handed to an external renderer (anything implementing
SceneRenderer). Errors raised by the renderer propagate unchanged.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Tuple

import numpy as np
from PIL import Image

from src import config as defaults
from src.hydroterrain.boundary import BoundingBox
from src.hydroterrain.color_mapping import add_overlay, height_shade
from src.hydroterrain.elevation import ElevationRaster
from src.hydroterrain.errors import CRSMismatch, GridMismatch
from src.hydroterrain.overlay import rasterize_river_overlay
from src.hydroterrain.projection import same_crs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderSettings:
    """Fixed camera and render parameters."""

    z_scale: float = defaults.Z_SCALE  # vertical exaggeration divisor
    phi: float = defaults.CAMERA_PHI  # camera elevation angle, degrees
    theta: float = defaults.CAMERA_THETA  # azimuth, degrees
    shadow: bool = True
    shadow_darkness: float = defaults.SHADOW_DARKNESS
    solid: bool = False
    background: str = defaults.BACKGROUND
    window_size: Tuple[int, int] = defaults.WINDOW_SIZE
    zoom: float = defaults.PLOT_ZOOM
    camera_zoom: float = defaults.CAMERA_ZOOM
    output_size: Tuple[int, int] = defaults.OUTPUT_SIZE
    environment_intensity: float = defaults.ENVIRONMENT_INTENSITY
    use_light: bool = False

    @classmethod
    def from_dict(cls, values: dict) -> "RenderSettings":
        values = dict(values)
        for key in ("window_size", "output_size"):
            if key in values:
                values[key] = tuple(values[key])
        return cls(**values)


@dataclass(frozen=True, eq=False)
class Scene:
    """Height field, composited texture and render parameters."""

    height: np.ndarray
    texture: np.ndarray
    settings: RenderSettings
    extent: BoundingBox
    crs: str
    environment_light: Optional[Path] = field(default=None)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height.shape

    def save(self, directory: Path) -> Path:
        """
        Write the scene as texture.png, height.npy and scene.json.

        Returns:
            The scene directory
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        Image.fromarray(np.ascontiguousarray(self.texture, dtype=np.uint8)).save(directory / "texture.png")
        np.save(directory / "height.npy", self.height)

        metadata = {
            "shape": list(self.height.shape),
            "extent": list(self.extent),
            "crs": self.crs,
            "environment_light": str(self.environment_light) if self.environment_light else None,
            "settings": asdict(self.settings),
        }
        with open(directory / "scene.json", "w") as f:
            json.dump(metadata, f, indent=2)

        logger.info(f"Saved scene to {directory}")
        return directory

    @classmethod
    def load(cls, directory: Path) -> "Scene":
        directory = Path(directory)
        with open(directory / "scene.json") as f:
            metadata = json.load(f)
        with Image.open(directory / "texture.png") as image:
            texture = np.asarray(image.convert("RGBA")).copy()
        height = np.load(directory / "height.npy")
        light = metadata.get("environment_light")
        return cls(
            height=height,
            texture=texture,
            settings=RenderSettings.from_dict(metadata["settings"]),
            extent=BoundingBox(*metadata["extent"]),
            crs=metadata["crs"],
            environment_light=Path(light) if light else None,
        )


class SceneRenderer(Protocol):
    """External renderer consuming a Scene."""

    def render(self, scene: Scene, output_path: Path) -> Path: ...


def validate_layers(height: np.ndarray, network, extent: ElevationRaster) -> None:
    """
    Check that height matrix, river network and raster extent line up.

    Raises:
        GridMismatch: If dimensions differ or the network leaves the extent
        CRSMismatch: If the network is not in the raster's CRS
    """
    if height.ndim != 2:
        raise GridMismatch(f"Height matrix must be 2D, got shape {height.shape}")
    if height.shape != extent.shape:
        raise GridMismatch(f"Height matrix shape {height.shape} does not match raster shape {extent.shape}")

    if not same_crs(network.crs, extent.crs):
        raise CRSMismatch(f"River network CRS {network.crs!r} differs from raster CRS {extent.crs!r}")

    river_bounds = network.bounds
    if river_bounds is not None:
        res_x, res_y = extent.resolution
        bounds = extent.bounds
        padded = BoundingBox(bounds.xmin - res_x, bounds.ymin - res_y, bounds.xmax + res_x, bounds.ymax + res_y)
        if not padded.contains(river_bounds):
            raise GridMismatch(f"River network bounds {tuple(river_bounds)} exceed raster extent {tuple(bounds)}")


def compose_scene(
    height: np.ndarray,
    network,
    extent: ElevationRaster,
    settings: Optional[RenderSettings] = None,
    relief_colors=defaults.RELIEF_COLORS,
    relief_steps: int = defaults.RELIEF_STEPS,
    river_color: str = defaults.RIVER_COLOR,
    environment_light: Optional[Path] = None,
) -> Scene:
    """
    Build the render-ready scene.

    Args:
        height: HeightMatrix
        network: RiverNetwork in the working CRS
        extent: Reprojected ElevationRaster the height matrix derives from
        settings: Render parameters (default: RenderSettings())
        relief_colors: Gradient stops for the shaded relief
        relief_steps: Gradient steps
        river_color: River stroke color
        environment_light: Local HDR file for the renderer

    Returns:
        Scene

    Raises:
        GridMismatch, CRSMismatch: If layers are inconsistent
    """
    validate_layers(height, network, extent)

    relief = height_shade(height, relief_colors, relief_steps)
    overlay = rasterize_river_overlay(network, extent.transform, extent.shape, color=river_color)
    if overlay.shape[:2] != height.shape:
        raise GridMismatch(f"Overlay shape {overlay.shape[:2]} does not match height matrix {height.shape}")

    texture = add_overlay(relief, overlay, alpha=1.0)

    scene = Scene(
        height=height,
        texture=texture,
        settings=settings or RenderSettings(),
        extent=extent.bounds,
        crs=extent.crs,
        environment_light=environment_light,
    )
    logger.info(f"Composed scene {scene.shape[0]}x{scene.shape[1]} with {len(network)} rivers")
    return scene
