"""
Diagnostic plotting utilities for the river/elevation pipeline.

Quick-look figures for checking intermediate results before composing the
scene: the clipped river network over its boundary, and the height matrix
with the river overlay.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


def plot_river_network(
    network,
    output_path: Path,
    boundary=None,
    title: str = "River network",
    color: str = "#387B9C",
) -> Path:
    """
    Plot river lines with stroke width proportional to their class.

    Args:
        network: RiverNetwork
        output_path: Path to save the figure
        boundary: Optional BoundaryGeometry drawn as an outline (reprojected
            to the network CRS)
        title: Figure title
        color: Line color

    Returns:
        Path to saved plot
    """
    import matplotlib.pyplot as plt
    import geopandas as gpd

    fig, ax = plt.subplots(figsize=(8, 8))

    if boundary is not None:
        outline = gpd.GeoSeries([boundary.geometry], crs=boundary.crs).to_crs(network.crs)
        outline.boundary.plot(ax=ax, color="#996633", linewidth=0.8)

    if not network.is_empty:
        widths = np.maximum(network.widths, 0) / 6.0 + 0.2
        network.features.plot(ax=ax, color=color, linewidth=widths)
    else:
        ax.text(0.5, 0.5, "no rivers", transform=ax.transAxes, ha="center")

    ax.set_title(f"{title} ({len(network)} features)")
    ax.set_aspect("equal")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved river network plot: {output_path}")
    return output_path


def plot_height_matrix(
    height: np.ndarray,
    output_path: Path,
    texture: Optional[np.ndarray] = None,
    cmap: str = "terrain",
) -> Path:
    """
    Plot the height matrix, and the composited texture next to it if given.

    Row 0 is drawn at the top (north-up).
    """
    import matplotlib.pyplot as plt

    n_panels = 2 if texture is not None else 1
    fig, axes = plt.subplots(1, n_panels, figsize=(7 * n_panels, 7), squeeze=False)

    im = axes[0, 0].imshow(np.ma.masked_invalid(height), cmap=cmap, origin="upper")
    axes[0, 0].set_title(f"Height matrix {height.shape[0]}x{height.shape[1]}")
    fig.colorbar(im, ax=axes[0, 0], shrink=0.7, label="Elevation (m)")

    if texture is not None:
        axes[0, 1].imshow(texture, origin="upper")
        axes[0, 1].set_title("Relief + rivers texture")

    for ax in axes.ravel():
        ax.set_axis_off()

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved height matrix plot: {output_path}")
    return output_path
