"""
Color mapping functions for the terrain texture.

This module builds the shaded-relief base layer from the height matrix and
composites RGBA overlays on top of it. Shading is keyed purely by elevation
value (a two-color gradient), not by illumination.
"""

import logging
from typing import Sequence

import numpy as np
from matplotlib.colors import LinearSegmentedColormap, to_rgba

from src.hydroterrain.errors import GridMismatch

logger = logging.getLogger(__name__)


def relief_colormap(colors: Sequence[str] = ("#fcc69f", "#c67847"), steps: int = 128) -> LinearSegmentedColormap:
    """
    Linear gradient between color stops, quantized to a fixed number of steps.

    Args:
        colors: Color stops, low elevation first (hex strings or matplotlib names)
        steps: Number of discrete colors in the ramp
    """
    if len(colors) < 2:
        raise ValueError("A relief colormap needs at least two colors")
    if steps < 2:
        raise ValueError(f"steps must be >= 2, got {steps}")
    return LinearSegmentedColormap.from_list("relief", [to_rgba(c) for c in colors], N=steps)


def height_shade(
    height: np.ndarray,
    colors: Sequence[str] = ("#fcc69f", "#c67847"),
    steps: int = 128,
) -> np.ndarray:
    """
    Map elevations to colors with a two-color gradient.

    The lowest valid elevation gets the first color, the highest the last.
    NaN cells (outside the boundary) are fully transparent.

    Args:
        height: 2D height matrix
        colors: Gradient stops
        steps: Number of gradient steps

    Returns:
        Array of RGBA colors with shape (rows, cols, 4) as uint8
    """
    if height.ndim != 2:
        raise ValueError(f"height must be 2D, got shape {height.shape}")

    cmap = relief_colormap(colors, steps)
    valid = np.isfinite(height)

    normalized = np.zeros(height.shape, dtype=np.float64)
    if np.any(valid):
        min_elev = float(np.min(height[valid]))
        max_elev = float(np.max(height[valid]))
        logger.info(f"Elevation range: {min_elev:.1f} to {max_elev:.1f} meters")
        if max_elev > min_elev:
            normalized[valid] = (height[valid] - min_elev) / (max_elev - min_elev)
    else:
        logger.warning("Height matrix holds no valid elevation")

    rgba = cmap(normalized)
    rgba[~valid] = (0.0, 0.0, 0.0, 0.0)

    colors_uint8 = np.round(rgba * 255).astype(np.uint8)
    logger.info(f"Created relief texture with shape {colors_uint8.shape}")
    return colors_uint8


def add_overlay(base: np.ndarray, overlay: np.ndarray, alpha: float = 1.0) -> np.ndarray:
    """
    Composite an RGBA overlay over an RGBA base (alpha-over).

    Args:
        base: (rows, cols, 4) uint8 base layer
        overlay: (rows, cols, 4) uint8 overlay
        alpha: Extra opacity multiplier for the overlay (1 = as drawn)

    Returns:
        (rows, cols, 4) uint8 composite

    Raises:
        GridMismatch: If the two layers differ in shape
    """
    if base.shape != overlay.shape:
        raise GridMismatch(f"Overlay shape {overlay.shape} does not match base shape {base.shape}")
    if base.ndim != 3 or base.shape[2] != 4:
        raise ValueError(f"Expected RGBA layers, got shape {base.shape}")

    b = base.astype(np.float64) / 255.0
    o = overlay.astype(np.float64) / 255.0

    a_over = o[..., 3] * float(np.clip(alpha, 0.0, 1.0))
    a_base = b[..., 3]
    a_out = a_over + a_base * (1.0 - a_over)

    rgb = o[..., :3] * a_over[..., None] + b[..., :3] * (a_base * (1.0 - a_over))[..., None]
    nonzero = a_out > 0
    rgb[nonzero] /= a_out[nonzero][:, None]
    rgb[~nonzero] = 0.0

    result = np.concatenate([rgb, a_out[..., None]], axis=-1)
    return np.round(result * 255).astype(np.uint8)
