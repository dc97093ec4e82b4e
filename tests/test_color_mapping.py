"""
Tests for color_mapping module.

Tests relief shading and overlay compositing.
"""

import pytest
import numpy as np

LOW = (252, 198, 159, 255)  # #fcc69f
HIGH = (198, 120, 71, 255)  # #c67847


class TestHeightShade:
    """Tests for height_shade function."""

    def test_height_shade_basic(self):
        from src.hydroterrain.color_mapping import height_shade

        height = np.array([[0.0, 50.0], [100.0, 150.0]])

        colors = height_shade(height)

        assert colors.shape == (2, 2, 4)
        assert colors.dtype == np.uint8

    def test_extremes_get_gradient_end_colors(self):
        """Lowest elevation gets the first color, highest the last."""
        from src.hydroterrain.color_mapping import height_shade

        height = np.array([[2500.0, 2800.0, 3100.0]])

        colors = height_shade(height, ("#fcc69f", "#c67847"), 128)

        assert tuple(colors[0, 0]) == LOW
        assert tuple(colors[0, 2]) == HIGH

    def test_monotonic_along_gradient(self):
        from src.hydroterrain.color_mapping import height_shade

        height = np.linspace(0, 1000, 20)[None, :]

        colors = height_shade(height)

        # Red channel decreases from #fc to #c6
        assert np.all(np.diff(colors[0, :, 0].astype(int)) <= 0)

    def test_nan_is_transparent(self):
        from src.hydroterrain.color_mapping import height_shade

        height = np.array([[0.0, np.nan], [50.0, 100.0]])

        colors = height_shade(height)

        assert colors[0, 1, 3] == 0
        assert colors[0, 0, 3] == 255

    def test_flat_height_uses_first_color(self):
        from src.hydroterrain.color_mapping import height_shade

        colors = height_shade(np.full((3, 3), 2600.0))

        assert tuple(colors[1, 1]) == LOW

    def test_rejects_non_2d(self):
        from src.hydroterrain.color_mapping import height_shade

        with pytest.raises(ValueError):
            height_shade(np.zeros(5))


class TestReliefColormap:
    """Tests for relief_colormap."""

    def test_number_of_steps(self):
        from src.hydroterrain.color_mapping import relief_colormap

        assert relief_colormap(steps=128).N == 128

    def test_needs_two_colors(self):
        from src.hydroterrain.color_mapping import relief_colormap

        with pytest.raises(ValueError):
            relief_colormap(colors=("#ffffff",))


class TestAddOverlay:
    """Tests for add_overlay."""

    def test_opaque_overlay_replaces_base(self):
        from src.hydroterrain.color_mapping import add_overlay

        base = np.zeros((2, 2, 4), dtype=np.uint8)
        base[...] = LOW
        overlay = np.zeros((2, 2, 4), dtype=np.uint8)
        overlay[0, 0] = (56, 123, 156, 255)

        result = add_overlay(base, overlay, alpha=1.0)

        assert tuple(result[0, 0]) == (56, 123, 156, 255)
        assert tuple(result[1, 1]) == LOW

    def test_overlay_on_transparent_base(self):
        from src.hydroterrain.color_mapping import add_overlay

        base = np.zeros((1, 2, 4), dtype=np.uint8)
        overlay = np.zeros((1, 2, 4), dtype=np.uint8)
        overlay[0, 0] = (56, 123, 156, 255)

        result = add_overlay(base, overlay)

        assert tuple(result[0, 0]) == (56, 123, 156, 255)
        assert result[0, 1, 3] == 0

    def test_shape_mismatch_raises(self):
        from src.hydroterrain.color_mapping import add_overlay
        from src.hydroterrain.errors import GridMismatch

        with pytest.raises(GridMismatch):
            add_overlay(np.zeros((2, 2, 4), dtype=np.uint8), np.zeros((3, 2, 4), dtype=np.uint8))
