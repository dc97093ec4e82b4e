"""
Tests for scene composition.

Layer checks must fail fast: no cropping or stretching to make layers fit.
"""

import pytest
from pathlib import Path

import geopandas as gpd
import numpy as np
from shapely.geometry import LineString

from src import config as defaults


class TestRenderSettings:
    """Tests for RenderSettings defaults."""

    def test_defaults(self):
        from src.hydroterrain.scene import RenderSettings

        settings = RenderSettings()

        assert settings.z_scale == 20
        assert settings.phi == 89
        assert settings.theta == 0
        assert settings.shadow_darkness == 1.0
        assert settings.solid is False
        assert settings.background == "white"
        assert settings.window_size == (1080, 1080)
        assert settings.zoom == 0.5
        assert settings.camera_zoom == 0.75
        assert settings.output_size == (1200, 1200)

    def test_from_dict_restores_tuples(self):
        from dataclasses import asdict

        from src.hydroterrain.scene import RenderSettings

        values = asdict(RenderSettings(z_scale=10))
        values["window_size"] = list(values["window_size"])

        assert RenderSettings.from_dict(values) == RenderSettings(z_scale=10)


class TestComposeScene:
    """Tests for compose_scene."""

    def test_texture_matches_height(self, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.scene import compose_scene

        height = raster_to_height_matrix(working_raster)

        scene = compose_scene(height, working_network, working_raster)

        assert scene.texture.shape == height.shape + (4,)
        assert scene.shape == working_raster.shape
        assert scene.crs == working_raster.crs
        assert scene.extent == working_raster.bounds

    def test_river_pixels_use_river_color(self, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.scene import compose_scene

        scene = compose_scene(raster_to_height_matrix(working_raster), working_network, working_raster)

        # The width-14 river runs along y = 1_001_000, between rows 9 and 10
        assert tuple(scene.texture[10, 15]) == (56, 123, 156, 255)

    def test_outside_boundary_stays_transparent(self, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.scene import compose_scene

        scene = compose_scene(raster_to_height_matrix(working_raster), working_network, working_raster)

        assert scene.texture[0, 0, 3] == 0

    def test_height_shape_mismatch_raises(self, working_raster, working_network):
        from src.hydroterrain.errors import GridMismatch
        from src.hydroterrain.scene import compose_scene

        height = np.zeros((working_raster.shape[0] - 1, working_raster.shape[1]))

        with pytest.raises(GridMismatch):
            compose_scene(height, working_network, working_raster)

    def test_crs_mismatch_raises(self, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.errors import CRSMismatch
        from src.hydroterrain.rivers import RiverNetwork
        from src.hydroterrain.scene import compose_scene

        geographic = RiverNetwork(working_network.features.to_crs("EPSG:4326"), "EPSG:4326")

        with pytest.raises(CRSMismatch):
            compose_scene(raster_to_height_matrix(working_raster), geographic, working_raster)

    def test_rivers_outside_extent_raise(self, working_raster):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.errors import GridMismatch
        from src.hydroterrain.rivers import RiverNetwork
        from src.hydroterrain.scene import compose_scene

        features = gpd.GeoDataFrame(
            {"width": [14]},
            geometry=[LineString([(1_000_500.0, 1_001_000.0), (1_050_000.0, 1_001_000.0)])],
            crs=defaults.WORKING_CRS,
        )
        network = RiverNetwork(features, defaults.WORKING_CRS)

        with pytest.raises(GridMismatch):
            compose_scene(raster_to_height_matrix(working_raster), network, working_raster)

    def test_empty_network_gives_relief_only(self, working_raster):
        from src.hydroterrain.color_mapping import height_shade
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.rivers import RiverNetwork
        from src.hydroterrain.scene import compose_scene

        empty = RiverNetwork(
            gpd.GeoDataFrame({"width": []}, geometry=[], crs=defaults.WORKING_CRS), defaults.WORKING_CRS
        )
        height = raster_to_height_matrix(working_raster)

        scene = compose_scene(height, empty, working_raster)

        np.testing.assert_array_equal(scene.texture, height_shade(height))


class TestSceneStorage:
    """Tests for Scene.save / Scene.load."""

    def test_save_writes_expected_files(self, tmp_path, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.scene import compose_scene

        scene = compose_scene(raster_to_height_matrix(working_raster), working_network, working_raster)
        directory = scene.save(tmp_path / "scene")

        assert (directory / "texture.png").exists()
        assert (directory / "height.npy").exists()
        assert (directory / "scene.json").exists()

    def test_load_restores_scene(self, tmp_path, working_raster, working_network):
        from src.hydroterrain.elevation import raster_to_height_matrix
        from src.hydroterrain.scene import RenderSettings, Scene, compose_scene

        settings = RenderSettings(z_scale=10, use_light=True)
        scene = compose_scene(
            raster_to_height_matrix(working_raster),
            working_network,
            working_raster,
            settings=settings,
            environment_light=Path("studio.hdr"),
        )
        scene.save(tmp_path / "scene")

        loaded = Scene.load(tmp_path / "scene")

        np.testing.assert_array_equal(loaded.texture, scene.texture)
        np.testing.assert_array_equal(loaded.height, scene.height)
        assert loaded.settings == settings
        assert loaded.extent == pytest.approx(scene.extent)
        assert loaded.environment_light == Path("studio.hdr")

