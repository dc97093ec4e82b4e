"""
Dependency graph pipeline for the river/elevation map.

Runs the stages in order, computing the boundary once and handing the same
value to both the river and the elevation stage. Stage outputs are persisted
in an ArtifactStore, so a restarted run resumes from the last completed
stage instead of recomputing everything.

Example:
    from src.hydroterrain.context import PipelineConfig
    from src.hydroterrain.pipeline import HydroTerrainPipeline

    pipeline = HydroTerrainPipeline(PipelineConfig.from_defaults())

    # Show execution plan
    pipeline.explain("compose_scene")

    scene = pipeline.compose_scene()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.hydroterrain.artifacts import ArtifactStore, save_bundle
from src.hydroterrain.boundary import BoundaryGeometry, resolve_boundary, resolve_region_boundary
from src.hydroterrain.context import PipelineConfig
from src.hydroterrain.downloads import ensure_environment_light
from src.hydroterrain.elevation import ElevationGrid, TerrainTileSource, build_elevation_grid
from src.hydroterrain.errors import EmptyIntersection
from src.hydroterrain.rivers import RiverNetwork, ensure_river_dataset, extract_river_network
from src.hydroterrain.scene import RenderSettings, Scene, SceneRenderer, compose_scene

logger = logging.getLogger(__name__)


@dataclass
class TaskState:
    """Represents execution state of a task."""

    name: str
    depends_on: List[str] = field(default_factory=list)
    cached: bool = False
    computed: bool = False
    result: Any = None


class HydroTerrainPipeline:
    """
    Sequential executor for the river/elevation map stages.

    Tasks in pipeline:
    1. resolve_boundary: Union the region's administrative polygons
    2. extract_rivers: Prefilter, clip, classify and reproject rivers
    3. build_elevation: Acquire, clip and reproject elevation, height matrix
    4. compose_scene: Relief texture + river overlay + render parameters
    5. environment_light: HDR texture for the renderer (optional)
    6. render_view: Hand the lit scene to an external renderer
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        cache_enabled: bool = True,
        force_rebuild: bool = False,
        admin_boundaries=None,
        river_source=None,
        tile_source=None,
        render_settings: Optional[RenderSettings] = None,
        require_rivers: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Run configuration
            cache_enabled: Persist and reuse stage artifacts
            force_rebuild: Recompute every stage even if artifacts exist
            admin_boundaries: Pre-loaded administrative GeoDataFrame (skips the fetch)
            river_source: River dataset path or GeoDataFrame (skips the download)
            tile_source: Elevation tile source (default: TerrainTileSource from config)
            render_settings: Render parameters (default: RenderSettings())
            require_rivers: Raise EmptyIntersection on an empty river network
        """
        self.config = config
        self.cache_enabled = cache_enabled
        self.force_rebuild = force_rebuild
        self.admin_boundaries = admin_boundaries
        self.river_source = river_source
        self.tile_source = tile_source
        self.render_settings = render_settings or RenderSettings()
        self.require_rivers = require_rivers

        config.ensure_directories()
        self.store = ArtifactStore(config.artifact_dir, enabled=cache_enabled)

        self.tasks: Dict[str, TaskState] = {}

        # Define task dependencies (declarative DAG)
        self._task_graph = {
            "resolve_boundary": {
                "depends_on": [],
                "description": "Union administrative polygons into the region boundary",
                "artifacts": ["boundary"],
            },
            "extract_rivers": {
                "depends_on": ["resolve_boundary"],
                "description": "Prefilter, clip, classify and reproject the river network",
                "artifacts": ["rivers"],
            },
            "build_elevation": {
                "depends_on": ["resolve_boundary"],
                "description": "Acquire, clip and reproject elevation; derive height matrix",
                "artifacts": ["raw_raster", "raster", "height"],
            },
            "compose_scene": {
                "depends_on": ["extract_rivers", "build_elevation"],
                "description": "Shade relief, overlay rivers, assemble render scene",
                "artifacts": [],
            },
            "environment_light": {
                "depends_on": [],
                "description": "Fetch the HDR environment texture for the renderer",
                "artifacts": [],
            },
            "render_view": {
                "depends_on": ["compose_scene", "environment_light"],
                "description": "Render the scene with an external renderer",
                "artifacts": [],
            },
        }

    def _should_use_cache(self) -> bool:
        return self.cache_enabled and not self.force_rebuild

    def _done(self, name: str) -> Optional[TaskState]:
        state = self.tasks.get(name)
        if state is not None and (state.computed or state.cached):
            return state
        return None

    def _record(self, name: str, result: Any, cached: bool) -> Any:
        self.tasks[name] = TaskState(
            name=name,
            depends_on=list(self._task_graph[name]["depends_on"]),
            cached=cached,
            computed=not cached,
            result=result,
        )
        return result

    # ===== Pipeline Tasks =====

    def resolve_boundary(self) -> BoundaryGeometry:
        """Task: resolve the region boundary (once per pipeline)."""
        done = self._done("resolve_boundary")
        if done:
            return done.result

        logger.info("[1/4] Resolving boundary")
        if self._should_use_cache():
            boundary = self.store.load_boundary()
            if boundary is not None:
                logger.info("      [Cache HIT] Loaded boundary")
                return self._record("resolve_boundary", boundary, cached=True)

        if self.admin_boundaries is not None:
            boundary = resolve_boundary(
                self.admin_boundaries, self.config.region_names, self.config.region_name_column
            )
        else:
            boundary = resolve_region_boundary(self.config)

        self.store.save_boundary(boundary)
        return self._record("resolve_boundary", boundary, cached=False)

    def extract_rivers(self) -> RiverNetwork:
        """Task: river network in the working CRS."""
        done = self._done("extract_rivers")
        if done:
            return done.result

        boundary = self.resolve_boundary()

        logger.info("[2/4] Extracting river network")
        if self._should_use_cache():
            network = self.store.load_river_network()
            if network is not None:
                if network.is_empty and self.require_rivers:
                    raise EmptyIntersection(
                        "Stored river network is empty; rerun with force_rebuild=True or require_rivers=False"
                    )
                logger.info(f"      [Cache HIT] Loaded {len(network)} rivers")
                return self._record("extract_rivers", network, cached=True)

        source = self.river_source if self.river_source is not None else ensure_river_dataset(self.config)
        network = extract_river_network(
            source,
            boundary,
            self.config.working_crs,
            order_column=self.config.flow_order_column,
            width_table=self.config.river_widths,
            require_features=self.require_rivers,
        )

        self.store.save_river_network(network)
        return self._record("extract_rivers", network, cached=False)

    def build_elevation(self) -> ElevationGrid:
        """Task: elevation rasters and height matrix."""
        done = self._done("build_elevation")
        if done:
            return done.result

        boundary = self.resolve_boundary()

        logger.info("[3/4] Building elevation grid")
        if self._should_use_cache():
            grid = self.store.load_elevation_grid()
            if grid is not None:
                logger.info(f"      [Cache HIT] Loaded height matrix {grid.height.shape}")
                return self._record("build_elevation", grid, cached=True)

        source = self.tile_source or TerrainTileSource(
            self.config.terrain_tile_url,
            cache_dir=self.config.tile_cache_dir,
            timeout=self.config.timeout,
        )
        grid = build_elevation_grid(boundary, self.config.working_crs, self.config.elevation_zoom, source)

        self.store.save_elevation_grid(grid)
        return self._record("build_elevation", grid, cached=False)

    def compose_scene(self) -> Scene:
        """Task: render-ready scene."""
        done = self._done("compose_scene")
        if done:
            return done.result

        network = self.extract_rivers()
        grid = self.build_elevation()

        if self.cache_enabled:
            save_bundle(self.config.bundle_path, grid, network)

        logger.info("[4/4] Composing scene")
        scene = compose_scene(
            grid.height,
            network,
            grid.reprojected,
            settings=self.render_settings,
            relief_colors=self.config.relief_colors,
            relief_steps=self.config.relief_steps,
            river_color=self.config.river_color,
        )
        return self._record("compose_scene", scene, cached=False)

    def environment_light(self) -> Optional[Path]:
        """Task: local HDR file for the renderer, or None when not configured."""
        done = self._done("environment_light")
        if done:
            return done.result

        light = ensure_environment_light(
            self.config.environment_light_url, self.config.artifact_dir, timeout=self.config.timeout
        )
        return self._record("environment_light", light, cached=False)

    def render_view(self, renderer: SceneRenderer, output_path: Path) -> Path:
        """
        Task: render the scene. Renderer errors are not caught.
        """
        scene = self.compose_scene()
        light = self.environment_light()
        if light is not None:
            scene = replace(scene, environment_light=light)

        logger.info(f"Rendering scene to {output_path}")
        result = renderer.render(scene, Path(output_path))
        return self._record("render_view", result, cached=False)

    def run(self) -> Scene:
        """Run every stage up to the composed scene."""
        try:
            return self.compose_scene()
        except Exception as e:
            logger.error(f"Pipeline aborted: {e}")
            raise

    # ===== Public API =====

    def explain(self, task_name: str) -> List[str]:
        """
        Explain what would execute to build a task (show dependency tree).

        Shows:
        - Task dependencies
        - Execution order
        - Which tasks would load stored artifacts

        Returns:
            Execution order
        """
        if task_name not in self._task_graph:
            print(f"\nUnknown task: {task_name}")
            print(f"Available tasks: {', '.join(self._task_graph.keys())}")
            return []

        print("\n" + "=" * 70)
        print(f"Execution Plan for: {task_name}")
        print("=" * 70 + "\n")

        task_info = self._task_graph[task_name]
        print(f"Task: {task_name}")
        print(f"Description: {task_info['description']}")

        if task_info["depends_on"]:
            print("\nDependencies:")
            for dep in task_info["depends_on"]:
                print(f"  - {dep}")

        order = self._compute_execution_order(task_name)
        print("\nExecution order (topological):")
        for i, task in enumerate(order, 1):
            print(f"  {i}. {task} [{'stored' if self._is_stored(task) else 'compute'}]")
        return order

    def _is_stored(self, task: str) -> bool:
        artifacts = self._task_graph[task]["artifacts"]
        return bool(artifacts) and self._should_use_cache() and all(self.store.has(a) for a in artifacts)

    def _compute_execution_order(self, task_name: str) -> List[str]:
        """Topologically sort tasks by dependency."""
        visited = set()
        order = []

        def visit(task: str):
            if task in visited:
                return
            visited.add(task)

            task_info = self._task_graph.get(task)
            if task_info:
                for dep in task_info["depends_on"]:
                    visit(dep)

            order.append(task)

        visit(task_name)
        return order

    def cache_stats(self) -> Dict:
        """Get artifact statistics."""
        return self.store.get_stats()

    def clear_cache(self) -> int:
        """Delete stored artifacts and the intermediate bundle."""
        deleted = self.store.clear()
        bundle = Path(self.config.bundle_path)
        if bundle.exists():
            bundle.unlink()
            deleted += 1
        logger.info(f"Cleared {deleted} artifact files and bundle")
        return deleted
