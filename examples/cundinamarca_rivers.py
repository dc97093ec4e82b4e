#!/usr/bin/env python3
"""
Cundinamarca Rivers and Elevation Map.

Builds the render-ready scene for Bogotá D.C. and Cundinamarca (Colombia):
municipal boundaries from GADM, the HydroRIVERS network drawn with widths by
flow order, and Terrarium elevation tiles shaded with a warm two-color ramp.

Pipeline:
1. Resolve the region boundary (GADM level 2, NAME_1 filter)
2. Extract and classify the river network
3. Build the elevation grid and height matrix
4. Compose the scene (relief texture + river overlay + camera settings)

Output:
- <output-dir>/scene/texture.png, height.npy, scene.json
- <output-dir>/rivers.png, height.png (diagnostic plots)
- <data-dir>/artifacts/Dem_data.npz (intermediate bundle)

Usage:
    # Full run (downloads on first use, reuses files afterwards)
    python examples/cundinamarca_rivers.py

    # Show the execution plan only
    python examples/cundinamarca_rivers.py --explain

    # Ignore stored stage artifacts
    python examples/cundinamarca_rivers.py --force-rebuild

    # Coarser elevation for a quick look
    python examples/cundinamarca_rivers.py --zoom 7 --output-dir ./renders
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src import config as defaults
from src.hydroterrain.context import PipelineConfig
from src.hydroterrain.diagnostics import plot_height_matrix, plot_river_network
from src.hydroterrain.errors import HydroTerrainError
from src.hydroterrain.pipeline import HydroTerrainPipeline

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Rivers and elevation map of Cundinamarca")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=defaults.DATA_DIR,
        help="Root directory for downloads and stage artifacts",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=project_root / "output",
        help="Directory for the scene and diagnostic plots",
    )
    parser.add_argument("--zoom", type=int, default=defaults.ELEVATION_ZOOM, help="Terrain tile zoom level")
    parser.add_argument("--force-rebuild", action="store_true", help="Recompute every stage")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write stage artifacts")
    parser.add_argument("--no-light", action="store_true", help="Skip the environment light download")
    parser.add_argument("--explain", action="store_true", help="Print the execution plan and exit")
    parser.add_argument("--log-level", default=defaults.DEFAULT_LOG_LEVEL, help="Logging level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(args.output_dir / "cundinamarca_rivers.log"),
        ],
    )

    overrides = {"elevation_zoom": args.zoom}
    if args.no_light:
        overrides["environment_light_url"] = None
    config = PipelineConfig.from_defaults(args.data_dir, **overrides)

    pipeline = HydroTerrainPipeline(
        config,
        cache_enabled=not args.no_cache,
        force_rebuild=args.force_rebuild,
    )

    if args.explain:
        pipeline.explain("compose_scene")
        return 0

    try:
        scene = pipeline.run()
    except HydroTerrainError as e:
        logger.error(f"Map build failed: {e}")
        return 1

    try:
        light = pipeline.environment_light()
    except HydroTerrainError as e:
        logger.warning(f"Environment light unavailable, scene saved without it: {e}")
        light = None
    if light is not None:
        scene = replace(scene, environment_light=light)

    scene.save(args.output_dir / "scene")
    plot_river_network(
        pipeline.extract_rivers(),
        args.output_dir / "rivers.png",
        boundary=pipeline.resolve_boundary(),
        title="Cundinamarca rivers",
        color=config.river_color,
    )
    plot_height_matrix(scene.height, args.output_dir / "height.png", texture=scene.texture)

    stats = pipeline.cache_stats()
    logger.info(f"Artifacts: {stats['artifact_files']} files, {stats['total_size_mb']:.1f} MB")
    logger.info(f"Done. Scene written to {args.output_dir / 'scene'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
