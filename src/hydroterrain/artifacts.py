"""
Per-stage artifact storage.

Each stage output can be written and read back on its own, so a restarted
run resumes from the last completed stage and stages can be tested against
recorded fixtures. The store keeps:

- boundary.json      BoundaryGeometry (WKT + CRS)
- rivers.json        RiverNetwork (GeoJSON features + CRS)
- raw_raster.npz     clipped elevation raster in the boundary CRS
- raster.npz         elevation raster in the working CRS
- height.npz         HeightMatrix

plus the intermediate bundle (default name Dem_data.npz) holding the raw
raster, river network, reprojected raster and height matrix together.

Artifacts are reused by presence only; nothing checks whether they are stale.
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional, Tuple

import geopandas as gpd
import numpy as np
from rasterio import Affine

from src.hydroterrain.boundary import BoundaryGeometry
from src.hydroterrain.elevation import ElevationGrid, ElevationRaster, raster_to_height_matrix
from src.hydroterrain.errors import GridMismatch
from src.hydroterrain.rivers import RiverNetwork

logger = logging.getLogger(__name__)

STAGE_FILES = {
    "boundary": "boundary.json",
    "rivers": "rivers.json",
    "raw_raster": "raw_raster.npz",
    "raster": "raster.npz",
    "height": "height.npz",
}


def _transform_to_list(transform: Affine) -> list:
    # Affine constructor order: a, b, c, d, e, f
    return [transform.a, transform.b, transform.c, transform.d, transform.e, transform.f]


def network_to_json(network: RiverNetwork) -> str:
    """Serialize a RiverNetwork as a JSON string (features + CRS)."""
    payload = {
        "crs": network.crs,
        "columns": list(network.features.columns),
        "features": json.loads(network.features.to_json()),
    }
    return json.dumps(payload)


def network_from_json(text: str) -> RiverNetwork:
    """Inverse of network_to_json."""
    payload = json.loads(text)
    features = gpd.GeoDataFrame.from_features(
        payload["features"]["features"], crs=payload["crs"], columns=payload["columns"]
    )
    return RiverNetwork(features, payload["crs"])


class ArtifactStore:
    """
    Reads and writes stage artifacts in one directory.

    Attributes:
        artifact_dir: Directory where artifact files are stored
        enabled: Whether artifacts are written and read
    """

    def __init__(self, artifact_dir: Path, enabled: bool = True):
        self.artifact_dir = Path(artifact_dir)
        self.enabled = enabled

        if self.enabled:
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Artifact store at: {self.artifact_dir}")

    def path_for(self, stage: str) -> Path:
        if stage not in STAGE_FILES:
            raise KeyError(f"Unknown stage '{stage}', expected one of {sorted(STAGE_FILES)}")
        return self.artifact_dir / STAGE_FILES[stage]

    def has(self, stage: str) -> bool:
        return self.enabled and self.path_for(stage).exists()

    # ===== Boundary =====

    def save_boundary(self, boundary: BoundaryGeometry) -> Optional[Path]:
        if not self.enabled:
            return None
        path = self.path_for("boundary")
        with open(path, "w") as f:
            json.dump({"crs": boundary.crs, "wkt": boundary.geometry.wkt}, f)
        logger.info(f"Saved boundary to {path.name}")
        return path

    def load_boundary(self) -> Optional[BoundaryGeometry]:
        if not self.has("boundary"):
            return None
        with open(self.path_for("boundary")) as f:
            data = json.load(f)
        return BoundaryGeometry.from_wkt(data["wkt"], data["crs"])

    # ===== River network =====

    def save_river_network(self, network: RiverNetwork) -> Optional[Path]:
        if not self.enabled:
            return None
        path = self.path_for("rivers")
        path.write_text(network_to_json(network))
        logger.info(f"Saved {len(network)} rivers to {path.name}")
        return path

    def load_river_network(self) -> Optional[RiverNetwork]:
        if not self.has("rivers"):
            return None
        return network_from_json(self.path_for("rivers").read_text())

    # ===== Rasters =====

    def save_raster(self, raster: ElevationRaster, stage: str = "raster") -> Optional[Path]:
        if not self.enabled:
            return None
        path = self.path_for(stage)
        start_time = time.time()
        np.savez_compressed(
            path,
            data=raster.data,
            transform_data=np.array(_transform_to_list(raster.transform), dtype=np.float64),
            crs=np.array(raster.crs),
        )
        logger.info(f"Saved {stage} {raster.shape} to {path.name} ({time.time() - start_time:.2f}s)")
        return path

    def load_raster(self, stage: str = "raster") -> Optional[ElevationRaster]:
        if not self.has(stage):
            return None
        with np.load(self.path_for(stage)) as cached:
            return ElevationRaster(
                cached["data"],
                Affine(*tuple(cached["transform_data"])),
                cached["crs"].item(),
            )

    def save_height(self, height: np.ndarray) -> Optional[Path]:
        if not self.enabled:
            return None
        path = self.path_for("height")
        np.savez_compressed(path, height=height)
        logger.info(f"Saved height matrix {height.shape} to {path.name}")
        return path

    def load_height(self) -> Optional[np.ndarray]:
        if not self.has("height"):
            return None
        with np.load(self.path_for("height")) as cached:
            return cached["height"]

    def save_elevation_grid(self, grid: ElevationGrid) -> None:
        self.save_raster(grid.raw, "raw_raster")
        self.save_raster(grid.reprojected, "raster")
        self.save_height(grid.height)

    def load_elevation_grid(self) -> Optional[ElevationGrid]:
        if not all(self.has(stage) for stage in ("raw_raster", "raster", "height")):
            return None
        grid = ElevationGrid(self.load_raster("raw_raster"), self.load_raster("raster"), self.load_height())
        if grid.height.shape != grid.reprojected.shape:
            raise GridMismatch(
                f"Stored height matrix {grid.height.shape} does not match stored raster {grid.reprojected.shape}"
            )
        return grid

    # ===== Housekeeping =====

    def clear(self) -> int:
        """
        Delete every stage artifact.

        Returns:
            Number of files deleted
        """
        if not self.enabled:
            return 0

        deleted_count = 0
        for name in STAGE_FILES.values():
            path = self.artifact_dir / name
            if path.exists():
                path.unlink()
                deleted_count += 1
                logger.debug(f"Deleted: {name}")

        logger.info(f"Cleared {deleted_count} artifact files")
        return deleted_count

    def get_stats(self) -> dict:
        """Sizes of the artifacts currently on disk."""
        stats = {
            "artifact_dir": str(self.artifact_dir),
            "enabled": self.enabled,
            "artifact_files": 0,
            "total_size_mb": 0.0,
            "stages": [],
        }
        if not self.artifact_dir.exists():
            return stats

        for stage, name in STAGE_FILES.items():
            path = self.artifact_dir / name
            if path.is_file():
                size_mb = path.stat().st_size / (1024 * 1024)
                stats["artifact_files"] += 1
                stats["total_size_mb"] += size_mb
                stats["stages"].append({"stage": stage, "size_mb": size_mb})
        return stats


# =============================================================================
# Intermediate bundle
# =============================================================================


def save_bundle(path: Path, grid: ElevationGrid, network: RiverNetwork) -> Path:
    """
    Write raw raster, river network, reprojected raster and height matrix
    into one .npz file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        path,
        raw_data=grid.raw.data,
        raw_transform=np.array(_transform_to_list(grid.raw.transform), dtype=np.float64),
        raw_crs=np.array(grid.raw.crs),
        raster_data=grid.reprojected.data,
        raster_transform=np.array(_transform_to_list(grid.reprojected.transform), dtype=np.float64),
        raster_crs=np.array(grid.reprojected.crs),
        height=grid.height,
        rivers=np.array(network_to_json(network)),
    )
    logger.info(f"Saved intermediate bundle to {path}")
    return path


def load_bundle(path: Path) -> Tuple[ElevationGrid, RiverNetwork]:
    """Read a bundle written by save_bundle."""
    with np.load(Path(path)) as bundle:
        raw = ElevationRaster(bundle["raw_data"], Affine(*tuple(bundle["raw_transform"])), bundle["raw_crs"].item())
        reprojected = ElevationRaster(
            bundle["raster_data"], Affine(*tuple(bundle["raster_transform"])), bundle["raster_crs"].item()
        )
        height = bundle["height"] if "height" in bundle.files else raster_to_height_matrix(reprojected)
        network = network_from_json(bundle["rivers"].item())
    logger.info(f"Loaded intermediate bundle from {path}")
    return ElevationGrid(raw, reprojected, height), network
