"""Configuration module for the hydroterrain project.

Centralizes data paths and the static settings of the river/elevation map:
region selection, working CRS, elevation zoom, river width table, colors
and render parameters.
"""
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories (created by the pipeline as needed)
DATA_DIR = PROJECT_ROOT / "data"
BOUNDARY_DIR = DATA_DIR / "boundaries"
RIVERS_DIR = DATA_DIR / "rivers"
TILE_CACHE = DATA_DIR / "cache" / "tiles"
ARTIFACT_DIR = DATA_DIR / "artifacts"

# Region selection (GADM 4.1)
COUNTRY_CODE = "COL"
ADMIN_LEVEL = 2  # municipalities
REGION_NAME_COLUMN = "NAME_1"
REGION_NAMES = ("Bogotá D.C.", "Cundinamarca")
GADM_URL_TEMPLATE = "https://geodata.ucdavis.edu/gadm/gadm4.1/json/gadm41_{country}_{level}.json.zip"

# Working CRS: local transverse Mercator centred near Bogotá
WORKING_CRS = (
    "+proj=tmerc +lat_0=4.59620041666667 +lon_0=-74.0775079166667 +k=1 "
    "+x_0=1000000 +y_0=1000000 +ellps=GRS80 +towgs84=0,0,0,0,0,0,0 +units=m +no_defs"
)

# River network (HydroRIVERS, South America)
RIVERS_URL = "https://data.hydrosheds.org/file/HydroRIVERS/HydroRIVERS_v10_sa_shp.zip"
RIVERS_ARCHIVE = "rivers_data_downloaded.zip"
RIVERS_SHAPEFILE = Path("HydroRIVERS_v10_sa_shp") / "HydroRIVERS_v10_sa.shp"
FLOW_ORDER_COLUMN = "ORD_FLOW"
RIVER_WIDTHS = {2: 18, 3: 16, 4: 14, 5: 12, 6: 10, 7: 6, 8: 3}
DEFAULT_RIVER_WIDTH = 0

# Elevation tiles (Terrarium encoding)
ELEVATION_ZOOM = 9
TERRAIN_TILE_URL = "https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png"

# Environment light for the high quality renderer
ENVIRONMENT_LIGHT_URL = (
    "https://dl.polyhaven.org/file/ph-assets/HDRIs/hdr/4k/photo_studio_loft_hall_4k.hdr"
)

# Texture
RELIEF_COLORS = ("#fcc69f", "#c67847")
RELIEF_STEPS = 128
RIVER_COLOR = "#387B9C"

# Render parameters
Z_SCALE = 20
CAMERA_PHI = 89
CAMERA_THETA = 0
SHADOW_DARKNESS = 1.0
BACKGROUND = "white"
WINDOW_SIZE = (1080, 1080)
PLOT_ZOOM = 0.5
CAMERA_ZOOM = 0.75
OUTPUT_SIZE = (1200, 1200)
ENVIRONMENT_INTENSITY = 1.0

# Intermediate bundle
BUNDLE_NAME = "Dem_data.npz"

# Default settings
DEFAULT_TIMEOUT = 300
DEFAULT_LOG_LEVEL = "INFO"
