"""
Physical constants and default parameters for melt rate calculations.
"""

from typing import Dict, Tuple

# Ratio converting a surface elevation anomaly to an ice thickness anomaly for
# freely floating ice (Adusumilli et al., 2020)
THICKNESS_RATIO: float = 9.3

# The elevation anomaly cube is sampled quarterly
SAMPLES_PER_YEAR: int = 4

# Native cell size of the static w_b mosaic
STATIC_RESOLUTION: float = 500.0  # m

# Environment variable pointing at the directory holding the dataset files
DATA_DIR_ENV = "MELTPY_DATA_DIR"

DATASET_DOI = "https://doi.org/10.6075/J04Q7SHT"

# Bare numeric times: day counts are relative to TIME_EPOCH, and values inside
# DECIMAL_YEAR_RANGE are read as decimal years
TIME_EPOCH = "1970-01-01"
DECIMAL_YEAR_RANGE: Tuple[float, float] = (1900.0, 2200.0)

# Default file names of the dataset components and the cached divergence grid
DEFAULT_FILENAMES: Dict[str, str] = {
    "static": "bb0448974g_3_1.h5",
    "timeseries": "bb0448974g_2_1.h5",
    "divergence": "divergence_adusumilli_grid.mat",
}

# Default variable names in the dataset files
DEFAULT_VARNAMES: Dict[str, str] = {
    "x": "x",
    "y": "y",
    "time": "time",
    "melt": "w_b",
    "melt_interp": "w_b_interp",
    "h_alt": "h_alt",
    "h_firn": "h_firn",
    "smb_discharge": "smb_discharge",
    "divergence": "div",
}

# Order of the unlabelled dimensions as the arrays are stored on disk
STORAGE_DIMS: Dict[str, Tuple[str, ...]] = {
    "static": ("y", "x"),
    "timeseries": ("time", "y", "x"),
}

# Canonical dimension order of loaded grids
GRID_DIMS: Tuple[str, str] = ("y", "x")
CUBE_DIMS: Tuple[str, str, str] = ("y", "x", "time")

# Default chunk sizes when loading lazily. Time must stay a single chunk.
DEFAULT_CHUNKS = {
    "spatial": {"x": 192, "y": 192},
    "temporal": {"time": -1},
}

# South polar stereographic (ps71) projection on the WGS84 ellipsoid
PS_STANDARD_PARALLEL: float = 71.0   # degrees south
PS_CENTRAL_MERIDIAN: float = 0.0     # degrees
EARTH_RADIUS: float = 6378137.0      # m, WGS84 semi-major axis
ECCENTRICITY_SQUARED: float = 0.00669437999014

MELT_ATTRS = {
    "long_name": "Ice shelf basal melt rate",
    "units": "m yr-1",
    "reference": "Adusumilli et al. (2020), " + DATASET_DOI,
}
