"""
meltpy: Python library for Antarctic ice shelf basal melt rates

This library loads the Adusumilli et al. (2020) basal melt rate dataset, derives
quarterly melt rates from its surface elevation anomaly cube, and interpolates
the melt rate grids to arbitrary points.
"""

__version__ = "1.0.0"

from .core import MeltRateCalculator, melt_data
from .store import GridStore, load_divergence
from .interp import interpolate, lowpass_filter, melt_interp
from .utils import check_alignment, check_dims, ll2xy, is_latlon, ColumnMask
from .errors import MissingInputError, ShapeMismatchError, InvalidArgumentError
from .defaults import THICKNESS_RATIO, SAMPLES_PER_YEAR

__all__ = [
    "MeltRateCalculator",
    "melt_data",
    "GridStore",
    "load_divergence",
    "interpolate",
    "lowpass_filter",
    "melt_interp",
    "check_alignment",
    "check_dims",
    "ll2xy",
    "is_latlon",
    "ColumnMask",
    "MissingInputError",
    "ShapeMismatchError",
    "InvalidArgumentError",
    "THICKNESS_RATIO",
    "SAMPLES_PER_YEAR",
]
