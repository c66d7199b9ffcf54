"""
Interpolation of melt rate grids to query points, with optional antialiasing.
"""
import logging
import numpy as np
from math import pi
from typing import Optional
from numpy.typing import ArrayLike
from xarray import DataArray
from scipy.ndimage import gaussian_filter

from .core import melt_data
from .errors import InvalidArgumentError, ShapeMismatchError
from .store import GridStore
from .utils import check_dims, grid_resolution, is_latlon, ll2xy

logger = logging.getLogger(__name__)


def _validate_wavelength(wavelength) -> float:
    if np.ndim(wavelength) != 0 or isinstance(wavelength, (bool, np.bool_)):
        raise InvalidArgumentError(
            f"Specified wavelength must be a scalar in meters, got {wavelength!r}"
        )
    try:
        value = float(wavelength)
    except (TypeError, ValueError) as err:
        raise InvalidArgumentError(
            f"Specified wavelength must be a scalar in meters, got {wavelength!r}"
        ) from err
    if not np.isfinite(value) or value <= 0:
        raise InvalidArgumentError(f"Specified wavelength must be positive, got {value}")
    return value


def lowpass_filter(data: DataArray, resolution: float, wavelength: float) -> DataArray:
    """
    Gaussian lowpass filter over the spatial dimensions of a grid.

    NaNs are handled by normalised convolution, so gaps are filled with
    smoothed values from their surroundings. The Gaussian is sized so that its
    amplitude response is 1/2 at ``wavelength``.

    Parameters
    ----------
    data : xarray.DataArray
        Grid with dimensions (y, x[, ...])
    resolution : float
        Cell size of ``data`` in meters
    wavelength : float
        Cutoff wavelength in meters

    Returns
    -------
    xarray.DataArray
        Filtered grid with the dimensions of ``data``
    """
    check_dims(data, {"x", "y"})
    sigma = wavelength * np.sqrt(2 * np.log(2)) / (2 * pi * resolution)

    dims = data.dims
    data = data.transpose("y", "x", ...)
    values = np.asarray(data.values, dtype=float)
    valid = np.isfinite(values)
    sigmas = (sigma, sigma) + (0,) * (values.ndim - 2)

    weighted = gaussian_filter(np.where(valid, values, 0.0), sigmas, mode="nearest")
    weights = gaussian_filter(valid.astype(float), sigmas, mode="nearest")
    with np.errstate(invalid="ignore", divide="ignore"):
        smoothed = weighted / weights
    smoothed[weights <= 0] = np.nan

    return data.copy(data=smoothed).transpose(*dims)


def _bilinear(source: DataArray, xi: np.ndarray, yi: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a (y, x[, ...]) grid at scattered points.

    Corners with zero weight contribute nothing, so a point on a node or a cell
    edge is not spoilt by NaN beyond it. Points outside the grid are NaN.
    """
    source = source.sortby(["y", "x"]).transpose("y", "x", ...)
    x = np.asarray(source.x.values, dtype=float)
    y = np.asarray(source.y.values, dtype=float)
    if x.size < 2 or y.size < 2:
        raise ShapeMismatchError(
            f"Cannot interpolate a grid of shape {(y.size, x.size)}, need at least 2 x 2 nodes"
        )
    values = np.asarray(source.values, dtype=float)

    i = np.clip(np.searchsorted(x, xi, side="right") - 1, 0, x.size - 2)
    j = np.clip(np.searchsorted(y, yi, side="right") - 1, 0, y.size - 2)
    fx = (xi - x[i]) / (x[i + 1] - x[i])
    fy = (yi - y[j]) / (y[j + 1] - y[j])
    inside = (xi >= x[0]) & (xi <= x[-1]) & (yi >= y[0]) & (yi <= y[-1])

    trailing = (slice(None),) + (np.newaxis,) * (values.ndim - 2)
    result = np.zeros(xi.shape + values.shape[2:])
    corners = (
        (0, 0, (1 - fx) * (1 - fy)),
        (0, 1, fx * (1 - fy)),
        (1, 0, (1 - fx) * fy),
        (1, 1, fx * fy),
    )
    for dj, di, weight in corners:
        weight = weight[trailing]
        result += np.where(weight == 0, 0.0, weight * values[j + dj, i + di])
    result[~inside] = np.nan
    return result


def interpolate(
    xi: ArrayLike,
    yi: ArrayLike,
    source: DataArray,
    antialias: Optional[float] = None,
) -> np.ndarray:
    """
    Bilinear interpolation of a melt rate grid at query points.

    Parameters
    ----------
    xi, yi : array_like
        Query points in polar stereographic meters, of the same shape
    source : xarray.DataArray
        Grid with ascending x and y coordinates, dimensions (y, x[, time])
    antialias : float, optional
        If given, lowpass filter ``source`` to this wavelength (meters) before
        interpolating. A decent rule of thumb is twice the resolution of the
        query grid. Cells that are NaN in ``source`` remain NaN.

    Returns
    -------
    numpy.ndarray
        Values with the shape of ``xi`` (plus a trailing time axis for a
        timeseries source). Points outside the grid are NaN.
    """
    xi = np.asarray(xi, dtype=float)
    yi = np.asarray(yi, dtype=float)
    if xi.shape != yi.shape:
        raise ShapeMismatchError(
            f"Dimensions of query coordinates must agree: {xi.shape} vs {yi.shape}"
        )
    check_dims(source, {"x", "y"})

    if antialias is not None:
        wavelength = _validate_wavelength(antialias)
        resolution = grid_resolution(source)
        logger.debug("Lowpass filtering to %g m at %g m resolution", wavelength, resolution)
        # the filter spreads values into gaps, which must stay empty
        source = lowpass_filter(source, resolution, wavelength).where(source.notnull())

    values = _bilinear(source, xi.ravel(), yi.ravel())
    return values.reshape(xi.shape + values.shape[1:])


def melt_interp(
    lat_or_x: ArrayLike,
    lon_or_y: ArrayLike,
    antialias: Optional[float] = None,
    store: Optional[GridStore] = None,
) -> np.ndarray:
    """
    Interpolate the 2010-2018 composite melt rates at query points.

    Parameters
    ----------
    lat_or_x, lon_or_y : array_like
        Geographic coordinates in degrees, or south polar stereographic
        coordinates in meters. Pairs with every |lat| <= 90 and every
        |lon| <= 360 are taken as geographic.
    antialias : float, optional
        Lowpass wavelength in meters applied to the 500 m grid first
    store : GridStore, optional
        Source of the dataset files

    Returns
    -------
    numpy.ndarray
        Melt rates in m/yr with the shape of the query coordinates
    """
    a = np.asarray(lat_or_x, dtype=float)
    b = np.asarray(lon_or_y, dtype=float)
    if a.shape != b.shape:
        raise ShapeMismatchError(f"Dimensions of query coordinates must agree: {a.shape} vs {b.shape}")

    if is_latlon(a, b):
        logger.debug("Query points look geographic, converting to polar stereographic")
        xi, yi = ll2xy(a, b)
    else:
        xi, yi = a, b

    melt = melt_data("static", store=store)
    return interpolate(xi, yi, melt, antialias=antialias)
