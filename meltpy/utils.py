"""
Utility functions for data validation, masking and coordinate handling.
"""
import numpy as np
from xarray import DataArray
from typing import Iterable, Literal, Optional, Set

from math import pi
from numpy.typing import ArrayLike

from .defaults import (
    PS_STANDARD_PARALLEL,
    PS_CENTRAL_MERIDIAN,
    EARTH_RADIUS,
    ECCENTRICITY_SQUARED,
    TIME_EPOCH,
    DECIMAL_YEAR_RANGE,
)
from .errors import InvalidArgumentError, ShapeMismatchError

# Representable span of datetime64[ns]
DATETIME_MIN = np.datetime64("1678-01-01", "ns")
DATETIME_MAX = np.datetime64("2262-01-01", "ns")


def check_dims(da: DataArray, required_dims: Set[str]) -> None:
    """
    Check that a DataArray has the required dimensions.

    Parameters
    ----------
    da : xarray.DataArray
        DataArray to check
    required_dims : set of str
        Set of required dimension names

    Raises
    ------
    ShapeMismatchError
        If required dimensions are missing
    """
    missing_dims = set(required_dims) - set(da.dims)
    if missing_dims:
        raise ShapeMismatchError(
            f"DataArray '{da.name}' missing required dimensions: {missing_dims}. "
            f"Found dimensions: {set(da.dims)}"
        )


def check_alignment(
    da1: DataArray,
    da2: DataArray,
    dims: Optional[Iterable[str]] = None,
) -> None:
    """
    Check that two DataArrays share the same grid along ``dims``.

    Parameters
    ----------
    da1, da2 : xarray.DataArray
        DataArrays to check for alignment
    dims : iterable of str, optional
        Dimensions to compare. Defaults to all dimensions of ``da1``.

    Raises
    ------
    ShapeMismatchError
        If the DataArrays are not aligned
    """
    dims = tuple(da1.dims) if dims is None else tuple(dims)
    check_dims(da1, set(dims))
    check_dims(da2, set(dims))

    for dim in dims:
        if da1.sizes[dim] != da2.sizes[dim]:
            raise ShapeMismatchError(
                f"'{da1.name}' and '{da2.name}' differ in size along '{dim}': "
                f"{da1.sizes[dim]} vs {da2.sizes[dim]}"
            )
        if dim not in da1.coords or dim not in da2.coords:
            continue
        c1 = da1[dim].values
        c2 = da2[dim].values
        if np.issubdtype(c1.dtype, np.number) and np.issubdtype(c2.dtype, np.number):
            aligned = np.allclose(c1, c2)
        else:
            aligned = np.array_equal(c1, c2)
        if not aligned:
            raise ShapeMismatchError(
                f"'{da1.name}' and '{da2.name}' are not aligned along dimension '{dim}'"
            )


class ColumnMask:
    """
    Boolean mask over the leading (spatial) axes of an array whose last axis
    is time.

    ``gather`` collapses an array of shape ``(*mask.shape, nt)`` to the
    ``(ncolumns, nt)`` rows selected by the mask, and ``scatter`` puts such
    rows back into the full shape, leaving unselected columns as NaN.
    """

    def __init__(self, mask: ArrayLike):
        self.mask = np.asarray(mask, dtype=bool)

    @classmethod
    def from_finite(cls, data: np.ndarray) -> "ColumnMask":
        """Mask of columns with at least one finite value along the last axis."""
        return cls(np.isfinite(data).any(axis=-1))

    @property
    def count(self) -> int:
        return int(self.mask.sum())

    def gather(self, data: np.ndarray) -> np.ndarray:
        if data.shape[:-1] != self.mask.shape:
            raise ShapeMismatchError(
                f"Cannot gather array of shape {data.shape} with mask of shape {self.mask.shape}"
            )
        return data[self.mask]

    def scatter(self, rows: np.ndarray, fill_value: float = np.nan) -> np.ndarray:
        out = np.full(self.mask.shape + rows.shape[1:], fill_value, dtype=rows.dtype)
        out[self.mask] = rows
        return out


def ll2xy(
    lat: ArrayLike,
    lon: ArrayLike,
    sgn: Literal[1, -1] = -1,
    *args,
) -> tuple[np.ndarray, np.ndarray]:
    """Convert lat long arrays to polar stereographic x y arrays.

    Inverse of the usual xy2ll conversion, on the WGS84 ellipsoid.

    Parameters:
        - lat: ArrayLike (float scalar or array), degrees
        - lon: ArrayLike (float scalar or array), degrees
        - sgn (sign of latitude): integer (1 or -1) inidcating the hemisphere.
              1 : north latitude (mer = 45 lat = 70).
              -1 : south latitude (default, mer = 0 lat = 71).
        - *args: optional `delta` (central meridian) and `slat` (standard
           parallel), both in degrees.
    Returns:
        - (x, y) in meters

    Usage:
        [x, y] = ll2xy(lat, lon)
        [x, y] = ll2xy(lat, lon, sgn, central_meridian, standard_parallel)
    """
    if len(args) == 2:
        delta = args[0]
        slat = args[1]
    elif len(args) == 0:
        if sgn == 1:
            delta = 45.
            slat = 70.
        elif sgn == -1:
            delta = PS_CENTRAL_MERIDIAN
            slat = PS_STANDARD_PARALLEL
        else:
            raise InvalidArgumentError('sgn should be either 1 or -1')
    else:
        raise InvalidArgumentError('bad usage: type "help(ll2xy)" for details')

    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)

    re = EARTH_RADIUS
    ex2 = ECCENTRICITY_SQUARED
    ex = np.sqrt(ex2)

    # work in the northern frame, then flip back
    phi = sgn * lat * pi / 180.
    lam = sgn * (lon + delta) * pi / 180.
    sl = abs(slat) * pi / 180.

    def _t(p):
        return np.tan(pi / 4.0 - p / 2.0) / ((1.0 - ex * np.sin(p)) / (1.0 + ex * np.sin(p)))**(ex / 2.0)

    t = _t(phi)
    if abs(abs(slat) - 90.) < 1.e-5:
        rho = 2. * re * t / np.sqrt((1. + ex)**(1. + ex) * (1. - ex)**(1. - ex))
    else:
        mc = np.cos(sl) / np.sqrt(1.0 - ex2 * (np.sin(sl)**2))
        rho = re * mc * t / _t(sl)

    x = sgn * rho * np.sin(lam)
    y = -sgn * rho * np.cos(lam)

    return x, y


def is_latlon(lat: ArrayLike, lon: ArrayLike) -> bool:
    """
    True if the pair looks like geographic coordinates: every |lat| <= 90 and
    every |lon| <= 360.

    Projected coordinates within a few hundred meters of the pole also pass
    this test and are treated as geographic.
    """
    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)
    return bool(np.all(np.abs(lat) <= 90) and np.all(np.abs(lon) <= 360))


def _check_time_range(values: np.ndarray, low: float, high: float, what: str) -> None:
    if not (np.isfinite(values).all() and (values >= low).all() and (values <= high).all()):
        raise InvalidArgumentError(
            f"Times given as {what} must lie between {low:g} and {high:g} "
            f"to be representable, got values from {np.nanmin(values):g} to {np.nanmax(values):g}"
        )


def decimal_year_to_datetime(years: ArrayLike) -> np.ndarray:
    """Convert decimal years (e.g. 1992.375) to datetime64[ns]."""
    years = np.asarray(years, dtype=float)
    first = float(DATETIME_MIN.astype("datetime64[Y]").astype(int) + 1970)
    last = float(DATETIME_MAX.astype("datetime64[Y]").astype(int) + 1969)
    _check_time_range(years, first, last, "decimal years")
    whole = np.floor(years).astype(np.int64)

    epoch = np.datetime64("1970", "Y")
    start = (epoch + (whole - 1970).astype("timedelta64[Y]")).astype("datetime64[ns]")
    end = (epoch + (whole - 1969).astype("timedelta64[Y]")).astype("datetime64[ns]")

    length = (end - start).astype(np.int64)
    offset = np.round((years - whole) * length).astype(np.int64).astype("timedelta64[ns]")
    return start + offset


def days_to_datetime(days: ArrayLike, epoch: str = TIME_EPOCH) -> np.ndarray:
    """Convert day counts since ``epoch`` to datetime64[ns]."""
    days = np.asarray(days, dtype=float)
    start = np.datetime64(epoch, "ns")
    one_day = np.timedelta64(1, "D")
    _check_time_range(
        days, (DATETIME_MIN - start) / one_day, (DATETIME_MAX - start) / one_day,
        f"days since {epoch}",
    )
    offset = np.round(days * 86400e9).astype(np.int64).astype("timedelta64[ns]")
    return start + offset


def numeric_time_to_datetime(time: ArrayLike, units: str = "") -> np.ndarray:
    """
    Convert undecoded numeric timestamps to strictly increasing datetime64[ns].

    ``units`` starting with 'day' or 'year' selects day counts since
    ``TIME_EPOCH`` or decimal years. Without units, values that all fall in
    ``DECIMAL_YEAR_RANGE`` are decimal years and anything else is a day count.
    """
    time = np.asarray(time)
    units = units.strip().lower()
    if np.issubdtype(time.dtype, np.timedelta64):
        converted = np.datetime64(TIME_EPOCH, "ns") + time.astype("timedelta64[ns]")
    elif not np.issubdtype(time.dtype, np.number):
        raise InvalidArgumentError(f"Cannot interpret times of dtype {time.dtype}")
    elif units.startswith("day"):
        converted = days_to_datetime(time)
    elif units.startswith("year"):
        converted = decimal_year_to_datetime(time)
    else:
        low, high = DECIMAL_YEAR_RANGE
        time = time.astype(float)
        if time.size and np.isfinite(time).all() and (time >= low).all() and (time <= high).all():
            converted = decimal_year_to_datetime(time)
        else:
            converted = days_to_datetime(time)

    if (np.diff(converted) <= np.timedelta64(0, "ns")).any():
        raise InvalidArgumentError("Times must be strictly increasing")
    return converted


def grid_resolution(da: DataArray, dim: str = "x") -> float:
    """Cell size along ``dim``, assuming a regularly spaced grid."""
    coord = da[dim].values
    if coord.size < 2:
        raise ShapeMismatchError(f"Cannot infer resolution from a single '{dim}' value")
    return float(abs(coord[1] - coord[0]))


def prepare_chunked_data(
    da: DataArray,
    chunks: dict = None,
) -> DataArray:
    """
    Prepare DataArray with chunking for blockwise computation.

    Parameters
    ----------
    da : xarray.DataArray
        Input DataArray
    chunks : dict, optional
        Chunk sizes. If None, uses the defaults. Chunks for dimensions the
        DataArray does not have are ignored, and ``time`` is always kept as a
        single chunk.

    Returns
    -------
    xarray.DataArray
        Chunked DataArray
    """
    if chunks is None:
        from .defaults import DEFAULT_CHUNKS
        chunks = {**DEFAULT_CHUNKS["spatial"], **DEFAULT_CHUNKS["temporal"]}

    chunks = {dim: size for dim, size in chunks.items() if dim in da.dims}
    if "time" in da.dims:
        chunks["time"] = -1

    return da.chunk(chunks)
