"""
Readers for the Adusumilli et al. (2020) ice shelf melt dataset and the cached
divergence grid.

All orientation handling lives here: every grid leaves this module with
ascending ``x`` and ``y`` coordinates, so row 0 is the southernmost row.
"""
import logging
import os
import numpy as np
import xarray as xr
from pathlib import Path
from typing import Mapping, Optional, Tuple
from xarray import DataArray
from scipy.io import loadmat

from .defaults import (
    DATA_DIR_ENV,
    DATASET_DOI,
    DEFAULT_FILENAMES,
    DEFAULT_VARNAMES,
    STORAGE_DIMS,
    GRID_DIMS,
    CUBE_DIMS,
)
from .errors import MissingInputError, ShapeMismatchError, InvalidArgumentError
from .utils import numeric_time_to_datetime, prepare_chunked_data

logger = logging.getLogger(__name__)


def _coordinate_vector(values: np.ndarray, dim: str) -> np.ndarray:
    """Reduce a coordinate variable to a 1-D vector. 2-D variables are meshgrids."""
    values = np.asarray(values, dtype=float)
    if values.ndim == 2:
        values = values[0, :] if dim == "x" else values[:, 0]
    return values.ravel()


def _lookup(variables: Mapping, candidates, path: Path) -> np.ndarray:
    """Return the first of ``candidates`` present in ``variables``."""
    for name in candidates:
        if name in variables:
            return np.asarray(variables[name])
    raise MissingInputError(
        f"Variable '{candidates[0]}' not found in {path.name}. "
        f"Available variables: {sorted(k for k in variables if not str(k).startswith('__'))}"
    )


def load_divergence(
    path: str | Path,
    engine: str = "netcdf4",
    varnames: Optional[dict] = None,
) -> DataArray:
    """
    Load the cached steady ice divergence grid.

    The grid is computed offline from BedMachine thickness and ITS_LIVE
    velocities, lowpass filtered to 20 km, and is treated as constant in time.

    Parameters
    ----------
    path : str or Path
        netCDF file, or the MATLAB ``.mat`` file holding ``X``, ``Y`` and ``div``
    engine : str, optional
        xarray engine used for netCDF files
    varnames : dict, optional
        Partial overrides for the ``x``, ``y`` and ``divergence`` variable names

    Returns
    -------
    xarray.DataArray
        Divergence in m/yr with dimensions (y, x)
    """
    path = Path(path)
    names = DEFAULT_VARNAMES.copy()
    if varnames:
        names.update(varnames)

    if not path.is_file():
        raise MissingInputError(
            f"Cannot find the cached divergence grid {path}. It is required for "
            f"melt rate timeseries and is produced offline from thickness and velocity data."
        )

    logger.info("Loading divergence grid from %s", path)
    if path.suffix == ".mat":
        contents = loadmat(path)
        div = _lookup(contents, [names["divergence"]], path)
        x = _lookup(contents, [names["x"], names["x"].upper()], path)
        y = _lookup(contents, [names["y"], names["y"].upper()], path)
    else:
        with xr.open_dataset(path, engine=engine) as ds:
            div = _lookup(ds.variables, [names["divergence"]], path)
            x = _lookup(ds.variables, [names["x"], names["x"].upper()], path)
            y = _lookup(ds.variables, [names["y"], names["y"].upper()], path)

    x = _coordinate_vector(x, "x")
    y = _coordinate_vector(y, "y")
    div = np.asarray(div, dtype=float)
    if div.shape != (y.size, x.size):
        raise ShapeMismatchError(
            f"Divergence grid in {path.name} has shape {div.shape}, "
            f"expected {(y.size, x.size)} from its coordinates"
        )

    divergence = DataArray(div, dims=GRID_DIMS, coords={"y": y, "x": x}, name="div")
    divergence.attrs.update({"long_name": "Steady ice flux divergence", "units": "m yr-1"})
    return divergence.sortby(["y", "x"])


class GridStore:
    """
    Access to the files of the Adusumilli et al. (2020) dataset.

    Parameters
    ----------
    data_dir : str or Path, optional
        Directory holding the dataset files. Defaults to ``$MELTPY_DATA_DIR``,
        then the current directory.
    filenames : dict, optional
        Partial file name overrides. Keys are 'static', 'timeseries' and
        'divergence'.
    varnames : dict, optional
        Partial variable name overrides, see ``defaults.DEFAULT_VARNAMES``.
    engine : str, optional
        xarray engine used to open the files
    chunks : dict, optional
        If given, loaded arrays are chunked with dask for blockwise computation.
        ``time`` is always a single chunk.

    References
    ----------
    Adusumilli et al. (2020): https://doi.org/10.6075/J04Q7SHT
    """

    def __init__(
        self,
        data_dir: Optional[str | Path] = None,
        filenames: Optional[dict] = None,
        varnames: Optional[dict] = None,
        engine: str = "netcdf4",
        chunks: Optional[dict] = None,
    ):
        if data_dir is None:
            data_dir = os.environ.get(DATA_DIR_ENV, ".")
        self.data_dir = Path(data_dir)
        self.engine = engine
        self.chunks = chunks

        # Merge partial names with defaults
        self.filenames = DEFAULT_FILENAMES.copy()
        if filenames:
            self.filenames.update(filenames)
        self.varnames = DEFAULT_VARNAMES.copy()
        if varnames:
            self.varnames.update(varnames)

    def path(self, kind: str) -> Path:
        """Path of the 'static', 'timeseries' or 'divergence' file."""
        if kind not in self.filenames:
            raise InvalidArgumentError(
                f"Unknown file kind '{kind}'. Expected one of {sorted(self.filenames)}"
            )
        return self.data_dir / self.filenames[kind]

    def load_static(self) -> Tuple[DataArray, DataArray]:
        """
        Load the 500 m composite melt rate mosaic (2010-2018).

        Returns
        -------
        w_b, w_b_interp : xarray.DataArray
            Measured melt rates and the depth-dependent fill values, in m/yr,
            with dimensions (y, x)
        """
        path = self._require("static")
        logger.info("Loading static melt grid from %s", path)

        with xr.open_dataset(path, engine=self.engine) as ds:
            coords = self._read_coords(ds, path)
            w_b = self._read_grid(ds, "melt", path, "static", coords)
            w_b_interp = self._read_grid(ds, "melt_interp", path, "static", coords)

        logger.debug("Static grid: %d x %d cells", w_b.sizes["y"], w_b.sizes["x"])
        return self._finish(w_b), self._finish(w_b_interp)

    def load_timeseries(self) -> Tuple[DataArray, DataArray, DataArray, np.ndarray]:
        """
        Load the quarterly 10 km surface elevation anomaly cube (1992-2018).

        Zeros in ``h_alt`` mark missing data and are set to NaN.

        Returns
        -------
        h_alt, h_firn, smb_discharge : xarray.DataArray
            Elevation anomaly, firn air content anomaly and the surface mass
            balance term, with dimensions (y, x, time)
        t : numpy.ndarray
            datetime64 timestamps of the time slices
        """
        path = self._require("timeseries")
        logger.info("Loading elevation anomaly cube from %s", path)

        with xr.open_dataset(path, engine=self.engine) as ds:
            coords = self._read_coords(ds, path)
            coords["time"] = self._read_time(ds, path)
            h_alt = self._read_grid(ds, "h_alt", path, "timeseries", coords)
            h_firn = self._read_grid(ds, "h_firn", path, "timeseries", coords)
            smb_discharge = self._read_grid(ds, "smb_discharge", path, "timeseries", coords)

        h_alt = h_alt.where(h_alt != 0)

        logger.debug(
            "Elevation cube: %d x %d cells, %d time slices",
            h_alt.sizes["y"], h_alt.sizes["x"], h_alt.sizes["time"],
        )
        h_alt = self._finish(h_alt)
        return h_alt, self._finish(h_firn), self._finish(smb_discharge), h_alt.time.values

    def load_divergence(self) -> DataArray:
        """Load the cached divergence grid from the data directory."""
        return load_divergence(self.path("divergence"), engine=self.engine, varnames=self.varnames)

    def _require(self, kind: str) -> Path:
        path = self.path(kind)
        if not path.is_file():
            raise MissingInputError(
                f"Cannot find {path.name} in {self.data_dir}. "
                f"Get it here: {DATASET_DOI} (look under the Components heading)"
            )
        return path

    def _read_coords(self, ds: xr.Dataset, path: Path) -> dict:
        return {
            dim: _coordinate_vector(_lookup(ds.variables, [self.varnames[dim]], path), dim)
            for dim in ("x", "y")
        }

    def _read_time(self, ds: xr.Dataset, path: Path) -> np.ndarray:
        """Timestamps as datetime64. Undecoded numbers are day counts or decimal years."""
        name = self.varnames["time"]
        time = _lookup(ds.variables, [name], path).ravel()
        if np.issubdtype(time.dtype, np.datetime64):
            return time.astype("datetime64[ns]")
        units = str(ds.variables[name].attrs.get("units", ""))
        try:
            return numeric_time_to_datetime(time, units)
        except InvalidArgumentError as err:
            raise InvalidArgumentError(f"Bad '{name}' variable in {path.name}: {err}") from err

    def _read_grid(
        self,
        ds: xr.Dataset,
        var_type: str,
        path: Path,
        kind: str,
        coords: dict,
    ) -> DataArray:
        """Read one data variable into memory with canonical dims and coordinates."""
        name = self.varnames[var_type]
        if name not in ds.variables:
            raise MissingInputError(
                f"Variable '{name}' not found in {path.name}. "
                f"Available variables: {list(ds.data_vars)}"
            )

        storage_dims = STORAGE_DIMS[kind]
        dims = CUBE_DIMS if kind == "timeseries" else GRID_DIMS

        var = ds[name]
        var = var.drop_vars(list(var.coords))
        if var.ndim != len(dims):
            raise ShapeMismatchError(
                f"Variable '{name}' in {path.name} has {var.ndim} dimensions, expected {len(dims)}"
            )
        # Files without dimension scales come with anonymous dims in storage order
        if set(var.dims) != set(dims):
            var = var.rename(dict(zip(var.dims, storage_dims)))

        var = var.transpose(*dims)
        for dim in dims:
            if var.sizes[dim] != len(coords[dim]):
                raise ShapeMismatchError(
                    f"Variable '{name}' in {path.name} has {var.sizes[dim]} values along "
                    f"'{dim}' but the coordinate has {len(coords[dim])}"
                )

        var = var.assign_coords({dim: coords[dim] for dim in dims}).astype(float)
        var.name = name
        return var.load()

    def _finish(self, da: DataArray) -> DataArray:
        da = da.sortby(["y", "x"])
        if self.chunks is not None:
            da = prepare_chunked_data(da, self.chunks)
        return da
