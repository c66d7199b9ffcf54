import numpy as np
import pytest
import xarray as xr
from scipy.io import savemat

from meltpy import GridStore

# Static grid as stored in the dataset: north-up, so y descends
STATIC_X = np.array([1000.0, 1500.0, 2000.0])
STATIC_Y = np.array([-1000.0, -1500.0, -2000.0])
FILL_VALUE = 7.5

CUBE_X = np.array([0.0, 10000.0])
CUBE_Y = np.array([10000.0, 0.0])
CUBE_TIME = 2000.0 + 0.25 * np.arange(5)


def write_static(directory, w_b, w_b_interp=None, x=STATIC_X, y=STATIC_Y):
    """Write a static melt file the way the dataset stores it: (y, x), no dimension scales."""
    variables = {
        "x": ("nx", x),
        "y": ("ny", y),
        "w_b": (("ny", "nx"), w_b),
    }
    if w_b_interp is not None:
        variables["w_b_interp"] = (("ny", "nx"), w_b_interp)
    path = directory / "bb0448974g_3_1.h5"
    xr.Dataset(variables).to_netcdf(path, engine="netcdf4")
    return path


def write_timeseries(directory, h_alt, h_firn=None, smb_discharge=None,
                     x=CUBE_X, y=CUBE_Y, time=CUBE_TIME, time_attrs=None):
    """Write an elevation anomaly cube stored as (time, y, x)."""
    h_firn = np.zeros_like(h_alt) if h_firn is None else h_firn
    smb_discharge = np.zeros_like(h_alt) if smb_discharge is None else smb_discharge
    dims = ("nt", "ny", "nx")
    ds = xr.Dataset({
        "x": ("nx", x),
        "y": ("ny", y),
        "time": ("nt", time, time_attrs or {}),
        "h_alt": (dims, h_alt),
        "h_firn": (dims, h_firn),
        "smb_discharge": (dims, smb_discharge),
    })
    path = directory / "bb0448974g_2_1.h5"
    ds.to_netcdf(path, engine="netcdf4")
    return path


def write_divergence(directory, div, x=CUBE_X, y=CUBE_Y, name="divergence_adusumilli_grid.mat"):
    """Write the cached divergence grid with meshgrid coordinates."""
    X, Y = np.meshgrid(x, y)
    path = directory / name
    if path.suffix == ".mat":
        savemat(path, {"X": X, "Y": Y, "div": div})
    else:
        xr.Dataset({
            "x": ("nx", x),
            "y": ("ny", y),
            "div": (("ny", "nx"), div),
        }).to_netcdf(path, engine="netcdf4")
    return path


def linear_cube():
    """h_alt rising by 1 m every quarter at every cell, stored (time, y, x)."""
    steps = np.arange(1, 6, dtype=float)
    return np.broadcast_to(steps[:, None, None], (5, 2, 2)).copy()


@pytest.fixture
def static_dir(tmp_path):
    w_b = np.array([
        [1.0, 2.0, 3.0],
        [4.0, np.nan, 6.0],
        [7.0, 8.0, 9.0],
    ])
    w_b_interp = np.full((3, 3), FILL_VALUE)
    write_static(tmp_path, w_b, w_b_interp)
    return tmp_path


@pytest.fixture
def timeseries_dir(tmp_path):
    write_timeseries(tmp_path, linear_cube())
    write_divergence(tmp_path, np.zeros((2, 2)))
    return tmp_path


@pytest.fixture
def store(static_dir):
    return GridStore(data_dir=static_dir)


@pytest.fixture
def make_cube():
    """Build a (y, x, time) DataArray on a small regular grid."""
    def _make_cube(values, name="h_alt"):
        values = np.asarray(values, dtype=float)
        ny, nx, nt = values.shape
        return xr.DataArray(
            values,
            dims=("y", "x", "time"),
            coords={
                "y": 10000.0 * np.arange(ny),
                "x": 10000.0 * np.arange(nx),
                "time": np.datetime64("2000-01-01", "ns") + np.arange(nt) * np.timedelta64(91, "D"),
            },
            name=name,
        )
    return _make_cube


@pytest.fixture
def make_grid():
    """Build a (y, x) DataArray on a 500 m grid."""
    def _make_grid(values, name="w_b", x0=0.0, y0=0.0, res=500.0):
        values = np.asarray(values, dtype=float)
        ny, nx = values.shape
        return xr.DataArray(
            values,
            dims=("y", "x"),
            coords={"y": y0 + res * np.arange(ny), "x": x0 + res * np.arange(nx)},
            name=name,
        )
    return _make_grid
