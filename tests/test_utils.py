import numpy as np
import pytest
import xarray as xr

from meltpy import ColumnMask, check_alignment, check_dims, ll2xy
from meltpy.errors import InvalidArgumentError, ShapeMismatchError
from meltpy.utils import (
    days_to_datetime,
    decimal_year_to_datetime,
    grid_resolution,
    numeric_time_to_datetime,
    prepare_chunked_data,
)


def test_column_mask_round_trip():
    data = np.arange(12, dtype=float).reshape(2, 2, 3)
    data[1, 0, :] = np.nan
    data[0, 1, 1] = np.nan

    mask = ColumnMask.from_finite(data)
    rows = mask.gather(data)

    assert mask.count == 3
    assert rows.shape == (3, 3)
    restored = mask.scatter(rows)
    np.testing.assert_array_equal(restored, data)


def test_column_mask_rejects_other_shapes():
    mask = ColumnMask(np.ones((2, 2)))
    with pytest.raises(ShapeMismatchError):
        mask.gather(np.ones((3, 2, 4)))


def test_check_dims():
    da = xr.DataArray(np.ones((2, 3)), dims=("y", "x"), name="w_b")
    check_dims(da, {"x", "y"})
    with pytest.raises(ShapeMismatchError, match="time"):
        check_dims(da, {"x", "y", "time"})


def test_check_alignment_compares_coordinates():
    a = xr.DataArray(np.ones((2, 2)), dims=("y", "x"), coords={"y": [0.0, 1.0], "x": [0.0, 1.0]})
    check_alignment(a, a + 1)
    with pytest.raises(ShapeMismatchError):
        check_alignment(a, a.assign_coords(x=[0.0, 2.0]))


def test_ll2xy_south_pole_and_true_scale_latitude():
    x, y = ll2xy(-90.0, 45.0)
    assert x == pytest.approx(0.0, abs=1e-6)
    assert y == pytest.approx(0.0, abs=1e-6)

    # along lon = 90 the x axis points at the standard parallel
    x, y = ll2xy(-71.0, 90.0)
    assert x == pytest.approx(2.08276e6, rel=1e-4)
    assert y == pytest.approx(0.0, abs=1e-6)

    x, y = ll2xy(-71.0, 0.0)
    assert x == pytest.approx(0.0, abs=1e-6)
    assert y == pytest.approx(2.08276e6, rel=1e-4)


def test_ll2xy_keeps_array_shape():
    lat = np.full((2, 3), -80.0)
    lon = np.linspace(0, 300, 6).reshape(2, 3)
    x, y = ll2xy(lat, lon)
    assert x.shape == y.shape == (2, 3)
    np.testing.assert_allclose(np.hypot(x, y), np.hypot(x, y)[0, 0])


def test_ll2xy_rejects_bad_arguments():
    with pytest.raises(InvalidArgumentError):
        ll2xy(-75.0, 0.0, 2)
    with pytest.raises(InvalidArgumentError):
        ll2xy(-75.0, 0.0, -1, 0.0)


def test_decimal_years():
    t = decimal_year_to_datetime([2001.0, 2001.5, 2004.25])
    assert t[0] == np.datetime64("2001-01-01")
    assert t[1] == np.datetime64("2001-07-02T12:00")
    # 2004 is a leap year
    assert t[2] == np.datetime64("2004-04-01T12:00")


def test_decimal_years_out_of_range():
    with pytest.raises(InvalidArgumentError):
        decimal_year_to_datetime([2000.0, 3000.0])


def test_day_counts():
    t = days_to_datetime([0, 91.5, -365])
    assert t[0] == np.datetime64("1970-01-01")
    assert t[1] == np.datetime64("1970-04-02T12:00")
    assert t[2] == np.datetime64("1969-01-01")

    with pytest.raises(InvalidArgumentError):
        days_to_datetime([0.0, 1e6])


@pytest.mark.parametrize(
    "time, units, first",
    [
        ([1992.0, 1992.25], "", "1992-01-01"),
        ([8000, 8091], "", "1991-11-27"),
        ([1992.0, 1992.25], "days", "1975-06-16"),
        ([1992.0, 1992.25], "years", "1992-01-01"),
    ],
)
def test_numeric_time_units(time, units, first):
    assert numeric_time_to_datetime(np.array(time), units)[0] == np.datetime64(first)


def test_numeric_time_rejects_years_out_of_range():
    with pytest.raises(InvalidArgumentError):
        numeric_time_to_datetime(np.array([10.0, 10.25]), "year")


def test_grid_resolution():
    da = xr.DataArray(np.ones(3), dims="x", coords={"x": [0.0, 500.0, 1000.0]})
    assert grid_resolution(da) == 500.0


def test_chunking_keeps_time_whole():
    da = xr.DataArray(np.ones((4, 4, 6)), dims=("y", "x", "time"))
    chunked = prepare_chunked_data(da, {"x": 2, "y": 2, "time": 2, "run": 1})
    assert chunked.chunks == ((2, 2), (2, 2), (6,))
