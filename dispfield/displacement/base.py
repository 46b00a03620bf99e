# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Base class and shared checks for plugins that estimate displacement
fields over a set of sub-grids."""

import numbers
import warnings
from abc import abstractmethod
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from dask import compute, delayed
from numpy import ndarray

from dispfield import BasePlugin
from dispfield.utilities.matrix_operations import SUB_GRID_COLUMNS, thin_matrix
from dispfield.utilities.spatial import GridGeometry

NO_VIABLE_LOCATIONS_MSG = (
    "no viable grid locations: try smaller values for factv and facth"
)


def check_odd_integer(value: int, name: str) -> None:
    """
    Check that a sub-grid dimension is a positive odd integer.

    Raises:
        ValueError: If the value is not an integer, is not positive or is even.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError("{} must be an integer, got {!r}".format(name, value))
    if not np.isfinite(value) or value != round(value):
        raise ValueError("{} must be an integer, got {}".format(name, value))
    if value < 1 or value % 2 == 0:
        raise ValueError(
            "{} must be a positive odd integer, got {}".format(name, value)
        )


def check_lag(lag: int, name: str = "lag") -> None:
    """
    Check that a time lag is a positive integer.

    Raises:
        ValueError: If the lag is not an integer larger than zero.
    """
    if (
        isinstance(lag, bool)
        or not isinstance(lag, numbers.Real)
        or not np.isfinite(lag)
        or lag != round(lag)
        or lag < 1
    ):
        raise ValueError("{} must be an integer larger than zero".format(name))


def check_lag_against_times(lag: int, n_times: int, name: str = "lag") -> None:
    """
    Check that a lag leaves at least two time steps in each of the lagged and
    unlagged space-time matrices.

    Raises:
        ValueError: If the lag is not at least two smaller than the number of
            time steps.
    """
    if lag >= n_times - 1:
        raise ValueError(
            "{} must be at least two smaller than the number of time steps "
            "({}), got {}".format(name, n_times, lag)
        )


def check_restricted(restricted: bool) -> None:
    """
    Raises:
        TypeError: If restricted is not a boolean.
    """
    if not isinstance(restricted, (bool, np.bool_)):
        raise TypeError("restricted must be either True or False")


def check_bounding_box(xlims: Sequence[float], ylims: Sequence[float]) -> None:
    """
    Check that bounding box limits are pairs of finite, increasing values.

    Raises:
        ValueError: If either pair of limits is malformed.
    """
    for name, lims in (("xlims", xlims), ("ylims", ylims)):
        lims = np.asarray(lims, dtype=np.float64)
        if lims.shape != (2,) or not np.all(np.isfinite(lims)):
            raise ValueError("{} must contain two finite values".format(name))
        if lims[0] >= lims[1]:
            raise ValueError(
                "{} must be increasing, got {}".format(name, lims.tolist())
            )


def grid_sub_grids(matrix: ndarray, factv: int, facth: int) -> pd.DataFrame:
    """
    Partition a grid into factv x facth sub-grids.

    Raises:
        ValueError: If no sub-grid fits within the grid.
    """
    sub_grids = thin_matrix(matrix, factv, facth)
    if sub_grids.empty:
        raise ValueError(NO_VIABLE_LOCATIONS_MSG)
    return sub_grids


def bounding_box_sub_grid(
    geometry: GridGeometry, xlims: Sequence[float], ylims: Sequence[float]
) -> pd.DataFrame:
    """
    Describe the sub-grid made up of the cells whose centres lie within a
    bounding box given in projected coordinates.

    Args:
        geometry:
            Geometry of the full grid.
        xlims:
            Minimum and maximum x coordinates of the box.
        ylims:
            Minimum and maximum y coordinates of the box.

    Returns:
        Single row table of the sub-grid descriptor.

    Raises:
        ValueError: If the box does not contain any cell centres.
    """
    cols = np.flatnonzero(
        (geometry.x_points >= xlims[0]) & (geometry.x_points <= xlims[1])
    )
    rows = np.flatnonzero(
        (geometry.y_points >= ylims[0]) & (geometry.y_points <= ylims[1])
    )
    if cols.size == 0 or rows.size == 0:
        raise ValueError(
            "no viable grid locations: the bounding box does not contain any "
            "grid cells"
        )
    frowmin, frowmax = rows.min(), rows.max()
    fcolmin, fcolmax = cols.min(), cols.max()
    descriptor = [
        (frowmin + frowmax) // 2,
        (fcolmin + fcolmax) // 2,
        frowmin,
        frowmax,
        fcolmin,
        fcolmax,
    ]
    return pd.DataFrame([descriptor], columns=SUB_GRID_COLUMNS).astype(int)


def sanitise_stack(stack: ndarray) -> ndarray:
    """Convert a stack of grids to floats, setting masked and NaN points
    to zero."""
    stack = np.ma.filled(stack, 0).astype(np.float64)
    stack[np.isnan(stack)] = 0.0
    return stack


class BaseDisplacementField(BasePlugin):
    """
    Base class for estimating a displacement field from a stack of grids.

    Subclasses define the sub-grids of the domain and the calculation of the
    displacement of one sub-grid. The sub-grids are independent of each
    other and may be processed in parallel; the output always follows the
    order of the sub-grids.
    """

    #: Names of the values returned for each sub-grid.
    output_columns = ["dispx", "dispy"]

    def __init__(self, restricted: bool = False, num_workers: int = 1) -> None:
        """
        Initialise the base plugin.

        Args:
            restricted:
                If True, the search for maximum cross-covariance is confined
                to each sub-grid. If False, the focal sub-grid is compared
                with the whole domain.
            num_workers:
                Number of threads used to process sub-grids.

        Raises:
            TypeError: If restricted is not a boolean.
            ValueError: If num_workers is less than one.
        """
        check_restricted(restricted)
        if num_workers < 1:
            raise ValueError(
                "num_workers must be at least 1, got {}".format(num_workers)
            )
        self.restricted = bool(restricted)
        self.num_workers = num_workers

    @abstractmethod
    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        """Table of sub-grid descriptors over which displacement is
        estimated."""

    @abstractmethod
    def _sub_grid_displacement(
        self, stack: ndarray, geometry: GridGeometry, sub_grid: Tuple[int, ...]
    ) -> Tuple[float, ...]:
        """Values of self.output_columns for one sub-grid."""

    def _check_stack(self, stack: ndarray) -> None:
        """Check a stack is suitable for this plugin."""

    def displacement_table(
        self, stack: ndarray, geometry: Optional[GridGeometry] = None
    ) -> pd.DataFrame:
        """
        Estimate the displacement of every sub-grid of a stack of grids.

        Args:
            stack:
                Array of shape (time, rows, columns) with row 0 at the top
                of the domain.
            geometry:
                Geometry of the grid. If not given, cells are of unit size
                with the bottom left corner of the domain at the origin.

        Returns:
            Table with one row per sub-grid, holding the sub-grid
            descriptor, the coordinates of its centre (centx, centy) and the
            estimated values for that sub-grid.

        Raises:
            ValueError: If the stack is not three dimensional or does not
                match the geometry.
        """
        stack = sanitise_stack(np.asanyarray(stack))
        if stack.ndim != 3:
            raise ValueError(
                "Expected a stack of 2D grids, got an array of shape "
                "{}".format(stack.shape)
            )
        if geometry is None:
            geometry = GridGeometry.from_shape(stack.shape[1:])
        elif geometry.shape != stack.shape[1:]:
            raise ValueError(
                "Grid geometry of shape {} does not match grids of shape "
                "{}".format(geometry.shape, stack.shape[1:])
            )
        self._check_stack(stack)

        sub_grids = self._sub_grids(stack[0], geometry)

        if not stack.any():
            warnings.warn(
                "No non-zero data in input fields: displacement will be zero"
            )

        tasks = [
            delayed(self._sub_grid_displacement)(stack, geometry, sub_grid)
            for sub_grid in sub_grids.itertuples(index=False, name="SubGrid")
        ]
        results = compute(*tasks, scheduler="threads", num_workers=self.num_workers)

        table = sub_grids.copy()
        table["centx"] = geometry.x_from_col(table["colcent"].to_numpy())
        table["centy"] = geometry.y_from_row(table["rowcent"].to_numpy())
        values = np.full((len(table), len(self.output_columns)), np.nan)
        if results:
            values[:] = np.array(results, dtype=np.float64)
        for column, column_values in zip(self.output_columns, values.T):
            table[column] = column_values
        return table

