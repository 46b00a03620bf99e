# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
This module defines the estimation of persistent movement from a sequence of
three or more grids, using the cross-covariance of lagged and unlagged
space-time matrices.
"""

import warnings
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from iris.cube import Cube
from numpy import ndarray

from dispfield.cross_covariance import surface_peak_offset, xcov2d
from dispfield.displacement.base import (
    BaseDisplacementField,
    bounding_box_sub_grid,
    check_bounding_box,
    check_lag,
    check_lag_against_times,
    check_odd_integer,
    grid_sub_grids,
)
from dispfield.utilities.matrix_operations import extract_matrix
from dispfield.utilities.spatial import GridGeometry, stack_from_cubes

# Averaging over rows leaves space running along the columns (x); averaging
# over columns leaves space running down the rows, against the y axis.
HORIZONTAL = 1
VERTICAL = 2


def spacetime_matrices(
    stack: ndarray, sub_grid: Tuple[int, ...], axis: int, lag: int, restricted: bool
) -> Tuple[ndarray, ndarray]:
    """
    Build the unlagged (focal) and lagged (buffer) space-time matrices of a
    sub-grid, in which each row is a time step and each column a position
    along one spatial axis.

    Args:
        stack:
            Array of grids with shape (time, rows, columns).
        sub_grid:
            Descriptor of the focal sub-grid.
        axis:
            Axis of the stack averaged over: HORIZONTAL (1) to average over
            rows, or VERTICAL (2) to average over columns.
        lag:
            Number of time steps between the focal and buffer matrices.
        restricted:
            If True, both matrices are built from the sub-grid alone. If
            False, the buffer matrix is built from the whole domain.

    Returns:
        - Focal matrix, holding time steps 0 to n - lag - 1
        - Buffer matrix, holding time steps lag to n - 1
    """
    if restricted:
        cropped = stack[
            :,
            sub_grid.frowmin : sub_grid.frowmax + 1,
            sub_grid.fcolmin : sub_grid.fcolmax + 1,
        ]
        focal = cropped.mean(axis=axis)
        buffer = focal
    else:
        extracted = extract_matrix(
            stack,
            sub_grid.frowmin,
            sub_grid.frowmax,
            sub_grid.fcolmin,
            sub_grid.fcolmax,
        )
        focal = extracted.mean(axis=axis)
        buffer = stack.mean(axis=axis)
    return focal[:-lag], buffer[lag:]


def spacetime_velocity(
    focal: ndarray, buffer: ndarray, lag: int, spacing: float
) -> float:
    """
    Velocity along the spatial axis of a pair of space-time matrices.

    The peak of the cross-covariance surface gives both a shift in space and
    a shift in time relative to the nominal lag. The velocity is the spatial
    shift divided by the time actually elapsed at the peak, so the lag only
    sets where the search starts.

    Args:
        focal:
            Unlagged space-time matrix.
        buffer:
            Lagged space-time matrix.
        lag:
            Number of time steps separating the rows of the two matrices.
        spacing:
            Grid spacing along the spatial axis.

    Returns:
        Displacement per time step in the direction of increasing column
        index of the matrices. Zero if the focal matrix does not sum to
        a positive value, and NaN if the peak corresponds to no elapsed time.
    """
    # no signal to correlate
    if focal.sum() <= 0:
        return 0.0
    time_offset, space_offset = surface_peak_offset(xcov2d(focal, buffer))
    # a row offset counts buffer rows earlier than the focal row
    elapsed = lag - time_offset
    if elapsed == 0:
        return np.nan
    return space_offset * spacing / elapsed


class BaseSpaceTimeDisplacementField(BaseDisplacementField):
    """
    Base class to estimate persistent movement within each sub-grid of a
    sequence of grids.

    The stack of grids forms a three dimensional array (time, rows,
    columns). Averaging over rows gives space-time matrices from which
    horizontal movement is estimated, and averaging over columns gives those
    from which vertical movement is estimated. For each, the cross-covariance
    between the unlagged focal matrix and the lagged buffer matrix locates
    the shift in space and time that best aligns them.

    Velocities are in units of the grid coordinates per time step, positive
    rightward and upward.
    """

    #: Minimum number of grids in the stack.
    min_times = 3

    def __init__(
        self, lag: int, restricted: bool = False, num_workers: int = 1
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag:
                Number of time steps between the focal and buffer matrices.
            restricted:
                Build both matrices from the focal sub-grid only.
            num_workers:
                Number of threads used to process sub-grids.

        Raises:
            ValueError: If lag is not a positive integer.
            TypeError: If restricted is not a boolean.
        """
        check_lag(lag)
        super().__init__(restricted=restricted, num_workers=num_workers)
        self.lag = int(lag)

    def _check_length(self, stack: ndarray) -> None:
        """Check that the stack holds enough grids to form space-time
        matrices."""
        if stack.shape[0] < self.min_times:
            raise ValueError(
                "At least {} grids are required, got {}".format(
                    self.min_times, stack.shape[0]
                )
            )

    def _check_stack(self, stack: ndarray) -> None:
        """Check that the stack is long enough for the lag."""
        self._check_length(stack)
        check_lag_against_times(self.lag, stack.shape[0])

    def _velocity(
        self,
        stack: ndarray,
        geometry: GridGeometry,
        sub_grid: Tuple[int, ...],
        lag: int,
    ) -> Tuple[float, float]:
        """
        Rightward and upward velocity of one sub-grid for a given lag.
        """
        dispx = spacetime_velocity(
            *spacetime_matrices(stack, sub_grid, HORIZONTAL, lag, self.restricted),
            lag,
            geometry.dx,
        )
        dispy = 0.0 - spacetime_velocity(
            *spacetime_matrices(stack, sub_grid, VERTICAL, lag, self.restricted),
            lag,
            geometry.dy,
        )
        return dispx, dispy

    def _sub_grid_displacement(
        self, stack: ndarray, geometry: GridGeometry, sub_grid: Tuple[int, ...]
    ) -> Tuple[float, float]:
        """Velocity of one sub-grid at the configured lag."""
        return self._velocity(stack, geometry, sub_grid, self.lag)

    def displacement_table(
        self, stack: ndarray, geometry: Optional[GridGeometry] = None
    ) -> pd.DataFrame:
        """
        Estimate the velocity of every sub-grid of a stack of grids, warning
        where no velocity could be determined.

        Args:
            stack:
                Array of shape (time, rows, columns) with row 0 at the top
                of the domain, ordered forward in time.
            geometry:
                Geometry of the grid. Unit cells anchored at the origin if
                not given.

        Returns:
            Table with columns rowcent, colcent, frowmin, frowmax, fcolmin,
            fcolmax, centx, centy, dispx and dispy.
        """
        table = super().displacement_table(stack, geometry)
        undefined = table[["dispx", "dispy"]].isna().any(axis=1)
        if undefined.any():
            warnings.warn(
                "Velocity could not be determined at {} of {} sub-grids, where "
                "the best alignment involves no elapsed time".format(
                    undefined.sum(), len(table)
                )
            )
        return table

    def process_arrays(
        self, stack: ndarray, geometry: Optional[GridGeometry] = None
    ) -> pd.DataFrame:
        """Estimate the velocity field of a (time, rows, columns) array.
        See displacement_table."""
        return self.displacement_table(stack, geometry)

    def process(self, cubes: Union[Cube, Iterable[Cube]]) -> pd.DataFrame:
        """
        Estimate the velocity field of a time series of cubes on the same
        equally spaced grid.

        Args:
            cubes:
                A cube with a time dimension, or an iterable of 2D cubes.
                Cubes are ordered by their time coordinate.

        Returns:
            Table with columns rowcent, colcent, frowmin, frowmax, fcolmin,
            fcolmax, centx, centy, dispx and dispy.
        """
        stack, geometry = stack_from_cubes(cubes)
        return self.displacement_table(stack, geometry)


class SpaceTimeDisplacementField(BaseSpaceTimeDisplacementField):
    """
    Estimate persistent movement over a regular partition of the domain into
    sub-grids.

    Results can be sensitive to the lag, and sub-grids that are too small
    can give erroneous results. Where velocity varies in space or time,
    MultiLagDisplacementField may be more appropriate.
    """

    def __init__(
        self,
        lag: int,
        factv: int,
        facth: int,
        restricted: bool = False,
        num_workers: int = 1,
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag:
                Number of time steps between the focal and buffer matrices.
            factv:
                Odd number of rows in each sub-grid.
            facth:
                Odd number of columns in each sub-grid.
            restricted:
                Build both matrices from the focal sub-grid only.
            num_workers:
                Number of threads used to process sub-grids.
        """
        check_odd_integer(factv, "factv")
        check_odd_integer(facth, "facth")
        super().__init__(lag, restricted=restricted, num_workers=num_workers)
        self.factv = int(factv)
        self.facth = int(facth)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return (
            "<SpaceTimeDisplacementField: lag: {}, factv: {}, facth: {}, "
            "restricted: {}>".format(self.lag, self.factv, self.facth, self.restricted)
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        return grid_sub_grids(matrix, self.factv, self.facth)


class SpaceTimeDisplacementFieldBoundingBox(BaseSpaceTimeDisplacementField):
    """
    Estimate persistent movement within a single focal region defined by a
    bounding box in projected coordinates.
    """

    def __init__(
        self,
        lag: int,
        xlims: Sequence[float],
        ylims: Sequence[float],
        restricted: bool = False,
        num_workers: int = 1,
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag:
                Number of time steps between the focal and buffer matrices.
            xlims:
                Minimum and maximum x coordinates of the focal region.
            ylims:
                Minimum and maximum y coordinates of the focal region.
            restricted:
                Build both matrices from the focal region only.
            num_workers:
                Number of threads used to process sub-grids.
        """
        check_bounding_box(xlims, ylims)
        super().__init__(lag, restricted=restricted, num_workers=num_workers)
        self.xlims = tuple(xlims)
        self.ylims = tuple(ylims)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return (
            "<SpaceTimeDisplacementFieldBoundingBox: lag: {}, xlims: {}, "
            "ylims: {}, restricted: {}>".format(
                self.lag, self.xlims, self.ylims, self.restricted
            )
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        return bounding_box_sub_grid(geometry, self.xlims, self.ylims)
