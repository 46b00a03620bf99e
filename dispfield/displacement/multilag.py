# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
This module defines the estimation of persistent movement from a sequence of
grids over a range of time lags, keeping for each sub-grid the lag that
reveals the strongest movement.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy import ndarray

from dispfield.displacement.base import (
    bounding_box_sub_grid,
    check_bounding_box,
    check_lag,
    check_lag_against_times,
    check_odd_integer,
    grid_sub_grids,
)
from dispfield.displacement.spacetime import BaseSpaceTimeDisplacementField
from dispfield.utilities.spatial import GridGeometry


def select_strongest_lag(dispx: ndarray, dispy: ndarray) -> int:
    """
    Index of the velocity with the greatest magnitude.

    The first of several equal maxima is selected. Undefined (NaN) velocities
    are only selected if no velocity is defined, in which case the first
    index is returned.

    Args:
        dispx:
            Rightward velocity for each lag, in increasing order of lag.
        dispy:
            Upward velocity for each lag, in increasing order of lag.

    Returns:
        Index into the arrays of the selected lag.
    """
    speed = np.hypot(np.asarray(dispx, dtype=float), np.asarray(dispy, dtype=float))
    if np.all(np.isnan(speed)):
        return 0
    return int(np.nanargmax(speed))


class BaseMultiLagDisplacementField(BaseSpaceTimeDisplacementField):
    """
    Base class to estimate persistent movement within each sub-grid of a
    sequence of grids for every lag from 1 to lag_max, keeping the result of
    the lag with the greatest speed.

    A single lag assumes one time scale of movement across the whole domain.
    Searching over lags lets each sub-grid report the movement most clearly
    detected at any time scale up to lag_max.
    """

    output_columns = ["dispx", "dispy", "lag"]

    def __init__(
        self, lag_max: int, restricted: bool = False, num_workers: int = 1
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag_max:
                Largest lag tested.
            restricted:
                Build the space-time matrices from the focal sub-grid only.
            num_workers:
                Number of threads used to process sub-grids.

        Raises:
            ValueError: If lag_max is not a positive integer.
            TypeError: If restricted is not a boolean.
        """
        check_lag(lag_max, "lag_max")
        super().__init__(lag_max, restricted=restricted, num_workers=num_workers)
        self.lag_max = int(lag_max)

    def _check_stack(self, stack: ndarray) -> None:
        """Check that the stack is long enough for the largest lag."""
        self._check_length(stack)
        check_lag_against_times(self.lag_max, stack.shape[0], "lag_max")

    def _sub_grid_displacement(
        self, stack: ndarray, geometry: GridGeometry, sub_grid: Tuple[int, ...]
    ) -> Tuple[float, float, int]:
        """
        Velocity of one sub-grid at the lag giving the greatest speed.

        Returns:
            - Rightward velocity
            - Upward velocity
            - Selected lag
        """
        lags = range(1, self.lag_max + 1)
        dispx, dispy = np.array(
            [self._velocity(stack, geometry, sub_grid, lag) for lag in lags]
        ).T
        index = select_strongest_lag(dispx, dispy)
        return dispx[index], dispy[index], lags[index]

    def displacement_table(
        self, stack: ndarray, geometry: Optional[GridGeometry] = None
    ) -> pd.DataFrame:
        """
        Estimate the velocity of every sub-grid of a stack of grids at the
        lag that gives the greatest speed.

        Args:
            stack:
                Array of shape (time, rows, columns) with row 0 at the top
                of the domain, ordered forward in time.
            geometry:
                Geometry of the grid. Unit cells anchored at the origin if
                not given.

        Returns:
            Table with columns rowcent, colcent, frowmin, frowmax, fcolmin,
            fcolmax, centx, centy, dispx, dispy, lag and speed.
        """
        table = super().displacement_table(stack, geometry)
        table["lag"] = table["lag"].astype(int)
        table["speed"] = np.hypot(table["dispx"], table["dispy"])
        return table


class MultiLagDisplacementField(BaseMultiLagDisplacementField):
    """
    Estimate persistent movement over a regular partition of the domain into
    sub-grids, selecting the lag for each sub-grid.
    """

    def __init__(
        self,
        lag_max: int,
        factv: int,
        facth: int,
        restricted: bool = False,
        num_workers: int = 1,
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag_max:
                Largest lag tested.
            factv:
                Odd number of rows in each sub-grid.
            facth:
                Odd number of columns in each sub-grid.
            restricted:
                Build the space-time matrices from the focal sub-grid only.
            num_workers:
                Number of threads used to process sub-grids.
        """
        check_odd_integer(factv, "factv")
        check_odd_integer(facth, "facth")
        super().__init__(lag_max, restricted=restricted, num_workers=num_workers)
        self.factv = int(factv)
        self.facth = int(facth)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return (
            "<MultiLagDisplacementField: lag_max: {}, factv: {}, facth: {}, "
            "restricted: {}>".format(
                self.lag_max, self.factv, self.facth, self.restricted
            )
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        return grid_sub_grids(matrix, self.factv, self.facth)


class MultiLagDisplacementFieldBoundingBox(BaseMultiLagDisplacementField):
    """
    Estimate persistent movement within a single focal region defined by a
    bounding box, selecting the lag that gives the greatest speed.
    """

    def __init__(
        self,
        lag_max: int,
        xlims: Sequence[float],
        ylims: Sequence[float],
        restricted: bool = False,
        num_workers: int = 1,
    ) -> None:
        """
        Initialise the plugin.

        Args:
            lag_max:
                Largest lag tested.
            xlims:
                Minimum and maximum x coordinates of the focal region.
            ylims:
                Minimum and maximum y coordinates of the focal region.
            restricted:
                Build the space-time matrices from the focal region only.
            num_workers:
                Number of threads used to process sub-grids.
        """
        check_bounding_box(xlims, ylims)
        super().__init__(lag_max, restricted=restricted, num_workers=num_workers)
        self.xlims = tuple(xlims)
        self.ylims = tuple(ylims)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return (
            "<MultiLagDisplacementFieldBoundingBox: lag_max: {}, xlims: {}, "
            "ylims: {}, restricted: {}>".format(
                self.lag_max, self.xlims, self.ylims, self.restricted
            )
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        return bounding_box_sub_grid(geometry, self.xlims, self.ylims)
