# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
This module defines the digital image correlation of two grids separated by
a single interval of time.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from iris.cube import Cube
from numpy import ndarray

from dispfield.cross_covariance import surface_peak_offset, xcov2d
from dispfield.displacement.base import (
    BaseDisplacementField,
    bounding_box_sub_grid,
    check_bounding_box,
    check_odd_integer,
    grid_sub_grids,
)
from dispfield.utilities.matrix_operations import extract_matrix
from dispfield.utilities.spatial import GridGeometry, stack_from_cubes


class BasePairwiseDisplacementField(BaseDisplacementField):
    """
    Base class to estimate the displacement of each sub-grid of a domain
    between two instants of time, from the shift that maximises the
    cross-covariance between the two grids.

    In unrestricted mode the focal sub-grid of the first grid (with the rest
    of the domain set to zero) is compared with the whole of the second grid,
    so a match may be found anywhere in the domain. When patterns elsewhere in
    the domain are stronger than the local one this can attribute their
    movement to the focal sub-grid. In restricted mode only the sub-grid of
    each grid is compared.
    """

    def _check_stack(self, stack: ndarray) -> None:
        """Check that exactly two grids are provided."""
        if stack.shape[0] != 2:
            raise ValueError("Expected two grids, got {}".format(stack.shape[0]))

    def _sub_grid_displacement(
        self, stack: ndarray, geometry: GridGeometry, sub_grid: Tuple[int, ...]
    ) -> Tuple[float, float]:
        """
        Displacement of one sub-grid, in the units of the grid coordinates.

        Args:
            stack:
                The two grids, start then end of the displacement.
            geometry:
                Geometry of the grids.
            sub_grid:
                Descriptor of the sub-grid.

        Returns:
            - Rightward displacement
            - Upward displacement
        """
        rows = slice(sub_grid.frowmin, sub_grid.frowmax + 1)
        cols = slice(sub_grid.fcolmin, sub_grid.fcolmax + 1)
        if self.restricted:
            focal = stack[0, rows, cols]
            target = stack[1, rows, cols]
        else:
            focal = extract_matrix(
                stack[0],
                sub_grid.frowmin,
                sub_grid.frowmax,
                sub_grid.fcolmin,
                sub_grid.fcolmax,
            )
            target = stack[1]

        # nothing to track
        if focal.sum() <= 0:
            return 0.0, 0.0

        row_offset, col_offset = surface_peak_offset(xcov2d(focal, target))
        return col_offset * geometry.dx, row_offset * geometry.dy

    def process_arrays(
        self, data1: ndarray, data2: ndarray, geometry: Optional[GridGeometry] = None
    ) -> pd.DataFrame:
        """
        Estimate the displacement field between two grids.

        Args:
            data1:
                2D grid at the start of the displacement, row 0 at the top of
                the domain.
            data2:
                2D grid at the end of the displacement.
            geometry:
                Geometry of the grids. Unit cells anchored at the origin if
                not given.

        Returns:
            Table with columns rowcent, colcent, frowmin, frowmax, fcolmin,
            fcolmax, centx, centy, dispx and dispy.
        """
        if np.shape(data1) != np.shape(data2):
            raise ValueError(
                "Input grids have different shapes {} and {}".format(
                    np.shape(data1), np.shape(data2)
                )
            )
        return self.displacement_table(np.ma.stack([data1, data2]), geometry)

    def process(self, cube1: Cube, cube2: Cube) -> pd.DataFrame:
        """
        Estimate the displacement field between two cubes on the same
        equally spaced grid. Displacement is expressed in the units of the
        spatial coordinates.

        Args:
            cube1:
                2D cube that displacement will be FROM.
            cube2:
                2D cube that displacement will be TO.

        Returns:
            Table with columns rowcent, colcent, frowmin, frowmax, fcolmin,
            fcolmax, centx, centy, dispx and dispy.
        """
        stack, geometry = stack_from_cubes([cube1, cube2], sort_by_time=False)
        return self.displacement_table(stack, geometry)


class DisplacementField(BasePairwiseDisplacementField):
    """
    Estimate displacement between two grids over a regular partition of the
    domain into sub-grids.
    """

    def __init__(
        self, factv: int, facth: int, restricted: bool = False, num_workers: int = 1
    ) -> None:
        """
        Initialise the plugin.

        Args:
            factv:
                Odd number of rows in each sub-grid.
            facth:
                Odd number of columns in each sub-grid.
            restricted:
                Confine the search for maximum cross-covariance to each
                sub-grid.
            num_workers:
                Number of threads used to process sub-grids.

        Raises:
            ValueError: If factv or facth is not a positive odd integer.
            TypeError: If restricted is not a boolean.
        """
        check_odd_integer(factv, "factv")
        check_odd_integer(facth, "facth")
        super().__init__(restricted=restricted, num_workers=num_workers)
        self.factv = int(factv)
        self.facth = int(facth)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return "<DisplacementField: factv: {}, facth: {}, restricted: {}>".format(
            self.factv, self.facth, self.restricted
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        """Regular partition of the grid."""
        return grid_sub_grids(matrix, self.factv, self.facth)


class DisplacementFieldBoundingBox(BasePairwiseDisplacementField):
    """
    Estimate displacement between two grids within a single focal region
    defined by a bounding box in projected coordinates.
    """

    def __init__(
        self,
        xlims: Sequence[float],
        ylims: Sequence[float],
        restricted: bool = False,
        num_workers: int = 1,
    ) -> None:
        """
        Initialise the plugin.

        Args:
            xlims:
                Minimum and maximum x coordinates of the focal region.
            ylims:
                Minimum and maximum y coordinates of the focal region.
            restricted:
                Confine the search for maximum cross-covariance to the focal
                region.
            num_workers:
                Number of threads used to process sub-grids.

        Raises:
            ValueError: If the limits are not increasing pairs of values.
            TypeError: If restricted is not a boolean.
        """
        check_bounding_box(xlims, ylims)
        super().__init__(restricted=restricted, num_workers=num_workers)
        self.xlims = tuple(xlims)
        self.ylims = tuple(ylims)

    def __repr__(self) -> str:
        """Represent the plugin instance as a string."""
        return (
            "<DisplacementFieldBoundingBox: xlims: {}, ylims: {}, "
            "restricted: {}>".format(self.xlims, self.ylims, self.restricted)
        )

    def _sub_grids(self, matrix: ndarray, geometry: GridGeometry) -> pd.DataFrame:
        """Sub-grid covered by the bounding box."""
        return bounding_box_sub_grid(geometry, self.xlims, self.ylims)
