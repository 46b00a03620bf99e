# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Provides grid geometry and the conversion of cubes into data matrices."""

from typing import Iterable, Optional, Tuple, Union

import numpy as np
from iris.cube import Cube, CubeList
from iris.exceptions import InvalidCubeError
from numpy import ndarray


class GridGeometry:
    """
    Describes where the cells of a data matrix lie in projected coordinates.

    Row 0 of a data matrix is the top of the domain (largest y coordinate)
    and column 0 is the left of the domain (smallest x coordinate).
    """

    def __init__(
        self,
        x_points: ndarray,
        y_points: ndarray,
        dx: Optional[float] = None,
        dy: Optional[float] = None,
    ) -> None:
        """
        Initialise the geometry from the cell centre coordinates.

        Args:
            x_points:
                x coordinate of the centre of each column, increasing.
            y_points:
                y coordinate of the centre of each row, decreasing (top row
                first).
            dx:
                Cell width. Inferred from x_points if not given.
            dy:
                Cell height. Inferred from y_points if not given.

        Raises:
            ValueError: If a spacing is to be inferred from fewer than two
                points, or from points that are not equally spaced in the
                expected order.
        """
        self.x_points = np.asarray(x_points, dtype=np.float64)
        self.y_points = np.asarray(y_points, dtype=np.float64)
        self.dx = _regular_spacing(self.x_points, "x") if dx is None else float(dx)
        self.dy = _regular_spacing(-self.y_points, "y") if dy is None else float(dy)

    @classmethod
    def from_shape(
        cls,
        shape: Tuple[int, int],
        dx: float = 1.0,
        dy: float = 1.0,
        x_min: float = 0.0,
        y_min: float = 0.0,
    ) -> "GridGeometry":
        """
        Geometry for a matrix with no coordinate information, in which the
        domain starts at (x_min, y_min) in the bottom left corner and the
        cells are dx wide and dy high.

        Args:
            shape:
                Number of rows and columns of the matrix.
            dx:
                Cell width.
            dy:
                Cell height.
            x_min:
                x coordinate of the left edge of the domain.
            y_min:
                y coordinate of the bottom edge of the domain.
        """
        nrows, ncols = shape
        x_points = x_min + (np.arange(ncols) + 0.5) * dx
        y_points = y_min + (nrows - np.arange(nrows) - 0.5) * dy
        return cls(x_points, y_points, dx=dx, dy=dy)

    @classmethod
    def from_cube(cls, cube: Cube) -> "GridGeometry":
        """Geometry of the spatial grid of a cube, in the units of its
        spatial coordinates."""
        x_points = np.sort(cube.coord(axis="x").points)
        y_points = np.sort(cube.coord(axis="y").points)[::-1]
        return cls(x_points, y_points)

    def __repr__(self) -> str:
        """Represent the geometry as a string."""
        result = "<GridGeometry: shape: ({}, {}), dx: {}, dy: {}>"
        return result.format(self.y_points.size, self.x_points.size, self.dx, self.dy)

    @property
    def shape(self) -> Tuple[int, int]:
        """Number of rows and columns described by the geometry."""
        return self.y_points.size, self.x_points.size

    def x_from_col(self, col: Union[int, ndarray]) -> Union[float, ndarray]:
        """x coordinate of the centre of a column."""
        return self.x_points[col]

    def y_from_row(self, row: Union[int, ndarray]) -> Union[float, ndarray]:
        """y coordinate of the centre of a row."""
        return self.y_points[row]


def _regular_spacing(points: ndarray, axis: str, rtol: float = 1.0e-5) -> float:
    """Spacing between points that are expected to increase regularly."""
    if points.size < 2:
        raise ValueError(
            "At least two points are required along the {} axis".format(axis)
        )
    diffs = np.diff(points)
    diffs_mean = np.mean(diffs)
    if diffs_mean <= 0 or not np.allclose(diffs, diffs_mean, rtol=rtol, atol=0.0):
        raise ValueError("Coordinate {} points are not equally spaced".format(axis))
    return float(diffs_mean)


def check_input_coords(cube: Cube) -> None:
    """
    Checks an input cube has x and y axes and precisely two non-scalar
    dimensions, or raises an error.

    Args:
        cube:
            Cube to be checked

    Raises:
        InvalidCubeError if coordinate requirements are not met
    """
    for axis in ["x", "y"]:
        if not cube.coords(axis=axis, dim_coords=True):
            raise InvalidCubeError(
                "The cube does not contain the expected {} coordinates.".format(axis)
            )

    data_shape = np.array(cube.shape)
    non_scalar_coords = np.sum(np.where(data_shape > 1, 1, 0))
    if non_scalar_coords > 2:
        raise InvalidCubeError(
            "Cube has {:d} (more than 2) non-scalar "
            "coordinates".format(non_scalar_coords)
        )


def matrix_from_cube(cube: Cube) -> ndarray:
    """
    Extract the 2D data array of a cube as a matrix with the top of the
    domain in row 0 and the left of the domain in column 0. Masked and NaN
    points are set to zero.

    Args:
        cube:
            Cube with exactly two non-scalar spatial dimensions.

    Returns:
        2D float array.
    """
    check_input_coords(cube)
    y_coord, x_coord = cube.coord(axis="y"), cube.coord(axis="x")
    data = next(cube.slices([y_coord, x_coord])).data
    data = np.ma.filled(data, 0).astype(np.float64)
    data[np.isnan(data)] = 0.0

    if y_coord.points.size > 1 and y_coord.points[1] > y_coord.points[0]:
        data = data[::-1, :]
    if x_coord.points.size > 1 and x_coord.points[1] < x_coord.points[0]:
        data = data[:, ::-1]
    return data


def _time_sort_key(cube: Cube):
    """Validity time of a cube, used to order a sequence of cubes."""
    return cube.coord("time").cell(0).point


def stack_from_cubes(
    cubes: Union[Cube, Iterable[Cube]], sort_by_time: bool = True
) -> Tuple[ndarray, GridGeometry]:
    """
    Convert a time series of cubes into a (time, rows, columns) array.

    Args:
        cubes:
            Either a cube with a time dimension, or an iterable of 2D cubes.
            Cubes with a time coordinate are ordered by validity time.
        sort_by_time:
            If False, the cubes are kept in the order given.

    Returns:
        - Stack of data matrices ordered in time
        - Geometry of the shared spatial grid

    Raises:
        InvalidCubeError: If the cubes are not on matching grids.
    """
    if isinstance(cubes, Cube):
        cubes = cubes.slices_over("time")
    cube_list = CubeList(cubes)
    if sort_by_time and all(cube.coords("time") for cube in cube_list):
        cube_list.sort(key=_time_sort_key)

    if not cube_list:
        raise ValueError("No input cubes provided")

    reference = cube_list[0]
    for cube in cube_list[1:]:
        if cube.coord(axis="x") != reference.coord(axis="x") or cube.coord(
            axis="y"
        ) != reference.coord(axis="y"):
            raise InvalidCubeError("Input cubes on unmatched grids")

    stack = np.stack([matrix_from_cube(cube) for cube in cube_list])
    return stack, GridGeometry.from_cube(reference)
