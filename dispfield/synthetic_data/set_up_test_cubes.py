# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
Functions to set up gridded cubes and stacks of moving patterns for unit
tests and worked examples. Cubes are on an equal area grid with a scalar
time coordinate, in the form expected by the displacement plugins.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import iris
import numpy as np
from cf_units import date2num
from iris.coord_systems import GeogCS, LambertAzimuthalEqualArea
from iris.coords import DimCoord
from iris.cube import Cube, CubeList
from numpy import ndarray

from dispfield.utilities.matrix_operations import shift_matrix

ELLIPSOID = GeogCS(semi_major_axis=6378137.0, semi_minor_axis=6356752.314140356)

EQUAL_AREA_CRS = LambertAzimuthalEqualArea(
    latitude_of_projection_origin=54.9,
    longitude_of_projection_origin=-2.5,
    false_easting=0.0,
    false_northing=0.0,
    ellipsoid=ELLIPSOID,
)

TIME_UNITS = "seconds since 1970-01-01 00:00:00"
TIME_CALENDAR = "standard"


def construct_yx_coords(
    ypoints: int,
    xpoints: int,
    grid_spacing: float = 2000.0,
    domain_corner: Optional[Tuple[float, float]] = None,
) -> Tuple[DimCoord, DimCoord]:
    """
    Construct y/x projection coordinates at the centres of equally spaced
    cells.

    Args:
        ypoints:
            Number of grid points required along the y-axis
        xpoints:
            Number of grid points required along the x-axis
        grid_spacing:
            Grid resolution along both axes, in metres
        domain_corner:
            Bottom left corner (y, x) of the domain, in metres. If not
            provided, the domain is centred on (0, 0).

    Returns:
        Tuple containing y and x iris.coords.DimCoords
    """
    if domain_corner is None:
        domain_corner = (-ypoints * grid_spacing / 2, -xpoints * grid_spacing / 2)

    y_array = domain_corner[0] + (np.arange(ypoints) + 0.5) * grid_spacing
    x_array = domain_corner[1] + (np.arange(xpoints) + 0.5) * grid_spacing

    y_coord = DimCoord(
        y_array.astype(np.float32),
        "projection_y_coordinate",
        units="metres",
        coord_system=EQUAL_AREA_CRS,
    )
    x_coord = DimCoord(
        x_array.astype(np.float32),
        "projection_x_coordinate",
        units="metres",
        coord_system=EQUAL_AREA_CRS,
    )

    # add bounds on spatial coordinates
    if ypoints > 1:
        y_coord.guess_bounds()
    if xpoints > 1:
        x_coord.guess_bounds()

    return y_coord, x_coord


def _create_time_point(time: datetime) -> np.int64:
    """Returns a time coordinate point in seconds from a datetime.datetime
    instance."""
    point = date2num(time, TIME_UNITS, TIME_CALENDAR)
    return np.around(point).astype(np.int64)


def set_up_grid_cube(
    data: ndarray,
    name: str = "population_density",
    units: str = "km-2",
    grid_spacing: float = 2000.0,
    domain_corner: Optional[Tuple[float, float]] = None,
    time: datetime = datetime(2020, 3, 1, 12, 0),
) -> Cube:
    """
    Set up a cube containing a single gridded field with a scalar time
    coordinate.

    Args:
        data:
            2D array of data ordered as a map: row 0 is the top (northern)
            edge of the domain and column 0 the left (western) edge.
        name:
            Variable name (standard / long)
        units:
            Variable units
        grid_spacing:
            Grid resolution along both axes, in metres
        domain_corner:
            Bottom left corner (y, x) of the domain, in metres
        time:
            Validity time of the field

    Returns:
        Cube with increasing y and x coordinates
    """
    data = np.asanyarray(data)
    if data.ndim != 2:
        raise ValueError(
            "Expected a 2D array of data, got {} dimensions".format(data.ndim)
        )
    y_coord, x_coord = construct_yx_coords(
        data.shape[0], data.shape[1], grid_spacing, domain_corner
    )
    time_coord = DimCoord(_create_time_point(time), "time", units=TIME_UNITS)

    # y increases with the index of the cube's data
    cube = iris.cube.Cube(
        data[::-1].astype(np.float32),
        units=units,
        dim_coords_and_dims=[(y_coord, 0), (x_coord, 1)],
        aux_coords_and_dims=[(time_coord, None)],
    )
    cube.rename(name)
    return cube


def set_up_time_series(
    matrices: Sequence[ndarray],
    start_time: datetime = datetime(2020, 3, 1, 12, 0),
    interval: timedelta = timedelta(hours=1),
    **kwargs,
) -> CubeList:
    """
    Set up a list of cubes, one per matrix, at equally spaced validity
    times.

    Args:
        matrices:
            Sequence of 2D arrays ordered as maps, forward in time.
        start_time:
            Validity time of the first cube
        interval:
            Time between consecutive cubes
        **kwargs:
            Passed to set_up_grid_cube.

    Returns:
        List of cubes on the same grid
    """
    return CubeList(
        set_up_grid_cube(matrix, time=start_time + index * interval, **kwargs)
        for index, matrix in enumerate(matrices)
    )


def translated_pattern_stack(
    pattern: ndarray, n_times: int, up_per_step: int = 0, right_per_step: int = 0
) -> ndarray:
    """
    Stack of grids in which a pattern moves by a fixed number of cells at
    each time step. Content moved beyond the grid is lost.

    Args:
        pattern:
            2D grid at the first time step.
        n_times:
            Number of time steps.
        up_per_step:
            Rows moved upwards (towards row 0) per time step.
        right_per_step:
            Columns moved rightwards per time step.

    Returns:
        Array of shape (n_times, rows, columns).
    """
    return np.stack(
        [
            shift_matrix(pattern, step * up_per_step, step * right_per_step)
            for step in range(n_times)
        ]
    )


def moving_ramp_stack(
    nrows: int = 9,
    ncols: int = 9,
    n_times: int = 4,
    ramp: Sequence[float] = (1, 2, 3, 4, 5),
    right_per_step: int = 1,
) -> ndarray:
    """
    Stack of grids in which every row holds the same ramp of values starting
    in the first column, moving rightwards at each time step.

    Args:
        nrows:
            Number of rows in each grid.
        ncols:
            Number of columns in each grid.
        n_times:
            Number of time steps.
        ramp:
            Values at the left of each row at the first time step.
        right_per_step:
            Columns moved rightwards per time step.

    Returns:
        Array of shape (n_times, nrows, ncols).
    """
    pattern = np.zeros((nrows, ncols))
    pattern[:, : len(ramp)] = ramp
    return translated_pattern_stack(pattern, n_times, right_per_step=right_per_step)


def quadrant_patches_pair(
    size: int = 33, patch: int = 3, step: int = 2
) -> Tuple[ndarray, ndarray]:
    """
    Two grids holding square patches near each corner of the domain, each
    moving in a different direction between the first and second grid:
    the top left patch moves right, the top right patch moves up, the bottom
    left patch moves down and the bottom right patch moves left. Patches
    have values of 1 to 4 respectively, so the strongest signal is in the
    bottom right.

    Args:
        size:
            Number of rows and columns in each grid.
        patch:
            Side length of each patch.
        step:
            Number of cells each patch moves.

    Returns:
        - Grid at the first time
        - Grid at the second time
    """
    start, end = quadrant_patches_series(size, patch, step, n_times=2)
    return start, end


def quadrant_patches_series(
    size: int = 33, patch: int = 3, step: int = 1, n_times: int = 4
) -> List[ndarray]:
    """
    Sequence of grids holding the patches of quadrant_patches_pair, each
    moving a further step cells at every time step.

    Returns:
        List of n_times grids.
    """
    offset = size // 6 - patch // 2
    far = size - offset - patch
    moves = [
        ((offset, offset), (0, step), 1.0),
        ((offset, far), (-step, 0), 2.0),
        ((far, offset), (step, 0), 3.0),
        ((far, far), (0, -step), 4.0),
    ]
    grids = []
    for time_step in range(n_times):
        grid = np.zeros((size, size))
        for (row, col), (drow, dcol), value in moves:
            row_start = row + time_step * drow
            col_start = col + time_step * dcol
            grid[row_start : row_start + patch, col_start : col_start + patch] = value
        grids.append(grid)
    return grids
