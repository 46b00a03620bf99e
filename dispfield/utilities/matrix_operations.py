# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Provides tools for padding, flipping, shifting and partitioning 2D grids."""

import numpy as np
import pandas as pd
from numpy import ndarray

SUB_GRID_COLUMNS = ["rowcent", "colcent", "frowmin", "frowmax", "fcolmin", "fcolmax"]


def pad_matrix(matrix: ndarray) -> ndarray:
    """Embed a matrix in the top left corner of a square, zero-filled matrix
    with an even number of rows and columns. The side length is the larger
    of the input dimensions, increased by one if it is odd, so that a central
    "zero offset" cell exists in anything derived from the result.

    Args:
        matrix:
            2D input array.

    Returns:
        Square array of even side length containing the input values in the
        top left corner.
    """
    size = max(matrix.shape)
    size += size % 2
    padded = np.zeros((size, size), dtype=np.result_type(matrix.dtype, np.float64))
    padded[: matrix.shape[0], : matrix.shape[1]] = matrix
    return padded


def flip_matrix(matrix: ndarray) -> ndarray:
    """Reverse the order of both rows and columns (a rotation of 180
    degrees)."""
    return matrix[::-1, ::-1]


def shift_matrix(matrix: ndarray, dy: int, dx: int) -> ndarray:
    """
    Translate the contents of a matrix by whole cells. Content moved beyond
    the bounds of the matrix is discarded and vacated cells are set to zero;
    the shift does not wrap around.

    Args:
        matrix:
            2D input array.
        dy:
            Number of rows to move the contents upwards (towards row 0).
            Negative values move the contents downwards.
        dx:
            Number of columns to move the contents rightwards. Negative
            values move the contents leftwards.

    Returns:
        Shifted array with the same shape as the input.
    """
    nrows, ncols = matrix.shape
    shifted = np.zeros_like(matrix)
    if abs(dy) >= nrows or abs(dx) >= ncols:
        return shifted

    source_rows = slice(max(dy, 0), nrows + min(dy, 0))
    target_rows = slice(max(-dy, 0), nrows + min(-dy, 0))
    source_cols = slice(max(-dx, 0), ncols + min(-dx, 0))
    target_cols = slice(max(dx, 0), ncols + min(dx, 0))
    shifted[target_rows, target_cols] = matrix[source_rows, source_cols]
    return shifted


def extract_matrix(
    matrix: ndarray, rowmin: int, rowmax: int, colmin: int, colmax: int
) -> ndarray:
    """
    Keep the values within a rectangular region of a matrix and set every
    other cell to zero. The shape of the matrix is preserved so that the
    result remains aligned with the full grid.

    Args:
        matrix:
            2D (or higher dimensional, with the spatial dimensions last)
            input array.
        rowmin, rowmax:
            First and last row of the region (inclusive).
        colmin, colmax:
            First and last column of the region (inclusive).

    Returns:
        Array of zeros apart from the region retained from the input.
    """
    extracted = np.zeros_like(matrix)
    region = (..., slice(rowmin, rowmax + 1), slice(colmin, colmax + 1))
    extracted[region] = matrix[region]
    return extracted


def _tile_centres(length: int, size: int) -> ndarray:
    """Centres of the tiles along one axis, stepping outwards from the
    centre of the axis and keeping only tiles that fit within it."""
    half = size // 2
    centre = (length - 1) // 2
    centres = np.concatenate(
        [np.arange(centre, -1, -size)[::-1], np.arange(centre + size, length, size)]
    )
    return centres[(centres - half >= 0) & (centres + half <= length - 1)]


def thin_matrix(matrix: ndarray, factv: int, facth: int) -> pd.DataFrame:
    """
    Partition a grid into non-overlapping tiles of factv rows by facth
    columns. The tiling is anchored on the centre of the grid so that it is
    symmetric, and any tile that would extend beyond the grid is dropped.

    Tiles are listed column by column, with the row centre varying fastest.

    Args:
        matrix:
            2D grid to be partitioned.
        factv:
            Odd number of rows in each tile.
        facth:
            Odd number of columns in each tile.

    Returns:
        Table of sub-grid descriptors with columns rowcent, colcent, frowmin,
        frowmax, fcolmin and fcolmax (0-based, inclusive bounds). The table
        is empty if the tile is larger than the grid in either dimension.
    """
    row_centres = _tile_centres(matrix.shape[0], factv)
    col_centres = _tile_centres(matrix.shape[1], facth)
    rowcent, colcent = [
        grid.ravel(order="F")
        for grid in np.meshgrid(row_centres, col_centres, indexing="ij")
    ]
    return pd.DataFrame(
        {
            "rowcent": rowcent,
            "colcent": colcent,
            "frowmin": rowcent - factv // 2,
            "frowmax": rowcent + factv // 2,
            "fcolmin": colcent - facth // 2,
            "fcolmax": colcent + facth // 2,
        },
        columns=SUB_GRID_COLUMNS,
    ).astype(int)
