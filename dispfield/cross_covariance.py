# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
This module defines the FFT based two-dimensional cross-covariance used to
locate the shift that best aligns two fields.
"""

from typing import Tuple

import numpy as np
from numpy import ndarray

from dispfield.utilities.matrix_operations import flip_matrix, pad_matrix


def xcov2d(matrix1: ndarray, matrix2: ndarray) -> ndarray:
    """
    Calculate the cross-covariance surface between two real matrices of the
    same shape.

    Both matrices are padded to a square of even side length N, the second
    is flipped in both dimensions (which stands in for complex conjugation of
    its transform, as the inputs are real) and the two are convolved through
    the product of their discrete Fourier transforms. The transforms are
    taken on a 2N x 2N grid, so the convolution does not wrap around.

    The returned surface is oriented so that the zero shift lies at row and
    column N. Moving away from the centre, each column corresponds to the
    pattern in matrix2 lying one further cell to the right of the pattern in
    matrix1, and each row to the pattern in matrix2 lying one further cell
    *above* the pattern in matrix1, so that offsets from the centre read as
    rightward and upward displacement.

    Args:
        matrix1:
            2D array at the start of the displacement.
        matrix2:
            2D array at the end of the displacement, with the same shape as
            matrix1.

    Returns:
        Square cross-covariance surface of side 2N.

    Raises:
        ValueError: If the two matrices differ in shape.
    """
    if matrix1.shape != matrix2.shape:
        raise ValueError(
            "Cross-covariance requires matrices of the same shape, got {} "
            "and {}".format(matrix1.shape, matrix2.shape)
        )
    padded1 = pad_matrix(matrix1)
    padded2 = flip_matrix(pad_matrix(matrix2))

    size = 2 * padded1.shape[0]
    product = np.fft.fft2(padded1, s=(size, size)) * np.fft.fft2(
        padded2, s=(size, size)
    )
    convolution = np.real(np.fft.ifft2(product))

    # The convolution holds the shift (s_row, s_col) of matrix2 relative to
    # matrix1 at index N - 1 - s on each axis. Rolling the rows by one puts a
    # shift s_row at N - s_row (upward positive) and reversing the columns
    # puts s_col at N + s_col (rightward positive).
    return np.roll(convolution, 1, axis=0)[:, ::-1]


def surface_peak_offset(surface: ndarray) -> Tuple[int, int]:
    """
    Locate the maximum of a cross-covariance surface relative to its centre.
    Where several cells share the maximum the first in row-major order is
    used.

    Args:
        surface:
            Square surface of even side length, as returned by xcov2d.

    Returns:
        - Row offset of the maximum (upward displacement in cells)
        - Column offset of the maximum (rightward displacement in cells)
    """
    centre = surface.shape[0] // 2
    row, col = np.unravel_index(np.argmax(surface), surface.shape)
    return int(row) - centre, int(col) - centre
