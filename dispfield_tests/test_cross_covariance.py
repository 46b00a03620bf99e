# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Unit tests for the cross_covariance module."""

import unittest

import numpy as np
import pytest

from dispfield.cross_covariance import surface_peak_offset, xcov2d
from dispfield.utilities.matrix_operations import shift_matrix


def _patch_matrix():
    """5x5 matrix of zeros with an asymmetric 2x2 patch."""
    matrix = np.zeros((5, 5))
    matrix[1:3, 1:3] = [[1, 2], [3, 4]]
    return matrix


class Test_xcov2d(unittest.TestCase):
    """Test the cross-covariance surface."""

    def test_shape(self):
        """Test the surface is twice the padded size of the inputs."""
        result = xcov2d(np.ones((5, 3)), np.ones((5, 3)))
        self.assertEqual(result.shape, (12, 12))

    def test_zero_offset_value(self):
        """Test the centre of the auto-covariance surface holds the sum of
        squares and is the maximum."""
        matrix = _patch_matrix()
        result = xcov2d(matrix, matrix)
        self.assertAlmostEqual(result[6, 6], 30.0)
        self.assertAlmostEqual(result.max(), 30.0)

    def test_real(self):
        """Test the surface is real valued."""
        result = xcov2d(_patch_matrix(), _patch_matrix())
        self.assertFalse(np.iscomplexobj(result))

    def test_different_shapes(self):
        """Test matrices of different shapes are rejected."""
        msg = "Cross-covariance requires matrices of the same shape"
        with self.assertRaisesRegex(ValueError, msg):
            xcov2d(np.ones((3, 3)), np.ones((3, 4)))

    def test_row_shift(self):
        """Test a downward shift of an asymmetric pattern is recovered."""
        matrix = np.array([[1, 2, 3], [4, 5, 6], [0, 0, 0]], dtype=float)
        shifted = shift_matrix(matrix, -1, 0)
        result = surface_peak_offset(xcov2d(matrix, shifted))
        self.assertEqual(result, (-1, 0))


@pytest.mark.parametrize(
    "up, right", [(0, 0), (1, 0), (0, 2), (-2, -1), (1, 2), (-1, 1), (-2, 2)]
)
def test_peak_offset_recovers_shift(up, right):
    """Test the peak of the surface lies at the shift applied to a pattern,
    upward and rightward positive."""
    matrix = _patch_matrix()
    shifted = shift_matrix(matrix, up, right)
    assert surface_peak_offset(xcov2d(matrix, shifted)) == (up, right)


class Test_surface_peak_offset(unittest.TestCase):
    """Test the location of the maximum of a surface."""

    def test_offset_from_centre(self):
        """Test the offset is measured from the centre cell."""
        surface = np.zeros((4, 4))
        surface[1, 3] = 1
        self.assertEqual(surface_peak_offset(surface), (-1, 1))

    def test_centre(self):
        """Test a maximum at the centre gives no offset."""
        surface = np.zeros((6, 6))
        surface[3, 3] = 2
        self.assertEqual(surface_peak_offset(surface), (0, 0))

    def test_tie(self):
        """Test the first of equal maxima in row-major order is used."""
        surface = np.zeros((4, 4))
        surface[2, 3] = 1
        surface[3, 0] = 1
        self.assertEqual(surface_peak_offset(surface), (0, 1))

    def test_types(self):
        """Test python integers are returned."""
        row, col = surface_peak_offset(np.ones((2, 2)))
        self.assertIsInstance(row, int)
        self.assertIsInstance(col, int)


if __name__ == "__main__":
    unittest.main()
