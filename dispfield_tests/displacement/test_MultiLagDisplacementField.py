# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Unit tests for the MultiLagDisplacementField plugins."""

import unittest
from unittest import mock

import numpy as np
import pytest

from dispfield.displacement.multilag import (
    MultiLagDisplacementField,
    MultiLagDisplacementFieldBoundingBox,
    select_strongest_lag,
)
from dispfield.displacement.spacetime import SpaceTimeDisplacementField
from dispfield.synthetic_data.set_up_test_cubes import (
    moving_ramp_stack,
    set_up_time_series,
)


@pytest.mark.parametrize(
    "dispx, dispy, expected",
    [
        ([1, 2, 1], [0, 0, 0], 1),
        ([1, 0, 2], [1, 3, 2], 1),
        ([1, 1, 1], [0, 0, 0], 0),
        ([0, -3, 3], [2, 0, 0], 1),
        ([np.nan, 1, 2], [np.nan, 0, 0], 2),
        ([np.nan, 0, 0], [0, 0, 0], 1),
        ([np.nan, np.nan], [np.nan, np.nan], 0),
    ],
)
def test_select_strongest_lag(dispx, dispy, expected):
    """Test the greatest speed is selected, the first on ties, ignoring
    undefined speeds unless no speed is defined."""
    assert select_strongest_lag(np.array(dispx), np.array(dispy)) == expected


class Test__init__(unittest.TestCase):
    """Test plugin initialisation"""

    def test_basic(self):
        """Test attributes"""
        plugin = MultiLagDisplacementField(3, 9, 15)
        self.assertEqual(plugin.lag_max, 3)
        self.assertEqual((plugin.factv, plugin.facth), (9, 15))
        self.assertEqual(plugin.output_columns, ["dispx", "dispy", "lag"])

    def test_invalid_lag_max(self):
        """Test the maximum lag must be a positive integer"""
        with self.assertRaisesRegex(ValueError, "lag_max must be an integer"):
            MultiLagDisplacementField(0, 9, 9)

    def test_repr(self):
        """Test string representation"""
        self.assertEqual(
            str(MultiLagDisplacementField(2, 9, 9, restricted=True)),
            "<MultiLagDisplacementField: lag_max: 2, factv: 9, facth: 9, "
            "restricted: True>",
        )
        self.assertEqual(
            str(MultiLagDisplacementFieldBoundingBox(2, (0, 1), (0, 2))),
            "<MultiLagDisplacementFieldBoundingBox: lag_max: 2, xlims: (0, 1), "
            "ylims: (0, 2), restricted: False>",
        )


class Test_process_arrays(unittest.TestCase):
    """Test the velocity field over a range of lags."""

    def setUp(self):
        """Set up grids of a block moving right one column per time step"""
        self.stack = moving_ramp_stack(ncols=15, n_times=6)

    def test_columns(self):
        """Test the selected lag and speed are added to the table"""
        result = MultiLagDisplacementField(3, 9, 15).process_arrays(self.stack)
        self.assertEqual(
            list(result.columns[-4:]), ["dispx", "dispy", "lag", "speed"]
        )
        self.assertTrue(np.issubdtype(result["lag"].dtype, np.integer))

    def test_tie_smallest_lag(self):
        """Test every lag finds the same speed, so the smallest is kept"""
        result = MultiLagDisplacementField(3, 9, 15).process_arrays(self.stack)
        row = result.iloc[0]
        self.assertEqual((row.dispx, row.dispy), (1.0, 0.0))
        self.assertEqual(row.lag, 1)
        self.assertEqual(row.speed, 1.0)

    def test_strongest_lag(self):
        """Test the lag giving the greatest speed is kept for a sub-grid"""
        velocities = {1: (1.0, 0.0), 2: (0.0, 3.0), 3: (2.0, 2.0)}
        plugin = MultiLagDisplacementField(3, 9, 15)
        with mock.patch.object(
            plugin,
            "_velocity",
            side_effect=lambda stack, geometry, sub_grid, lag: velocities[lag],
        ):
            result = plugin.process_arrays(self.stack)
        row = result.iloc[0]
        self.assertEqual((row.dispx, row.dispy, row.lag), (0.0, 3.0, 2))
        self.assertEqual(row.speed, 3.0)

    def test_matches_single_lag(self):
        """Test the result at the selected lag matches a single lag run"""
        result = MultiLagDisplacementField(2, 9, 15).process_arrays(self.stack)
        expected = SpaceTimeDisplacementField(1, 9, 15).process_arrays(self.stack)
        np.testing.assert_array_equal(
            result[["dispx", "dispy"]].to_numpy(),
            expected[["dispx", "dispy"]].to_numpy(),
        )

    def test_undefined_velocity(self):
        """Test an undefined velocity is kept if no lag defines one"""
        stack = np.zeros((3, 9, 9))
        stack[1] = moving_ramp_stack()[0]
        with self.assertWarnsRegex(UserWarning, "could not be determined"):
            result = MultiLagDisplacementField(1, 9, 9).process_arrays(stack)
        self.assertEqual(result.loc[0, "lag"], 1)
        self.assertTrue(np.isnan(result.loc[0, "speed"]))

    def test_lag_max_too_large(self):
        """Test the maximum lag must leave at least two time steps"""
        msg = "lag_max must be at least two smaller than the number of time steps"
        with self.assertRaisesRegex(ValueError, msg):
            MultiLagDisplacementField(5, 9, 15).process_arrays(self.stack)


class Test_bounding_box(unittest.TestCase):
    """Test the velocity of a single focal region over a range of lags."""

    def test_whole_domain(self):
        """Test a box covering the whole domain"""
        plugin = MultiLagDisplacementFieldBoundingBox(2, (0, 15), (0, 9))
        result = plugin.process_arrays(moving_ramp_stack(ncols=15, n_times=5))
        self.assertEqual(len(result), 1)
        self.assertEqual(result.loc[0, "dispx"], 1.0)
        self.assertEqual(result.loc[0, "lag"], 1)


class Test_process(unittest.TestCase):
    """Test the velocity field of a time series of cubes."""

    def test_cubes(self):
        """Test velocity is in coordinate units per time step"""
        cubes = set_up_time_series(
            list(moving_ramp_stack(ncols=15, n_times=6)), grid_spacing=500.0
        )
        result = MultiLagDisplacementField(3, 9, 15, num_workers=2)(cubes)
        self.assertEqual(result.loc[0, "dispx"], 500.0)
        self.assertEqual(result.loc[0, "speed"], 500.0)
        self.assertEqual(result.loc[0, "lag"], 1)


if __name__ == "__main__":
    unittest.main()
