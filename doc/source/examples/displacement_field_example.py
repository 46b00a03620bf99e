# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""
=========================================================
Estimate movement from a time series of gridded densities
=========================================================

This example tracks patches of high density that move in different directions
across a domain. The pairwise plugin compares two times. The space-time
plugins use the whole series, either at a single lag or at the lag that
reveals the fastest movement in each sub-grid.
"""

# %%
# Generate data
# -------------
# Four patches, one near each corner of a 33x33 grid, each move one cell per
# hour: the top left patch moves right, the top right up, the bottom left
# down and the bottom right left. The grid spacing is 2 km.
from dispfield.synthetic_data.set_up_test_cubes import (
    quadrant_patches_series,
    set_up_time_series,
)

cubes = set_up_time_series(quadrant_patches_series(n_times=6))
print(cubes)

# %%
# Displacement between two times
# ------------------------------
# With restricted set, each patch is only compared with its own sub-grid.
# Without it the weaker patches are matched to the strongest one elsewhere in
# the domain.
from dispfield.displacement.pairwise import DisplacementField

for restricted in (True, False):
    table = DisplacementField(11, 11, restricted=restricted)(cubes[0], cubes[1])
    print(table[["centx", "centy", "dispx", "dispy"]])

# %%
# Persistent movement over the series
# -----------------------------------
# Velocities are in metres per hour.
from dispfield.displacement.spacetime import SpaceTimeDisplacementField

table = SpaceTimeDisplacementField(1, 11, 11, restricted=True)(cubes)
print(table[["centx", "centy", "dispx", "dispy"]])

# %%
# Selecting the lag in each sub-grid
# ----------------------------------
from dispfield.displacement.multilag import MultiLagDisplacementField

table = MultiLagDisplacementField(3, 11, 11, restricted=True, num_workers=4)(cubes)
print(table[["centx", "centy", "dispx", "dispy", "lag", "speed"]])
