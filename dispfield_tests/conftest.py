# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Test wide setup and configuration"""

import pytest


@pytest.fixture(autouse=True)
def thread_control(monkeypatch):
    """
    Wrap all tests with a limit to one thread via threadpoolctl.

    The FFTs and reductions behind each sub-grid may call into threaded
    numerical libraries. Limiting these to one thread avoids contention with
    the dask thread pool used to process sub-grids in parallel.
    """
    try:
        from threadpoolctl import threadpool_limits

        with threadpool_limits(limits=1):
            yield
    except ModuleNotFoundError:
        yield
    return
