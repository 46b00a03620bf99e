# (C) Crown copyright, Met Office. All rights reserved.
#
# This file is part of dispfield and is released under a BSD 3-Clause license.
# See LICENSE in the root of the repository for full licensing details.
"""Plugins estimating displacement fields by digital image correlation."""
