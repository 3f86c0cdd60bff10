#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

"""Pytest configuration for mapfront tests."""

import os
import sys

# Add the repository root to sys.path so test support modules can be
# imported as 'tests.support'
root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)
