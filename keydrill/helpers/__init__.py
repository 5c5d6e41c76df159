"""Helper utilities for keydrill.

This package contains small utilities shared across the drill.
"""

from .debug_util import DebugUtil  # noqa: F401
