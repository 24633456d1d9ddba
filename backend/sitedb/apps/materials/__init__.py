"""
Materials module.

Material catalog per organization and the per-site opening balance
allocations that back it.
"""

from . import models  # noqa: F401
