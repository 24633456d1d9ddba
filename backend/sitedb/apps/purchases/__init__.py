"""
Purchases module.

Procurement events; each one is folded into the material catalog.
"""

from . import models  # noqa: F401
