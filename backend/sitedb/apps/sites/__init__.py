"""
Sites module.

Directory of construction sites per organization.
"""

from . import models  # noqa: F401
