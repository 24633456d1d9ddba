"""
Work progress module.

Work performed on site and the materials it consumed. Consumption rows
feed the live per-purchase usage figures.
"""

from . import models  # noqa: F401
