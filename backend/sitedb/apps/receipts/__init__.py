"""
Receipts module.

Weighbridge goods receipts; each receipt credits the material's opening
balance.
"""

from . import models  # noqa: F401
