"""
Accounts module.

Organizations (tenants) and their members. Sign-up, login and password
handling live outside this service; it only reads identities.
"""

from . import models  # noqa: F401
