# backend/sitedb/__init__.py
"""
Import ORM models from each app so that Alembic and
Base.metadata.create_all() see all tables.

The model classes live in sitedb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # organizations / users
from .apps.sites import models as sites_models                # site directory
from .apps.materials import models as materials_models        # catalog + site allocations
from .apps.purchases import models as purchases_models        # purchases
from .apps.receipts import models as receipts_models          # weighbridge receipts
from .apps.work_progress import models as work_progress_models  # work entries + consumption

__all__ = [
    "accounts_models",
    "sites_models",
    "materials_models",
    "purchases_models",
    "receipts_models",
    "work_progress_models",
]
