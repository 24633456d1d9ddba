"""Inventory reconciliation job.

This script is intended for cron (e.g. nightly) to:
 - replay receipt opening-balance pushes that failed
 - resync catalog opening balances from site allocations
 - persist live consumption into purchase and catalog counters
"""

from __future__ import annotations

from sitedb.database import WriteSessionLocal
from sitedb.apps.materials import reconciliation


def run() -> dict:
    """Execute the reconciliation and return a summary dict."""
    db = WriteSessionLocal()
    try:
        summary = reconciliation.reconcile_all(db)
        db.commit()
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    result = run()
    print("Inventory reconciliation completed:", result)
