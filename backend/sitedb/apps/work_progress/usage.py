"""
Live consumption per purchase.

Work-progress material rows record how much of a material a piece of work
used. A row that names a purchase is charged to that purchase in full.
A row that only names a material is spread over that material's
purchases by an attribution strategy:

- ``fifo`` (default): oldest purchase first, each filled up to its
  unconsumed quantity; whatever exceeds every purchase's capacity lands
  on the newest purchase so totals are preserved.
- ``pro_rata``: split across the material's purchases in proportion to
  their purchased quantity.

The strategy is chosen with ``MATERIAL_USAGE_ATTRIBUTION`` or passed in.
"""

from __future__ import annotations

import math
import os
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

ATTRIBUTION_ENV_VAR = "MATERIAL_USAGE_ATTRIBUTION"
DEFAULT_ATTRIBUTION = "fifo"


def to_non_negative(value: Any) -> float:
    """Coerce to a finite float >= 0; anything else counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _purchase_sort_key(purchase: Any):
    purchase_date = _field(purchase, "purchase_date") or date.max
    created_at = _field(purchase, "created_at")
    created_ts = created_at.timestamp() if isinstance(created_at, datetime) else math.inf
    return (purchase_date, created_ts, str(_field(purchase, "id")))


class AttributionStrategy:
    """Spreads a material-only consumption quantity over that material's purchases."""

    name = "base"

    def attribute(
        self,
        purchases: Sequence[Any],
        quantity: float,
        consumed: Dict[str, float],
    ) -> Dict[str, float]:
        raise NotImplementedError


class FifoAttribution(AttributionStrategy):
    name = "fifo"

    def attribute(self, purchases, quantity, consumed):
        ordered = sorted(purchases, key=_purchase_sort_key)
        shares: Dict[str, float] = {}
        left = quantity
        for purchase in ordered:
            if left <= 0:
                break
            purchase_id = _field(purchase, "id")
            capacity = to_non_negative(_field(purchase, "quantity")) - consumed.get(purchase_id, 0.0)
            if capacity <= 0:
                continue
            take = min(capacity, left)
            shares[purchase_id] = shares.get(purchase_id, 0.0) + take
            left -= take
        if left > 0 and ordered:
            newest_id = _field(ordered[-1], "id")
            shares[newest_id] = shares.get(newest_id, 0.0) + left
        return shares


class ProRataAttribution(AttributionStrategy):
    name = "pro_rata"

    def attribute(self, purchases, quantity, consumed):
        if not purchases:
            return {}
        weights = {_field(p, "id"): to_non_negative(_field(p, "quantity")) for p in purchases}
        total = sum(weights.values())
        if total <= 0:
            even = quantity / len(weights)
            return {purchase_id: even for purchase_id in weights}
        return {purchase_id: quantity * weight / total for purchase_id, weight in weights.items()}


STRATEGIES = {
    FifoAttribution.name: FifoAttribution,
    ProRataAttribution.name: ProRataAttribution,
}


def get_attribution_strategy(name: Optional[str] = None) -> AttributionStrategy:
    key = (name or os.getenv(ATTRIBUTION_ENV_VAR) or DEFAULT_ATTRIBUTION).strip().lower().replace("-", "_")
    try:
        return STRATEGIES[key]()
    except KeyError:
        raise ValueError(f"Unknown material usage attribution strategy {key!r}")


def build_purchase_usage_map(
    purchases: Iterable[Any],
    consumption_rows: Iterable[Any],
    strategy: Optional[AttributionStrategy] = None,
) -> Dict[str, float]:
    """
    Return ``{purchase_id: consumed}`` for purchases with any attributed usage.

    Rows and purchases may be ORM objects or dicts. Direct purchase
    attribution is not capped by the purchase quantity; callers clamp the
    remaining figure at zero.
    """
    strategy = strategy or get_attribution_strategy()
    purchases = list(purchases)
    by_id = {_field(p, "id"): p for p in purchases}
    by_material: Dict[str, List[Any]] = defaultdict(list)
    for purchase in purchases:
        material_id = _field(purchase, "material_id")
        if material_id:
            by_material[material_id].append(purchase)

    usage: Dict[str, float] = {}
    unlinked: List[Any] = []
    for row in consumption_rows:
        quantity = to_non_negative(_field(row, "quantity"))
        if quantity <= 0:
            continue
        purchase_id = _field(row, "purchase_id")
        if purchase_id and purchase_id in by_id:
            usage[purchase_id] = usage.get(purchase_id, 0.0) + quantity
        elif _field(row, "material_id") in by_material:
            unlinked.append(row)

    # Direct charges land first so capacity-based strategies see them.
    for row in unlinked:
        quantity = to_non_negative(_field(row, "quantity"))
        shares = strategy.attribute(by_material[_field(row, "material_id")], quantity, usage)
        for purchase_id, share in shares.items():
            if share > 0:
                usage[purchase_id] = usage.get(purchase_id, 0.0) + share
    return usage


def remaining_quantity(quantity: Any, consumed: Any) -> float:
    return max(0.0, to_non_negative(quantity) - to_non_negative(consumed))


def effective_purchase_figures(purchase: Any, usage: Dict[str, float]) -> Tuple[float, float]:
    """
    ``(consumed, remaining)`` for one purchase.

    Live usage wins when present; otherwise the stored counters are used,
    deriving remaining from quantity when it was never stored.
    """
    quantity = to_non_negative(_field(purchase, "quantity"))
    purchase_id = _field(purchase, "id")
    if purchase_id in usage:
        consumed = usage[purchase_id]
        return consumed, remaining_quantity(quantity, consumed)
    consumed = to_non_negative(_field(purchase, "consumed_quantity"))
    stored_remaining = _field(purchase, "remaining_quantity")
    if stored_remaining is not None:
        return consumed, min(quantity, to_non_negative(stored_remaining))
    return consumed, remaining_quantity(quantity, consumed)
