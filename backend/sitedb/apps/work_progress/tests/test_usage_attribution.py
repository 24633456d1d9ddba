from __future__ import annotations

from datetime import date

import pytest

from sitedb.apps.work_progress import usage


def _purchase(purchase_id, quantity, purchase_date, material_id="MAT-1", **extra):
    row = {
        "id": purchase_id,
        "material_id": material_id,
        "quantity": quantity,
        "purchase_date": purchase_date,
    }
    row.update(extra)
    return row


def test_direct_consumption_is_charged_to_the_named_purchase():
    purchases = [_purchase("P1", 100, date(2024, 1, 1)), _purchase("P2", 50, date(2024, 2, 1))]
    rows = [
        {"purchase_id": "P2", "material_id": "MAT-1", "quantity": 20},
        {"purchase_id": "P2", "material_id": "MAT-1", "quantity": 5},
    ]

    result = usage.build_purchase_usage_map(purchases, rows, strategy=usage.FifoAttribution())

    assert result == {"P2": 25.0}


def test_fifo_fills_oldest_purchase_first():
    purchases = [_purchase("P2", 50, date(2024, 2, 1)), _purchase("P1", 40, date(2024, 1, 1))]
    rows = [{"purchase_id": None, "material_id": "MAT-1", "quantity": 60}]

    result = usage.build_purchase_usage_map(purchases, rows, strategy=usage.FifoAttribution())

    assert result == {"P1": 40.0, "P2": 20.0}


def test_fifo_skips_capacity_already_taken_by_direct_rows():
    purchases = [_purchase("P1", 40, date(2024, 1, 1)), _purchase("P2", 50, date(2024, 2, 1))]
    rows = [
        {"purchase_id": None, "material_id": "MAT-1", "quantity": 10},
        {"purchase_id": "P1", "material_id": "MAT-1", "quantity": 35},
    ]

    result = usage.build_purchase_usage_map(purchases, rows, strategy=usage.FifoAttribution())

    assert result == {"P1": 40.0, "P2": 5.0}


def test_fifo_overflow_lands_on_newest_purchase():
    purchases = [_purchase("P1", 10, date(2024, 1, 1)), _purchase("P2", 10, date(2024, 2, 1))]
    rows = [{"purchase_id": None, "material_id": "MAT-1", "quantity": 25}]

    result = usage.build_purchase_usage_map(purchases, rows, strategy=usage.FifoAttribution())

    assert result == {"P1": 10.0, "P2": 15.0}
    assert sum(result.values()) == 25.0


def test_pro_rata_splits_by_purchased_quantity():
    purchases = [_purchase("P1", 30, date(2024, 1, 1)), _purchase("P2", 90, date(2024, 2, 1))]
    rows = [{"purchase_id": None, "material_id": "MAT-1", "quantity": 40}]

    result = usage.build_purchase_usage_map(purchases, rows, strategy=usage.ProRataAttribution())

    assert result["P1"] == pytest.approx(10.0)
    assert result["P2"] == pytest.approx(30.0)


def test_rows_for_unknown_material_or_non_positive_quantity_are_ignored():
    purchases = [_purchase("P1", 30, date(2024, 1, 1))]
    rows = [
        {"purchase_id": None, "material_id": "MAT-OTHER", "quantity": 5},
        {"purchase_id": "P1", "material_id": "MAT-1", "quantity": -3},
        {"purchase_id": "P1", "material_id": "MAT-1", "quantity": None},
    ]

    assert usage.build_purchase_usage_map(purchases, rows, strategy=usage.FifoAttribution()) == {}


def test_strategy_selected_from_environment(monkeypatch):
    monkeypatch.setenv(usage.ATTRIBUTION_ENV_VAR, "pro-rata")
    assert isinstance(usage.get_attribution_strategy(), usage.ProRataAttribution)

    monkeypatch.delenv(usage.ATTRIBUTION_ENV_VAR)
    assert isinstance(usage.get_attribution_strategy(), usage.FifoAttribution)

    with pytest.raises(ValueError):
        usage.get_attribution_strategy("lifo")


def test_remaining_is_clamped_at_zero_when_usage_exceeds_quantity():
    purchase = _purchase("P1", 100, date(2024, 1, 1), consumed_quantity=0, remaining_quantity=100)
    consumed, remaining = usage.effective_purchase_figures(purchase, {"P1": 130.0})

    assert consumed == 130.0
    assert remaining == 0.0


def test_stored_figures_used_without_live_usage():
    stored = _purchase("P1", 100, date(2024, 1, 1), consumed_quantity=30, remaining_quantity=70)
    assert usage.effective_purchase_figures(stored, {}) == (30.0, 70.0)

    overstated = _purchase("P2", 100, date(2024, 1, 1), consumed_quantity=0, remaining_quantity=140)
    assert usage.effective_purchase_figures(overstated, {}) == (0.0, 100.0)

    legacy = _purchase("P3", 100, date(2024, 1, 1), consumed_quantity=25, remaining_quantity=None)
    assert usage.effective_purchase_figures(legacy, {}) == (25.0, 75.0)


def test_to_non_negative_coerces_garbage_to_zero():
    assert usage.to_non_negative("12.5") == 12.5
    assert usage.to_non_negative(float("nan")) == 0.0
    assert usage.to_non_negative(-4) == 0.0
    assert usage.to_non_negative(True) == 0.0
    assert usage.to_non_negative("abc") == 0.0
