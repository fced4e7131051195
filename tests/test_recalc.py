from __future__ import annotations

from decimal import Decimal

from conftest import by_id, category
from promeasure.wbs import ProjectState, WorkItem, force_recalculate, recalculate_project


def _priced(item_id: str, unit_price: str, no_bdi: str = "0") -> WorkItem:
    return WorkItem(
        id=item_id,
        parent_id="C",
        contract_quantity=Decimal("10"),
        unit_price=Decimal(unit_price),
        unit_price_no_bdi=Decimal(no_bdi),
    )


def test_unit_price_drives_the_recalculation():
    items = [category("C"), _priced("a", "12.50", no_bdi="1.00")]
    result = by_id(force_recalculate(items, 25))
    assert result["a"].unit_price_no_bdi == Decimal("10.00")
    assert result["a"].unit_price == Decimal("12.50")
    assert result["a"].contract_total == Decimal("125.00")
    assert result["C"].contract_total == Decimal("125.00")


def test_truncation_then_rounding():
    result = by_id(force_recalculate([_priced("a", "10.00")], 15))
    # 10 / 1.15 = 8.6956.. -> 8.69 ; 8.69 * 1.15 = 9.9935 -> 9.99
    assert result["a"].unit_price_no_bdi == Decimal("8.69")
    assert result["a"].unit_price == Decimal("9.99")


def test_price_without_bdi_kept_when_unit_price_is_missing():
    result = by_id(force_recalculate([_priced("a", "0", no_bdi="20.00")], 10))
    assert result["a"].unit_price_no_bdi == Decimal("20.00")
    assert result["a"].unit_price == Decimal("22.00")


def test_recalculate_project_clears_overrides():
    project = ProjectState(
        items=[_priced("a", "11")],
        bdi=10,
        contract_total_override="999",
        current_total_override="1",
    )
    result = recalculate_project(project)
    assert result.contract_total_override is None
    assert result.current_total_override is None
    assert result.items[0].unit_price == Decimal("11.00")
    assert project.contract_total_override == Decimal("999")
