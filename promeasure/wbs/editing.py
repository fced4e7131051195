"""
promeasure/wbs/editing.py

Caller-side edits on the live items of the open measurement.

Clamp policy (best-effort input, never rejected):
- previous_quantity is kept within [0, contract_quantity];
- current_quantity is kept within [0, contract_quantity - previous_quantity];
- current percentage within [0, 100 - previous percentage];
- a zero contract quantity forces quantity and percentage to 0.

Every edit returns an EditResult; `clamped` tells the caller the value it sent
was adjusted. With warn=True a ClampedValueWarning is also emitted.
"""

from __future__ import annotations

import logging
import uuid
import warnings
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ClampedValueWarning, ItemNotFoundError, ValidationError
from .financial import HUNDRED, ZERO, clamp, markup_factor, percent_of, round_money, to_decimal, truncate
from .nodes import ItemType, WorkItem

logger = logging.getLogger(__name__)

# Fields a generic patch may touch. Derived fields and wbs are owned by the processor.
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "unit",
        "code",
        "source",
        "contract_quantity",
        "unit_price",
        "unit_price_no_bdi",
        "previous_quantity",
        "current_quantity",
    }
)


@dataclass(frozen=True)
class EditResult:
    items: Tuple[WorkItem, ...]
    item: Optional[WorkItem] = None
    clamped: bool = False


def _locate(items: List[WorkItem], item_id: str) -> int:
    for idx, item in enumerate(items):
        if item.id == item_id:
            return idx
    raise ItemNotFoundError(item_id)


def _require_leaf(item: WorkItem) -> None:
    if not item.is_leaf:
        raise ValidationError(f"'{item.id}' is a category; only items carry quantities and prices")


def _result(items: List[WorkItem], idx: int, updated: WorkItem, clamped: bool, warn: bool) -> EditResult:
    items[idx] = updated
    if clamped:
        logger.debug("Clamped edit on '%s'", updated.id)
        if warn:
            warnings.warn(f"Value for '{updated.id}' was clamped to the valid range", ClampedValueWarning, stacklevel=3)
    return EditResult(items=tuple(items), item=updated, clamped=clamped)


def max_current_quantity(item: WorkItem) -> Decimal:
    return max(ZERO, item.contract_quantity - item.previous_quantity)


def clamp_item(item: WorkItem) -> Tuple[WorkItem, bool]:
    """
    Pull a leaf back inside its contract: previous within [0, contract], then
    current within [0, contract - previous]. Categories pass through.
    """
    if not item.is_leaf:
        return item, False
    previous = clamp(item.previous_quantity, ZERO, item.contract_quantity)
    current = clamp(item.current_quantity, ZERO, item.contract_quantity - previous)
    if previous == item.previous_quantity and current == item.current_quantity:
        return item, False
    return item.with_changes(previous_quantity=previous, current_quantity=current), True


def clamp_items(items: Iterable[WorkItem]) -> Tuple[Tuple[WorkItem, ...], bool]:
    """clamp_item over a whole item set (imports, project creation)."""
    result: List[WorkItem] = []
    clamped = False
    for item in items:
        safe, changed = clamp_item(item)
        if changed:
            logger.debug("Clamped imported quantities on '%s'", item.id)
        clamped = clamped or changed
        result.append(safe)
    return tuple(result), clamped


def update_item_quantity(items: Iterable[WorkItem], item_id: str, quantity: Any, *, warn: bool = False) -> EditResult:
    """Set current_quantity, clamped to [0, contract - previous]."""
    items = list(items)
    idx = _locate(items, item_id)
    item = items[idx]
    _require_leaf(item)

    requested = to_decimal(quantity)
    safe = clamp(requested, ZERO, max_current_quantity(item))
    updated = item.with_changes(current_quantity=safe)
    return _result(items, idx, updated, safe != requested, warn)


def update_item_percentage(items: Iterable[WorkItem], item_id: str, percentage: Any, *, warn: bool = False) -> EditResult:
    """
    Set the current period as a percentage of the contract quantity.

    Zero contract quantity: quantity and percentage both become 0.
    """
    items = list(items)
    idx = _locate(items, item_id)
    item = items[idx]
    _require_leaf(item)

    requested = to_decimal(percentage)
    contract = item.contract_quantity
    if contract <= 0:
        updated = item.with_changes(current_quantity=ZERO, current_percentage=ZERO)
        return _result(items, idx, updated, requested != 0, warn)

    previous_pct = item.previous_quantity / contract * HUNDRED
    safe_pct = clamp(requested, ZERO, HUNDRED - previous_pct)
    quantity = clamp(round_money(safe_pct / HUNDRED * contract), ZERO, max_current_quantity(item))

    updated = item.with_changes(current_quantity=quantity, current_percentage=round_money(safe_pct))
    return _result(items, idx, updated, safe_pct != requested, warn)


def update_item_total(items: Iterable[WorkItem], item_id: str, total: Any, bdi: Any) -> EditResult:
    """
    Back-solve unit prices from a contract total typed by the user.

    unit_price = truncate(total / contract_quantity)
    unit_price_no_bdi = truncate(unit_price / (1 + bdi/100))
    Ignored when contract_quantity is 0.
    """
    items = list(items)
    idx = _locate(items, item_id)
    item = items[idx]
    _require_leaf(item)

    if item.contract_quantity <= 0:
        return EditResult(items=tuple(items), item=item, clamped=False)

    unit_price = truncate(to_decimal(total) / item.contract_quantity)
    updated = item.with_changes(
        unit_price=unit_price,
        unit_price_no_bdi=truncate(unit_price / markup_factor(bdi)),
    )
    return _result(items, idx, updated, False, False)


def update_item_current_total(items: Iterable[WorkItem], item_id: str, total: Any, bdi: Any) -> EditResult:
    """Same as update_item_total, solved against the current-period quantity."""
    items = list(items)
    idx = _locate(items, item_id)
    item = items[idx]
    _require_leaf(item)

    if item.current_quantity <= 0:
        return EditResult(items=tuple(items), item=item, clamped=False)

    unit_price = truncate(to_decimal(total) / item.current_quantity)
    updated = item.with_changes(
        unit_price=unit_price,
        unit_price_no_bdi=truncate(unit_price / markup_factor(bdi)),
    )
    return _result(items, idx, updated, False, False)


def update_item_fields(items: Iterable[WorkItem], item_id: str, changes: Dict[str, Any], *, warn: bool = False) -> EditResult:
    """
    Generic patch of caller-owned fields.

    If the patch shrinks the contract below previous + current, current_quantity
    is clamped back into range.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

    items = list(items)
    idx = _locate(items, item_id)
    item = items[idx]

    numeric = {"contract_quantity", "unit_price", "unit_price_no_bdi", "previous_quantity", "current_quantity"}
    if item.is_category and numeric & set(changes):
        raise ValidationError(f"'{item.id}' is a category; it has no quantities or prices of its own")

    try:
        updated = item.with_changes(**changes)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    updated, clamped = clamp_item(updated)
    if updated.is_leaf:
        updated = updated.with_changes(
            current_percentage=percent_of(updated.current_quantity, updated.contract_quantity)
        )
    return _result(items, idx, updated, clamped, warn)


def new_item(
    items: Iterable[WorkItem],
    *,
    name: str,
    type: Any = ItemType.ITEM,
    parent_id: Optional[str] = None,
    bdi: Any = ZERO,
    item_id: Optional[str] = None,
    unit: str = "un",
    code: Optional[str] = None,
    source: Optional[str] = None,
    contract_quantity: Any = ZERO,
    unit_price: Any = ZERO,
    unit_price_no_bdi: Any = ZERO,
) -> WorkItem:
    """
    Create a node with zeroed measurement fields, placed last in its parent group.

    When only unit_price (with BDI) is given, unit_price_no_bdi is back-solved
    from it so the processor keeps the price.
    """
    items = list(items)
    by_id = {it.id: it for it in items}
    if parent_id is not None:
        parent = by_id.get(parent_id)
        if parent is None:
            raise ItemNotFoundError(parent_id)
        if not parent.is_category:
            raise ValidationError(f"'{parent_id}' is not a category and cannot contain items")

    new_id = item_id or str(uuid.uuid4())
    if new_id in by_id:
        raise ValidationError(f"Duplicate work item id '{new_id}'")

    siblings = [it.order for it in items if it.parent_id == parent_id]
    try:
        item_type = ItemType(type)
    except ValueError as exc:
        raise ValidationError(f"Invalid item type '{type}'") from exc

    no_bdi = to_decimal(unit_price_no_bdi)
    price = to_decimal(unit_price)
    if no_bdi == 0 and price != 0:
        no_bdi = truncate(price / markup_factor(bdi))

    is_leaf = item_type is ItemType.ITEM
    return WorkItem(
        id=new_id,
        parent_id=parent_id,
        type=item_type,
        order=(max(siblings) + 1) if siblings else 0,
        name=name,
        unit=unit,
        code=code,
        source=source,
        contract_quantity=to_decimal(contract_quantity) if is_leaf else ZERO,
        unit_price=price if is_leaf else ZERO,
        unit_price_no_bdi=no_bdi if is_leaf else ZERO,
    )
