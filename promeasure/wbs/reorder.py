"""
promeasure/wbs/reorder.py

Reorder / re-parent engine.

Order policy:
- before/after: the source joins the target's parent group next to the target,
  and that group is renumbered densely 0..n-1 (untouched siblings keep their
  relative order).
- inside: the source becomes the LAST child of the target
  (order = max(existing children) + 1, or 0 for an empty target).
- Whenever the source leaves a parent group, the siblings left behind are
  compacted to 0..n-1.

Only parent_id and order change. Derived fields stay as they are; callers run
the processor afterwards.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from .errors import CyclicMoveError, ItemNotFoundError, ValidationError
from .nodes import WorkItem
from .tree import collect_descendants, effective_parent, index_items

logger = logging.getLogger(__name__)


class DropPosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    INSIDE = "inside"


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid value '{value}' (expected one of: {allowed})") from exc


def _group(items: List[WorkItem], by_id: Dict[str, WorkItem], parent_id: Optional[str], exclude: Optional[str] = None) -> List[WorkItem]:
    """Siblings under parent_id (None = roots) sorted by order, without `exclude`."""
    siblings = [
        item for item in items
        if item.id != exclude and effective_parent(item, by_id) == parent_id
    ]
    siblings.sort(key=lambda it: it.order)
    return siblings


def _apply(items: List[WorkItem], orders: Dict[str, int], moved_id: str, new_parent: Optional[str]) -> List[WorkItem]:
    """Copy only the nodes whose parent_id/order actually change."""
    result = []
    for item in items:
        changes = {}
        if item.id in orders and item.order != orders[item.id]:
            changes["order"] = orders[item.id]
        if item.id == moved_id and item.parent_id != new_parent:
            changes["parent_id"] = new_parent
        result.append(item.with_changes(**changes) if changes else item)
    return result


def reorder_items(
    items: Iterable[WorkItem],
    source_id: str,
    target_id: str,
    position: Union[DropPosition, str],
) -> List[WorkItem]:
    """
    Move source relative to target and return a new flat list (same sequence as input).

    Raises:
        ItemNotFoundError: source or target missing.
        CyclicMoveError: target is the source itself or one of its descendants.
        ValidationError: bad position, or 'inside' a non-category target.
    """
    items = list(items)
    position = _coerce(DropPosition, position)
    by_id = index_items(items)

    source = by_id.get(source_id)
    if source is None:
        raise ItemNotFoundError(source_id)
    target = by_id.get(target_id)
    if target is None:
        raise ItemNotFoundError(target_id)

    if target_id in collect_descendants(items, source_id):
        logger.debug("Rejected move of '%s' %s '%s': cycle", source_id, position.value, target_id)
        raise CyclicMoveError(source_id, target_id)

    old_parent = effective_parent(source, by_id)
    orders: Dict[str, int] = {}

    if position is DropPosition.INSIDE:
        if not target.is_category:
            raise ValidationError(f"'{target_id}' is not a category and cannot contain items")
        new_parent = target.id
        children = _group(items, by_id, new_parent, exclude=source.id)
        if old_parent == new_parent:
            for idx, sibling in enumerate(children):
                orders[sibling.id] = idx
            orders[source.id] = len(children)
        else:
            orders[source.id] = (max(c.order for c in children) + 1) if children else 0
    else:
        new_parent = effective_parent(target, by_id)
        siblings = _group(items, by_id, new_parent, exclude=source.id)
        at = siblings.index(target) + (1 if position is DropPosition.AFTER else 0)
        siblings.insert(at, source)
        for idx, sibling in enumerate(siblings):
            orders[sibling.id] = idx

    if old_parent != new_parent:
        for idx, sibling in enumerate(_group(items, by_id, old_parent, exclude=source.id)):
            orders[sibling.id] = idx

    return _apply(items, orders, source.id, new_parent)


def move_in_siblings(items: Iterable[WorkItem], item_id: str, direction: Union[MoveDirection, str]) -> List[WorkItem]:
    """
    Swap a node with its previous/next sibling; the group is renumbered 0..n-1.

    Moving the first node up (or the last node down) leaves the list unchanged.
    """
    items = list(items)
    direction = _coerce(MoveDirection, direction)
    by_id = index_items(items)

    item = by_id.get(item_id)
    if item is None:
        raise ItemNotFoundError(item_id)

    parent = effective_parent(item, by_id)
    siblings = _group(items, by_id, parent)
    idx = siblings.index(item)
    swap = idx - 1 if direction is MoveDirection.UP else idx + 1
    if swap < 0 or swap >= len(siblings):
        return items

    siblings[idx], siblings[swap] = siblings[swap], siblings[idx]
    orders = {sibling.id: n for n, sibling in enumerate(siblings)}
    return _apply(items, orders, item.id, item.parent_id)
