"""
promeasure/wbs/tree.py

Flat list <-> forest conversions.

- build_tree: parent references -> nested TreeNodes, siblings sorted by order.
- flatten_tree: forest -> depth-annotated pre-order rows honoring collapsed nodes.
- collect_descendants / remove_item: cascading subtree selection and deletion.

A node whose parent_id does not resolve inside the given items is a root.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Collection, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from .errors import CyclicHierarchyError, ItemNotFoundError, ValidationError
from .nodes import FlatNode, TreeNode, WorkItem

logger = logging.getLogger(__name__)


def index_items(items: Iterable[WorkItem]) -> Dict[str, WorkItem]:
    """id -> item. Duplicate ids are rejected."""
    by_id: Dict[str, WorkItem] = {}
    for item in items:
        if item.id in by_id:
            raise ValidationError(f"Duplicate work item id '{item.id}'")
        by_id[item.id] = item
    return by_id


def effective_parent(item: WorkItem, by_id: Dict[str, WorkItem]) -> Optional[str]:
    """parent_id if it resolves, else None (root group)."""
    if item.parent_id is not None and item.parent_id in by_id:
        return item.parent_id
    return None


def find_cycles(items: Iterable[WorkItem]) -> Set[str]:
    """Ids of every item that sits on a circular parent chain (self-parenting included)."""
    by_id = {item.id: item for item in items}
    ON_PATH, DONE = 1, 2
    state: Dict[str, int] = {}
    cyclic: Set[str] = set()

    for start in by_id:
        path: List[str] = []
        current: Optional[str] = start
        while current is not None and current in by_id and current not in state:
            state[current] = ON_PATH
            path.append(current)
            current = by_id[current].parent_id

        if current is not None and state.get(current) == ON_PATH:
            cyclic.update(path[path.index(current):])

        for node_id in path:
            state[node_id] = DONE

    return cyclic


def children_index(items: Sequence[WorkItem], by_id: Dict[str, WorkItem]) -> Dict[Optional[str], List[WorkItem]]:
    """parent id (None for roots) -> children sorted by order, input order breaking ties."""
    groups: Dict[Optional[str], List[WorkItem]] = defaultdict(list)
    for item in items:
        groups[effective_parent(item, by_id)].append(item)
    for siblings in groups.values():
        siblings.sort(key=lambda it: it.order)
    return groups


def build_tree(items: Iterable[WorkItem]) -> List[TreeNode]:
    """
    Convert flat items into a forest of TreeNodes.

    Raises CyclicHierarchyError instead of recursing forever when parent
    references loop back on themselves.
    """
    items = list(items)
    by_id = index_items(items)

    cyclic = find_cycles(items)
    if cyclic:
        logger.debug("Rejected hierarchy with cycles: %s", sorted(cyclic))
        raise CyclicHierarchyError(cyclic)

    groups = children_index(items, by_id)

    def _build(item: WorkItem) -> TreeNode:
        return TreeNode(item=item, children=tuple(_build(child) for child in groups.get(item.id, ())))

    return [_build(root) for root in groups.get(None, ())]


def iter_nodes(forest: Iterable[TreeNode]) -> Iterator[TreeNode]:
    """Every node of the forest, pre-order."""
    for node in forest:
        yield node
        yield from iter_nodes(node.children)


def flatten_tree(forest: Iterable[TreeNode], expanded_ids: Optional[Collection[str]] = None) -> List[FlatNode]:
    """
    Pre-order rows with depth.

    A node's children are emitted only when its id is in expanded_ids;
    expanded_ids=None expands everything.
    """
    rows: List[FlatNode] = []
    expanded = None if expanded_ids is None else set(expanded_ids)

    def _walk(nodes: Iterable[TreeNode], depth: int) -> None:
        for node in nodes:
            rows.append(FlatNode(item=node.item, depth=depth, has_children=bool(node.children)))
            if node.children and (expanded is None or node.id in expanded):
                _walk(node.children, depth + 1)

    _walk(forest, 0)
    return rows


def collect_descendants(items: Iterable[WorkItem], item_id: str) -> Set[str]:
    """item_id plus the ids of its whole subtree (transitive closure over parent_id)."""
    children: Dict[str, List[str]] = defaultdict(list)
    for item in items:
        if item.parent_id is not None:
            children[item.parent_id].append(item.id)

    found = {item_id}
    stack = [item_id]
    while stack:
        for child_id in children.get(stack.pop(), ()):
            if child_id not in found:
                found.add(child_id)
                stack.append(child_id)
    return found


def remove_item(items: Iterable[WorkItem], item_id: str) -> List[WorkItem]:
    """Delete a node and all of its descendants. Sibling orders keep their gaps."""
    items = list(items)
    if not any(item.id == item_id for item in items):
        raise ItemNotFoundError(item_id)
    doomed = collect_descendants(items, item_id)
    logger.debug("Removing %d work item(s) under '%s'", len(doomed), item_id)
    return [item for item in items if item.id not in doomed]
