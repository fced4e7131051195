"""
promeasure/wbs/processor.py

Recursive WBS processor.

Walks the forest depth-first (post-order for aggregation) and returns new nodes:
- wbs code from the node's position ("2", "2.3", ...), regenerated every pass;
- leaf arithmetic: unit price with BDI, contract/previous/current/accumulated/
  balance quantities, totals and percentages;
- category roll-ups: each total is the sum of its direct children's processed
  values, so it already includes every deeper level.

Pure functions: no input is mutated, nothing is persisted here.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .financial import ZERO, markup_factor, percent_of, round_money, to_decimal
from .nodes import MeasurementTotals, ProjectState, TreeNode, WorkItem
from .tree import build_tree, iter_nodes

# Values a category takes as the plain sum of its children.
ROLLUP_FIELDS = (
    "contract_quantity",
    "previous_quantity",
    "current_quantity",
    "accumulated_quantity",
    "balance_quantity",
    "contract_total",
    "previous_total",
    "current_total",
    "accumulated_total",
    "balance_total",
)


def _process_leaf(item: WorkItem, wbs: str, factor: Decimal) -> WorkItem:
    unit_price = round_money(item.unit_price_no_bdi * factor)

    contract_qty = item.contract_quantity
    previous_qty = item.previous_quantity
    current_qty = item.current_quantity
    accumulated_qty = previous_qty + current_qty
    balance_qty = max(ZERO, contract_qty - accumulated_qty)

    return replace(
        item,
        wbs=wbs,
        unit_price=unit_price,
        contract_total=round_money(contract_qty * unit_price),
        previous_total=round_money(previous_qty * unit_price),
        current_total=round_money(current_qty * unit_price),
        accumulated_quantity=accumulated_qty,
        accumulated_total=round_money(accumulated_qty * unit_price),
        balance_quantity=balance_qty,
        balance_total=round_money(balance_qty * unit_price),
        previous_percentage=percent_of(previous_qty, contract_qty),
        current_percentage=percent_of(current_qty, contract_qty),
        accumulated_percentage=percent_of(accumulated_qty, contract_qty),
    )


def _rollup_category(item: WorkItem, wbs: str, children: Sequence[TreeNode]) -> WorkItem:
    sums: Dict[str, Decimal] = {name: ZERO for name in ROLLUP_FIELDS}
    for child in children:
        for name in ROLLUP_FIELDS:
            sums[name] += getattr(child.item, name)

    contract_qty = sums["contract_quantity"]
    return replace(
        item,
        wbs=wbs,
        unit_price=ZERO,
        unit_price_no_bdi=ZERO,
        previous_percentage=percent_of(sums["previous_quantity"], contract_qty),
        current_percentage=percent_of(sums["current_quantity"], contract_qty),
        accumulated_percentage=percent_of(sums["accumulated_quantity"], contract_qty),
        **sums,
    )


def process_node(node: TreeNode, wbs: str, factor: Decimal) -> TreeNode:
    """Process one subtree; children first so categories sum finished values."""
    children = tuple(
        process_node(child, f"{wbs}.{idx + 1}", factor)
        for idx, child in enumerate(node.children)
    )

    if node.item.is_category:
        item = _rollup_category(node.item, wbs, children)
    else:
        item = _process_leaf(node.item, wbs, factor)

    return TreeNode(item=item, children=children)


def process_tree(forest: Iterable[TreeNode], bdi: Any) -> List[TreeNode]:
    """Process every root; root at position i gets wbs code str(i + 1)."""
    factor = markup_factor(bdi)
    return [process_node(root, str(idx + 1), factor) for idx, root in enumerate(forest)]


def process_items(items: Iterable[WorkItem], bdi: Any) -> List[TreeNode]:
    """build_tree + process_tree."""
    return process_tree(build_tree(items), bdi)


def refresh_items(items: Iterable[WorkItem], bdi: Any) -> List[WorkItem]:
    """
    Processed copies of the items, in the caller's original sequence.

    Used before persisting so stored derived fields never drift from the source fields.
    """
    items = list(items)
    processed = {node.id: node.item for node in iter_nodes(process_items(items, bdi))}
    return [processed[item.id] for item in items]


# ---------------------------------------------------------------------
# Grand totals
# ---------------------------------------------------------------------
def stats_from_forest(forest: Iterable[TreeNode]) -> MeasurementTotals:
    """Grand totals of an already processed forest (sum of roots)."""
    roots = [node.item for node in forest]
    contract = sum((r.contract_total for r in roots), ZERO)
    accumulated = sum((r.accumulated_total for r in roots), ZERO)
    return MeasurementTotals(
        contract=round_money(contract),
        period=round_money(sum((r.current_total for r in roots), ZERO)),
        accumulated=round_money(accumulated),
        progress=percent_of(accumulated, contract),
    )


def calculate_basic_stats(items: Iterable[WorkItem], bdi: Any) -> MeasurementTotals:
    """Contract / period / accumulated totals and physical-financial progress (%)."""
    return stats_from_forest(process_items(items, bdi))


@dataclass(frozen=True)
class ProjectSummary:
    """Footer figures; overrides replace the displayed grand totals only."""

    stats: MeasurementTotals
    contract_total: Decimal
    current_total: Decimal
    has_overrides: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "contract_total": str(self.contract_total),
            "current_total": str(self.current_total),
            "has_overrides": self.has_overrides,
        }


def project_summary(project: ProjectState) -> ProjectSummary:
    stats = calculate_basic_stats(project.items, project.bdi)
    contract_override: Optional[Decimal] = project.contract_total_override
    current_override: Optional[Decimal] = project.current_total_override
    return ProjectSummary(
        stats=stats,
        contract_total=to_decimal(contract_override) if contract_override is not None else stats.contract,
        current_total=to_decimal(current_override) if current_override is not None else stats.period,
        has_overrides=contract_override is not None or current_override is not None,
    )
