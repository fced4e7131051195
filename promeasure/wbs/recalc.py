"""
promeasure/wbs/recalc.py

Forced recalculation: re-derive every leaf's unit prices from the global BDI and
refresh all dependent totals.

Source of truth: the stored unit_price (with BDI).
    unit_price_no_bdi = truncate(unit_price / (1 + bdi/100))
    unit_price        = round(unit_price_no_bdi * (1 + bdi/100))
A leaf with unit_price == 0 but a non-zero unit_price_no_bdi keeps its no-BDI
price instead (nothing to back-solve from).

This is lossy: running it twice with different BDI values without saving in
between compounds the truncation. It only runs when explicitly requested.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Iterable, List

from .financial import markup_factor, round_money, truncate
from .nodes import ProjectState, WorkItem
from .processor import refresh_items

logger = logging.getLogger(__name__)


def _reprice(item: WorkItem, factor: Decimal) -> WorkItem:
    if item.unit_price == 0 and item.unit_price_no_bdi != 0:
        no_bdi = item.unit_price_no_bdi
    else:
        no_bdi = truncate(item.unit_price / factor)
    return replace(item, unit_price_no_bdi=no_bdi, unit_price=round_money(no_bdi * factor))


def force_recalculate(items: Iterable[WorkItem], bdi: Any) -> List[WorkItem]:
    """Repriced and fully processed items, in the input sequence."""
    factor = markup_factor(bdi)
    repriced = [_reprice(item, factor) if item.is_leaf else item for item in items]
    logger.info("Forced recalculation of %d item(s) with BDI %s%%", len(repriced), bdi)
    return refresh_items(repriced, bdi)


def recalculate_project(project: ProjectState) -> ProjectState:
    """force_recalculate on the live items; manual grand-total overrides are cleared."""
    return replace(
        project,
        items=tuple(force_recalculate(project.items, project.bdi)),
        contract_total_override=None,
        current_total_override=None,
    )
