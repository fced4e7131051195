"""
promeasure/wbs/measurement.py

Measurement (billing period) lifecycle.

OPEN --close--> OPEN (next number) ; reopen is the inverse of the latest close.

close_measurement:
  1) process the live items to get the closing figures;
  2) freeze them into a MeasurementSnapshot (flattened, all nodes);
  3) prepend the snapshot to history (most recent first);
  4) roll every live leaf forward: previous += current, current = 0;
  5) bump measurement_number and stamp a new reference date.

reopen_measurement:
  pops the latest snapshot and subtracts exactly what step 4 carried, so
  reopen(close(p)) gives back p's items, number and history.

IMPORTANT:
- Both return a new ProjectState; the given state is never mutated.
- History is a stack for mutation purposes. Older snapshots are read-only.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, Optional, Union

from .errors import MeasurementConflictError, NoMeasurementHistoryError, SnapshotNotFoundError, SnapshotReopenError
from .financial import ZERO
from .nodes import MeasurementSnapshot, PeriodCarry, ProjectState, WorkItem
from .processor import process_items, stats_from_forest
from .tree import flatten_tree, iter_nodes

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]


def _iso(value: DateLike) -> str:
    if value is None:
        return date.today().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _roll_forward(item: WorkItem, processed: WorkItem) -> WorkItem:
    return replace(
        item,
        previous_quantity=item.previous_quantity + processed.current_quantity,
        previous_total=processed.previous_total + processed.current_total,
        current_quantity=ZERO,
        current_total=ZERO,
        current_percentage=ZERO,
    )


def _roll_back(item: WorkItem, carry: Optional[PeriodCarry]) -> WorkItem:
    if carry is None or not item.is_leaf:
        return item
    return replace(
        item,
        previous_quantity=item.previous_quantity - carry.quantity,
        previous_total=item.previous_total - carry.total,
        current_quantity=carry.quantity,
        current_total=carry.total,
        current_percentage=carry.percentage,
    )


def close_measurement(project: ProjectState, *, today: DateLike = None) -> ProjectState:
    """Close the open period. Returns the rolled-forward project state."""
    number = project.measurement_number
    if any(s.measurement_number == number for s in project.history):
        raise MeasurementConflictError(f"Measurement {number} is already closed")

    forest = process_items(project.items, project.bdi)
    today_iso = _iso(today)
    # Carry and roll-forward use derived values, never the stored ones.
    processed = {node.id: node.item for node in iter_nodes(forest)}

    snapshot = MeasurementSnapshot(
        measurement_number=number,
        date=project.reference_date or today_iso,
        items=tuple(row.item for row in flatten_tree(forest)),
        totals=stats_from_forest(forest),
        carried=tuple(
            PeriodCarry(
                item_id=item.id,
                quantity=processed[item.id].current_quantity,
                total=processed[item.id].current_total,
                percentage=processed[item.id].current_percentage,
            )
            for item in project.items
            if item.is_leaf
        ),
    )

    items = tuple(_roll_forward(item, processed[item.id]) if item.is_leaf else item for item in project.items)

    logger.info(
        "Closed measurement %s: period=%s accumulated=%s progress=%s%%",
        number,
        snapshot.totals.period,
        snapshot.totals.accumulated,
        snapshot.totals.progress,
    )
    return replace(
        project,
        items=items,
        history=(snapshot,) + project.history,
        measurement_number=number + 1,
        reference_date=today_iso,
    )


def _carried_for(snapshot: MeasurementSnapshot) -> Dict[str, PeriodCarry]:
    if snapshot.carried:
        return {carry.item_id: carry for carry in snapshot.carried}
    # Snapshots recorded without carry data: fall back to the frozen leaf values.
    return {
        item.id: PeriodCarry(
            item_id=item.id,
            quantity=item.current_quantity,
            total=item.current_total,
            percentage=item.current_percentage,
        )
        for item in snapshot.items
        if item.is_leaf
    }


def reopen_measurement(project: ProjectState, measurement_number: Optional[int] = None) -> ProjectState:
    """
    Undo the latest close.

    Raises:
        NoMeasurementHistoryError: nothing has been closed yet.
        SnapshotReopenError: measurement_number is not the latest closed period.
    """
    latest = project.latest_snapshot
    if latest is None:
        raise NoMeasurementHistoryError()
    if measurement_number is not None and int(measurement_number) != latest.measurement_number:
        raise SnapshotReopenError(
            f"Only the latest measurement ({latest.measurement_number}) can be reopened, "
            f"not {measurement_number}"
        )

    carried = _carried_for(latest)
    items = tuple(_roll_back(item, carried.get(item.id)) for item in project.items)

    logger.info("Reopened measurement %s", latest.measurement_number)
    return replace(
        project,
        items=items,
        history=project.history[1:],
        measurement_number=latest.measurement_number,
        reference_date=latest.date,
    )


def find_snapshot(project: ProjectState, measurement_number: int) -> MeasurementSnapshot:
    """Read-only lookup of any closed period."""
    for snapshot in project.history:
        if snapshot.measurement_number == int(measurement_number):
            return snapshot
    raise SnapshotNotFoundError(int(measurement_number))
