"""
promeasure/services/projects.py

Project service: loads a Project row as an engine ProjectState, runs one engine
operation, refreshes derived fields and writes the result back.

IMPORTANT:
- Every mutation runs inside transaction(): commit on success, rollback and
  re-raise on any failure. No partial writes.
- Measurement close/reopen additionally hold a per-project lock and load the
  project row FOR UPDATE, so two closes of the same project cannot interleave.
- Stored derived fields are always recomputed (refresh_items) before saving.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from flask import current_app

from ..audit import log_action, serialize_model
from ..extensions import db
from ..models import Project
from ..wbs import (
    EditResult,
    ProjectState,
    ValidationError,
    WbsError,
    WorkItem,
    build_tree,
    clamp_items,
    close_measurement,
    find_snapshot,
    flatten_tree,
    move_in_siblings,
    new_item,
    process_items,
    project_summary,
    recalculate_project,
    refresh_items,
    remove_item,
    reopen_measurement,
    reorder_items,
    update_item_current_total,
    update_item_fields,
    update_item_percentage,
    update_item_quantity,
    update_item_total,
)
from ..wbs.financial import to_decimal
from ..wbs.nodes import MeasurementSnapshot
from ..wbs.tree import collect_descendants

logger = logging.getLogger(__name__)


class ProjectNotFoundError(WbsError):
    code = "project_not_found"

    def __init__(self, project_id: int):
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


# ---------------------------------------------------------------------
# Transactions and locking
# ---------------------------------------------------------------------
_locks: Dict[int, threading.Lock] = {}
_locks_guard = threading.Lock()


def _project_lock(project_id: int) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(project_id)
        if lock is None:
            lock = _locks[project_id] = threading.Lock()
        return lock


@contextmanager
def transaction() -> Iterator[None]:
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def get_project(project_id: int, *, for_update: bool = False) -> Project:
    query = db.session.query(Project).filter(Project.id == project_id)
    if for_update:
        query = query.with_for_update()
    project = query.one_or_none()
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


def _refreshed(state: ProjectState) -> ProjectState:
    return replace(state, items=tuple(refresh_items(state.items, state.bdi)))


def _save(project: Project, state: ProjectState) -> ProjectState:
    state = _refreshed(state)
    project.apply_state(state)
    return state


def _find(state: ProjectState, item_id: str) -> Optional[WorkItem]:
    for item in state.items:
        if item.id == item_id:
            return item
    return None


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
def create_project(
    *,
    name: str,
    bdi: Any = None,
    company_name: Optional[str] = None,
    location: Optional[str] = None,
    reference_date: Optional[str] = None,
    items: Sequence[WorkItem] = (),
) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Project name is required")
    if bdi is None:
        bdi = current_app.config.get("DEFAULT_BDI", Decimal("0"))
    items, _ = clamp_items(items)

    with transaction():
        project = Project(
            name=name,
            company_name=company_name,
            location=location,
            measurement_number=1,
        )
        db.session.add(project)
        state = ProjectState(items=tuple(items), bdi=bdi, reference_date=reference_date)
        _save(project, state)
        db.session.flush()
        log_action(
            entity_type="Project",
            entity_id=project.id,
            action="CREATE",
            project_id=project.id,
            after=serialize_model(project),
        )

    logger.info("Created project %s '%s' with %d item(s)", project.id, project.name, len(items))
    return project


PROJECT_EDITABLE = ("name", "company_name", "location", "bdi", "reference_date")


def update_project(project_id: int, changes: Dict[str, Any]) -> Project:
    """Header fields. A BDI change reprices every leaf from its unit_price_no_bdi."""
    unknown = set(changes) - set(PROJECT_EDITABLE)
    if unknown:
        raise ValidationError(f"Unknown project field(s): {', '.join(sorted(unknown))}")

    with transaction():
        project = get_project(project_id)
        before = serialize_model(project)
        state = project.to_state()
        for key in ("name", "company_name", "location"):
            if key in changes:
                setattr(project, key, changes[key])
        if not (project.name or "").strip():
            raise ValidationError("Project name is required")
        if "bdi" in changes:
            state = replace(state, bdi=to_decimal(changes["bdi"]))
        if "reference_date" in changes:
            state = replace(state, reference_date=changes["reference_date"] or None)
        _save(project, state)
        log_action(
            entity_type="Project",
            entity_id=project.id,
            action="UPDATE",
            project_id=project.id,
            before=before,
            after=serialize_model(project),
        )
    return project


def delete_project(project_id: int) -> None:
    with transaction():
        project = get_project(project_id)
        before = serialize_model(project)
        db.session.delete(project)
        log_action(entity_type="Project", entity_id=project_id, action="DELETE", before=before)
    with _locks_guard:
        _locks.pop(project_id, None)


def project_overview(project_id: int) -> Dict[str, Any]:
    project = get_project(project_id)
    state = _refreshed(project.to_state())
    latest = state.latest_snapshot
    data = project.to_dict()
    data["item_count"] = len(state.items)
    data["summary"] = project_summary(state).to_dict()
    data["last_closed_measurement"] = latest.measurement_number if latest else None
    return data


def project_tree(project_id: int, expanded_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Processed, flattened rows; expanded_ids=None expands every node."""
    project = get_project(project_id)
    state = project.to_state()
    forest = process_items(state.items, state.bdi)
    rows = flatten_tree(forest, None if expanded_ids is None else set(expanded_ids))
    return {
        "project_id": project.id,
        "measurement_number": state.measurement_number,
        "rows": [row.to_dict() for row in rows],
        "summary": project_summary(state).to_dict(),
    }


# ---------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------
def add_item(project_id: int, **fields: Any) -> WorkItem:
    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        item = new_item(state.items, bdi=state.bdi, **fields)
        state = _save(project, replace(state, items=state.items + (item,)))
        created = _find(state, item.id)
        log_action(
            entity_type="WorkItem",
            entity_id=item.id,
            action="CREATE",
            project_id=project.id,
            after=created.to_dict(),
        )
    return created


def replace_items(project_id: int, items: Sequence[WorkItem]) -> List[WorkItem]:
    """Bulk import: the given items become the whole WBS of the open measurement.

    Leaf quantities outside the contract are clamped into it, as with single edits.
    """
    items, _ = clamp_items(items)
    # Raises on duplicate ids or cyclic parents before anything is written.
    build_tree(items)

    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        before_count = len(state.items)
        state = _save(project, replace(state, items=items))
        log_action(
            entity_type="Project",
            entity_id=project.id,
            action="IMPORT",
            project_id=project.id,
            before={"item_count": before_count},
            after={"item_count": len(state.items)},
        )

    logger.info("Replaced WBS of project %s: %d item(s)", project_id, len(items))
    return list(state.items)


def _edit(project_id: int, item_id: str, action: str, edit: Callable[[ProjectState], EditResult]) -> EditResult:
    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        before = _find(state, item_id)
        result = edit(state)
        state = _save(project, replace(state, items=result.items))
        after = _find(state, item_id)
        log_action(
            entity_type="WorkItem",
            entity_id=item_id,
            action=action,
            project_id=project.id,
            before=before.to_dict() if before else None,
            after=after.to_dict() if after else None,
        )
    return EditResult(items=state.items, item=after, clamped=result.clamped)


def edit_item(project_id: int, item_id: str, changes: Dict[str, Any]) -> EditResult:
    return _edit(project_id, item_id, "UPDATE", lambda s: update_item_fields(s.items, item_id, changes))


def set_item_quantity(project_id: int, item_id: str, quantity: Any) -> EditResult:
    return _edit(project_id, item_id, "MEASURE", lambda s: update_item_quantity(s.items, item_id, quantity))


def set_item_percentage(project_id: int, item_id: str, percentage: Any) -> EditResult:
    return _edit(project_id, item_id, "MEASURE", lambda s: update_item_percentage(s.items, item_id, percentage))


def set_item_total(project_id: int, item_id: str, total: Any) -> EditResult:
    return _edit(project_id, item_id, "UPDATE", lambda s: update_item_total(s.items, item_id, total, s.bdi))


def set_item_current_total(project_id: int, item_id: str, total: Any) -> EditResult:
    return _edit(
        project_id, item_id, "MEASURE", lambda s: update_item_current_total(s.items, item_id, total, s.bdi)
    )


def delete_item(project_id: int, item_id: str) -> List[str]:
    """Cascading delete. Returns the removed ids."""
    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        items = remove_item(state.items, item_id)
        removed = sorted(collect_descendants(state.items, item_id))
        _save(project, replace(state, items=tuple(items)))
        log_action(
            entity_type="WorkItem",
            entity_id=item_id,
            action="DELETE",
            project_id=project.id,
            before={"removed": removed},
        )
    return removed


def move_item(project_id: int, item_id: str, direction: str) -> List[WorkItem]:
    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        items = move_in_siblings(state.items, item_id, direction)
        state = _save(project, replace(state, items=tuple(items)))
        log_action(
            entity_type="WorkItem",
            entity_id=item_id,
            action="MOVE",
            project_id=project.id,
            after={"direction": str(direction)},
        )
    return list(state.items)


def reorder(project_id: int, source_id: str, target_id: str, position: str) -> List[WorkItem]:
    with transaction():
        project = get_project(project_id)
        state = project.to_state()
        items = reorder_items(state.items, source_id, target_id, position)
        state = _save(project, replace(state, items=tuple(items)))
        log_action(
            entity_type="WorkItem",
            entity_id=source_id,
            action="MOVE",
            project_id=project.id,
            after={"target": target_id, "position": str(position)},
        )
    return list(state.items)


def recalculate(project_id: int) -> List[WorkItem]:
    with transaction():
        project = get_project(project_id)
        state = _save(project, recalculate_project(project.to_state()))
        log_action(entity_type="Project", entity_id=project.id, action="RECALCULATE", project_id=project.id)
    return list(state.items)


def set_overrides(project_id: int, *, contract_total: Any = None, current_total: Any = None) -> Project:
    with transaction():
        project = get_project(project_id)
        before = serialize_model(project)
        state = replace(
            project.to_state(),
            contract_total_override=None if contract_total is None else to_decimal(contract_total),
            current_total_override=None if current_total is None else to_decimal(current_total),
        )
        _save(project, state)
        log_action(
            entity_type="Project",
            entity_id=project.id,
            action="OVERRIDE",
            project_id=project.id,
            before=before,
            after=serialize_model(project),
        )
    return project


def clear_overrides(project_id: int) -> Project:
    return set_overrides(project_id)


# ---------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------
def list_measurements(project_id: int) -> List[Dict[str, Any]]:
    """Closed periods, most recent first (without the frozen item rows)."""
    state = get_project(project_id).to_state()
    return [
        {
            "measurement_number": snap.measurement_number,
            "date": snap.date,
            "totals": snap.totals.to_dict(),
            "item_count": len(snap.items),
        }
        for snap in state.history
    ]


def get_measurement(project_id: int, measurement_number: int) -> MeasurementSnapshot:
    return find_snapshot(get_project(project_id).to_state(), measurement_number)


def close_period(project_id: int, *, today: Optional[date] = None) -> MeasurementSnapshot:
    get_project(project_id)  # unknown ids never get a lock entry
    with _project_lock(project_id):
        with transaction():
            project = get_project(project_id, for_update=True)
            state = close_measurement(_refreshed(project.to_state()), today=today)
            _save(project, state)
            snapshot = state.latest_snapshot
            log_action(
                entity_type="Measurement",
                entity_id=snapshot.measurement_number,
                action="CLOSE",
                project_id=project.id,
                after=snapshot.totals.to_dict(),
            )
    return snapshot


def reopen_period(project_id: int, measurement_number: Optional[int] = None) -> Project:
    get_project(project_id)
    with _project_lock(project_id):
        with transaction():
            project = get_project(project_id, for_update=True)
            state = project.to_state()
            latest = state.latest_snapshot
            state = reopen_measurement(state, measurement_number)
            _save(project, state)
            log_action(
                entity_type="Measurement",
                entity_id=latest.measurement_number,
                action="REOPEN",
                project_id=project.id,
                before=latest.totals.to_dict(),
            )
    return project
