"""
promeasure/blueprints/projects/routes.py

JSON API for projects, their WBS and the measurement lifecycle.

Includes:
- Project create / overview / header update
- Tree view (processed + flattened, optional expanded set)
- Item add / bulk import / patch / delete / measure / move / reorder
- Forced recalculation and grand-total overrides
- Measurement history, close and reopen

IMPORTANT:
- Input is never trusted. Numbers are parsed here; every rule lives in the
  service and the engine.
- Engine errors (WbsError) are turned into JSON by the app-level handler,
  so routes only deal with the success path.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import Blueprint, request

from ...http import ok
from ...services import projects as service
from ...wbs import ValidationError, WorkItem, clamp_items
from ...wbs.editing import EditResult
from ...wbs.financial import to_decimal
from ...wbs.nodes import NUMERIC_FIELDS

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_decimal(value: Any, field: str, *, required: bool = False) -> Optional[Decimal]:
    """Parse decimal from user input (accepts '1234.5' or '1.234,50')."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        if required:
            raise ValidationError(f"'{field}' is required")
        return None
    raw = value
    if isinstance(value, str) and "," in value:
        raw = value.strip().replace(".", "").replace(",", ".")
    try:
        return to_decimal(raw)
    except ValueError as exc:
        raise ValidationError(f"'{field}' must be a number") from exc


def _parse_item(data: Any) -> WorkItem:
    if not isinstance(data, dict):
        raise ValidationError("Each item must be a JSON object")
    if not data.get("id"):
        raise ValidationError("Each item needs an 'id'")
    payload = dict(data)
    for name in NUMERIC_FIELDS:
        if name in payload:
            payload[name] = _parse_decimal(payload[name], name)
    try:
        return WorkItem.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid item '{data.get('id')}': {exc}") from exc


def _edit_payload(result: EditResult) -> Dict[str, Any]:
    return {"item": result.item.to_dict() if result.item else None, "clamped": result.clamped}


def _items_payload(items: List[WorkItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
@projects_bp.post("")
def create_project():
    data = _json_body()
    items = data.get("items") or []
    if not isinstance(items, list):
        raise ValidationError("'items' must be a list")
    parsed = [_parse_item(raw) for raw in items]
    _, clamped = clamp_items(parsed)
    project = service.create_project(
        name=data.get("name") or "",
        bdi=_parse_decimal(data.get("bdi"), "bdi"),
        company_name=data.get("company_name"),
        location=data.get("location"),
        reference_date=data.get("reference_date"),
        items=parsed,
    )
    return ok(data=service.project_overview(project.id), status_code=201, clamped=clamped)


@projects_bp.get("/<int:project_id>")
def get_project(project_id: int):
    return ok(data=service.project_overview(project_id))


@projects_bp.patch("/<int:project_id>")
def update_project(project_id: int):
    changes = _json_body()
    if "bdi" in changes:
        changes["bdi"] = _parse_decimal(changes["bdi"], "bdi", required=True)
    service.update_project(project_id, changes)
    return ok(data=service.project_overview(project_id))


@projects_bp.delete("/<int:project_id>")
def delete_project(project_id: int):
    service.delete_project(project_id)
    return ok(message="Project deleted")


@projects_bp.get("/<int:project_id>/tree")
def project_tree(project_id: int):
    """?expanded=all (default), ?expanded=id1,id2 (only those open) or ?expanded= (all collapsed)."""
    raw = request.args.get("expanded")
    if raw is None or raw.strip() == "all":
        expanded = None
    else:
        expanded = [part.strip() for part in raw.split(",") if part.strip()]
    return ok(data=service.project_tree(project_id, expanded))


# ---------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------
@projects_bp.post("/<int:project_id>/items")
def add_item(project_id: int):
    data = _json_body()
    item = service.add_item(
        project_id,
        name=(data.get("name") or "").strip(),
        type=data.get("type") or "item",
        parent_id=data.get("parent_id") or None,
        item_id=data.get("id") or None,
        unit=data.get("unit") or "un",
        code=data.get("code"),
        source=data.get("source"),
        contract_quantity=_parse_decimal(data.get("contract_quantity"), "contract_quantity"),
        unit_price=_parse_decimal(data.get("unit_price"), "unit_price"),
        unit_price_no_bdi=_parse_decimal(data.get("unit_price_no_bdi"), "unit_price_no_bdi"),
    )
    return ok(data=item.to_dict(), status_code=201)


@projects_bp.put("/<int:project_id>/items")
def replace_items(project_id: int):
    data = request.get_json(silent=True)
    raw_items = data.get("items") if isinstance(data, dict) else data
    if not isinstance(raw_items, list):
        raise ValidationError("Expected a list of items")
    parsed = [_parse_item(raw) for raw in raw_items]
    _, clamped = clamp_items(parsed)
    items = service.replace_items(project_id, parsed)
    return ok(data=_items_payload(items), clamped=clamped)


@projects_bp.patch("/<int:project_id>/items/<item_id>")
def edit_item(project_id: int, item_id: str):
    changes = _json_body()
    for name in NUMERIC_FIELDS:
        if name in changes:
            changes[name] = _parse_decimal(changes[name], name, required=True)
    return ok(data=_edit_payload(service.edit_item(project_id, item_id, changes)))


@projects_bp.delete("/<int:project_id>/items/<item_id>")
def delete_item(project_id: int, item_id: str):
    removed = service.delete_item(project_id, item_id)
    return ok(data={"removed": removed})


@projects_bp.post("/<int:project_id>/items/<item_id>/quantity")
def set_quantity(project_id: int, item_id: str):
    value = _parse_decimal(_json_body().get("quantity"), "quantity", required=True)
    return ok(data=_edit_payload(service.set_item_quantity(project_id, item_id, value)))


@projects_bp.post("/<int:project_id>/items/<item_id>/percentage")
def set_percentage(project_id: int, item_id: str):
    value = _parse_decimal(_json_body().get("percentage"), "percentage", required=True)
    return ok(data=_edit_payload(service.set_item_percentage(project_id, item_id, value)))


@projects_bp.post("/<int:project_id>/items/<item_id>/total")
def set_total(project_id: int, item_id: str):
    value = _parse_decimal(_json_body().get("total"), "total", required=True)
    return ok(data=_edit_payload(service.set_item_total(project_id, item_id, value)))


@projects_bp.post("/<int:project_id>/items/<item_id>/current-total")
def set_current_total(project_id: int, item_id: str):
    value = _parse_decimal(_json_body().get("total"), "total", required=True)
    return ok(data=_edit_payload(service.set_item_current_total(project_id, item_id, value)))


@projects_bp.post("/<int:project_id>/items/<item_id>/move")
def move_item(project_id: int, item_id: str):
    direction = _json_body().get("direction")
    if not direction:
        raise ValidationError("'direction' is required (up or down)")
    return ok(data=_items_payload(service.move_item(project_id, item_id, direction)))


@projects_bp.post("/<int:project_id>/reorder")
def reorder(project_id: int):
    data = _json_body()
    source_id = data.get("source_id")
    target_id = data.get("target_id")
    position = data.get("position")
    if not source_id or not target_id or not position:
        raise ValidationError("'source_id', 'target_id' and 'position' are required")
    return ok(data=_items_payload(service.reorder(project_id, str(source_id), str(target_id), position)))


@projects_bp.post("/<int:project_id>/recalculate")
def recalculate(project_id: int):
    return ok(data=_items_payload(service.recalculate(project_id)))


@projects_bp.put("/<int:project_id>/overrides")
def set_overrides(project_id: int):
    data = _json_body()
    service.set_overrides(
        project_id,
        contract_total=_parse_decimal(data.get("contract_total"), "contract_total"),
        current_total=_parse_decimal(data.get("current_total"), "current_total"),
    )
    return ok(data=service.project_overview(project_id))


@projects_bp.delete("/<int:project_id>/overrides")
def clear_overrides(project_id: int):
    service.clear_overrides(project_id)
    return ok(data=service.project_overview(project_id))


# ---------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------
@projects_bp.get("/<int:project_id>/measurements")
def list_measurements(project_id: int):
    return ok(data=service.list_measurements(project_id))


@projects_bp.get("/<int:project_id>/measurements/<int:number>")
def get_measurement(project_id: int, number: int):
    return ok(data=service.get_measurement(project_id, number).to_dict())


@projects_bp.post("/<int:project_id>/measurements/close")
def close_measurement(project_id: int):
    snapshot = service.close_period(project_id)
    return ok(
        data={"snapshot": snapshot.to_dict(), "project": service.project_overview(project_id)},
        status_code=201,
    )


@projects_bp.post("/<int:project_id>/measurements/<int:number>/reopen")
def reopen_measurement(project_id: int, number: int):
    service.reopen_period(project_id, number)
    return ok(data=service.project_overview(project_id))
