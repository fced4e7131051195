from __future__ import annotations

from decimal import Decimal

import pytest

from promeasure import error_status
from promeasure.models import AuditLog, MeasurementSnapshotRecord, WorkItemRecord
from promeasure.services.projects import ProjectNotFoundError
from promeasure.wbs import CyclicMoveError, ItemNotFoundError, NoMeasurementHistoryError, ValidationError

FOUNDATIONS = [
    {"id": "F", "type": "category", "name": "Foundations", "order": 0},
    {
        "id": "exc",
        "parent_id": "F",
        "type": "item",
        "name": "Trench excavation",
        "unit": "m3",
        "order": 0,
        "contract_quantity": "100",
        "unit_price_no_bdi": "10",
    },
]


def _create(client, **overrides):
    payload = {"name": "Block A", "bdi": "10", "items": FOUNDATIONS}
    payload.update(overrides)
    resp = client.post("/api/projects", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def _rows(client, project_id, query=""):
    resp = client.get(f"/api/projects/{project_id}/tree{query}")
    assert resp.status_code == 200
    return {row["id"]: row for row in resp.get_json()["data"]["rows"]}


def test_index(client):
    resp = client.get("/")
    assert resp.get_json()["data"]["name"] == "ProMeasure"


def test_create_and_get_project(client):
    project = _create(client)
    assert project["measurement_number"] == 1
    assert Decimal(project["summary"]["stats"]["contract"]) == Decimal("1100.00")

    resp = client.get(f"/api/projects/{project['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["item_count"] == 2


def test_create_requires_name(client):
    resp = client.post("/api/projects", json={"name": "  "})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"


def test_create_with_cyclic_items_is_rejected(client):
    items = [
        {"id": "A", "parent_id": "B", "type": "category"},
        {"id": "B", "parent_id": "A", "type": "category"},
    ]
    resp = client.post("/api/projects", json={"name": "Loop", "items": items})
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "cyclic_hierarchy"


def test_unknown_project(client):
    resp = client.get("/api/projects/999")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "project_not_found"


def test_tree_rows_are_processed(client):
    project = _create(client)
    rows = _rows(client, project["id"])
    assert list(rows) == ["F", "exc"]
    assert rows["exc"]["wbs"] == "1.1"
    assert rows["exc"]["depth"] == 1
    assert Decimal(rows["exc"]["unit_price"]) == Decimal("11")
    assert rows["F"]["has_children"] is True

    collapsed = _rows(client, project["id"], "?expanded=")
    assert list(collapsed) == ["F"]


def test_measure_close_and_reopen(client):
    project = _create(client)
    pid = project["id"]

    resp = client.post(f"/api/projects/{pid}/items/exc/quantity", json={"quantity": 50})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["clamped"] is False
    assert Decimal(resp.get_json()["data"]["item"]["current_total"]) == Decimal("550")

    resp = client.post(f"/api/projects/{pid}/measurements/close")
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert Decimal(data["snapshot"]["totals"]["period"]) == Decimal("550")
    assert data["project"]["measurement_number"] == 2

    rows = _rows(client, pid)
    assert Decimal(rows["exc"]["previous_quantity"]) == Decimal("50")
    assert Decimal(rows["exc"]["current_quantity"]) == Decimal("0")

    history = client.get(f"/api/projects/{pid}/measurements").get_json()["data"]
    assert [h["measurement_number"] for h in history] == [1]

    snap = client.get(f"/api/projects/{pid}/measurements/1").get_json()["data"]
    assert [item["id"] for item in snap["items"]] == ["F", "exc"]

    resp = client.post(f"/api/projects/{pid}/measurements/1/reopen")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["measurement_number"] == 1

    rows = _rows(client, pid)
    assert Decimal(rows["exc"]["previous_quantity"]) == Decimal("0")
    assert Decimal(rows["exc"]["current_quantity"]) == Decimal("50")
    assert MeasurementSnapshotRecord.query.count() == 0

    resp = client.post(f"/api/projects/{pid}/measurements/1/reopen")
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "no_measurement_history"


def test_reopen_of_older_measurement_is_rejected(client):
    pid = _create(client)["id"]
    client.post(f"/api/projects/{pid}/measurements/close")
    client.post(f"/api/projects/{pid}/measurements/close")

    resp = client.post(f"/api/projects/{pid}/measurements/1/reopen")
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "snapshot_reopen"

    resp = client.get(f"/api/projects/{pid}/measurements/5")
    assert resp.status_code == 404


def test_clamped_percentage(client):
    pid = _create(client)["id"]
    resp = client.post(f"/api/projects/{pid}/items/exc/percentage", json={"percentage": "150"})
    data = resp.get_json()["data"]
    assert data["clamped"] is True
    assert Decimal(data["item"]["current_quantity"]) == Decimal("100")


def test_bad_number_is_a_validation_error(client):
    pid = _create(client)["id"]
    resp = client.post(f"/api/projects/{pid}/items/exc/quantity", json={"quantity": "many"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"

    resp = client.post(f"/api/projects/{pid}/items/exc/quantity", json={})
    assert resp.status_code == 400


def test_locale_numbers_are_accepted(client):
    pid = _create(client)["id"]
    resp = client.post(f"/api/projects/{pid}/items/exc/total", json={"total": "1.650,00"})
    item = resp.get_json()["data"]["item"]
    assert Decimal(item["unit_price_no_bdi"]) == Decimal("15")
    assert Decimal(item["unit_price"]) == Decimal("16.50")


def test_add_patch_and_delete_items(client):
    pid = _create(client)["id"]

    resp = client.post(
        f"/api/projects/{pid}/items",
        json={"id": "ftg", "name": "Footings", "parent_id": "F", "contract_quantity": "40", "unit_price_no_bdi": "350"},
    )
    assert resp.status_code == 201
    assert resp.get_json()["data"]["wbs"] == "1.2"
    assert resp.get_json()["data"]["order"] == 1

    resp = client.patch(f"/api/projects/{pid}/items/ftg", json={"name": "Concrete footings"})
    assert resp.get_json()["data"]["item"]["name"] == "Concrete footings"

    resp = client.patch(f"/api/projects/{pid}/items/ftg", json={"wbs": "9"})
    assert resp.status_code == 400

    resp = client.delete(f"/api/projects/{pid}/items/F")
    assert sorted(resp.get_json()["data"]["removed"]) == ["F", "exc", "ftg"]
    assert WorkItemRecord.query.count() == 0

    resp = client.delete(f"/api/projects/{pid}/items/F")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "item_not_found"


def test_bulk_replace_items(client):
    pid = _create(client)["id"]
    items = [
        {"id": "S", "type": "category", "name": "Structure"},
        {"id": "col", "parent_id": "S", "name": "Columns", "contract_quantity": 25, "unit_price_no_bdi": 1200},
    ]
    resp = client.put(f"/api/projects/{pid}/items", json={"items": items})
    assert resp.status_code == 200
    assert [it["id"] for it in resp.get_json()["data"]] == ["S", "col"]
    assert resp.get_json()["clamped"] is False
    assert set(_rows(client, pid)) == {"S", "col"}

    resp = client.put(f"/api/projects/{pid}/items", json={"items": [{"name": "no id"}]})
    assert resp.status_code == 400
    assert set(_rows(client, pid)) == {"S", "col"}


def test_import_clamps_overmeasured_leaves(client):
    overmeasured = [dict(FOUNDATIONS[0]), dict(FOUNDATIONS[1], current_quantity="500")]
    resp = client.post("/api/projects", json={"name": "Block B", "bdi": "10", "items": overmeasured})
    assert resp.status_code == 201
    assert resp.get_json()["clamped"] is True
    pid = resp.get_json()["data"]["id"]
    assert Decimal(_rows(client, pid)["exc"]["current_quantity"]) == Decimal("100")

    overmeasured[1]["previous_quantity"] = "150"
    resp = client.put(f"/api/projects/{pid}/items", json={"items": overmeasured})
    assert resp.status_code == 200
    assert resp.get_json()["clamped"] is True
    row = _rows(client, pid)["exc"]
    assert Decimal(row["previous_quantity"]) == Decimal("100")
    assert Decimal(row["current_quantity"]) == Decimal("0")


def test_reorder_and_move(client):
    items = FOUNDATIONS + [
        {"id": "S", "type": "category", "name": "Structure", "order": 1},
        {"id": "col", "parent_id": "S", "name": "Columns", "order": 0},
    ]
    pid = _create(client, items=items)["id"]

    resp = client.post(
        f"/api/projects/{pid}/reorder", json={"source_id": "exc", "target_id": "col", "position": "before"}
    )
    assert resp.status_code == 200
    rows = _rows(client, pid)
    assert rows["exc"]["parent_id"] == "S"
    assert rows["exc"]["wbs"] == "2.1"
    assert rows["col"]["wbs"] == "2.2"

    resp = client.post(f"/api/projects/{pid}/items/col/move", json={"direction": "up"})
    assert resp.status_code == 200
    assert _rows(client, pid)["col"]["wbs"] == "2.1"

    resp = client.post(f"/api/projects/{pid}/reorder", json={"source_id": "S", "target_id": "col", "position": "after"})
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "cyclic_move"


def test_overrides_and_recalculate(client):
    pid = _create(client)["id"]

    resp = client.put(f"/api/projects/{pid}/overrides", json={"contract_total": "2000"})
    summary = resp.get_json()["data"]["summary"]
    assert Decimal(summary["contract_total"]) == Decimal("2000")
    assert Decimal(summary["stats"]["contract"]) == Decimal("1100")
    assert summary["has_overrides"] is True

    resp = client.post(f"/api/projects/{pid}/recalculate")
    assert resp.status_code == 200
    overview = client.get(f"/api/projects/{pid}").get_json()["data"]
    assert overview["summary"]["has_overrides"] is False

    client.put(f"/api/projects/{pid}/overrides", json={"current_total": "10"})
    resp = client.delete(f"/api/projects/{pid}/overrides")
    assert resp.get_json()["data"]["current_total_override"] is None


def test_bdi_change_reprices_items(client):
    pid = _create(client)["id"]
    resp = client.patch(f"/api/projects/{pid}", json={"bdi": "25"})
    assert resp.status_code == 200
    assert Decimal(_rows(client, pid)["exc"]["unit_price"]) == Decimal("12.50")

    resp = client.patch(f"/api/projects/{pid}", json={"owner": "me"})
    assert resp.status_code == 400


def test_mutations_are_audited_with_actor(client):
    pid = _create(client)["id"]
    client.post(
        f"/api/projects/{pid}/items/exc/quantity",
        json={"quantity": 5},
        headers={"X-Actor": "site-engineer"},
    )
    entry = AuditLog.query.filter_by(action="MEASURE").one()
    assert entry.actor == "site-engineer"
    assert entry.entity_id == "exc"
    assert entry.project_id == pid


@pytest.mark.parametrize("method", ["get", "post"])
def test_unknown_route(client, method):
    resp = getattr(client, method)("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["status"] == "error"


@pytest.mark.parametrize(
    "exc,status",
    [
        (ValidationError("bad"), 400),
        (NoMeasurementHistoryError(), 409),
        (CyclicMoveError("a", "b"), 409),
        (ItemNotFoundError("x"), 404),
        (ProjectNotFoundError(9), 404),
    ],
)
def test_error_status_mapping(exc, status):
    assert error_status(exc) == status
    assert not hasattr(exc, "status_code")
