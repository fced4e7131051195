from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from promeasure.extensions import db
from promeasure.models import MeasurementSnapshotRecord, Project
from promeasure.seed import DEMO_PROJECT_NAME, seed_demo_project
from promeasure.services import projects as service
from promeasure.wbs import ItemNotFoundError

from conftest import category, leaf


def _foundations(app):
    return service.create_project(
        name="Foundations job",
        bdi=Decimal("10"),
        items=[
            category("F", name="Foundations"),
            leaf("exc", "F", 0, contract="100", price="10", current="50"),
        ],
    )


def test_created_rows_carry_derived_fields(app):
    project = _foundations(app)
    record = next(rec for rec in project.items if rec.uid == "exc")
    assert record.wbs == "1.1"
    assert Decimal(record.unit_price) == Decimal("11")
    assert Decimal(record.current_total) == Decimal("550")


def test_default_bdi_comes_from_config(app):
    app.config["DEFAULT_BDI"] = Decimal("7.5")
    project = service.create_project(name="Defaults")
    assert Decimal(project.bdi) == Decimal("7.5")


def test_close_period_persists_snapshot_and_rollover(app):
    project = _foundations(app)
    snapshot = service.close_period(project.id, today=date(2024, 2, 1))

    assert snapshot.totals.period == Decimal("550.00")
    stored = db.session.get(Project, project.id)
    assert stored.measurement_number == 2
    assert stored.reference_date == "2024-02-01"
    record = next(rec for rec in stored.items if rec.uid == "exc")
    assert Decimal(record.previous_quantity) == Decimal("50")
    assert Decimal(record.previous_total) == Decimal("550")
    assert Decimal(record.current_quantity) == Decimal("0")

    loaded = service.get_measurement(project.id, 1)
    assert loaded.totals == snapshot.totals
    assert [item.id for item in loaded.items] == ["F", "exc"]


def test_failed_close_leaves_nothing_behind(app, monkeypatch):
    project = _foundations(app)

    def _boom(**_kwargs):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(service, "log_action", _boom)
    with pytest.raises(RuntimeError):
        service.close_period(project.id)

    stored = db.session.get(Project, project.id)
    assert stored.measurement_number == 1
    assert MeasurementSnapshotRecord.query.count() == 0
    record = next(rec for rec in stored.items if rec.uid == "exc")
    assert Decimal(record.current_quantity) == Decimal("50")


def test_reopen_restores_rows(app):
    project = _foundations(app)
    service.close_period(project.id, today="2024-02-01")
    service.reopen_period(project.id)

    stored = db.session.get(Project, project.id)
    assert stored.measurement_number == 1
    assert stored.snapshots == []
    record = next(rec for rec in stored.items if rec.uid == "exc")
    assert Decimal(record.current_quantity) == Decimal("50")
    assert Decimal(record.previous_total) == Decimal("0")


def test_failed_edit_rolls_back(app):
    project = _foundations(app)
    with pytest.raises(ItemNotFoundError):
        service.set_item_quantity(project.id, "ghost", 1)
    assert len(db.session.get(Project, project.id).items) == 2


def test_lock_is_per_project():
    assert service._project_lock(1) is service._project_lock(1)
    assert service._project_lock(1) is not service._project_lock(2)


def test_unknown_project(app):
    with pytest.raises(service.ProjectNotFoundError):
        service.project_overview(12345)


def test_delete_project_cascades(app):
    project = _foundations(app)
    service.close_period(project.id)
    service.delete_project(project.id)
    assert Project.query.count() == 0
    assert MeasurementSnapshotRecord.query.count() == 0
    assert project.id not in service._locks


def test_unknown_project_gets_no_lock(app):
    service._locks.pop(12345, None)
    with pytest.raises(service.ProjectNotFoundError):
        service.close_period(12345)
    with pytest.raises(service.ProjectNotFoundError):
        service.reopen_period(12345)
    assert 12345 not in service._locks


def test_create_and_import_clamp_leaf_quantities(app):
    project = service.create_project(
        name="Overmeasured",
        items=[
            category("F"),
            leaf("exc", "F", 0, contract="100", price="10", current="500"),
        ],
    )
    record = next(rec for rec in project.items if rec.uid == "exc")
    assert Decimal(record.current_quantity) == Decimal("100")

    items = service.replace_items(
        project.id,
        [leaf("exc", None, 0, contract="100", price="10", previous="150", current="5")],
    )
    assert items[0].previous_quantity == Decimal("100")
    assert items[0].current_quantity == Decimal("0")


def test_seed_is_idempotent(app):
    first = seed_demo_project()
    second = seed_demo_project()
    assert first.id == second.id
    assert Project.query.filter_by(name=DEMO_PROJECT_NAME).count() == 1

    overview = service.project_overview(first.id)
    assert overview["item_count"] == 6
    assert Decimal(overview["bdi"]) == Decimal("10")
