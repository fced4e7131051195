from __future__ import annotations

from decimal import Decimal

import pytest

from promeasure import create_app
from promeasure.extensions import db
from promeasure.wbs import WorkItem


@pytest.fixture()
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def category(item_id: str, parent_id: str | None = None, order: int = 0, name: str | None = None) -> WorkItem:
    return WorkItem(id=item_id, parent_id=parent_id, type="category", order=order, name=name or item_id)


def leaf(
    item_id: str,
    parent_id: str | None = None,
    order: int = 0,
    *,
    contract: str = "0",
    price: str = "0",
    previous: str = "0",
    current: str = "0",
    name: str | None = None,
) -> WorkItem:
    return WorkItem(
        id=item_id,
        parent_id=parent_id,
        type="item",
        order=order,
        name=name or item_id,
        contract_quantity=Decimal(contract),
        unit_price_no_bdi=Decimal(price),
        previous_quantity=Decimal(previous),
        current_quantity=Decimal(current),
    )


def by_id(items) -> dict:
    return {item.id: item for item in items}
