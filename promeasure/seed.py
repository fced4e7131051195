"""
promeasure/seed.py

Seed a demo project.

Rules:
- Safe to run multiple times (idempotent): the project is matched by name and
  left untouched if it already exists.
- Goes through the project service, so the seeded rows carry computed wbs codes
  and totals exactly like API-created ones.
"""

from __future__ import annotations

from decimal import Decimal

from .models import Project
from .services import projects as service
from .wbs import WorkItem

DEMO_PROJECT_NAME = "Demo – Residential Block A"
DEMO_BDI = Decimal("10.00")

DEMO_ITEMS = [
    # id, parent, type, order, name, unit, contract_quantity, unit_price_no_bdi
    ("foundations", None, "category", 0, "Foundations", "un", "0", "0"),
    ("excavation", "foundations", "item", 0, "Trench excavation", "m3", "100", "10.00"),
    ("footings", "foundations", "item", 1, "Concrete footings", "m3", "40", "350.00"),
    ("structure", None, "category", 1, "Structure", "un", "0", "0"),
    ("columns", "structure", "item", 0, "Reinforced concrete columns", "m3", "25", "1200.00"),
    ("slabs", "structure", "item", 1, "Precast slabs", "m2", "320", "85.50"),
]


def demo_items() -> list[WorkItem]:
    return [
        WorkItem(
            id=item_id,
            parent_id=parent,
            type=kind,
            order=order,
            name=name,
            unit=unit,
            contract_quantity=quantity,
            unit_price_no_bdi=price,
        )
        for item_id, parent, kind, order, name, unit, quantity, price in DEMO_ITEMS
    ]


def seed_demo_project() -> Project:
    """Create the demo project if it does not exist yet."""
    existing = Project.query.filter_by(name=DEMO_PROJECT_NAME).first()
    if existing:
        return existing

    return service.create_project(
        name=DEMO_PROJECT_NAME,
        bdi=DEMO_BDI,
        company_name="Demo Construction Co.",
        location="Lot 12",
        items=demo_items(),
    )
