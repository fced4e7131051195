"""
promeasure/wbs/nodes.py

Value objects of the WBS engine.

All records are frozen dataclasses: edits go through dataclasses.replace(), so a
tuple of WorkItems handed to a MeasurementSnapshot can never change afterwards.

Numeric fields are always Decimal. __post_init__ coerces int/float/str input so
callers (API, importers, tests) can pass plain numbers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .financial import ZERO, to_decimal


class ItemType(str, Enum):
    CATEGORY = "category"
    ITEM = "item"


# Fields a caller owns; everything else on a WorkItem is recomputed by the processor.
SOURCE_NUMERIC_FIELDS = (
    "contract_quantity",
    "unit_price",
    "unit_price_no_bdi",
    "previous_quantity",
    "current_quantity",
    "current_percentage",
)

DERIVED_NUMERIC_FIELDS = (
    "contract_total",
    "previous_total",
    "previous_percentage",
    "current_total",
    "accumulated_quantity",
    "accumulated_total",
    "accumulated_percentage",
    "balance_quantity",
    "balance_total",
)

NUMERIC_FIELDS = SOURCE_NUMERIC_FIELDS + DERIVED_NUMERIC_FIELDS


@dataclass(frozen=True)
class WorkItem:
    """A WBS node: either a grouping category or a measurable item."""

    id: str
    parent_id: Optional[str] = None
    type: ItemType = ItemType.ITEM
    order: int = 0
    name: str = ""
    unit: str = "un"
    code: Optional[str] = None
    source: Optional[str] = None
    wbs: str = ""

    contract_quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    unit_price_no_bdi: Decimal = ZERO
    contract_total: Decimal = ZERO

    previous_quantity: Decimal = ZERO
    previous_total: Decimal = ZERO
    previous_percentage: Decimal = ZERO

    current_quantity: Decimal = ZERO
    current_total: Decimal = ZERO
    current_percentage: Decimal = ZERO

    accumulated_quantity: Decimal = ZERO
    accumulated_total: Decimal = ZERO
    accumulated_percentage: Decimal = ZERO

    balance_quantity: Decimal = ZERO
    balance_total: Decimal = ZERO

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "type", ItemType(self.type))
        object.__setattr__(self, "order", int(self.order))
        if self.parent_id in ("", None):
            object.__setattr__(self, "parent_id", None)
        else:
            object.__setattr__(self, "parent_id", str(self.parent_id))
        for name in NUMERIC_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def is_category(self) -> bool:
        return self.type is ItemType.CATEGORY

    @property
    def is_leaf(self) -> bool:
        return self.type is ItemType.ITEM

    def with_changes(self, **changes: Any) -> "WorkItem":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict (Decimal -> str, enum -> value)."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, ItemType):
                value = value.value
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        """Build from a dict, ignoring keys that are not WorkItem fields (depth, children...)."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class TreeNode:
    item: WorkItem
    children: Tuple["TreeNode", ...] = ()

    @property
    def id(self) -> str:
        return self.item.id


@dataclass(frozen=True)
class FlatNode:
    """One visible row of a flattened tree."""

    item: WorkItem
    depth: int
    has_children: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data["depth"] = self.depth
        data["has_children"] = self.has_children
        return data


# ---------------------------------------------------------------------
# Measurement records
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class MeasurementTotals:
    contract: Decimal = ZERO
    period: Decimal = ZERO
    accumulated: Decimal = ZERO
    progress: Decimal = ZERO

    def __post_init__(self):
        for name in ("contract", "period", "accumulated", "progress"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def to_dict(self) -> Dict[str, str]:
        return {
            "contract": str(self.contract),
            "period": str(self.period),
            "accumulated": str(self.accumulated),
            "progress": str(self.progress),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MeasurementTotals":
        data = data or {}
        return cls(
            contract=data.get("contract"),
            period=data.get("period"),
            accumulated=data.get("accumulated"),
            progress=data.get("progress"),
        )


@dataclass(frozen=True)
class PeriodCarry:
    """What a period close moved from current_* into previous_* for one leaf."""

    item_id: str
    quantity: Decimal = ZERO
    total: Decimal = ZERO
    percentage: Decimal = ZERO

    def __post_init__(self):
        for name in ("quantity", "total", "percentage"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def to_dict(self) -> Dict[str, str]:
        return {
            "item_id": self.item_id,
            "quantity": str(self.quantity),
            "total": str(self.total),
            "percentage": str(self.percentage),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PeriodCarry":
        return cls(
            item_id=str(data["item_id"]),
            quantity=data.get("quantity"),
            total=data.get("total"),
            percentage=data.get("percentage"),
        )


@dataclass(frozen=True)
class MeasurementSnapshot:
    """
    Frozen record of a closed billing period.

    items: processed tree, flattened in pre-order (all nodes expanded).
    carried: per-leaf contributions rolled into previous_* on close.
    """

    measurement_number: int
    date: str
    items: Tuple[WorkItem, ...] = ()
    totals: MeasurementTotals = field(default_factory=MeasurementTotals)
    carried: Tuple[PeriodCarry, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "measurement_number", int(self.measurement_number))
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "carried", tuple(self.carried))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measurement_number": self.measurement_number,
            "date": self.date,
            "items": [item.to_dict() for item in self.items],
            "totals": self.totals.to_dict(),
            "carried": [carry.to_dict() for carry in self.carried],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeasurementSnapshot":
        return cls(
            measurement_number=data["measurement_number"],
            date=data.get("date") or "",
            items=tuple(WorkItem.from_dict(i) for i in data.get("items") or ()),
            totals=MeasurementTotals.from_dict(data.get("totals")),
            carried=tuple(PeriodCarry.from_dict(c) for c in data.get("carried") or ()),
        )


@dataclass(frozen=True)
class ProjectState:
    """
    The slice of a project the engine works on.

    history is ordered most recent first.
    """

    items: Tuple[WorkItem, ...] = ()
    bdi: Decimal = ZERO
    measurement_number: int = 1
    reference_date: Optional[str] = None
    history: Tuple[MeasurementSnapshot, ...] = ()
    contract_total_override: Optional[Decimal] = None
    current_total_override: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "history", tuple(self.history))
        object.__setattr__(self, "bdi", to_decimal(self.bdi))
        object.__setattr__(self, "measurement_number", int(self.measurement_number))
        for name in ("contract_total_override", "current_total_override"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value))

    @property
    def latest_snapshot(self) -> Optional[MeasurementSnapshot]:
        return self.history[0] if self.history else None
