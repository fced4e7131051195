"""
ProMeasure – persistence models

Storage for the WBS engine:
- Project (bdi, open measurement number, reference date, grand-total overrides)
- WorkItemRecord (one row per WBS node, source + last computed derived fields)
- MeasurementSnapshotRecord (frozen history of closed periods, JSON columns)
- AuditLog (who changed what, before/after)

IMPORTANT:
- The engine works on promeasure.wbs value objects. Models only convert to/from
  them (to_state / to_node / to_snapshot); no business rule lives here.
- Snapshot rows are written once and never updated.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from .extensions import db
from .wbs.financial import to_decimal
from .wbs.nodes import (
    NUMERIC_FIELDS,
    MeasurementSnapshot,
    MeasurementTotals,
    PeriodCarry,
    ProjectState,
    WorkItem,
)


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    company_name = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    # Stored as percent (e.g. 25.00 means 25%)
    bdi = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("0.00"))

    # Number of the currently open (unclosed) measurement
    measurement_number = db.Column(db.Integer, nullable=False, default=1)
    reference_date = db.Column(db.String(10), nullable=True)

    # Manual footer adjustments (display only)
    contract_total_override = db.Column(db.Numeric(14, 2), nullable=True)
    current_total_override = db.Column(db.Numeric(14, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "WorkItemRecord",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="WorkItemRecord.id",
    )

    snapshots = db.relationship(
        "MeasurementSnapshotRecord",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="MeasurementSnapshotRecord.measurement_number.desc()",
    )

    def to_state(self) -> ProjectState:
        """Engine view of this project (history most recent first)."""
        return ProjectState(
            items=tuple(rec.to_node() for rec in self.items),
            bdi=to_decimal(self.bdi),
            measurement_number=self.measurement_number or 1,
            reference_date=self.reference_date,
            history=tuple(
                rec.to_snapshot()
                for rec in sorted(self.snapshots, key=lambda r: r.measurement_number, reverse=True)
            ),
            contract_total_override=self.contract_total_override,
            current_total_override=self.current_total_override,
        )

    def apply_state(self, state: ProjectState) -> None:
        """
        Mirror an engine state onto this row and its children.

        Items are matched by uid (update in place, insert new, delete missing).
        Snapshots are only ever added or removed, never rewritten.
        """
        self.bdi = state.bdi
        self.measurement_number = state.measurement_number
        self.reference_date = state.reference_date
        self.contract_total_override = state.contract_total_override
        self.current_total_override = state.current_total_override

        records = {rec.uid: rec for rec in self.items}
        wanted = {node.id for node in state.items}
        for uid, rec in records.items():
            if uid not in wanted:
                self.items.remove(rec)
        for node in state.items:
            rec = records.get(node.id)
            if rec is None:
                rec = WorkItemRecord()
                self.items.append(rec)
            rec.update_from_node(node)

        kept = {snap.measurement_number for snap in state.history}
        existing = {rec.measurement_number: rec for rec in self.snapshots}
        for number, rec in existing.items():
            if number not in kept:
                self.snapshots.remove(rec)
        for snap in state.history:
            if snap.measurement_number not in existing:
                self.snapshots.append(MeasurementSnapshotRecord.from_snapshot(snap))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company_name": self.company_name,
            "location": self.location,
            "bdi": str(to_decimal(self.bdi)),
            "measurement_number": self.measurement_number,
            "reference_date": self.reference_date,
            "contract_total_override": (
                str(self.contract_total_override) if self.contract_total_override is not None else None
            ),
            "current_total_override": (
                str(self.current_total_override) if self.current_total_override is not None else None
            ),
        }

    def __repr__(self):
        return f"<Project {self.name}>"


# ---------------------------------------------------------------------
# WBS nodes
# ---------------------------------------------------------------------
class WorkItemRecord(db.Model):
    __tablename__ = "work_items"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Engine-facing identifier (uuid or importer key); unique per project
    uid = db.Column(db.String(64), nullable=False)
    # Not a FK: bulk imports may arrive children-first
    parent_uid = db.Column(db.String(64), nullable=True, index=True)

    item_type = db.Column(db.String(20), nullable=False, default="item")
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(255), nullable=False, default="")
    unit = db.Column(db.String(20), nullable=False, default="un")
    code = db.Column(db.String(50), nullable=True)
    source = db.Column(db.String(50), nullable=True)
    wbs = db.Column(db.String(64), nullable=True)

    contract_quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    unit_price_no_bdi = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    contract_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    previous_quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    previous_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    previous_percentage = db.Column(db.Numeric(9, 2), nullable=False, default=0)

    current_quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    current_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    current_percentage = db.Column(db.Numeric(9, 2), nullable=False, default=0)

    accumulated_quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    accumulated_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    accumulated_percentage = db.Column(db.Numeric(9, 2), nullable=False, default=0)

    balance_quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    balance_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="items")

    __table_args__ = (db.UniqueConstraint("project_id", "uid", name="uq_work_item_project_uid"),)

    _NUMERIC = NUMERIC_FIELDS

    def to_node(self) -> WorkItem:
        return WorkItem(
            id=self.uid,
            parent_id=self.parent_uid,
            type=self.item_type or "item",
            order=self.sort_order or 0,
            name=self.name or "",
            unit=self.unit or "un",
            code=self.code,
            source=self.source,
            wbs=self.wbs or "",
            **{name: getattr(self, name) for name in self._NUMERIC},
        )

    def update_from_node(self, node: WorkItem) -> None:
        self.uid = node.id
        self.parent_uid = node.parent_id
        self.item_type = node.type.value
        self.sort_order = node.order
        self.name = node.name
        self.unit = node.unit
        self.code = node.code
        self.source = node.source
        self.wbs = node.wbs
        for name in self._NUMERIC:
            setattr(self, name, getattr(node, name))

    def __repr__(self):
        return f"<WorkItemRecord {self.uid} {self.name}>"


# ---------------------------------------------------------------------
# Measurement history
# ---------------------------------------------------------------------
class MeasurementSnapshotRecord(db.Model):
    __tablename__ = "measurement_snapshots"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    measurement_number = db.Column(db.Integer, nullable=False)
    date = db.Column(db.String(10), nullable=False)

    items_snapshot = db.Column(db.JSON, nullable=False, default=list)
    totals = db.Column(db.JSON, nullable=False, default=dict)
    carried = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    project = db.relationship("Project", back_populates="snapshots")

    __table_args__ = (
        db.UniqueConstraint("project_id", "measurement_number", name="uq_snapshot_project_number"),
    )

    @classmethod
    def from_snapshot(cls, snapshot: MeasurementSnapshot) -> "MeasurementSnapshotRecord":
        data = snapshot.to_dict()
        return cls(
            measurement_number=snapshot.measurement_number,
            date=snapshot.date,
            items_snapshot=data["items"],
            totals=data["totals"],
            carried=data["carried"],
        )

    def to_snapshot(self) -> MeasurementSnapshot:
        return MeasurementSnapshot(
            measurement_number=self.measurement_number,
            date=self.date,
            items=tuple(WorkItem.from_dict(i) for i in self.items_snapshot or ()),
            totals=MeasurementTotals.from_dict(self.totals),
            carried=tuple(PeriodCarry.from_dict(c) for c in self.carried or ()),
        )


class AuditLog(db.Model):
    """Audit trail of engine mutations."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(db.Integer, nullable=True, index=True)

    # Free-text caller identity (X-Actor header); no login in this service
    actor = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=False, index=True)

    action = db.Column(db.String(40), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
