"""
promeasure/wbs/errors.py

Error taxonomy of the WBS engine.

Each error carries a short machine `code`. Mapping errors to a transport
(HTTP status, CLI exit code) is left to the caller.
"""

from __future__ import annotations


class WbsError(Exception):
    """Base class for every engine error."""

    code = "wbs_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(WbsError):
    """Malformed input (unknown field, bad number, wrong node kind)."""

    code = "validation_error"


class ItemNotFoundError(WbsError):
    code = "item_not_found"

    def __init__(self, item_id: str):
        super().__init__(f"Work item '{item_id}' not found")
        self.item_id = item_id


# ---------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------
class StructuralError(WbsError):
    """The requested hierarchy would not be a forest."""

    code = "structural_error"


class CyclicHierarchyError(StructuralError):
    """Self-parenting or a circular parent chain in the input items."""

    code = "cyclic_hierarchy"

    def __init__(self, item_ids):
        self.item_ids = tuple(sorted(item_ids))
        super().__init__(f"Circular parent chain between items: {', '.join(self.item_ids)}")


class CyclicMoveError(StructuralError):
    """Moving a node onto itself or into its own subtree."""

    code = "cyclic_move"

    def __init__(self, source_id: str, target_id: str):
        super().__init__(f"Cannot move '{source_id}' into its own subtree ('{target_id}')")
        self.source_id = source_id
        self.target_id = target_id


# ---------------------------------------------------------------------
# Measurement lifecycle
# ---------------------------------------------------------------------
class SnapshotReopenError(WbsError):
    """Only the most recently closed measurement may be reopened."""

    code = "snapshot_reopen"


class NoMeasurementHistoryError(SnapshotReopenError):
    code = "no_measurement_history"

    def __init__(self):
        super().__init__("There is no closed measurement to reopen")


class MeasurementConflictError(WbsError):
    code = "measurement_conflict"


class SnapshotNotFoundError(WbsError):
    code = "snapshot_not_found"

    def __init__(self, measurement_number: int):
        super().__init__(f"Measurement {measurement_number} has no snapshot")
        self.measurement_number = measurement_number


class ClampedValueWarning(UserWarning):
    """An edit was accepted but clamped into the valid range."""
