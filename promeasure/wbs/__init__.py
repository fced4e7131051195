"""
promeasure.wbs

Work-Breakdown-Structure reconciliation engine.

Pure, synchronous functions over frozen value objects. The Flask app and the
persistence service call into this package; nothing here touches the database.
"""

from __future__ import annotations

from .editing import (  # noqa: F401
    EditResult,
    clamp_item,
    clamp_items,
    new_item,
    update_item_current_total,
    update_item_fields,
    update_item_percentage,
    update_item_quantity,
    update_item_total,
)
from .errors import (  # noqa: F401
    ClampedValueWarning,
    CyclicHierarchyError,
    CyclicMoveError,
    ItemNotFoundError,
    MeasurementConflictError,
    NoMeasurementHistoryError,
    SnapshotNotFoundError,
    SnapshotReopenError,
    StructuralError,
    ValidationError,
    WbsError,
)
from .measurement import close_measurement, find_snapshot, reopen_measurement  # noqa: F401
from .nodes import (  # noqa: F401
    FlatNode,
    ItemType,
    MeasurementSnapshot,
    MeasurementTotals,
    PeriodCarry,
    ProjectState,
    TreeNode,
    WorkItem,
)
from .processor import (  # noqa: F401
    ProjectSummary,
    calculate_basic_stats,
    process_items,
    process_tree,
    project_summary,
    refresh_items,
)
from .recalc import force_recalculate, recalculate_project  # noqa: F401
from .reorder import DropPosition, MoveDirection, move_in_siblings, reorder_items  # noqa: F401
from .tree import build_tree, collect_descendants, flatten_tree, remove_item  # noqa: F401
