"""
promeasure/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store the caller identity sent in the X-Actor header (free text).
- Store IP address for traceability.

IMPORTANT:
- This helper ADDS AuditLog entries to the current SQLAlchemy session.
  The calling service controls transaction boundaries (commit/rollback).
- Outside a request (CLI seed, tests calling services directly) actor and IP are None.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog

ACTOR_HEADER = "X-Actor"


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string representation suitable for JSON and DB storage.

    - For Decimal/datetime/etc: str(value) is typically safe.
    - For None: return None.
    """
    if value is None:
        return None
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return _safe_str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships, not JSON history blobs).
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.name)
        if isinstance(value, (list, dict)):
            continue
        data[column.name] = _safe_str(value)
    return data


def current_actor() -> Optional[str]:
    if not has_request_context():
        return None
    actor = (request.headers.get(ACTOR_HEADER) or "").strip()
    return actor[:150] or None


def log_action(
    *,
    entity_type: str,
    entity_id: Any,
    action: str,
    project_id: Optional[int] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity_type: "Project", "WorkItem", "Measurement"...
        entity_id: project id, item uid or measurement number
        action: CREATE / UPDATE / DELETE / MOVE / CLOSE / REOPEN / RECALCULATE
        before/after: dict snapshots (optional)

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix to capture the real client IP.
    """
    if entity_id is None:
        raise ValueError("log_action requires an entity_id (flush new rows first).")

    entry = AuditLog(
        project_id=project_id,
        actor=current_actor(),
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False, default=_json_default) if before else None,
        after_data=json.dumps(after, ensure_ascii=False, default=_json_default) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
