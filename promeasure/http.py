"""
promeasure/http.py

JSON response envelope shared by every API route:
    {"status": "success", "data": ...}
    {"status": "error", "message": ..., "error": {"message": ..., "code": ...}}
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import jsonify

from .wbs.errors import WbsError


def ok(*, data: Any = None, message: Optional[str] = None, status_code: int = 200, **extra: Any):
    payload: Dict[str, Any] = {"status": "success"}
    if message is not None:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    return jsonify(payload), status_code


def error(*, message: str, status_code: int = 500, code: Optional[str] = None, **extra: Any):
    body: Dict[str, Any] = {"message": message}
    if code is not None:
        body["code"] = code
    payload: Dict[str, Any] = {"status": "error", "message": message, "error": body}
    payload.update(extra)
    return jsonify(payload), status_code


def error_from(exc: WbsError, status_code: int):
    """Envelope for an engine/service error; the caller picks the HTTP status."""
    return error(message=exc.message, status_code=status_code, code=exc.code)
