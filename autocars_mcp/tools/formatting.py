"""Shared response helpers for tool implementations."""

from __future__ import annotations

import json
from typing import Any

from autocars_mcp.app import AppContext
from autocars_mcp.constants import ROLE_ADMIN


def json_response(tool_name: str, data: Any) -> str:
    payload = {
        "_raw": True,
        "_tool": tool_name,
        "_meta": {"schema_version": 1},
        "data": data,
    }
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def format_brl(value: float) -> str:
    """Format ``value`` as Brazilian reais, e.g. ``R$ 12.345,60``."""
    text = f"{value:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def session_error(app: AppContext) -> str | None:
    if app.session is None:
        return "Error: no active session. Log in first."
    return None


def admin_error(app: AppContext) -> str | None:
    error = session_error(app)
    if error:
        return error
    assert app.session is not None
    if app.session.role != ROLE_ADMIN:
        return "Error: this operation requires an administrator account."
    return None
