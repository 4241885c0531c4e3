"""Uniform success/error wrapper for tool results."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from mcp.types import CallToolResult, TextContent

from ltm_gateway.core.errors import GatewayError


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)


def success(payload: Optional[Dict[str, Any]] = None) -> CallToolResult:
    body: Dict[str, Any] = {"success": True}
    if payload:
        body.update({k: v for k, v in payload.items() if k != "success"})
    return CallToolResult(content=[TextContent(type="text", text=_dumps(body))], isError=False)


def failure(error: GatewayError) -> CallToolResult:
    body = {"success": False, "error": error.message, "code": error.code}
    return CallToolResult(content=[TextContent(type="text", text=_dumps(body))], isError=True)
