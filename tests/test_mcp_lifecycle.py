"""MCP server wiring tests: resources, tools and the call-tool request path."""

from __future__ import annotations

import asyncio
import json

import pytest

pytest.importorskip("mcp")

from mcp import types
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

import ltm_gateway.mcp_server as mcp_server
from ltm_gateway.configs.base import GatewayConfig
from ltm_gateway.engine.in_memory import InMemoryEngine


@pytest.fixture
def runtime(monkeypatch):
    rt = mcp_server.GatewayRuntime(GatewayConfig(), engine=InMemoryEngine())
    monkeypatch.setattr(mcp_server, "get_gateway", lambda: rt)
    return rt


def _tool(name, arguments=None):
    result = asyncio.run(mcp_server.call_tool(name, arguments))
    return json.loads(result.content[0].text)


def _status():
    contents = asyncio.run(mcp_server.read_resource(AnyUrl("status://current")))
    assert contents[0].mime_type == "application/json"
    return json.loads(contents[0].content)


def test_start_initializes_engine(runtime):
    asyncio.run(runtime.start())
    assert runtime.engine.persona is not None
    assert runtime.lifecycle.state.phase.value == "initialized"


def test_status_tracks_awaken_and_sleep(runtime):
    assert _status()["awake"] is False
    assert _tool("ltm_awaken")["success"] is True
    assert _status()["awake"] is True
    assert _tool("ltm_sleep")["success"] is True
    assert _status()["awake"] is False


def test_list_tools_and_resources(runtime):
    tools = asyncio.run(mcp_server.list_tools())
    assert len(tools) == 7
    resources = asyncio.run(mcp_server.list_resources())
    assert {str(r.uri) for r in resources} == {"persona://current", "status://current"}
    templates = asyncio.run(mcp_server.list_resource_templates())
    assert len(templates) == 4


def test_read_resource_after_conversation(runtime):
    _tool("ltm_awaken")
    _tool("ltm_record_message", {"role": "user", "content": "urgent: rotate the billing keys"})
    _tool("ltm_end_conversation")
    contents = asyncio.run(mcp_server.read_resource(AnyUrl("memories://tag/billing/2")))
    memories = json.loads(contents[0].content)
    assert len(memories) == 1
    assert "billing" in memories[0]["tags"]

    persona = json.loads(asyncio.run(mcp_server.read_resource(AnyUrl("persona://current")))[0].content)
    assert persona["id"] == runtime.engine.persona.persona_id


def test_unknown_resource_is_protocol_error(runtime):
    with pytest.raises(McpError):
        asyncio.run(mcp_server.read_resource(AnyUrl("foo://bar")))


def test_call_tool_request_handler_returns_envelope(runtime):
    handler = mcp_server.server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="ltm_get_awakening_prompt", arguments={}),
    )
    result = asyncio.run(handler(request))
    assert isinstance(result.root, types.CallToolResult)
    assert result.root.isError is True
    assert json.loads(result.root.content[0].text)["error"] == "System must be awakened first"


def test_call_tool_request_handler_raises_for_unknown_tool(runtime):
    handler = mcp_server.server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="ltm_unknown", arguments=None),
    )
    with pytest.raises(McpError) as exc_info:
        asyncio.run(handler(request))
    assert exc_info.value.error.code == types.METHOD_NOT_FOUND


def test_runtime_uses_configured_roster(monkeypatch):
    config = GatewayConfig(conversation_participants=["human", "assistant"])
    rt = mcp_server.GatewayRuntime(config, engine=InMemoryEngine())
    monkeypatch.setattr(mcp_server, "get_gateway", lambda: rt)
    _tool("ltm_awaken")
    _tool("ltm_record_message", {"role": "human", "content": "hello"})
    assert rt.engine.current_conversation.participants == ["human", "assistant"]
