"""Tests for the MCP tool handler registry and the tool schema table."""

import inspect

import pytest

pytest.importorskip("mcp")

from ltm_gateway.core.dispatcher import _TOOL_HANDLERS
from ltm_gateway.core.tools import TOOL_REGISTRY, TOOL_SPECS, ArgumentSpec, list_tools

EXPECTED_TOOLS = [
    "ltm_initialize",
    "ltm_awaken",
    "ltm_record_message",
    "ltm_end_conversation",
    "ltm_sleep",
    "ltm_search_memories",
    "ltm_get_awakening_prompt",
]


class TestToolHandlerRegistry:
    def test_registry_is_populated(self):
        """The tool handler registry should have entries from decorated handlers."""
        assert len(_TOOL_HANDLERS) == len(EXPECTED_TOOLS)

    def test_known_handlers_registered(self):
        for name in EXPECTED_TOOLS:
            assert name in _TOOL_HANDLERS, f"Handler '{name}' not found in registry"

    def test_handlers_match_schema_table(self):
        assert set(_TOOL_HANDLERS) == set(TOOL_REGISTRY)

    def test_handlers_are_coroutines(self):
        for name, handler in _TOOL_HANDLERS.items():
            assert inspect.iscoroutinefunction(handler), f"Handler '{name}' is not async"

    def test_handler_signature(self):
        """Handlers should accept (lifecycle, arguments)."""
        for name, handler in _TOOL_HANDLERS.items():
            params = list(inspect.signature(handler).parameters)
            assert len(params) == 2, f"Handler '{name}' should have 2 params, got {len(params)}: {params}"


class TestToolSchemaTable:
    def test_list_tools_in_declaration_order(self):
        assert [tool.name for tool in list_tools()] == EXPECTED_TOOLS

    def test_record_message_requires_role_and_content(self):
        tool = next(t for t in list_tools() if t.name == "ltm_record_message")
        assert tool.inputSchema["required"] == ["role", "content"]
        assert tool.inputSchema["properties"]["role"]["type"] == "string"

    def test_search_tags_schema_is_string_array(self):
        tool = next(t for t in list_tools() if t.name == "ltm_search_memories")
        tags = tool.inputSchema["properties"]["tags"]
        assert tags["type"] == "array"
        assert tags["items"] == {"type": "string"}
        assert tool.inputSchema["required"] == []

    def test_every_tool_has_object_schema(self):
        for spec in TOOL_SPECS:
            schema = spec.to_tool().inputSchema
            assert schema["type"] == "object"
            assert set(schema["required"]) <= set(schema["properties"])

    def test_argument_type_checks(self):
        number = ArgumentSpec("limit", "number", "n")
        assert number.accepts(3)
        assert number.accepts(2.5)
        assert not number.accepts(True)
        assert not number.accepts("3")
        tags = ArgumentSpec("tags", "array", "t")
        assert tags.accepts(["a", "b"])
        assert not tags.accepts(["a", 1])
        assert not tags.accepts("a")

    def test_integral_number_arguments(self):
        count = ArgumentSpec("limit", "number", "n", integral=True)
        assert count.accepts(3)
        assert count.accepts(3.0)
        assert not count.accepts(2.5)
        assert not count.accepts(True)
        assert count.to_schema()["multipleOf"] == 1

    def test_unknown_argument_type_rejected(self):
        with pytest.raises(ValueError):
            ArgumentSpec("flag", "boolean", "unsupported")
