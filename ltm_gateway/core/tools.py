"""Declarative tool table: the single source for list-tools and argument checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from mcp.types import Tool


_JSON_TYPES = {"string", "number", "array"}


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    type: str  # string | number | array (of strings)
    description: str
    required: bool = False
    integral: bool = False  # number arguments that are counts or thresholds

    def __post_init__(self):
        if self.type not in _JSON_TYPES:
            raise ValueError(f"Unsupported argument type '{self.type}' for '{self.name}'")

    def to_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.type == "array":
            schema["items"] = {"type": "string"}
        if self.integral:
            schema["multipleOf"] = 1
        return schema

    def accepts(self, value: Any) -> bool:
        if self.type == "string":
            return isinstance(value, str)
        if self.type == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            return not self.integral or float(value).is_integer()
        return isinstance(value, list) and all(isinstance(item, str) for item in value)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments: Tuple[ArgumentSpec, ...] = field(default_factory=tuple)

    @property
    def required(self) -> List[str]:
        return [arg.name for arg in self.arguments if arg.required]

    def argument(self, name: str) -> Optional[ArgumentSpec]:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None

    def to_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema={
                "type": "object",
                "properties": {arg.name: arg.to_schema() for arg in self.arguments},
                "required": self.required,
            },
        )


TOOL_SPECS: Tuple[ToolSpec, ...] = (
    ToolSpec(
        name="ltm_initialize",
        description="Initialize the long-term memory system",
    ),
    ToolSpec(
        name="ltm_awaken",
        description="Awaken the system and load persona and memories",
        arguments=(
            ArgumentSpec("recentMemoriesLimit", "number", "Maximum number of recent memories to load", integral=True),
            ArgumentSpec("importantMemoriesThreshold", "number", "Importance threshold for important memories (1-10)", integral=True),
            ArgumentSpec("importantMemoriesLimit", "number", "Maximum number of important memories to load", integral=True),
        ),
    ),
    ToolSpec(
        name="ltm_record_message",
        description="Record a message in the current conversation, starting one if none is active",
        arguments=(
            ArgumentSpec("role", "string", "Role of the message sender (user or claude)", required=True),
            ArgumentSpec("content", "string", "Content of the message", required=True),
        ),
    ),
    ToolSpec(
        name="ltm_end_conversation",
        description="End the current conversation and process it into a memory",
    ),
    ToolSpec(
        name="ltm_sleep",
        description="Put the system to sleep, triggering persona evolution",
        arguments=(
            ArgumentSpec("recentMemoriesLimit", "number", "Number of recent memories to process for evolution", integral=True),
        ),
    ),
    ToolSpec(
        name="ltm_search_memories",
        description="Search for memories based on a query or tags",
        arguments=(
            ArgumentSpec("query", "string", "Search query"),
            ArgumentSpec("tags", "array", "Array of tags to search for"),
            ArgumentSpec("limit", "number", "Maximum number of results to return", integral=True),
        ),
    ),
    ToolSpec(
        name="ltm_get_awakening_prompt",
        description="Generate an awakening prompt from the current persona and memories",
    ),
)

TOOL_REGISTRY: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}


def get_tool_spec(name: str) -> Optional[ToolSpec]:
    return TOOL_REGISTRY.get(name)


def list_tools() -> List[Tool]:
    """Tool descriptors in declaration order."""
    return [spec.to_tool() for spec in TOOL_SPECS]
