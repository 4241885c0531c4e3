"""Tool dispatcher: validate, run against the lifecycle, envelope the outcome."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp.types import CallToolResult, Tool

from ltm_gateway.core import envelope
from ltm_gateway.core.errors import InvalidArgument, Outcome, classify_error, method_not_found
from ltm_gateway.core.lifecycle import SessionLifecycle, as_list, get_field
from ltm_gateway.core.resources import project_memory
from ltm_gateway.core.tools import TOOL_REGISTRY, ToolSpec, get_tool_spec, list_tools
from ltm_gateway.observability import StructuredLogger, metrics

logger = logging.getLogger(__name__)
events = StructuredLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5

_Handler = Callable[[SessionLifecycle, Dict[str, Any]], Awaitable[Outcome]]
_TOOL_HANDLERS: Dict[str, _Handler] = {}


def _tool_handler(name: str):
    """Decorator to register a tool handler function."""
    def decorator(fn):
        _TOOL_HANDLERS[name] = fn
        return fn
    return decorator


def validate_arguments(spec: ToolSpec, arguments: Dict[str, Any]) -> Optional[InvalidArgument]:
    """Check required presence and declared primitive types."""
    missing = [name for name in spec.required if arguments.get(name) in (None, "")]
    if missing:
        return InvalidArgument(f"Missing required argument(s): {', '.join(missing)}")
    for name, value in arguments.items():
        arg = spec.argument(name)
        if arg is None or value is None:
            continue
        if not arg.accepts(value):
            if arg.integral and isinstance(value, float):
                return InvalidArgument(f"Argument '{name}' must be a whole number")
            return InvalidArgument(f"Argument '{name}' must be of type {arg.type}")
    return None


def _int_arg(arguments: Dict[str, Any], name: str, default: Optional[int] = None) -> Optional[int]:
    value = arguments.get(name)
    if value is None:
        return default
    return int(value)


def _then(outcome: Outcome, render: Callable[[Any], Dict[str, Any]]) -> Outcome:
    if not outcome.ok:
        return outcome
    return Outcome.success(render(outcome.value))


@_tool_handler("ltm_initialize")
async def _handle_initialize(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.initialize()
    return _then(outcome, lambda persona: {
        "message": "LTM system initialized successfully",
        "personaId": get_field(persona, "persona_id"),
    })


@_tool_handler("ltm_awaken")
async def _handle_awaken(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.awaken(
        recent_memories_limit=_int_arg(arguments, "recentMemoriesLimit"),
        important_memories_threshold=_int_arg(arguments, "importantMemoriesThreshold"),
        important_memories_limit=_int_arg(arguments, "importantMemoriesLimit"),
    )
    return _then(outcome, lambda context: {
        "message": "System awakened successfully",
        "context": {
            "personaId": get_field(get_field(context, "persona"), "persona_id"),
            "recentMemoriesCount": len(as_list(get_field(context, "recent_memories"))),
            "importantMemoriesCount": len(as_list(get_field(context, "important_memories"))),
            "awakeningTime": get_field(context, "awakening_time"),
        },
    })


@_tool_handler("ltm_record_message")
async def _handle_record_message(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.record_message(arguments["role"], arguments["content"])
    return _then(outcome, lambda conversation: {
        "message": "Message recorded successfully",
        "conversationId": get_field(conversation, "conversation_id"),
        "messageCount": len(as_list(get_field(conversation, "messages"))),
    })


@_tool_handler("ltm_end_conversation")
async def _handle_end_conversation(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.end_conversation()
    return _then(outcome, lambda memory: {
        "message": "Conversation ended and processed into memory",
        "memoryId": get_field(memory, "memory_id"),
        "summary": get_field(memory, "summary"),
        "importance": get_field(memory, "importance"),
        "tags": get_field(memory, "tags", []),
    })


@_tool_handler("ltm_sleep")
async def _handle_sleep(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.sleep(recent_memories_limit=_int_arg(arguments, "recentMemoriesLimit"))
    return _then(outcome, lambda update: {
        "message": "System entered sleep state with dreamstate processing",
        "updateId": get_field(update, "update_id"),
        "description": get_field(update, "description"),
        "justification": get_field(update, "justification"),
    })


@_tool_handler("ltm_search_memories")
async def _handle_search_memories(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.search_memories(
        query=arguments.get("query") or "",
        tags=arguments.get("tags") or [],
        limit=_int_arg(arguments, "limit", DEFAULT_SEARCH_LIMIT),
    )
    return _then(outcome, lambda memories: {
        "count": len(memories),
        "memories": [project_memory(m) for m in memories],
    })


@_tool_handler("ltm_get_awakening_prompt")
async def _handle_get_awakening_prompt(lifecycle: SessionLifecycle, arguments: Dict[str, Any]) -> Outcome:
    outcome = await lifecycle.get_awakening_prompt()
    return _then(outcome, lambda prompt: {"prompt": prompt})


if set(_TOOL_HANDLERS) != set(TOOL_REGISTRY):  # pragma: no cover - import-time consistency check
    raise RuntimeError(f"Tool table and handlers disagree: {sorted(set(_TOOL_HANDLERS) ^ set(TOOL_REGISTRY))}")


class ToolDispatcher:
    """Routes call-tool requests; only an unknown tool name escapes as an exception."""

    def __init__(self, lifecycle: SessionLifecycle):
        self.lifecycle = lifecycle

    def list_tools(self) -> List[Tool]:
        return list_tools()

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> CallToolResult:
        spec = get_tool_spec(name)
        handler = _TOOL_HANDLERS.get(name)
        if spec is None or handler is None:
            raise method_not_found(f"Unknown tool: {name}")
        arguments = dict(arguments or {})

        with metrics.measure(f"tool:{name}") as measurement:
            log = events.with_context(tool=name)
            try:
                invalid = validate_arguments(spec, arguments)
                outcome = Outcome.failure(invalid) if invalid else await handler(self.lifecycle, arguments)
            except Exception as exc:
                logger.exception("Tool '%s' failed", name)
                measurement.mark_error()
                return envelope.failure(classify_error(exc))

            if not outcome.ok:
                measurement.mark_error()
                log.warning(
                    f"Tool '{name}' reported failure: {outcome.error.message}",
                    code=outcome.error.code,
                )
                return envelope.failure(outcome.error)
            log.debug("Tool call finished")
            return envelope.success(outcome.value)
