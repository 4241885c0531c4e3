"""
Resource URI resolver.

Recognized URIs:
    persona://current
    status://current
    memories://recent[/{limit}]
    memories://important[/{threshold}][/{limit}]
    memories://tag/{tag}[/{limit}]
    updates://recent[/{limit}]

Each route has its own small parser over the ``/``-separated segments that
follow it. Numeric segments must be plain ASCII digits; a numeric position
holding anything else counts as "not provided" and the documented default
applies. Too many segments, empty segments and a missing tag are rejected
as invalid requests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import unquote

from mcp.types import Resource, ResourceTemplate

from ltm_gateway.core.errors import invalid_request, not_found
from ltm_gateway.core.lifecycle import SessionLifecycle, as_list, get_field, resolve_value
from ltm_gateway.engine.base import TagSearch
from ltm_gateway.observability import metrics

logger = logging.getLogger(__name__)

MIME_TYPE = "application/json"

DEFAULT_RECENT_LIMIT = 5
DEFAULT_IMPORTANT_THRESHOLD = 7
DEFAULT_IMPORTANT_LIMIT = 5
DEFAULT_TAG_LIMIT = 5
DEFAULT_UPDATES_LIMIT = 3

STATIC_RESOURCES: List[Resource] = [
    Resource(
        uri="persona://current",
        name="Current persona",
        mimeType=MIME_TYPE,
        description="Current persona with traits, values, and preferences",
    ),
    Resource(
        uri="status://current",
        name="Current LTM status",
        mimeType=MIME_TYPE,
        description="Current status of the long-term memory session",
    ),
]

RESOURCE_TEMPLATES: List[ResourceTemplate] = [
    ResourceTemplate(
        uriTemplate="memories://recent/{limit}",
        name="Recent memories",
        mimeType=MIME_TYPE,
        description="Most recent memories, optionally limited (default 5)",
    ),
    ResourceTemplate(
        uriTemplate="memories://important/{threshold}/{limit}",
        name="Important memories",
        mimeType=MIME_TYPE,
        description="Memories at or above an importance threshold (default 7), limited (default 5)",
    ),
    ResourceTemplate(
        uriTemplate="memories://tag/{tag}/{limit}",
        name="Memories by tag",
        mimeType=MIME_TYPE,
        description="Memories with a specific tag, limited (default 5)",
    ),
    ResourceTemplate(
        uriTemplate="updates://recent/{limit}",
        name="Recent persona updates",
        mimeType=MIME_TYPE,
        description="Most recent persona updates from dreamstate passes (default 3)",
    ),
]


@dataclass(frozen=True)
class ParsedUri:
    route: str  # "<scheme>://<route>", e.g. "memories://tag"
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def scheme(self) -> str:
        return self.route.split("://", 1)[0]


# ---- projections ----

def project_memory(memory: Any) -> Dict[str, Any]:
    return {
        "id": get_field(memory, "memory_id"),
        "summary": get_field(memory, "summary"),
        "importance": get_field(memory, "importance"),
        "when": get_field(memory, "timestamp"),
        "tags": get_field(memory, "tags", []),
    }


def project_update(update: Any) -> Dict[str, Any]:
    get_diff = get_field(update, "get_diff")
    changes = get_diff() if callable(get_diff) else get_field(update, "changes", {})
    return {
        "id": get_field(update, "update_id"),
        "description": get_field(update, "description"),
        "justification": get_field(update, "justification"),
        "timestamp": get_field(update, "timestamp"),
        "changes": changes,
    }


def project_persona(persona: Any) -> Dict[str, Any]:
    return {
        "id": get_field(persona, "persona_id"),
        "traits": get_field(persona, "traits", {}),
        "values": get_field(persona, "values", {}),
        "preferences": get_field(persona, "preferences", {}),
        "biography": get_field(persona, "biography", ""),
        "lastUpdated": get_field(persona, "last_updated"),
    }


# ---- parsing ----

def _number(segment: Optional[str]) -> Optional[int]:
    """Digits-only segment as int; anything else counts as absent."""
    if segment is not None and segment.isascii() and segment.isdigit():
        return int(segment)
    return None


def _nth(segments: List[str], index: int) -> Optional[str]:
    return segments[index] if index < len(segments) else None


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


_Parser = Callable[[str, List[str]], Dict[str, Any]]
_PARSERS: Dict[str, _Parser] = {}
_MAX_SEGMENTS: Dict[str, int] = {}


def _route(route: str, max_segments: int):
    """Decorator to register the segment parser for a route."""
    def decorator(fn):
        _PARSERS[route] = fn
        _MAX_SEGMENTS[route] = max_segments
        return fn
    return decorator


@_route("persona://current", 0)
@_route("status://current", 0)
def _parse_current(uri: str, segments: List[str]) -> Dict[str, Any]:
    return {}


@_route("memories://recent", 1)
def _parse_recent_memories(uri: str, segments: List[str]) -> Dict[str, Any]:
    return {"limit": _or_default(_number(_nth(segments, 0)), DEFAULT_RECENT_LIMIT)}


@_route("memories://important", 2)
def _parse_important_memories(uri: str, segments: List[str]) -> Dict[str, Any]:
    return {
        "threshold": _or_default(_number(_nth(segments, 0)), DEFAULT_IMPORTANT_THRESHOLD),
        "limit": _or_default(_number(_nth(segments, 1)), DEFAULT_IMPORTANT_LIMIT),
    }


@_route("memories://tag", 2)
def _parse_tagged_memories(uri: str, segments: List[str]) -> Dict[str, Any]:
    tag = unquote(segments[0]) if segments else ""
    if not tag:
        raise invalid_request(f"Invalid URI format: {uri}")
    return {
        "tag": tag,
        "limit": _or_default(_number(_nth(segments, 1)), DEFAULT_TAG_LIMIT),
    }


@_route("updates://recent", 1)
def _parse_recent_updates(uri: str, segments: List[str]) -> Dict[str, Any]:
    return {"limit": _or_default(_number(_nth(segments, 0)), DEFAULT_UPDATES_LIMIT)}


def parse_uri(uri: str) -> ParsedUri:
    """Parse a resource URI into its route and parameters.

    Raises McpError (resource not found) for unknown URIs and McpError
    (invalid request) for a known route whose path is malformed.
    """
    scheme, sep, rest = uri.partition("://")
    if not sep:
        raise not_found(f"Resource not found: {uri}")
    head, *segments = rest.split("/")
    route = f"{scheme}://{head}"
    parser = _PARSERS.get(route)
    if parser is None:
        # memories://recentish and friends: a known prefix with a broken path
        if any(uri.startswith(known) for known, limit in _MAX_SEGMENTS.items() if limit):
            raise invalid_request(f"Invalid URI format: {uri}")
        raise not_found(f"Resource not found: {uri}")
    if len(segments) > _MAX_SEGMENTS[route]:
        if _MAX_SEGMENTS[route] == 0:
            raise not_found(f"Resource not found: {uri}")
        raise invalid_request(f"Invalid URI format: {uri}")
    if any(segment == "" for segment in segments):
        raise invalid_request(f"Invalid URI format: {uri}")
    return ParsedUri(route, parser(uri, segments))


# ---- reading ----

_Reader = Callable[["ResourceResolver", ParsedUri], Awaitable[Any]]
_READERS: Dict[str, _Reader] = {}


def _reader(route: str):
    """Decorator to register the engine read behind a route."""
    def decorator(fn):
        _READERS[route] = fn
        return fn
    return decorator


class ResourceResolver:
    """Maps resource URIs to engine reads and renders JSON text."""

    def __init__(self, lifecycle: SessionLifecycle, tag_search: TagSearch):
        self.lifecycle = lifecycle
        self.engine = lifecycle.engine
        self.tag_search = tag_search

    def list_resources(self) -> List[Resource]:
        return list(STATIC_RESOURCES)

    def list_templates(self) -> List[ResourceTemplate]:
        return list(RESOURCE_TEMPLATES)

    async def resolve(self, uri: str) -> str:
        parsed = parse_uri(uri)
        logger.debug("Reading %s as %s %s", uri, parsed.route, parsed.params)
        with metrics.measure(f"resource:{parsed.scheme}"):
            data = await _READERS[parsed.route](self, parsed)
        return json.dumps(data, indent=2, default=str)


@_reader("persona://current")
async def _read_persona(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    persona = await resolve_value(resolver.engine.get_persona())
    if not persona:
        raise not_found("No persona found")
    return project_persona(persona)


@_reader("status://current")
async def _read_status(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    status = await resolver.lifecycle.status()
    status["gateway"] = metrics.get_summary()
    return status


@_reader("memories://recent")
async def _read_recent_memories(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    memories = await resolve_value(resolver.engine.get_recent_memories(parsed.params["limit"]))
    return [project_memory(m) for m in as_list(memories)]


@_reader("memories://important")
async def _read_important_memories(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    memories = await resolve_value(
        resolver.engine.get_important_memories(parsed.params["threshold"], parsed.params["limit"])
    )
    return [project_memory(m) for m in as_list(memories)]


@_reader("memories://tag")
async def _read_tagged_memories(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    limit = parsed.params["limit"]
    memories = await resolve_value(resolver.tag_search([parsed.params["tag"]], limit))
    return [project_memory(m) for m in as_list(memories)[:limit]]


@_reader("updates://recent")
async def _read_recent_updates(resolver: ResourceResolver, parsed: ParsedUri) -> Any:
    updates = await resolve_value(resolver.engine.get_recent_updates(parsed.params["limit"]))
    return [project_update(u) for u in as_list(updates)]


if set(_READERS) != set(_PARSERS):  # pragma: no cover - import-time consistency check
    raise RuntimeError(f"Resource routes without readers: {sorted(set(_PARSERS) ^ set(_READERS))}")
