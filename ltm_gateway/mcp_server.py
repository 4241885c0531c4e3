"""
LTM gateway MCP server.

Exposes a long-term memory engine to MCP clients: read-only resources
(persona, status, memories, persona updates) and lifecycle tools
(initialize, awaken, record/end conversation, sleep, search, prompt).
"""

import asyncio
import logging
import os
import sys
import threading
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, Resource, ResourceTemplate, Tool

from ltm_gateway import __version__
from ltm_gateway.configs.base import GatewayConfig
from ltm_gateway.core.dispatcher import ToolDispatcher
from ltm_gateway.core.lifecycle import SessionLifecycle
from ltm_gateway.core.resources import MIME_TYPE, ResourceResolver
from ltm_gateway.core.shutdown import ShutdownCoordinator
from ltm_gateway.engine.base import MemoryEngine, TagSearch
from ltm_gateway.engine.factory import EngineFactory, tag_search_for
from ltm_gateway.observability import configure_logging

logger = logging.getLogger(__name__)


class GatewayRuntime:
    """Everything one gateway process needs, wired around a single lifecycle."""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        engine: Optional[MemoryEngine] = None,
        tag_search: Optional[TagSearch] = None,
    ):
        self.config = config or GatewayConfig()
        self.engine = engine if engine is not None else EngineFactory.create(self.config.engine)
        self.lifecycle = SessionLifecycle(self.engine, self.config.conversation_participants)
        self.resolver = ResourceResolver(self.lifecycle, tag_search or tag_search_for(self.engine))
        self.dispatcher = ToolDispatcher(self.lifecycle)
        self.shutdown = ShutdownCoordinator(self.lifecycle, self.config.shutdown_timeout_seconds)

    async def start(self) -> None:
        """Initialize the engine up front so the persona exists before the first request."""
        outcome = await self.lifecycle.initialize()
        persona_id = getattr(outcome.value, "persona_id", None)
        logger.info("Engine initialized (persona %s)", persona_id)

    def close(self) -> None:
        close = getattr(self.engine, "close", None)
        if callable(close):
            close()


# Global runtime (lazy initialized)
_runtime: Optional[GatewayRuntime] = None
_runtime_lock = threading.Lock()


def get_gateway() -> GatewayRuntime:
    """Get or create the global gateway runtime."""
    global _runtime
    if _runtime is None:
        with _runtime_lock:
            if _runtime is None:
                _runtime = GatewayRuntime(GatewayConfig.from_env())
    return _runtime


# Create the MCP server
server = Server("ltm-gateway", version=__version__)


@server.list_resources()
async def list_resources() -> List[Resource]:
    """List the static resources."""
    return get_gateway().resolver.list_resources()


@server.list_resource_templates()
async def list_resource_templates() -> List[ResourceTemplate]:
    """List the parametrized resource templates."""
    return get_gateway().resolver.list_templates()


@server.read_resource()
async def read_resource(uri: Any) -> List[ReadResourceContents]:
    """Resolve a resource URI to JSON. Unknown or malformed URIs raise McpError."""
    text = await get_gateway().resolver.resolve(str(uri))
    return [ReadResourceContents(content=text, mime_type=MIME_TYPE)]


@server.list_tools()
async def list_tools() -> List[Tool]:
    """List available gateway tools."""
    return get_gateway().dispatcher.list_tools()


async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> CallToolResult:
    """Handle tool calls. Raises McpError only for unknown tool names."""
    return await get_gateway().dispatcher.dispatch(name, arguments or {})


async def _handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
    result = await call_tool(req.params.name, req.params.arguments)
    return types.ServerResult(result)


# Registered directly: the SDK's call_tool decorator converts every exception,
# McpError included, into an isError result, so MethodNotFound would never
# reach the client as a protocol error.
server.request_handlers[types.CallToolRequest] = _handle_call_tool


async def main():
    """Run the MCP server until the transport closes or a signal arrives."""
    runtime = get_gateway()
    server.name = runtime.config.server_name
    server.version = runtime.config.server_version
    await runtime.start()
    try:
        async with stdio_server() as (read_stream, write_stream):
            serve_task = asyncio.create_task(
                server.run(read_stream, write_stream, server.create_initialization_options())
            )
            runtime.shutdown.install(asyncio.get_running_loop(), serve_task)
            try:
                await serve_task
            except asyncio.CancelledError:
                if not runtime.shutdown.shutdown_requested:
                    raise
                # The stdin reader thread stays blocked while the client holds
                # the pipe open, so leaving stdio_server() would never return.
                _exit_after_shutdown(runtime)
            logger.info("LTM gateway stopped")
    finally:
        runtime.close()


def _exit_after_shutdown(runtime: GatewayRuntime, code: int = 0) -> None:
    """Release the engine, flush logs and end the process. Signal path only."""
    logger.info("LTM gateway stopped")
    try:
        runtime.close()
    except Exception:
        logger.exception("Engine close failed during shutdown")
    logging.shutdown()
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass
    os._exit(code)


def run():
    """Entry point for the MCP server."""
    configure_logging(GatewayConfig.from_env().logging)
    asyncio.run(main())


if __name__ == "__main__":
    run()
