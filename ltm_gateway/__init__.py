"""ltm_gateway package exports.

ltm_gateway: an MCP gateway in front of a long-term memory engine
- Resources: persona, status, memories and persona updates by URI
- Tools: initialize, awaken, record/end conversations, sleep, search
- Session lifecycle: awake/asleep gating with auto-started conversations

Quick Start:
    ltm-gateway-mcp          # serve over stdio with the in-memory engine

    LTM_GATEWAY_ENGINE=custom \\
    LTM_GATEWAY_ENGINE_PATH=my_package.engine:build \\
    ltm-gateway-mcp          # serve a custom engine
"""

from ltm_gateway.configs.base import EngineConfig, GatewayConfig, LoggingConfig
from ltm_gateway.core import (
    GatewayError,
    Outcome,
    ResourceResolver,
    SessionLifecycle,
    ShutdownCoordinator,
    ToolDispatcher,
)
from ltm_gateway.engine import EngineFactory, InMemoryEngine, MemoryEngine

__version__ = "1.0.0"
__all__ = [
    "EngineConfig",
    "GatewayConfig",
    "LoggingConfig",
    "GatewayError",
    "Outcome",
    "ResourceResolver",
    "SessionLifecycle",
    "ShutdownCoordinator",
    "ToolDispatcher",
    "EngineFactory",
    "InMemoryEngine",
    "MemoryEngine",
]
