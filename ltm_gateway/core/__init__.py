from ltm_gateway.core.errors import (
    EngineError,
    GatewayError,
    InvalidArgument,
    Outcome,
    PreconditionFailed,
)
from ltm_gateway.core.lifecycle import SessionLifecycle, SessionPhase, SessionState
from ltm_gateway.core.resources import ResourceResolver, parse_uri
from ltm_gateway.core.dispatcher import ToolDispatcher
from ltm_gateway.core.shutdown import ShutdownCoordinator

__all__ = [
    "EngineError",
    "GatewayError",
    "InvalidArgument",
    "Outcome",
    "PreconditionFailed",
    "SessionLifecycle",
    "SessionPhase",
    "SessionState",
    "ResourceResolver",
    "parse_uri",
    "ToolDispatcher",
    "ShutdownCoordinator",
]
