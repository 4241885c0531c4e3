"""Domain and protocol error kinds for the gateway."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from mcp.shared.exceptions import McpError
from mcp.types import INVALID_REQUEST, METHOD_NOT_FOUND, ErrorData

# Not exported by every mcp release; fixed by the MCP protocol.
RESOURCE_NOT_FOUND = -32002

T = TypeVar("T")


class GatewayError(RuntimeError):
    """Structured domain error, reported to the caller inside an envelope."""

    code = "gateway_error"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = str(code)
        self.message = str(message)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class PreconditionFailed(GatewayError):
    code = "precondition_failed"


class InvalidArgument(GatewayError):
    code = "invalid_argument"


class EngineError(GatewayError):
    code = "engine_error"


def classify_error(exc: Exception) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    message = str(exc).strip() or exc.__class__.__name__
    return EngineError(f"{type(exc).__name__}: {message}")


def not_found(message: str) -> McpError:
    return McpError(ErrorData(code=RESOURCE_NOT_FOUND, message=message))


def invalid_request(message: str) -> McpError:
    return McpError(ErrorData(code=INVALID_REQUEST, message=message))


def method_not_found(message: str) -> McpError:
    return McpError(ErrorData(code=METHOD_NOT_FOUND, message=message))


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a lifecycle operation: a value or a domain error, never both."""
    value: Optional[T] = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome[Any]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GatewayError) -> "Outcome[Any]":
        return cls(error=error)
