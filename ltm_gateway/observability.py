"""LTM Gateway Observability Module.

Provides structured logging and per-operation metrics.

Usage:
    from ltm_gateway.observability import configure_logging, metrics

    configure_logging(config.logging)

    with metrics.measure("tool:ltm_awaken"):
        ...

    print(metrics.get_summary())

Logs always go to stderr: stdout carries the MCP stdio transport.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ltm_gateway.configs.base import LoggingConfig


# ============================================================================
# Structured Logger
# ============================================================================

class StructuredLogger:
    """Logger that attaches key/value context to every record."""

    def __init__(self, name: str = "ltm_gateway"):
        self._logger = logging.getLogger(name)
        self._context: Dict[str, Any] = {}

    def with_context(self, **kwargs) -> "StructuredLogger":
        """Create a new logger with additional context."""
        new_logger = StructuredLogger.__new__(StructuredLogger)
        new_logger._logger = self._logger
        new_logger._context = {**self._context, **kwargs}
        return new_logger

    def _log(self, level: int, message: str, **kwargs):
        extra = {
            "structured_data": {
                **self._context,
                **kwargs,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        }
        self._logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)


class StructuredFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if hasattr(record, "structured_data"):
            log_data.update(record.structured_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "ltm_gateway.stderr"


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Install (or replace) the gateway's stderr handler on the package logger."""
    config = config or LoggingConfig()
    root = logging.getLogger("ltm_gateway")
    root.setLevel(config.level)
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    if config.format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    return root


# ============================================================================
# Metrics Collector
# ============================================================================

@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    total_latency_ms: float = 0.0
    min_latency_ms: float = float("inf")
    max_latency_ms: float = 0.0
    errors: int = 0
    last_operation: Optional[str] = None

    def record(self, latency_ms: float, error: bool = False):
        self.count += 1
        self.total_latency_ms += latency_ms
        self.min_latency_ms = min(self.min_latency_ms, latency_ms)
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        if error:
            self.errors += 1
        self.last_operation = datetime.now(timezone.utc).isoformat()

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.count if self.count > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "min_latency_ms": round(self.min_latency_ms, 2) if self.count > 0 else 0,
            "max_latency_ms": round(self.max_latency_ms, 2),
            "errors": self.errors,
            "error_rate": round(self.errors / self.count, 4) if self.count > 0 else 0,
            "last_operation": self.last_operation,
        }


class MetricsCollector:
    """Collects gateway operation metrics."""

    def __init__(self):
        self._lock = threading.Lock()
        self._operations: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._start_time = datetime.now(timezone.utc)

    def record_operation(self, operation: str, latency_ms: float, error: bool = False):
        with self._lock:
            self._operations[operation].record(latency_ms, error)

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._start_time = datetime.now(timezone.utc)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
            return {
                "uptime_seconds": round(uptime, 2),
                "operations": {
                    op: op_metrics.to_dict()
                    for op, op_metrics in self._operations.items()
                },
            }

    @contextmanager
    def measure(self, operation: str):
        """Context manager to measure operation latency.

        Usage:
            with metrics.measure("resource:memories"):
                text = resolver.resolve(uri)

        An exception escaping the block counts as an error. Callers that
        handle failures themselves can flag one with ``mark_error()`` on the
        yielded handle.
        """
        handle = _Measurement()
        start = time.perf_counter()
        try:
            yield handle
        except BaseException:
            handle.error = True
            raise
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            self.record_operation(operation, latency_ms, error=handle.error)


class _Measurement:
    __slots__ = ("error",)

    def __init__(self):
        self.error = False

    def mark_error(self) -> None:
        self.error = True


# Global metrics collector
metrics = MetricsCollector()
