"""Signal-driven shutdown: one final sleep, then release the transport."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from ltm_gateway.core.lifecycle import SessionLifecycle

logger = logging.getLogger(__name__)

_SIGNAL_NAMES = ("SIGTERM", "SIGINT")


class ShutdownCoordinator:
    """Runs the final dreamstate flush at most once, then cancels the server task."""

    def __init__(self, lifecycle: SessionLifecycle, timeout_seconds: float = 5.0):
        self.lifecycle = lifecycle
        self.timeout_seconds = timeout_seconds
        self._serve_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._flushed = False

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_task is not None

    def install(self, loop: asyncio.AbstractEventLoop, serve_task: Optional[asyncio.Task] = None) -> None:
        """Route SIGINT/SIGTERM to request_shutdown on ``loop``."""
        self._serve_task = serve_task
        for sig_name in _SIGNAL_NAMES:
            sig_value = getattr(signal, sig_name, None)
            if sig_value is None:
                continue
            try:
                loop.add_signal_handler(sig_value, self.request_shutdown, sig_name)
            except (NotImplementedError, RuntimeError):
                # No add_signal_handler (e.g. Windows event loops): fall back to signal.signal.
                def _signal_handler(signum, _frame, _name=sig_name):  # pragma: no cover - signal path
                    loop.call_soon_threadsafe(self.request_shutdown, _name)

                try:
                    signal.signal(sig_value, _signal_handler)
                except (OSError, ValueError):
                    logger.debug("Skipping signal hook registration for %s", sig_name)

    def request_shutdown(self, reason: str = "signal") -> Optional[asyncio.Task]:
        """Start the shutdown sequence; later requests are ignored."""
        if self._shutdown_task is not None:
            logger.debug("Shutdown already in progress; ignoring %s", reason)
            return self._shutdown_task
        logger.info("Shutdown requested (%s)", reason)
        self._shutdown_task = asyncio.get_running_loop().create_task(self._shutdown())
        return self._shutdown_task

    async def _shutdown(self) -> None:
        try:
            await self.flush()
        finally:
            if self._serve_task is not None and not self._serve_task.done():
                self._serve_task.cancel()

    async def flush(self) -> bool:
        """Sleep the system if it is awake. Returns True if a sleep ran.

        Failures and timeouts are logged, never raised: the process is
        exiting either way.
        """
        if self._flushed:
            return False
        self._flushed = True
        try:
            outcome = await self.lifecycle.flush_for_shutdown(self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Final sleep did not finish within %.1fs", self.timeout_seconds)
            return False
        except Exception as exc:
            logger.warning("Final sleep failed: %s", exc, exc_info=True)
            return False
        if outcome is None:
            logger.info("System not awake at shutdown; skipping final sleep")
            return False
        if not outcome.ok:
            logger.warning("Final sleep refused: %s", outcome.error.message)
            return False
        logger.info("Final dreamstate flush complete")
        return True
