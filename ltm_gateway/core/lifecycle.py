"""
Session lifecycle controller.

Owns the awake/asleep state and the current-conversation pointer, enforces
temporal preconditions and delegates the actual work to the memory engine.

    uninitialized --initialize--> initialized --awaken--> awake
    awake --record_message (auto-start)--> conversation_active
    conversation_active --end_conversation--> awake
    awake | conversation_active --sleep--> initialized

Every state-changing operation runs under a single asyncio.Lock, so the
"no conversation yet -> start one" check in record_message cannot race with
another request. Precondition violations come back as Outcome failures;
unexpected engine exceptions propagate to the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ltm_gateway.core.errors import Outcome, PreconditionFailed
from ltm_gateway.engine.base import MemoryEngine

logger = logging.getLogger(__name__)

NOT_AWAKE = "System must be awakened first"
NO_CONVERSATION = "No active conversation to end"


async def resolve_value(value: Any) -> Any:
    """Await engine results that are awaitable; pass plain values through."""
    if inspect.isawaitable(value):
        return await value
    return value


def as_list(value: Any) -> List[Any]:
    """Engine results that are not sequences read as empty."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    AWAKE = "awake"
    CONVERSATION_ACTIVE = "conversation_active"


@dataclass(frozen=True)
class SessionState:
    phase: SessionPhase = SessionPhase.UNINITIALIZED
    current_conversation: Optional[str] = None
    awakened_at: Optional[str] = None

    @property
    def awake(self) -> bool:
        return self.phase in (SessionPhase.AWAKE, SessionPhase.CONVERSATION_ACTIVE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "awake": self.awake,
            "phase": self.phase.value,
            "currentConversation": self.current_conversation,
            "awakenedAt": self.awakened_at,
        }


class SessionLifecycle:
    """State machine in front of a MemoryEngine."""

    def __init__(self, engine: MemoryEngine, participants: Sequence[str] = ("user", "claude")):
        self.engine = engine
        self.participants = list(participants)
        self._state = SessionState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        return self._state.to_dict()

    def _transition(self, **changes) -> None:
        previous = self._state.phase
        self._state = replace(self._state, **changes)
        if self._state.phase != previous:
            logger.debug("Session %s -> %s", previous.value, self._state.phase.value)

    # ---- operations ----

    async def initialize(self) -> Outcome:
        async with self._lock:
            await resolve_value(self.engine.initialize())
            if self._state.phase == SessionPhase.UNINITIALIZED:
                self._transition(phase=SessionPhase.INITIALIZED)
            persona = await resolve_value(self.engine.get_persona())
            return Outcome.success(persona)

    async def awaken(
        self,
        recent_memories_limit: Optional[int] = None,
        important_memories_threshold: Optional[int] = None,
        important_memories_limit: Optional[int] = None,
    ) -> Outcome:
        async with self._lock:
            if self._state.phase == SessionPhase.UNINITIALIZED:
                await resolve_value(self.engine.initialize())
            context = await resolve_value(self.engine.awaken(
                recent_memories_limit=recent_memories_limit,
                important_memories_threshold=important_memories_threshold,
                important_memories_limit=important_memories_limit,
            ))
            phase = SessionPhase.CONVERSATION_ACTIVE if self._state.current_conversation else SessionPhase.AWAKE
            awakened_at = get_field(context, "awakening_time") or datetime.now(timezone.utc).isoformat()
            self._transition(phase=phase, awakened_at=awakened_at)
            logger.info("System awakened at %s", awakened_at)
            return Outcome.success(context)

    async def record_message(self, role: str, content: str) -> Outcome:
        async with self._lock:
            if not self._state.awake:
                return Outcome.failure(PreconditionFailed(NOT_AWAKE))
            if self._state.current_conversation is None:
                started = await resolve_value(self.engine.start_conversation(list(self.participants)))
                conversation_id = get_field(started, "conversation_id")
                self._transition(phase=SessionPhase.CONVERSATION_ACTIVE, current_conversation=conversation_id)
                logger.info("Created new conversation %s automatically", conversation_id)
            conversation = await resolve_value(self.engine.add_message(role, content))
            return Outcome.success(conversation)

    async def end_conversation(self) -> Outcome:
        async with self._lock:
            if not self._state.awake:
                return Outcome.failure(PreconditionFailed(NOT_AWAKE))
            if self._state.current_conversation is None:
                return Outcome.failure(PreconditionFailed(NO_CONVERSATION))
            memory = await resolve_value(self.engine.end_conversation())
            self._transition(phase=SessionPhase.AWAKE, current_conversation=None)
            return Outcome.success(memory)

    async def sleep(self, recent_memories_limit: Optional[int] = None) -> Outcome:
        async with self._lock:
            return await self._sleep_locked(recent_memories_limit)

    async def _sleep_locked(self, recent_memories_limit: Optional[int]) -> Outcome:
        if not self._state.awake:
            return Outcome.failure(PreconditionFailed(NOT_AWAKE))
        if self._state.current_conversation is not None:
            memory = await resolve_value(self.engine.end_conversation())
            logger.info(
                "Ended conversation %s before sleep as memory %s",
                self._state.current_conversation,
                get_field(memory, "memory_id"),
            )
            self._transition(phase=SessionPhase.AWAKE, current_conversation=None)
        update = await resolve_value(self.engine.sleep(recent_memories_limit=recent_memories_limit))
        self._transition(phase=SessionPhase.INITIALIZED, awakened_at=None)
        logger.info("System asleep after dreamstate update %s", get_field(update, "update_id"))
        return Outcome.success(update)

    async def search_memories(self, query: str = "", tags: Optional[List[str]] = None, limit: int = 5) -> Outcome:
        memories = await resolve_value(self.engine.search_memories(query, list(tags or []), limit=limit))
        return Outcome.success(as_list(memories))

    async def get_awakening_prompt(self) -> Outcome:
        async with self._lock:
            if not self._state.awake:
                return Outcome.failure(PreconditionFailed(NOT_AWAKE))
            prompt = await resolve_value(self.engine.get_awakening_prompt())
            return Outcome.success(prompt)

    async def status(self) -> Dict[str, Any]:
        """Engine status overlaid with the session's own view of the lifecycle."""
        status = await resolve_value(self.engine.get_status())
        merged = dict(status) if isinstance(status, dict) else {}
        merged.update(self.snapshot())
        return merged

    async def flush_for_shutdown(self, timeout: float) -> Optional[Outcome]:
        """Final sleep on the way out, bounded by ``timeout`` seconds.

        Returns None when the system was not awake. Raises asyncio.TimeoutError
        if the lock or the engine does not finish in time.
        """
        async def _flush() -> Optional[Outcome]:
            async with self._lock:
                if not self._state.awake:
                    return None
                return await self._sleep_locked(None)

        return await asyncio.wait_for(_flush(), timeout)
