"""Tests for the session lifecycle state machine."""

from __future__ import annotations

import asyncio

import pytest

from ltm_gateway.core.errors import PreconditionFailed
from ltm_gateway.core.lifecycle import NO_CONVERSATION, NOT_AWAKE, SessionLifecycle, SessionPhase
from ltm_gateway.engine.base import (
    AwakeningContext,
    Conversation,
    Memory,
    Message,
    Persona,
    Update,
)


class _FakeEngine:
    def __init__(self):
        self.calls = []
        self.persona = Persona(persona_id="p-1")
        self.current = None
        self.conversations_started = 0
        self.sleeps = 0

    def initialize(self):
        self.calls.append("initialize")

    def awaken(self, **kwargs):
        self.calls.append(("awaken", kwargs))
        return AwakeningContext(
            persona=self.persona,
            recent_memories=[Memory(memory_id="m-1", summary="s")],
            important_memories=[],
            awakening_time="2026-01-01T00:00:00+00:00",
        )

    def get_persona(self):
        return self.persona

    def get_status(self):
        return {"engine": "fake", "awake": "engine-view", "memoryCount": 0}

    def start_conversation(self, participants):
        self.conversations_started += 1
        self.current = Conversation(
            conversation_id=f"c-{self.conversations_started}",
            participants=list(participants),
        )
        return self.current

    def add_message(self, role, content):
        self.current.messages.append(Message(role=role, content=content))
        return self.current

    def end_conversation(self):
        self.calls.append("end_conversation")
        self.current = None
        return Memory(memory_id="m-2", summary="talked", importance=6, tags=["x"])

    def sleep(self, recent_memories_limit=None):
        self.sleeps += 1
        self.calls.append(("sleep", recent_memories_limit))
        return Update(update_id="u-1", description="d", justification="j")

    def search_memories(self, query, tags, limit=5):
        return {"unexpected": "shape"}

    def get_awakening_prompt(self):
        return "Wake up"


class _AsyncFakeEngine(_FakeEngine):
    """Every conversation call yields to the loop, like a real I/O-bound engine."""

    async def start_conversation(self, participants):
        await asyncio.sleep(0)
        return super().start_conversation(participants)

    async def add_message(self, role, content):
        await asyncio.sleep(0)
        return super().add_message(role, content)


@pytest.fixture
def engine():
    return _FakeEngine()


@pytest.fixture
def lifecycle(engine):
    return SessionLifecycle(engine)


def test_initial_state(lifecycle):
    assert lifecycle.state.phase == SessionPhase.UNINITIALIZED
    assert lifecycle.state.awake is False
    assert lifecycle.state.current_conversation is None


def test_initialize_is_idempotent(lifecycle, engine):
    first = asyncio.run(lifecycle.initialize())
    second = asyncio.run(lifecycle.initialize())
    assert first.ok and second.ok
    assert first.value.persona_id == "p-1"
    assert engine.calls.count("initialize") == 2
    assert lifecycle.state.phase == SessionPhase.INITIALIZED


def test_awaken_from_uninitialized_initializes_first(lifecycle, engine):
    outcome = asyncio.run(lifecycle.awaken(recent_memories_limit=3))
    assert outcome.ok
    assert engine.calls[0] == "initialize"
    assert engine.calls[1] == (
        "awaken",
        {"recent_memories_limit": 3, "important_memories_threshold": None, "important_memories_limit": None},
    )
    assert lifecycle.state.phase == SessionPhase.AWAKE
    assert lifecycle.state.awakened_at == "2026-01-01T00:00:00+00:00"


@pytest.mark.parametrize("operation", ["record_message", "end_conversation", "sleep", "get_awakening_prompt"])
def test_awake_only_operations_fail_before_awaken(lifecycle, engine, operation):
    method = getattr(lifecycle, operation)
    args = ("user", "hello") if operation == "record_message" else ()
    outcome = asyncio.run(method(*args))
    assert not outcome.ok
    assert isinstance(outcome.error, PreconditionFailed)
    assert outcome.error.message == NOT_AWAKE
    assert engine.sleeps == 0
    assert engine.conversations_started == 0


def test_record_message_auto_starts_conversation(lifecycle, engine):
    asyncio.run(lifecycle.awaken())
    outcome = asyncio.run(lifecycle.record_message("user", "hello"))
    assert outcome.ok
    assert outcome.value.conversation_id == "c-1"
    assert len(outcome.value.messages) == 1
    assert engine.current.participants == ["user", "claude"]
    assert lifecycle.state.phase == SessionPhase.CONVERSATION_ACTIVE
    assert lifecycle.state.current_conversation == "c-1"

    again = asyncio.run(lifecycle.record_message("claude", "hi"))
    assert again.value.conversation_id == "c-1"
    assert len(again.value.messages) == 2
    assert engine.conversations_started == 1


def test_custom_roster_is_used_for_auto_start(engine):
    lifecycle = SessionLifecycle(engine, participants=["human", "assistant"])
    asyncio.run(lifecycle.awaken())
    asyncio.run(lifecycle.record_message("human", "hey"))
    assert engine.current.participants == ["human", "assistant"]


def test_concurrent_first_messages_start_one_conversation():
    engine = _AsyncFakeEngine()
    lifecycle = SessionLifecycle(engine)

    async def scenario():
        await lifecycle.awaken()
        return await asyncio.gather(
            lifecycle.record_message("user", "first"),
            lifecycle.record_message("claude", "second"),
        )

    outcomes = asyncio.run(scenario())
    assert all(o.ok for o in outcomes)
    assert engine.conversations_started == 1
    assert len(engine.current.messages) == 2


def test_end_conversation_twice_fails_the_second_time(lifecycle, engine):
    asyncio.run(lifecycle.awaken())
    asyncio.run(lifecycle.record_message("user", "hello"))

    first = asyncio.run(lifecycle.end_conversation())
    assert first.ok
    assert first.value.memory_id == "m-2"
    assert lifecycle.state.current_conversation is None
    assert lifecycle.state.phase == SessionPhase.AWAKE

    second = asyncio.run(lifecycle.end_conversation())
    assert not second.ok
    assert second.error.message == NO_CONVERSATION
    assert engine.calls.count("end_conversation") == 1


def test_end_conversation_without_messages_fails(lifecycle):
    asyncio.run(lifecycle.awaken())
    outcome = asyncio.run(lifecycle.end_conversation())
    assert outcome.error.message == NO_CONVERSATION


def test_sleep_returns_update_and_clears_awake(lifecycle, engine):
    asyncio.run(lifecycle.awaken())
    outcome = asyncio.run(lifecycle.sleep(recent_memories_limit=4))
    assert outcome.ok
    assert outcome.value.update_id == "u-1"
    assert ("sleep", 4) in engine.calls
    assert lifecycle.state.awake is False
    assert lifecycle.state.phase == SessionPhase.INITIALIZED
    assert lifecycle.state.awakened_at is None


def test_sleep_ends_active_conversation_first(lifecycle, engine):
    asyncio.run(lifecycle.awaken())
    asyncio.run(lifecycle.record_message("user", "remember this"))
    outcome = asyncio.run(lifecycle.sleep())
    assert outcome.ok
    assert engine.calls.index("end_conversation") < engine.calls.index(("sleep", None))
    assert lifecycle.state.current_conversation is None


def test_sleep_twice_fails_the_second_time(lifecycle, engine):
    asyncio.run(lifecycle.awaken())
    asyncio.run(lifecycle.sleep())
    outcome = asyncio.run(lifecycle.sleep())
    assert not outcome.ok
    assert engine.sleeps == 1


def test_reawaken_keeps_active_conversation(lifecycle):
    asyncio.run(lifecycle.awaken())
    asyncio.run(lifecycle.record_message("user", "hello"))
    asyncio.run(lifecycle.awaken())
    assert lifecycle.state.phase == SessionPhase.CONVERSATION_ACTIVE
    assert lifecycle.state.current_conversation == "c-1"


def test_search_is_legal_asleep_and_normalizes_shape(lifecycle):
    outcome = asyncio.run(lifecycle.search_memories("anything", ["tag"], limit=2))
    assert outcome.ok
    assert outcome.value == []


def test_awakening_prompt_when_awake(lifecycle):
    asyncio.run(lifecycle.awaken())
    outcome = asyncio.run(lifecycle.get_awakening_prompt())
    assert outcome.value == "Wake up"


def test_engine_exceptions_propagate(lifecycle, engine):
    def boom(role, content):
        raise RuntimeError("disk full")

    engine.add_message = boom
    asyncio.run(lifecycle.awaken())
    with pytest.raises(RuntimeError, match="disk full"):
        asyncio.run(lifecycle.record_message("user", "hello"))


def test_status_overlays_session_view(lifecycle):
    status = asyncio.run(lifecycle.status())
    assert status["engine"] == "fake"
    assert status["awake"] is False
    assert status["phase"] == "uninitialized"

    asyncio.run(lifecycle.awaken())
    status = asyncio.run(lifecycle.status())
    assert status["awake"] is True
    assert status["awakenedAt"] == "2026-01-01T00:00:00+00:00"


def test_flush_for_shutdown_only_sleeps_when_awake(lifecycle, engine):
    assert asyncio.run(lifecycle.flush_for_shutdown(1.0)) is None
    assert engine.sleeps == 0

    asyncio.run(lifecycle.awaken())
    outcome = asyncio.run(lifecycle.flush_for_shutdown(1.0))
    assert outcome.ok
    assert engine.sleeps == 1
