from ltm_gateway.engine.base import (
    AwakeningContext,
    Conversation,
    Memory,
    MemoryEngine,
    Message,
    Persona,
    TagSearch,
    Update,
)
from ltm_gateway.engine.factory import EngineFactory, tag_search_for
from ltm_gateway.engine.in_memory import InMemoryEngine

__all__ = [
    "AwakeningContext",
    "Conversation",
    "Memory",
    "MemoryEngine",
    "Message",
    "Persona",
    "TagSearch",
    "Update",
    "EngineFactory",
    "InMemoryEngine",
    "tag_search_for",
]
