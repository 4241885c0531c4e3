from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence


@dataclass
class Persona:
    persona_id: str
    traits: Dict[str, Any] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)
    preferences: Dict[str, Any] = field(default_factory=dict)
    biography: str = ""
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Memory:
    memory_id: str
    summary: str
    importance: int = 5  # 1-10
    timestamp: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    conversation_id: Optional[str] = None


@dataclass
class Message:
    role: str
    content: str
    timestamp: Optional[str] = None


@dataclass
class Conversation:
    conversation_id: str
    participants: List[str] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    started_at: Optional[str] = None


@dataclass
class Update:
    """One dreamstate pass: what changed in the persona and why."""
    update_id: str
    description: str
    justification: str = ""
    timestamp: Optional[str] = None
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)

    def get_diff(self) -> Dict[str, Dict[str, Any]]:
        diff: Dict[str, Dict[str, Any]] = {}
        for key in sorted(set(self.before) | set(self.after)):
            old, new = self.before.get(key), self.after.get(key)
            if old != new:
                diff[key] = {"before": old, "after": new}
        return diff


@dataclass
class AwakeningContext:
    persona: Persona
    recent_memories: List[Memory] = field(default_factory=list)
    important_memories: List[Memory] = field(default_factory=list)
    awakening_time: Optional[str] = None


# Tag search is a standalone entry point, independent of the engine facade.
TagSearch = Callable[[List[str], int], Sequence[Any]]


class MemoryEngine(ABC):
    """Long-term memory engine consumed by the gateway.

    Implementations may return plain values or awaitables from any method;
    the lifecycle controller awaits whatever comes back.
    """

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def awaken(
        self,
        recent_memories_limit: Optional[int] = None,
        important_memories_threshold: Optional[int] = None,
        important_memories_limit: Optional[int] = None,
    ) -> AwakeningContext:
        pass

    @abstractmethod
    def get_persona(self) -> Optional[Persona]:
        pass

    @abstractmethod
    def get_status(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_recent_memories(self, limit: int) -> Sequence[Memory]:
        pass

    @abstractmethod
    def get_important_memories(self, threshold: int, limit: int) -> Sequence[Memory]:
        pass

    @abstractmethod
    def search_memories(self, query: str, tags: List[str], limit: int = 5) -> Sequence[Memory]:
        pass

    @abstractmethod
    def start_conversation(self, participants: List[str]) -> Conversation:
        pass

    @abstractmethod
    def add_message(self, role: str, content: str) -> Conversation:
        pass

    @abstractmethod
    def end_conversation(self) -> Memory:
        pass

    @abstractmethod
    def sleep(self, recent_memories_limit: Optional[int] = None) -> Update:
        pass

    @abstractmethod
    def get_recent_updates(self, limit: int) -> Sequence[Update]:
        pass

    @abstractmethod
    def get_awakening_prompt(self) -> str:
        pass

    def close(self) -> None:
        """Release resources. Override in engines that hold connections."""
