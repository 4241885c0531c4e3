"""
Process-local reference engine for the LTM gateway.

Keeps the persona, memories, persona updates and the in-progress
conversation in memory. Summaries, importance scores and tags come from
lightweight heuristics rather than an LLM:
- summary: opening user message plus message count
- importance: conversation length and explicit emphasis markers (1-10)
- tags: most frequent non-stopword terms
- dreamstate: folds the dominant tags of recent memories into the persona
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ltm_gateway.engine.base import (
    AwakeningContext,
    Conversation,
    Memory,
    MemoryEngine,
    Message,
    Persona,
    Update,
)

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 5
DEFAULT_IMPORTANT_THRESHOLD = 7
DEFAULT_IMPORTANT_LIMIT = 5
DEFAULT_DREAM_LIMIT = 10

_SUMMARY_CHARS = 160
_MAX_TAGS = 5
_MAX_INTERESTS = 10

_STOP_WORDS = {
    'the', 'a', 'an', 'is', 'are', 'was', 'were', 'be', 'been', 'being',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'can', 'shall', 'to', 'of', 'in', 'for',
    'on', 'with', 'at', 'by', 'from', 'as', 'into', 'about', 'over',
    'after', 'before', 'then', 'once', 'here', 'there', 'when', 'where',
    'why', 'how', 'all', 'each', 'more', 'most', 'other', 'some', 'such',
    'not', 'only', 'own', 'same', 'so', 'than', 'too', 'very', 'just',
    'and', 'but', 'if', 'or', 'because', 'until', 'while', 'this',
    'that', 'these', 'those', 'i', 'me', 'my', 'we', 'our', 'you', 'your',
    'he', 'him', 'his', 'she', 'her', 'it', 'its', 'they', 'them', 'their',
    'what', 'which', 'who', 'whom', 'also', 'like', 'let', 'get', 'got',
    'yes', 'okay', 'sure', 'thanks', 'please',
}

_EMPHASIS = re.compile(r"\b(important|remember|don't forget|always|never|must|critical|urgent)\b")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _keywords(text: str) -> List[str]:
    words = re.findall(r"\b[a-zA-Z]+\b", text.lower())
    return [w for w in words if w not in _STOP_WORDS and len(w) > 2]


def _default_persona() -> Persona:
    return Persona(
        persona_id=str(uuid.uuid4()),
        traits={"curiosity": 0.8, "warmth": 0.7, "directness": 0.6},
        values={"honesty": "high", "helpfulness": "high"},
        preferences={"communication_style": "concise", "interests": []},
        biography="An assistant that remembers past conversations and grows from them.",
        last_updated=_now(),
    )


class InMemoryEngine(MemoryEngine):
    """Reference engine; every public method is thread-safe."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = dict(config or {})
        self._lock = threading.Lock()
        self.persona: Optional[Persona] = None
        self.memories: List[Memory] = []
        self.updates: List[Update] = []
        self.current_conversation: Optional[Conversation] = None
        self.is_awake = False
        self.last_awakened: Optional[str] = None
        self.last_slept: Optional[str] = None

    # ---- lifecycle ----

    def initialize(self) -> None:
        with self._lock:
            if self.persona is None:
                self.persona = _default_persona()
                logger.info("Created persona %s", self.persona.persona_id)

    def awaken(
        self,
        recent_memories_limit: Optional[int] = None,
        important_memories_threshold: Optional[int] = None,
        important_memories_limit: Optional[int] = None,
    ) -> AwakeningContext:
        self.initialize()
        recent_limit = DEFAULT_RECENT_LIMIT if recent_memories_limit is None else recent_memories_limit
        threshold = DEFAULT_IMPORTANT_THRESHOLD if important_memories_threshold is None else important_memories_threshold
        important_limit = DEFAULT_IMPORTANT_LIMIT if important_memories_limit is None else important_memories_limit
        recent = self.get_recent_memories(recent_limit)
        important = self.get_important_memories(threshold, important_limit)
        with self._lock:
            self.is_awake = True
            self.last_awakened = _now()
            return AwakeningContext(
                persona=self.persona,
                recent_memories=recent,
                important_memories=important,
                awakening_time=self.last_awakened,
            )

    def sleep(self, recent_memories_limit: Optional[int] = None) -> Update:
        limit = DEFAULT_DREAM_LIMIT if recent_memories_limit is None else recent_memories_limit
        recent = self.get_recent_memories(limit)
        with self._lock:
            if self.persona is None:
                self.persona = _default_persona()
            update = self._dream(recent)
            self.updates.append(update)
            self.is_awake = False
            self.last_slept = update.timestamp
            return update

    def _dream(self, recent: List[Memory]) -> Update:
        """Fold dominant tags of recent memories into persona interests. Called under _lock."""
        before = {"preferences": dict(self.persona.preferences)}
        tag_counts = Counter(tag for memory in recent for tag in memory.tags)
        interests = list(self.persona.preferences.get("interests", []))
        for tag, _count in tag_counts.most_common():
            if tag not in interests:
                interests.append(tag)
        interests = interests[-_MAX_INTERESTS:]
        preferences = dict(self.persona.preferences)
        preferences["interests"] = interests
        self.persona.preferences = preferences
        timestamp = _now()
        self.persona.last_updated = timestamp

        if tag_counts:
            top = ", ".join(tag for tag, _ in tag_counts.most_common(3))
            description = f"Dreamstate integrated {len(recent)} memories; strongest themes: {top}"
            justification = "Recurring topics in recent conversations shift the persona's interests."
        else:
            description = "Dreamstate found no new themes"
            justification = "No recent memories carried tags to integrate."
        return Update(
            update_id=str(uuid.uuid4()),
            description=description,
            justification=justification,
            timestamp=timestamp,
            before=before,
            after={"preferences": dict(preferences)},
        )

    # ---- reads ----

    def get_persona(self) -> Optional[Persona]:
        return self.persona

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "engine": "memory",
                "awake": self.is_awake,
                "personaId": self.persona.persona_id if self.persona else None,
                "memoryCount": len(self.memories),
                "updateCount": len(self.updates),
                "conversationActive": self.current_conversation is not None,
                "lastAwakened": self.last_awakened,
                "lastSlept": self.last_slept,
            }

    def get_recent_memories(self, limit: int) -> List[Memory]:
        with self._lock:
            ordered = sorted(self.memories, key=lambda m: m.timestamp or "", reverse=True)
        return ordered[:max(0, int(limit))]

    def get_important_memories(self, threshold: int, limit: int) -> List[Memory]:
        with self._lock:
            hits = [m for m in self.memories if m.importance >= threshold]
        hits.sort(key=lambda m: (m.importance, m.timestamp or ""), reverse=True)
        return hits[:max(0, int(limit))]

    def search_memories(self, query: str, tags: List[str], limit: int = 5) -> List[Memory]:
        terms = set(_keywords(query or ""))
        wanted = {str(t).lower() for t in (tags or [])}
        scored = []
        with self._lock:
            candidates = list(self.memories)
        for memory in candidates:
            memory_tags = {t.lower() for t in memory.tags}
            tag_hits = len(wanted & memory_tags)
            text_hits = len(terms & (set(_keywords(memory.summary)) | memory_tags))
            if (wanted or terms) and not (tag_hits or text_hits):
                continue
            score = tag_hits * 2 + text_hits + memory.importance / 10.0
            scored.append((score, memory.timestamp or "", memory))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [memory for _score, _ts, memory in scored[:max(0, int(limit))]]

    def search_by_tags(self, tags: List[str], limit: int = 5) -> List[Memory]:
        """Memories carrying any of ``tags``, most relevant first."""
        wanted = {str(t).lower() for t in tags}
        with self._lock:
            hits = [m for m in self.memories if wanted & {t.lower() for t in m.tags}]
        hits.sort(
            key=lambda m: (len(wanted & {t.lower() for t in m.tags}), m.importance, m.timestamp or ""),
            reverse=True,
        )
        return hits[:max(0, int(limit))]

    def get_recent_updates(self, limit: int) -> List[Update]:
        with self._lock:
            ordered = sorted(self.updates, key=lambda u: u.timestamp or "", reverse=True)
        return ordered[:max(0, int(limit))]

    def get_awakening_prompt(self) -> str:
        persona = self.persona or _default_persona()
        recent = self.get_recent_memories(DEFAULT_RECENT_LIMIT)
        important = self.get_important_memories(DEFAULT_IMPORTANT_THRESHOLD, DEFAULT_IMPORTANT_LIMIT)

        lines = ["You are waking up with your long-term memory intact.", ""]
        lines.append(f"Biography: {persona.biography}")
        if persona.traits:
            traits = ", ".join(f"{k} ({v})" for k, v in persona.traits.items())
            lines.append(f"Traits: {traits}")
        if persona.values:
            values = ", ".join(f"{k}: {v}" for k, v in persona.values.items())
            lines.append(f"Values: {values}")
        interests = persona.preferences.get("interests") or []
        if interests:
            lines.append(f"Interests: {', '.join(interests)}")
        if important:
            lines.extend(["", "Important memories:"])
            lines.extend(f"- [{m.importance}/10] {m.summary}" for m in important)
        if recent:
            lines.extend(["", "Recent memories:"])
            lines.extend(f"- {m.summary}" for m in recent)
        return "\n".join(lines)

    # ---- conversations ----

    def start_conversation(self, participants: List[str]) -> Conversation:
        with self._lock:
            self.current_conversation = Conversation(
                conversation_id=str(uuid.uuid4()),
                participants=list(participants),
                started_at=_now(),
            )
            return self.current_conversation

    def add_message(self, role: str, content: str) -> Conversation:
        with self._lock:
            if self.current_conversation is None:
                raise RuntimeError("No active conversation")
            self.current_conversation.messages.append(Message(role=role, content=content, timestamp=_now()))
            return self.current_conversation

    def end_conversation(self) -> Memory:
        with self._lock:
            conversation = self.current_conversation
            if conversation is None:
                raise RuntimeError("No active conversation to end")
            memory = Memory(
                memory_id=str(uuid.uuid4()),
                summary=self._summarize(conversation),
                importance=self._score(conversation),
                timestamp=_now(),
                tags=self._tag(conversation),
                conversation_id=conversation.conversation_id,
            )
            self.memories.append(memory)
            self.current_conversation = None
            return memory

    @staticmethod
    def _summarize(conversation: Conversation) -> str:
        count = len(conversation.messages)
        opener = next((m.content for m in conversation.messages if m.role == "user"), None)
        if opener is None and conversation.messages:
            opener = conversation.messages[0].content
        if not opener:
            return "Empty conversation"
        opener = " ".join(opener.split())
        if len(opener) > _SUMMARY_CHARS:
            opener = opener[:_SUMMARY_CHARS].rstrip() + "..."
        return f"{opener} ({count} message{'s' if count != 1 else ''})"

    @staticmethod
    def _score(conversation: Conversation) -> int:
        text = " ".join(m.content for m in conversation.messages).lower()
        score = 3 + min(3, len(conversation.messages) // 4)
        if _EMPHASIS.search(text):
            score += 3
        if re.search(r"\d{3,}", text):
            score += 1
        return max(1, min(10, score))

    @staticmethod
    def _tag(conversation: Conversation) -> List[str]:
        counts = Counter()
        for message in conversation.messages:
            counts.update(_keywords(message.content))
        return [word for word, _ in counts.most_common(_MAX_TAGS)]
