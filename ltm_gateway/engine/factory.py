import importlib
from typing import Any, List

from ltm_gateway.configs.base import EngineConfig
from ltm_gateway.engine.base import MemoryEngine, TagSearch


def _import_attr(path: str) -> Any:
    module_name, _, attr = path.partition(":")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ValueError(f"Engine path '{path}' has no attribute '{attr}'") from exc


class EngineFactory:
    @classmethod
    def create(cls, config: EngineConfig) -> MemoryEngine:
        if config.provider == "memory":
            from ltm_gateway.engine.in_memory import InMemoryEngine

            return InMemoryEngine(config.config)
        if config.provider == "custom":
            target = _import_attr(config.path)
            engine = target(config.config) if callable(target) else target
            if engine is None:
                raise ValueError(f"Engine path '{config.path}' produced no engine")
            return engine
        raise ValueError(f"Unsupported engine provider: {config.provider}")


def tag_search_for(engine: MemoryEngine) -> TagSearch:
    """Return the engine's tag-search entry point, or a search-based fallback."""
    search_by_tags = getattr(engine, "search_by_tags", None)
    if callable(search_by_tags):
        return search_by_tags

    def _fallback(tags: List[str], limit: int):
        return engine.search_memories("", tags, limit=limit)

    return _fallback
