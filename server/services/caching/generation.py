"""Cache of finished generation results keyed by request shape."""

from typing import Any, Dict, Optional

from constants import FLASHCARD_CACHE_NAME
from core.logging import get_logger
from models.generation import GenerationMode, GenerationRequest, KnowledgeSource
from .tiered import RemoteCache, TieredCache, hash_key

logger = get_logger(__name__)


def _value(v: Any) -> str:
    return v.value if hasattr(v, "value") else str(v)


class GenerationCache:
    """Tiered cache for ``{cards, recommendedTopics}`` payloads.

    Topic is trimmed and lower-cased before hashing, so "React" and " react"
    share a slot.
    """

    def __init__(self, ttl: int, max_entries: int, remote: Optional[RemoteCache] = None,
                 **kwargs):
        self.cache = TieredCache(FLASHCARD_CACHE_NAME, ttl=ttl, max_entries=max_entries,
                                 remote=remote, **kwargs)

    @staticmethod
    def make_key(topic: str, count: int,
                 mode: Any = GenerationMode.STANDARD,
                 knowledge_source: Any = KnowledgeSource.AI_WEB) -> str:
        return hash_key({
            "topic": topic.strip().lower(),
            "count": int(count),
            "mode": _value(mode),
            "knowledge_source": _value(knowledge_source),
        })

    async def get(self, topic: str, count: int, mode: Any = GenerationMode.STANDARD,
                  knowledge_source: Any = KnowledgeSource.AI_WEB) -> Optional[Dict[str, Any]]:
        return await self.cache.get(self.make_key(topic, count, mode, knowledge_source))

    async def set(self, topic: str, count: int, data: Dict[str, Any],
                  mode: Any = GenerationMode.STANDARD,
                  knowledge_source: Any = KnowledgeSource.AI_WEB) -> None:
        key = self.make_key(topic, count, mode, knowledge_source)
        await self.cache.set(key, data)
        logger.info("Cached generation result", topic=topic, count=count,
                    mode=_value(mode), knowledge_source=_value(knowledge_source), cache_key=key)

    async def has(self, topic: str, count: int, mode: Any = GenerationMode.STANDARD,
                  knowledge_source: Any = KnowledgeSource.AI_WEB) -> bool:
        return await self.cache.has(self.make_key(topic, count, mode, knowledge_source))

    async def delete(self, topic: str, count: int, mode: Any = GenerationMode.STANDARD,
                     knowledge_source: Any = KnowledgeSource.AI_WEB) -> None:
        await self.cache.delete(self.make_key(topic, count, mode, knowledge_source))

    async def get_for_request(self, request: GenerationRequest) -> Optional[Dict[str, Any]]:
        return await self.get(request.topic, request.count, request.mode, request.knowledge_source)

    async def set_for_request(self, request: GenerationRequest, data: Dict[str, Any]) -> None:
        await self.set(request.topic, request.count, data, request.mode, request.knowledge_source)

    def stats(self) -> Dict[str, Any]:
        return self.cache.stats()
