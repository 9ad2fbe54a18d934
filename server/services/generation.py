"""Flashcard generation: synchronous core, submit path and job processor.

``submit`` is the request path: domain cache, then the job queue, then the
same generation logic inline when the queue cannot take the work.
``process_job`` is the worker path for queued requests.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from constants import (
    BREAKER_GROUP_LLM,
    PROGRESS_DONE,
    PROGRESS_GENERATED,
    PROGRESS_STARTED,
    WEB_CONTEXT_PREFIX,
)
from core.config import Settings
from core.logging import get_logger, log_execution_time
from models.generation import (
    Flashcard,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    KnowledgeSource,
)
from services.adapters.base import LLMAdapter
from services.adapters.manager import AdapterManager
from services.caching.generation import GenerationCache
from services.caching.tiered import hash_key
from services.exceptions import OrchestrationError, QueueUnavailableError
from services.jobs.queue import QueueService
from services.jobs.worker import JobContext
from services.resilience.circuit_breaker import CircuitBreakerRegistry
from services.search import SerperSearchClient

logger = get_logger(__name__)

WEB_SOURCE_LIMIT = 5


@dataclass
class SubmitOutcome:
    """Result of the request path: cached, queued or direct."""
    kind: str
    result: Optional[GenerationResult] = None
    job_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def cached(self) -> bool:
        return self.kind == "cached"

    @property
    def queued(self) -> bool:
        return self.kind == "queued"


class EmptyGenerationError(OrchestrationError):
    """Provider answered but produced no usable flashcards."""


class GenerationService:

    def __init__(self, adapters: AdapterManager, breakers: CircuitBreakerRegistry,
                 cache: GenerationCache, search: SerperSearchClient, settings: Settings,
                 queue: Optional[QueueService] = None):
        self.adapters = adapters
        self.breakers = breakers
        self.cache = cache
        self.search = search
        self.settings = settings
        self.queue = queue
        self.llm_options = breakers.options_for(BREAKER_GROUP_LLM)

    # =========================================================================
    # PROVIDER CALLS
    # =========================================================================

    async def _call(self, runtime: str, operation: str,
                    call: Callable[[LLMAdapter], Awaitable[Any]]) -> Any:
        """Run one capability with provider fallback, each attempt behind its breaker."""

        async def attempt(adapter: LLMAdapter, name: str) -> Any:
            return await self.breakers.run(f"llm:{name}:{operation}", lambda: call(adapter),
                                           options=self.llm_options)

        return await self.adapters.execute_with_fallback(attempt, preferred_name=runtime)

    async def _cards(self, runtime: str, operation: str,
                     call: Callable[[LLMAdapter], Awaitable[List[Flashcard]]]) -> List[Flashcard]:
        async def non_empty(adapter: LLMAdapter) -> List[Flashcard]:
            cards = await call(adapter)
            if not cards:
                raise EmptyGenerationError(f"{operation} returned no flashcards")
            return cards

        return await self._call(runtime, operation, non_empty)

    # =========================================================================
    # SYNCHRONOUS CORE
    # =========================================================================

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate cards for a request. No cache lookup."""
        start_time = time.time()
        if request.mode == GenerationMode.DEEP_DIVE:
            result = await self._generate_deep_dive(request)
        else:
            result = await self._generate_standard(request, request.topic, request.parent_topic)

        result.cards = self._finalize(result.cards, request.count)
        log_execution_time(logger, "generate_flashcards", start_time, time.time(),
                           topic=request.topic, mode=request.mode.value,
                           knowledge_source=request.knowledge_source.value,
                           cards=len(result.cards))
        return result

    async def _generate_standard(self, request: GenerationRequest, topic: str,
                                 parent_topic: Optional[str]) -> GenerationResult:
        count = request.count
        if request.knowledge_source == KnowledgeSource.AI_ONLY:
            cards = await self._cards(request.runtime, "generate_flashcards",
                                      lambda a: a.generate_flashcards(topic, count))
            return GenerationResult(cards=cards)

        context = ""
        if request.knowledge_source == KnowledgeSource.AI_WEB:
            summary = await self._summary(request.runtime, topic)
            if summary:
                context += f"AI KNOWLEDGE SUMMARY:\n{summary}\n\n"
        web = await self.web_context(topic, parent_topic, request.runtime)
        if web:
            context += f"WEB CONTENT:\n{web}\n\n"

        if context:
            cards = await self._cards(request.runtime, "generate_flashcards_from_text",
                                      lambda a: a.generate_flashcards_from_text(context, topic, count))
        else:
            logger.info("No context available, using basic generation", topic=topic)
            cards = await self._cards(request.runtime, "generate_flashcards",
                                      lambda a: a.generate_flashcards(topic, count))
        return GenerationResult(cards=cards)

    async def _generate_deep_dive(self, request: GenerationRequest) -> GenerationResult:
        try:
            subtopics = await self._call(request.runtime, "generate_subtopics",
                                         lambda a: a.generate_subtopics(request.topic))
        except OrchestrationError as e:
            logger.warning("Sub-topic generation failed, using standard mode",
                           topic=request.topic, error=str(e))
            subtopics = []

        if not subtopics:
            return await self._generate_standard(request, request.topic, request.parent_topic)

        primary, remaining = subtopics[0], list(subtopics[1:])
        logger.info("Deep dive", topic=request.topic, primary=primary, recommended=len(remaining))

        context = ""
        if request.knowledge_source != KnowledgeSource.AI_ONLY:
            web = await self.web_context(primary, request.topic, request.runtime)
            if web:
                context = f"DEEP DIVE TOPIC: {primary} (Parent: {request.topic})\n{web}\n"

        count = request.count
        if context:
            cards = await self._cards(request.runtime, "generate_flashcards_from_text",
                                      lambda a: a.generate_flashcards_from_text(context, primary, count))
        else:
            cards = await self._cards(request.runtime, "generate_flashcards",
                                      lambda a: a.generate_flashcards(primary, count))
        return GenerationResult(cards=cards, recommended_topics=remaining)

    async def _summary(self, runtime: str, topic: str) -> str:
        try:
            return await self._call(runtime, "generate_summary", lambda a: a.generate_summary(topic))
        except OrchestrationError as e:
            logger.warning("AI summary unavailable", topic=topic, error=str(e))
            return ""

    async def web_context(self, topic: str, parent_topic: Optional[str], runtime: str) -> str:
        """Search snippets from distinct domains, cached per topic."""
        if not self.search.enabled:
            return ""

        key = hash_key(WEB_CONTEXT_PREFIX, topic.strip().lower(), parent_topic or "")
        cached = await self.search.cache.get(key)
        if cached:
            return cached

        try:
            query = await self._call(runtime, "generate_search_query",
                                     lambda a: a.generate_search_query(topic, parent_topic))
        except OrchestrationError as e:
            logger.warning("Search query refinement failed, using topic", topic=topic, error=str(e))
            query = topic

        results = await self.search.search(query or topic)
        seen_hosts = set()
        sections = []
        for result in results:
            host = urlparse(result.link).hostname
            if not host or host in seen_hosts:
                continue
            seen_hosts.add(host)
            sections.append(f"SOURCE ({result.link}): {result.title}\n{result.snippet}")
            if len(sections) >= WEB_SOURCE_LIMIT:
                break

        context = "\n---\n".join(sections)
        if context:
            await self.search.cache.set(key, context)
        return context

    @staticmethod
    def _finalize(cards: List[Flashcard], count: int) -> List[Flashcard]:
        finalized = []
        for card in cards[:count]:
            if not card.id:
                card = card.model_copy(update={"id": str(uuid.uuid4())})
            finalized.append(card)
        return finalized

    # =========================================================================
    # REQUEST PATH
    # =========================================================================

    async def submit(self, request: GenerationRequest) -> SubmitOutcome:
        """Cache hit, queued job, or direct result when the queue is down."""
        cached = await self.cache.get_for_request(request)
        if cached is not None:
            logger.info("Generation cache hit", topic=request.topic, count=request.count)
            return SubmitOutcome(kind="cached", result=GenerationResult.from_cache(cached))

        queue_fallback = False
        if self.queue is not None and self.queue.enabled:
            try:
                job_id = await self.queue.enqueue(request.to_payload())
                return SubmitOutcome(kind="queued", job_id=job_id)
            except QueueUnavailableError as e:
                logger.warning("Queue unavailable, generating synchronously",
                               topic=request.topic, error=str(e))
                queue_fallback = True

        start_time = time.time()
        result = await self.generate(request)
        await self.cache.set_for_request(request, result.to_cache())
        return SubmitOutcome(kind="direct", result=result, metadata={
            "runtime": request.runtime,
            "mode": request.mode.value,
            "knowledgeSource": request.knowledge_source.value,
            "durationMs": round((time.time() - start_time) * 1000),
            "queueFallback": queue_fallback,
        })

    # =========================================================================
    # WORKER PATH
    # =========================================================================

    async def process_job(self, job: JobContext) -> Dict[str, Any]:
        """Queue processor: generate, cache, fan out deep-dive children."""
        request = GenerationRequest.model_validate(job.payload)
        await job.update_progress(PROGRESS_STARTED)

        result = await self.generate(request)
        await job.update_progress(PROGRESS_GENERATED)

        data = result.to_cache()
        await self.cache.set_for_request(request, data)

        if request.mode == GenerationMode.DEEP_DIVE and result.recommended_topics:
            await self.enqueue_children(request, result.recommended_topics)

        await job.update_progress(PROGRESS_DONE)
        return data

    async def enqueue_children(self, parent: GenerationRequest, topics: List[str]) -> List[str]:
        """Pre-warm recommended topics as standard jobs. Failures are only logged."""
        if self.queue is None:
            return []
        job_ids = []
        for topic in topics[: self.settings.deep_dive_child_limit]:
            try:
                child = GenerationRequest(
                    topic=topic,
                    count=self.settings.child_job_count,
                    mode=GenerationMode.STANDARD,
                    knowledge_source=parent.knowledge_source,
                    runtime=parent.runtime,
                    parent_topic=parent.topic,
                    user_id=parent.user_id,
                )
                job_ids.append(await self.queue.enqueue(child.to_payload()))
            except Exception as e:
                logger.warning("Failed to enqueue child job", parent=parent.topic,
                               topic=topic, error=str(e))
        if job_ids:
            logger.info("Enqueued deep-dive child jobs", parent=parent.topic, count=len(job_ids))
        return job_ids
