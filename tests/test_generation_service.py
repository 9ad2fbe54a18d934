"""Tests for generation modes, the submit path and the job processor."""

import httpx
import pytest

from models.generation import GenerationRequest, GenerationResult
from models.jobs import JobStatus
from services.caching import TieredCache
from services.exceptions import AllAdaptersFailedError
from services.generation import GenerationService
from services.jobs import QueueService, RedisQueueBackend, InMemoryJobEventBus
from services.search import SerperSearchClient
from core.cache import CacheService

from fakes import BrokenRedis, make_cards


def _request(**kwargs):
    kwargs.setdefault("topic", "react")
    kwargs.setdefault("count", 3)
    kwargs.setdefault("runtime", "primary")
    return GenerationRequest(**kwargs)


ORGANIC = [
    {"title": "Hooks intro", "link": "https://react.dev/learn/hooks", "snippet": "Hooks let you"},
    {"title": "Hooks API", "link": "https://react.dev/reference/hooks", "snippet": "Reference"},
    {"title": "Hooks blog", "link": "https://blog.example.com/hooks", "snippet": "A tutorial"},
    {"title": "No link"},
]


@pytest.fixture
def search_calls():
    return []


@pytest.fixture
def web_service(adapter_manager, breakers, generation_cache, settings, queue, search_calls):
    """Service with web search enabled against a mocked Serper endpoint."""

    def handler(request):
        search_calls.append(request)
        return httpx.Response(200, json={"organic": ORGANIC})

    search_settings = settings.model_copy(update={"serper_api_key": "serper-key"})
    search = SerperSearchClient(search_settings, breakers, TieredCache("serper", ttl=60, max_entries=10),
                                transport=httpx.MockTransport(handler))
    return GenerationService(adapter_manager, breakers, generation_cache, search,
                             search_settings, queue=queue)


class TestStandardGeneration:

    async def test_ai_only_uses_basic_generation(self, generation_service, primary):
        result = await generation_service.generate(_request(knowledge_source="ai-only"))

        assert primary.operations() == ["generate_flashcards"]
        assert [c.id for c in result.cards] == ["primary-0", "primary-1", "primary-2"]
        assert result.recommended_topics == []

    async def test_cards_trimmed_to_count(self, generation_service, primary):
        primary.cards = make_cards("react", 10)

        result = await generation_service.generate(_request(knowledge_source="ai-only"))

        assert len(result.cards) == 3

    async def test_ai_web_with_summary_generates_from_text(self, generation_service, primary):
        primary.summary = "React is a UI library."

        result = await generation_service.generate(_request())

        assert primary.operations() == ["generate_summary", "generate_flashcards_from_text"]
        assert result.cards[0].id == "primary-text-0"

    async def test_no_context_falls_back_to_basic(self, generation_service, primary):
        await generation_service.generate(_request(knowledge_source="web-only"))

        assert primary.operations() == ["generate_flashcards"]

    async def test_web_context_unique_domains_and_cached(self, web_service, primary, search_calls):
        context = await web_service.web_context("react hooks", None, "primary")

        assert context.count("SOURCE (") == 2
        assert "https://react.dev/learn/hooks" in context
        assert "https://react.dev/reference/hooks" not in context
        assert "https://blog.example.com/hooks" in context

        again = await web_service.web_context("React Hooks", None, "primary")
        assert again == context
        assert len(search_calls) == 1
        assert primary.operations() == ["generate_search_query"]

    async def test_web_only_skips_summary(self, web_service, primary):
        await web_service.generate(_request(knowledge_source="web-only"))

        assert primary.operations() == ["generate_search_query", "generate_flashcards_from_text"]

    async def test_search_failure_degrades_to_no_context(self, adapter_manager, breakers,
                                                         generation_cache, settings, primary):
        def handler(request):
            return httpx.Response(500, json={"message": "quota exceeded"})

        search_settings = settings.model_copy(update={"serper_api_key": "serper-key"})
        search = SerperSearchClient(search_settings, breakers, TieredCache("serper", ttl=60, max_entries=10),
                                    transport=httpx.MockTransport(handler))
        service = GenerationService(adapter_manager, breakers, generation_cache, search, search_settings)

        result = await service.generate(_request(knowledge_source="web-only"))

        assert primary.operations() == ["generate_search_query", "generate_flashcards"]
        assert len(result.cards) == 3


class TestProviderFallback:

    async def test_next_provider_on_failure(self, generation_service, primary, secondary):
        primary.error = RuntimeError("model overloaded")

        result = await generation_service.generate(_request(knowledge_source="ai-only"))

        assert result.cards[0].id == "secondary-0"

    async def test_empty_output_moves_on(self, generation_service, primary, secondary):
        primary.cards = []

        result = await generation_service.generate(_request(knowledge_source="ai-only"))

        assert result.cards[0].id == "secondary-0"

    async def test_open_breaker_skips_provider(self, generation_service, primary, secondary):
        primary.error = RuntimeError("model overloaded")
        await generation_service.generate(_request(knowledge_source="ai-only"))

        primary.error = None
        result = await generation_service.generate(_request(knowledge_source="ai-only"))

        assert result.cards[0].id == "secondary-0"
        assert len(primary.calls) == 1

    async def test_all_providers_failed(self, generation_service, primary, secondary):
        primary.error = RuntimeError("down")
        secondary.error = RuntimeError("also down")

        with pytest.raises(AllAdaptersFailedError) as exc_info:
            await generation_service.generate(_request(knowledge_source="ai-only"))

        assert set(exc_info.value.errors) == {"primary", "secondary"}


class TestDeepDive:

    async def test_first_subtopic_generated_rest_recommended(self, generation_service, primary):
        primary.subtopics = ["Hooks", "Context", "Suspense", "Server Components"]

        result = await generation_service.generate(
            _request(mode="deep-dive", knowledge_source="ai-only"))

        assert primary.calls[1] == ("generate_flashcards", "Hooks", 3)
        assert result.recommended_topics == ["Context", "Suspense", "Server Components"]

    async def test_no_subtopics_means_standard(self, generation_service, primary):
        result = await generation_service.generate(
            _request(mode="deep-dive", knowledge_source="ai-only"))

        assert primary.calls[-1] == ("generate_flashcards", "react", 3)
        assert result.recommended_topics == []


class TestSubmit:

    async def test_enqueues_when_queue_available(self, generation_service, queue):
        outcome = await generation_service.submit(_request())

        assert outcome.queued
        job = await queue.get_status(outcome.job_id)
        assert job.status == JobStatus.QUEUED
        assert job.payload["topic"] == "react"
        assert job.payload["knowledgeSource"] == "ai-web"

    async def test_cache_hit_short_circuits(self, generation_service, generation_cache, primary, queue):
        request = _request()
        cached = GenerationResult(cards=make_cards("react", 3), recommended_topics=["Hooks"])
        await generation_cache.set_for_request(request, cached.to_cache())

        outcome = await generation_service.submit(_request(topic="  React "))

        assert outcome.cached
        assert outcome.result.recommended_topics == ["Hooks"]
        assert primary.calls == []
        assert (await queue.stats())["waiting"] == 0

    async def test_disabled_queue_generates_directly(self, generation_service, queue, generation_cache):
        queue.enabled = False

        outcome = await generation_service.submit(_request(knowledge_source="ai-only"))

        assert outcome.kind == "direct"
        assert len(outcome.result.cards) == 3
        assert outcome.metadata["queueFallback"] is False
        assert outcome.metadata["knowledgeSource"] == "ai-only"
        assert await generation_cache.get_for_request(_request(knowledge_source="ai-only"))

    async def test_broken_queue_falls_back_to_sync(self, adapter_manager, breakers, generation_cache,
                                                   search_client, settings):
        broken = QueueService(RedisQueueBackend(CacheService(settings, client=BrokenRedis()), "q"),
                              InMemoryJobEventBus())
        service = GenerationService(adapter_manager, breakers, generation_cache, search_client,
                                    settings, queue=broken)

        outcome = await service.submit(_request(knowledge_source="ai-only"))

        assert outcome.kind == "direct"
        assert outcome.metadata["queueFallback"] is True
        assert outcome.metadata["runtime"] == "primary"


class TestProcessJob:

    async def test_progress_checkpoints_and_cache(self, generation_service, queue, event_bus,
                                                  generation_cache):
        worker = queue.init_worker(generation_service.process_job)
        request = _request(knowledge_source="ai-only")
        job_id = await queue.enqueue(request.to_payload())

        progress = []
        async with event_bus.subscribe(job_id) as events:
            await worker.process_next(timeout=0.1)
            async for event in events:
                progress.append((event["status"], event["progress"]))
                if event["status"] == "completed":
                    break

        assert progress == [
            ("active", 0), ("active", 5), ("active", 70), ("active", 100), ("completed", 100)]
        job = await queue.get_status(job_id)
        assert len(job.result["cards"]) == 3
        assert await generation_cache.get_for_request(request) == job.result

    async def test_deep_dive_enqueues_child_jobs(self, generation_service, queue, primary):
        primary.subtopics = [
            "Hooks", "Context", "Suspense", "Server Components", "Testing", "Routing"]
        worker = queue.init_worker(generation_service.process_job)
        parent = _request(mode="deep-dive", knowledge_source="ai-only", user_id="u-1")
        parent_id = await queue.enqueue(parent.to_payload())

        await worker.process_next(timeout=0.1)

        parent_job = await queue.get_status(parent_id)
        assert parent_job.status == JobStatus.COMPLETED
        assert len(parent_job.result["recommendedTopics"]) == 5
        assert (await queue.stats())["waiting"] == 3

        children = [await queue.backend.pop(0.01) for _ in range(3)]
        assert [c.payload["topic"] for c in children] == ["Context", "Suspense", "Server Components"]
        for child in children:
            assert child.payload["parentTopic"] == "react"
            assert child.payload["mode"] == "standard"
            assert child.payload["count"] == 5
            assert child.payload["knowledgeSource"] == "ai-only"
            assert child.payload["runtime"] == "primary"
            assert child.payload["userId"] == "u-1"

    async def test_failed_generation_fails_job(self, generation_service, queue, primary, secondary):
        primary.error = RuntimeError("down")
        secondary.error = RuntimeError("down")
        worker = queue.init_worker(generation_service.process_job)
        job_id = await queue.enqueue(_request(knowledge_source="ai-only").to_payload())

        await worker.process_next(timeout=0.1)

        job = await queue.get_status(job_id)
        assert job.status == JobStatus.FAILED
        assert "All LLM adapters failed" in job.error
