"""Shared fixtures: settings, fake clock, fake Redis and in-process services."""

import pytest

from core.cache import CacheService
from core.config import Settings
from services.adapters.manager import AdapterManager
from services.caching import GenerationCache, TieredCache
from services.generation import GenerationService
from services.jobs import InMemoryJobEventBus, InMemoryQueueBackend, QueueService
from services.jobs.dlq import DLQHandler
from services.resilience import CircuitBreakerRegistry
from services.search import SerperSearchClient

from fakes import FakeClock, FakeRedis, ScriptedAdapter


@pytest.fixture
def settings():
    return Settings(
        redis_enabled=False,
        redis_url=None,
        serper_api_key=None,
        mock_llm_enabled=False,
        use_local_queue=True,
        llm_priority="primary,secondary",
        llm_default_provider="primary",
        deep_dive_child_limit=3,
        child_job_count=5,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def remote_cache(settings, fake_redis):
    """CacheService talking to the fake Redis."""
    return CacheService(settings, client=fake_redis)


@pytest.fixture
def breakers(settings):
    return CircuitBreakerRegistry.from_settings(settings)


@pytest.fixture
def primary():
    return ScriptedAdapter("primary")


@pytest.fixture
def secondary():
    return ScriptedAdapter("secondary")


@pytest.fixture
def adapter_manager(primary, secondary):
    return AdapterManager(
        {"primary": primary, "secondary": secondary},
        priority=["primary", "secondary"],
        default="primary",
    )


@pytest.fixture
def queue_backend():
    return InMemoryQueueBackend(retention_seconds=3600)


@pytest.fixture
def event_bus():
    return InMemoryJobEventBus()


@pytest.fixture
def queue(queue_backend, event_bus):
    return QueueService(queue_backend, event_bus, name="test-queue", poll_timeout=0.05,
                        dlq=DLQHandler(queue_backend))


@pytest.fixture
def generation_cache():
    return GenerationCache(ttl=3600, max_entries=100)


@pytest.fixture
def search_client(settings, breakers):
    return SerperSearchClient(settings, breakers, TieredCache("serper", ttl=3600, max_entries=10))


@pytest.fixture
def generation_service(adapter_manager, breakers, generation_cache, search_client, settings, queue):
    return GenerationService(adapter_manager, breakers, generation_cache, search_client,
                             settings, queue=queue)
