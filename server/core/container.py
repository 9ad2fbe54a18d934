"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from constants import LLM_CACHE_NAME, SEARCH_CACHE_NAME
from core.config import Settings
from core.cache import CacheService
from services.adapters import create_adapter_manager
from services.caching import GenerationCache, TieredCache
from services.generation import GenerationService
from services.jobs import (
    QueueService,
    create_dlq_handler,
    create_event_bus,
    create_queue_backend,
    create_retry_policy,
)
from services.resilience import CircuitBreakerRegistry
from services.search import SerperSearchClient


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Shared Redis connection (remote cache tier and queue backend)
    cache = providers.Singleton(
        CacheService,
        settings=settings
    )

    # One breaker registry per process
    breakers = providers.Singleton(
        CircuitBreakerRegistry.from_settings,
        settings=settings
    )

    # Tiered caches
    generation_cache = providers.Singleton(
        GenerationCache,
        ttl=settings.provided.flashcard_cache_ttl,
        max_entries=settings.provided.flashcard_cache_max_entries,
        remote=cache
    )

    llm_cache = providers.Singleton(
        TieredCache,
        name=LLM_CACHE_NAME,
        ttl=settings.provided.cache_llm_ttl,
        max_entries=settings.provided.cache_llm_max_entries,
        remote=cache
    )

    search_cache = providers.Singleton(
        TieredCache,
        name=SEARCH_CACHE_NAME,
        ttl=settings.provided.cache_search_ttl,
        max_entries=settings.provided.cache_search_max_entries,
        remote=cache
    )

    # Providers
    adapter_manager = providers.Singleton(
        create_adapter_manager,
        settings=settings,
        response_cache=llm_cache
    )

    search_client = providers.Singleton(
        SerperSearchClient,
        settings=settings,
        breakers=breakers,
        cache=search_cache
    )

    # Job queue
    queue_backend = providers.Singleton(
        create_queue_backend,
        settings=settings,
        cache=cache
    )

    event_bus = providers.Singleton(
        create_event_bus,
        settings=settings,
        cache=cache
    )

    dlq = providers.Singleton(
        create_dlq_handler,
        backend=queue_backend,
        enabled=settings.provided.dlq_enabled
    )

    retry_policy = providers.Singleton(
        create_retry_policy,
        settings=settings
    )

    queue = providers.Singleton(
        QueueService,
        backend=queue_backend,
        events=event_bus,
        name=settings.provided.queue_name,
        enabled=settings.provided.queue_enabled,
        poll_timeout=settings.provided.job_poll_timeout,
        dlq=dlq,
        retry_policy=retry_policy
    )

    # Services
    generation_service = providers.Singleton(
        GenerationService,
        adapters=adapter_manager,
        breakers=breakers,
        cache=generation_cache,
        search=search_client,
        settings=settings,
        queue=queue
    )


# Global container instance
container = Container()
