"""Text-generation provider adapters and the priority manager."""

from typing import Dict, Optional

from core.config import Settings
from services.caching.tiered import TieredCache
from .base import LLMAdapter, PromptAdapter
from .chat_models import PROVIDER_CONFIGS, ChatModelAdapter, build_chat_model_adapters
from .manager import AdapterManager
from .mock import MockAdapter
from .ollama import OllamaAdapter


def build_adapter_registry(settings: Settings,
                           response_cache: Optional[TieredCache] = None) -> Dict[str, LLMAdapter]:
    """Every provider this process can talk to, keyed by name."""
    prompt_adapters = [OllamaAdapter(settings), *build_chat_model_adapters(settings)]
    registry: Dict[str, LLMAdapter] = {}
    for adapter in prompt_adapters:
        adapter.response_cache = response_cache
        registry[adapter.name] = adapter
    if settings.mock_llm_enabled:
        registry["mock"] = MockAdapter()
    return registry


def create_adapter_manager(settings: Settings,
                           response_cache: Optional[TieredCache] = None) -> AdapterManager:
    """Factory used by the DI container."""
    priority = settings.priority_list
    if settings.mock_llm_enabled and "mock" not in priority:
        priority = priority + ["mock"]
    return AdapterManager(build_adapter_registry(settings, response_cache), priority, settings.default_provider)


__all__ = [
    "LLMAdapter",
    "PromptAdapter",
    "PROVIDER_CONFIGS",
    "ChatModelAdapter",
    "AdapterManager",
    "MockAdapter",
    "OllamaAdapter",
    "build_adapter_registry",
    "create_adapter_manager",
]
