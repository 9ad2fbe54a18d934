"""Hosted chat model providers through LangChain."""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from core.config import Settings
from core.logging import get_logger, log_api_call, log_execution_time
from .base import PromptAdapter

logger = get_logger(__name__)


# =============================================================================
# AI PROVIDER REGISTRY - Single source of truth for provider configurations
# =============================================================================

@dataclass
class ProviderConfig:
    """Configuration for a hosted chat model provider."""
    name: str
    model_class: Type
    api_key_param: str  # Parameter name for API key in model constructor
    max_tokens_param: str  # Parameter name for max tokens
    api_key_setting: str  # Settings attribute holding the key
    model_setting: str  # Settings attribute holding the model name


PROVIDER_CONFIGS: Dict[str, ProviderConfig] = {
    'openai': ProviderConfig(
        name='openai',
        model_class=ChatOpenAI,
        api_key_param='openai_api_key',
        max_tokens_param='max_tokens',
        api_key_setting='openai_api_key',
        model_setting='openai_model',
    ),
    'anthropic': ProviderConfig(
        name='anthropic',
        model_class=ChatAnthropic,
        api_key_param='anthropic_api_key',
        max_tokens_param='max_tokens',
        api_key_setting='anthropic_api_key',
        model_setting='anthropic_model',
    ),
    'gemini': ProviderConfig(
        name='gemini',
        model_class=ChatGoogleGenerativeAI,
        api_key_param='google_api_key',
        max_tokens_param='max_output_tokens',
        api_key_setting='google_ai_api_key',
        model_setting='gemini_model',
    ),
}


def _content_text(content: Any) -> str:
    """LangChain content may be a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class ChatModelAdapter(PromptAdapter):
    """Provider adapter backed by a LangChain chat model.

    Available whenever an API key is configured; the model is built lazily on
    first use and reused afterwards.
    """

    def __init__(self, provider: str, settings: Settings, chat_model: Optional[Any] = None):
        config = PROVIDER_CONFIGS.get(provider)
        if not config:
            raise ValueError(f"Unsupported provider: {provider}")
        self.name = provider
        self.config = config
        self.settings = settings
        self.api_key: Optional[str] = getattr(settings, config.api_key_setting)
        self.model: str = getattr(settings, config.model_setting)
        self._chat_model = chat_model

    async def is_available(self) -> bool:
        return bool(self.api_key) or self._chat_model is not None

    def create_model(self):
        """Create LangChain model instance using provider registry."""
        kwargs = {
            self.config.api_key_param: self.api_key,
            'model': self.model,
            'temperature': self.settings.llm_temperature,
            self.config.max_tokens_param: self.settings.llm_max_tokens,
        }
        return self.config.model_class(**kwargs)

    @property
    def chat_model(self):
        if self._chat_model is None:
            self._chat_model = self.create_model()
        return self._chat_model

    async def _complete(self, prompt: str, system: str) -> str:
        start_time = time.time()
        messages: List[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        try:
            response = await self.chat_model.ainvoke(messages)
        except Exception as e:
            log_api_call(logger, self.name, self.model, "chat", False, error=str(e))
            raise

        log_execution_time(logger, f"{self.name}_chat", start_time, time.time())
        log_api_call(logger, self.name, self.model, "chat", True)
        return _content_text(response.content)


def build_chat_model_adapters(settings: Settings) -> List[ChatModelAdapter]:
    """One adapter per registry entry that has an API key configured."""
    adapters = []
    for name, config in PROVIDER_CONFIGS.items():
        if getattr(settings, config.api_key_setting):
            adapters.append(ChatModelAdapter(name, settings))
        else:
            logger.debug("Chat model provider not configured", provider=name)
    return adapters
