"""Local Ollama provider over its HTTP API."""

import time
from typing import Optional

import httpx

from core.config import Settings
from core.logging import get_logger, log_api_call, log_execution_time
from .base import PromptAdapter

logger = get_logger(__name__)

PROBE_TIMEOUT = 2.0


class OllamaAdapter(PromptAdapter):
    """Calls ``/api/generate`` on an Ollama server.

    Availability is a live ``/api/tags`` probe, so a stopped server is skipped
    without spending a generation call on it.
    """

    name = "ollama"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.ollama_base_url.rstrip("/")
        self.model = settings.ollama_model
        self.timeout = settings.breaker_llm_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def is_available(self) -> bool:
        try:
            async with self._client(PROBE_TIMEOUT) as client:
                response = await client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("Ollama probe failed", base_url=self.base_url, error=str(e))
            return False

    async def _complete(self, prompt: str, system: str) -> str:
        start_time = time.time()
        body = {"model": self.model, "prompt": prompt, "stream": False}
        if system:
            body["system"] = system

        try:
            async with self._client(self.timeout) as client:
                response = await client.post("/api/generate", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            log_api_call(logger, self.name, self.model, "generate", False, error=str(e))
            raise

        log_execution_time(logger, "ollama_generate", start_time, time.time())
        log_api_call(logger, self.name, self.model, "generate", True)
        return data.get("response", "")
