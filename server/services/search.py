"""Web search tool client (Serper) behind a breaker and a tiered cache."""

import time
from dataclasses import replace
from typing import List, Optional

import httpx

from constants import BREAKER_GROUP_SEARCH
from core.config import Settings
from core.logging import get_logger, log_api_call, log_execution_time
from models.generation import SearchResult
from services.caching.tiered import TieredCache, hash_key
from services.resilience.circuit_breaker import CircuitBreakerRegistry

logger = get_logger(__name__)

BREAKER_NAME = "search:serper"


class SerperSearchClient:
    """Google results via the Serper API.

    An open breaker or failing call degrades to an empty result list, so web
    context is always optional for generation.
    """

    def __init__(self, settings: Settings, breakers: CircuitBreakerRegistry,
                 cache: TieredCache, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.serper_api_key
        self.url = settings.serper_url
        self.limit = settings.search_result_limit
        self.breakers = breakers
        self.cache = cache
        self.options = replace(breakers.options_for(BREAKER_GROUP_SEARCH), fallback=lambda error: [])
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str) -> List[SearchResult]:
        if not self.enabled:
            logger.debug("Web search skipped, no Serper API key", query=query)
            return []

        key = hash_key("serper", query.strip().lower(), self.limit)
        cached = await self.cache.get(key)
        if cached is not None:
            return [SearchResult.model_validate(item) for item in cached]

        raw = await self.breakers.run(BREAKER_NAME, lambda: self._fetch(query), options=self.options)
        results = [SearchResult.model_validate(item) for item in raw]
        if results:
            await self.cache.set(key, [r.model_dump() for r in results])
        return results

    async def _fetch(self, query: str) -> List[dict]:
        start_time = time.time()
        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.options.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json={"q": query, "num": self.limit}, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            log_api_call(logger, "serper", "search", "search", False, error=str(e))
            raise

        organic = data.get("organic", [])[: self.limit]
        log_execution_time(logger, "serper_search", start_time, time.time(), results=len(organic))
        log_api_call(logger, "serper", "search", "search", True)
        return [
            {"title": item.get("title", ""), "link": item["link"], "snippet": item.get("snippet", "")}
            for item in organic if item.get("link")
        ]
