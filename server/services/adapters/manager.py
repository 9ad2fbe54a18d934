"""Priority-ordered provider selection with fallback."""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.logging import get_logger
from services.exceptions import (
    AdapterUnavailableError,
    AllAdaptersFailedError,
    NoAdapterAvailableError,
)
from .base import LLMAdapter

logger = get_logger(__name__)

AdapterCall = Callable[[LLMAdapter, str], Awaitable[Any]]


class AdapterManager:
    """Holds the provider registry and walks it in priority order.

    Availability ("is it up") is probed before every use; execution failures
    ("did the call work") move on to the next candidate. Names are
    case-insensitive.
    """

    def __init__(self, adapters: Dict[str, LLMAdapter], priority: List[str], default: str):
        self._adapters: Dict[str, LLMAdapter] = {
            name.strip().lower(): adapter for name, adapter in adapters.items()
        }
        self._priority = [name.strip().lower() for name in priority if name.strip()]
        self._default = default.strip().lower()
        logger.info("Adapter manager initialized",
                    registered=list(self._adapters),
                    priority=self._priority,
                    default=self._default)

    def registered_adapters(self) -> List[str]:
        return list(self._adapters)

    def priority(self) -> List[str]:
        return list(self._priority)

    @property
    def default(self) -> str:
        return self._default

    def candidates(self, preferred_name: Optional[str] = None) -> List[str]:
        """Preferred, then priority, then default; duplicates removed."""
        ordered = []
        if preferred_name:
            ordered.append(preferred_name.strip().lower())
        ordered.extend(self._priority)
        ordered.append(self._default)
        unique: List[str] = []
        for name in ordered:
            if name not in unique:
                unique.append(name)
        return unique

    async def _probe(self, name: str, adapter: LLMAdapter) -> bool:
        try:
            return bool(await adapter.is_available())
        except Exception as e:
            logger.warning("Adapter availability check failed", adapter=name, error=str(e))
            return False

    async def resolve(self, preferred_name: Optional[str] = None) -> Tuple[LLMAdapter, str]:
        """First registered and available adapter in candidate order."""
        tried = []
        for name in self.candidates(preferred_name):
            tried.append(name)
            adapter = self._adapters.get(name)
            if adapter is None:
                logger.warning("Adapter not registered", adapter=name)
                continue
            if await self._probe(name, adapter):
                logger.info("Resolved adapter", adapter=name, preferred=preferred_name)
                return adapter, name
            logger.info("Adapter not available, trying next", adapter=name)

        raise NoAdapterAvailableError(tried=tried, registered=self.registered_adapters())

    async def execute_with_fallback(self, fn: AdapterCall,
                                    preferred_name: Optional[str] = None) -> Any:
        """Run ``fn(adapter, name)`` on each candidate until one succeeds."""
        errors: Dict[str, Exception] = {}
        for name in self.candidates(preferred_name):
            adapter = self._adapters.get(name)
            if adapter is None:
                errors[name] = AdapterUnavailableError(name, "not registered")
                continue
            if not await self._probe(name, adapter):
                errors[name] = AdapterUnavailableError(name)
                continue

            try:
                logger.debug("Executing with adapter", adapter=name)
                return await fn(adapter, name)
            except Exception as e:
                logger.warning("Adapter failed execution", adapter=name,
                               error=str(e), error_type=type(e).__name__)
                errors[name] = e

        logger.error("All adapters failed", errors={n: str(e) for n, e in errors.items()})
        raise AllAdaptersFailedError(errors)

    async def status(self) -> Dict[str, bool]:
        """Availability of every registered adapter."""
        return {name: await self._probe(name, adapter) for name, adapter in self._adapters.items()}
