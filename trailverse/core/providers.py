"""
Upstream model clients, built once at startup.

The registry is read-only after construction; a provider whose API key was
missing at start is simply absent.
"""
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from trailverse.core.models import ModelProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self, clients: Optional[Mapping[str, Any]] = None):
        self._clients = MappingProxyType({k: v for k, v in (clients or {}).items() if v is not None})

    def get(self, provider: str) -> Optional[Any]:
        return self._clients.get(provider)

    def is_configured(self, provider: str) -> bool:
        return provider in self._clients

    def available_providers(self) -> List[str]:
        # Catalog order, not insertion order
        return [p.value for p in ModelProvider if p.value in self._clients]

    def __repr__(self):
        return f"<ProviderRegistry {self.available_providers()}>"


def build_provider_registry(settings) -> ProviderRegistry:
    clients: Dict[str, Any] = {}

    if settings.ANTHROPIC_API_KEY:
        clients[ModelProvider.CLAUDE.value] = AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=settings.PROVIDER_MAX_RETRIES,
        )
        logger.info("Claude client initialized")
    else:
        logger.warning("ANTHROPIC_API_KEY not set, Claude unavailable")

    if settings.OPENAI_API_KEY:
        clients[ModelProvider.OPENAI.value] = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=settings.PROVIDER_MAX_RETRIES,
        )
        logger.info("OpenAI client initialized")
    else:
        logger.warning("OPENAI_API_KEY not set, OpenAI unavailable")

    return ProviderRegistry(clients)
