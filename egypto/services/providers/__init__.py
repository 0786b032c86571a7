"""
PROVIDERS PACKAGE
=================

One adapter per LLM backend, all behind ProviderAdapter (base.py):

    gemini   - GeminiProvider, HTTPS + SSE streaming (httpx)
    deepseek - DeepSeekProvider, OpenAI-compatible HTTPS + SSE streaming (httpx)
    groq     - GroqProvider, LangChain ChatGroq, single-shot only

ProviderRegistry maps the exact provider name from a request to its adapter.
build_provider_registry() is called once by the lifespan in egypto.main with
the process-wide httpx client.
"""

import logging
from typing import Iterable, List, Optional

import httpx

from config import (
    DEEPSEEK_API_KEYS,
    DEEPSEEK_BASE_URL,
    DEEPSEEK_MODEL,
    GEMINI_API_KEYS,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    GROQ_API_KEYS,
    GROQ_MODEL,
)
from egypto.errors import InvalidProviderError
from egypto.services.providers.base import ProviderAdapter, Sink
from egypto.services.providers.deepseek import DeepSeekProvider
from egypto.services.providers.gemini import GeminiProvider
from egypto.services.providers.groq import GroqProvider

logger = logging.getLogger("EgyptoAI")

__all__ = [
    "DeepSeekProvider",
    "GeminiProvider",
    "GroqProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "Sink",
    "build_provider_registry",
]


class ProviderRegistry:
    def __init__(self, adapters: Iterable[ProviderAdapter]):
        self._adapters = {adapter.name: adapter for adapter in adapters}

    def names(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._adapters

    def resolve(self, name: Optional[str]) -> ProviderAdapter:
        """Exact, case-sensitive match. Unknown names are the caller's mistake, never a fallback."""
        adapter = self._adapters.get(name) if isinstance(name, str) else None
        if adapter is None:
            raise InvalidProviderError(name)
        return adapter


def build_provider_registry(client: httpx.AsyncClient) -> ProviderRegistry:
    """Create every adapter from config. Missing keys only fail the calls that need them."""
    for label, keys in (("Gemini", GEMINI_API_KEYS), ("DeepSeek", DEEPSEEK_API_KEYS), ("Groq", GROQ_API_KEYS)):
        if keys:
            logger.info("%s: %d API key(s) configured", label, len(keys))
        else:
            logger.warning("%s: no API key set; requests for it will fail.", label)

    return ProviderRegistry([
        GeminiProvider(client, GEMINI_API_KEYS, model=GEMINI_MODEL, base_url=GEMINI_BASE_URL),
        DeepSeekProvider(client, DEEPSEEK_API_KEYS, model=DEEPSEEK_MODEL, base_url=DEEPSEEK_BASE_URL),
        GroqProvider(GROQ_API_KEYS, model=GROQ_MODEL),
    ])
