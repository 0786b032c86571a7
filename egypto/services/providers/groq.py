"""
GROQ PROVIDER
=============

Groq through LangChain's ChatGroq. Single-shot only: call_streaming is the
inherited simulation (one call, one delta), so the broker sees exactly one
delta for Groq.

ROUND-ROBIN API KEYS:
  One ChatGroq client per configured key, created lazily and reused. Each call
  takes the next key from the ring; a failing key fails the call (no fallback).
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_groq import ChatGroq

from config import GROQ_MODEL, PERSONA_SYSTEM_PROMPT
from egypto.errors import ProviderError
from egypto.models import Message, ProviderName, Role
from egypto.services.providers.base import KeyRing, ProviderAdapter, mask_key

logger = logging.getLogger("EgyptoAI")

_LC_MESSAGE = {
    Role.SYSTEM: SystemMessage,
    Role.USER: HumanMessage,
    Role.ASSISTANT: AIMessage,
}


def to_langchain_messages(messages: Sequence[Message]) -> List[BaseMessage]:
    return [_LC_MESSAGE[m.role](content=m.content) for m in messages]


class GroqProvider(ProviderAdapter):
    name = ProviderName.GROQ.value
    supports_streaming = False

    def __init__(
        self,
        api_keys: Sequence[str],
        model: str = GROQ_MODEL,
        persona: str = PERSONA_SYSTEM_PROMPT,
        llm_factory: Optional[Callable[[str], Any]] = None,
    ):
        super().__init__(persona)
        self.model = model
        self.keys = KeyRing(api_keys, self.name)
        self._llm_factory = llm_factory or self._create_llm
        self._llms: Dict[str, Any] = {}

    def _create_llm(self, api_key: str) -> ChatGroq:
        return ChatGroq(model=self.model, api_key=api_key)

    def _llm_for(self, api_key: str) -> Any:
        llm = self._llms.get(api_key)
        if llm is None:
            logger.info("Creating Groq client for key %s", mask_key(api_key))
            llm = self._llm_factory(api_key)
            self._llms[api_key] = llm
        return llm

    async def call_once(self, messages: Sequence[Message]) -> str:
        prompt: List[BaseMessage] = to_langchain_messages(self.with_persona(messages))
        llm = self._llm_for(self.keys.next_key())
        try:
            result = await llm.ainvoke(prompt)
        except Exception as e:
            # groq SDK errors carry status_code; network errors do not.
            status = getattr(e, "status_code", None)
            logger.error("Groq API error: %s", e)
            raise ProviderError(
                "Failed to fetch response from Groq.",
                provider=self.name,
                upstream_status=status,
                details=str(e),
            ) from e

        content = getattr(result, "content", None)
        if not isinstance(content, str) or not content:
            raise ProviderError("No response from Groq.", provider=self.name, details=repr(content)[:200])
        return content
