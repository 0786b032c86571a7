"""
PROVIDER ADAPTER BASE
=====================

One adapter per LLM backend. The rest of the app only ever sees this contract:

  call_once(messages)            -> full reply text
  call_streaming(messages, sink) -> None; sink(delta) once per text delta, in order

Every adapter puts the same persona instruction in front of the caller's
messages, so the assistant sounds the same whichever backend answers. Adapters
without an incremental protocol inherit the default call_streaming, which makes
a single-shot call and hands the whole text to the sink at once.

HttpProviderAdapter holds the shared plumbing for HTTPS JSON providers:
  - round-robin over the configured API keys (KeyRing),
  - one POST-and-parse helper for single-shot calls,
  - one line-oriented stream reader that understands `data: ...` lines and the
    `[DONE]` sentinel, skips payloads it cannot parse, and treats EOF without
    the sentinel as a normal end of stream.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from config import PERSONA_SYSTEM_PROMPT
from egypto.errors import ProviderError
from egypto.models import Message, Role

logger = logging.getLogger("EgyptoAI")

# Receives one text delta. Exceptions raised by the sink are not caught by adapters.
Sink = Callable[[str], None]

DONE_SENTINEL = "[DONE]"

# Upstream bodies are kept for logs/details; no need to keep megabytes of them.
_MAX_ERROR_BODY = 2000


def mask_key(key: str) -> str:
    """Show only the last 4 characters of an API key in logs."""
    if len(key) <= 8:
        return "****"
    return f"****{key[-4:]}"


class KeyRing:
    """Hands out a provider's API keys one-by-one: 1st, 2nd, ..., then the 1st again."""

    def __init__(self, keys: Sequence[str], provider: str):
        self._keys = [k for k in keys if k]
        self._provider = provider
        self._index = 0

    def __len__(self) -> int:
        return len(self._keys)

    def next_key(self) -> str:
        if not self._keys:
            raise ProviderError(
                f"{self._provider} API key is not configured.",
                provider=self._provider,
            )
        key = self._keys[self._index % len(self._keys)]
        self._index += 1
        logger.debug("Using %s key %s (%d configured)", self._provider, mask_key(key), len(self._keys))
        return key


def sse_data(line: str) -> Optional[str]:
    """Return the payload of a `data:` line, or None for blank lines, comments and other fields."""
    if not line.startswith("data:"):
        return None
    data = line[5:]
    if data.startswith(" "):
        data = data[1:]
    return data.strip()


# ==============================================================================
# ADAPTER INTERFACE
# ==============================================================================

class ProviderAdapter(ABC):
    """Uniform call contract over one LLM backend."""

    name: str = ""
    supports_streaming: bool = False

    def __init__(self, persona: str = PERSONA_SYSTEM_PROMPT):
        self.persona = persona

    def with_persona(self, messages: Sequence[Message]) -> List[Message]:
        """Return a new list: persona system message first, then the caller's messages."""
        if not messages:
            raise ValueError("messages must not be empty")
        return [Message(role=Role.SYSTEM, content=self.persona), *messages]

    @abstractmethod
    async def call_once(self, messages: Sequence[Message]) -> str:
        """Return the provider's full reply text or raise ProviderError."""

    async def call_streaming(self, messages: Sequence[Message], sink: Sink) -> None:
        """Simulated streaming: one single-shot call, delivered as one delta."""
        text = await self.call_once(messages)
        if text:
            sink(text)


class HttpProviderAdapter(ProviderAdapter):
    """Base for providers reached with plain HTTPS JSON through a shared httpx client."""

    display_name = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_keys: Sequence[str],
        model: str,
        base_url: str,
        persona: str = PERSONA_SYSTEM_PROMPT,
    ):
        super().__init__(persona)
        self.client = client
        self.keys = KeyRing(api_keys, self.name)
        self.model = model
        self.base_url = base_url.rstrip("/")

    def _failure(self, upstream_status: Optional[int] = None, details: Optional[str] = None) -> ProviderError:
        return ProviderError(
            f"Failed to fetch response from {self.display_name or self.name}.",
            provider=self.name,
            upstream_status=upstream_status,
            details=details,
        )

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self.client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("%s request failed: %s", self.name, e)
            raise self._failure(details=str(e)) from e

        if response.status_code >= 400:
            body = response.text[:_MAX_ERROR_BODY]
            logger.error("%s API error: %s - %s", self.name, response.status_code, body)
            raise self._failure(upstream_status=response.status_code, details=body)

        try:
            data = response.json()
        except ValueError as e:
            raise self._failure(upstream_status=response.status_code, details="response is not JSON") from e
        if not isinstance(data, dict):
            raise self._failure(upstream_status=response.status_code, details="response is not a JSON object")
        return data

    async def _stream_deltas(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        sink: Sink,
        extract_delta: Callable[[Any], Optional[str]],
    ) -> None:
        """
        POST `payload` and feed every text delta to `sink` as soon as its line arrives.

        `extract_delta` turns one decoded JSON event into text (or None when the
        event carries no text). It may raise ProviderError for error events the
        provider sends inside the stream.
        """
        deltas = 0
        try:
            async with self.client.stream("POST", url, json=payload, headers=headers) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")[:_MAX_ERROR_BODY]
                    logger.error("%s API error: %s - %s", self.name, response.status_code, body)
                    raise self._failure(upstream_status=response.status_code, details=body)

                async for line in response.aiter_lines():
                    data = sse_data(line)
                    if not data:
                        continue
                    if data == DONE_SENTINEL:
                        logger.debug("%s stream finished after %d deltas", self.name, deltas)
                        return
                    try:
                        event = json.loads(data)
                        delta = extract_delta(event)
                    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
                        logger.warning("Skipping malformed %s chunk (%s): %.200s", self.name, e, data)
                        continue
                    if delta is not None and not isinstance(delta, str):
                        logger.warning("Skipping %s chunk with non-text content: %.200s", self.name, data)
                        continue
                    if delta:
                        deltas += 1
                        sink(delta)
        except httpx.HTTPError as e:
            logger.error("%s stream failed after %d deltas: %s", self.name, deltas, e)
            raise self._failure(details=str(e)) from e

        # EOF without the sentinel is a normal end for providers that never send one.
        logger.debug("%s stream closed after %d deltas", self.name, deltas)
