"""Google Gemini adapter (generateContent / streamGenerateContent with alt=sse)."""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from config import GEMINI_BASE_URL, GEMINI_MODEL, PERSONA_SYSTEM_PROMPT
from egypto.errors import ProviderError
from egypto.models import Message, ProviderName, Role
from egypto.services.providers.base import HttpProviderAdapter, Sink


class GeminiProvider(HttpProviderAdapter):
    name = ProviderName.GEMINI.value
    display_name = "Gemini"
    supports_streaming = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_keys: Sequence[str],
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        persona: str = PERSONA_SYSTEM_PROMPT,
    ):
        super().__init__(client, api_keys, model, base_url, persona)

    def build_payload(self, messages: Sequence[Message]) -> Dict[str, Any]:
        # Gemini has no "system" role in contents; system messages go to systemInstruction.
        system_parts: List[Dict[str, str]] = []
        contents: List[Dict[str, Any]] = []
        for message in self.with_persona(messages):
            if message.role == Role.SYSTEM:
                system_parts.append({"text": message.content})
                continue
            role = "model" if message.role == Role.ASSISTANT else "user"
            contents.append({"role": role, "parts": [{"text": message.content}]})
        return {"systemInstruction": {"parts": system_parts}, "contents": contents}

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self.keys.next_key()}

    def extract_text(self, event: Any) -> Optional[str]:
        """Text of the first candidate (all of its parts), or None when it has none."""
        if "error" in event:
            error = event["error"]
            raise ProviderError(
                "Failed to fetch response from Gemini.",
                provider=self.name,
                upstream_status=error.get("code") if isinstance(error, dict) else None,
                details=str(error),
            )
        candidates = event.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts) or None

    async def call_once(self, messages: Sequence[Message]) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        data = await self._post_json(url, self.build_payload(messages), self._headers())
        try:
            text = self.extract_text(data)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise self._failure(details=f"malformed response: {e}") from e
        if not text:
            raise self._failure(details="No response from Gemini.")
        return text

    async def call_streaming(self, messages: Sequence[Message], sink: Sink) -> None:
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent?alt=sse"
        await self._stream_deltas(url, self.build_payload(messages), self._headers(), sink, self.extract_text)
