"""DeepSeek adapter (OpenAI-compatible /chat/completions, `data:` lines ending with [DONE])."""

from typing import Any, Dict, Optional, Sequence

import httpx

from config import DEEPSEEK_BASE_URL, DEEPSEEK_MODEL, PERSONA_SYSTEM_PROMPT
from egypto.models import Message, ProviderName
from egypto.services.providers.base import HttpProviderAdapter, Sink


class DeepSeekProvider(HttpProviderAdapter):
    name = ProviderName.DEEPSEEK.value
    display_name = "DeepSeek"
    supports_streaming = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_keys: Sequence[str],
        model: str = DEEPSEEK_MODEL,
        base_url: str = DEEPSEEK_BASE_URL,
        persona: str = PERSONA_SYSTEM_PROMPT,
    ):
        super().__init__(client, api_keys, model, base_url, persona)

    def build_payload(self, messages: Sequence[Message], stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": m.role.value, "content": m.content} for m in self.with_persona(messages)
            ],
            "stream": stream,
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.keys.next_key()}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def extract_delta(event: Any) -> Optional[str]:
        choices = event.get("choices") or []
        if not choices:
            # usage-only chunks
            return None
        content = (choices[0].get("delta") or {}).get("content")
        if content is not None and not isinstance(content, str):
            raise TypeError(f"delta content is {type(content).__name__}, not text")
        return content

    async def call_once(self, messages: Sequence[Message]) -> str:
        url = f"{self.base_url}/chat/completions"
        data = await self._post_json(url, self.build_payload(messages, stream=False), self._headers())
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise self._failure(details=f"malformed response: {e}") from e
        if not isinstance(text, str) or not text:
            raise self._failure(details="No response from DeepSeek.")
        return text

    async def call_streaming(self, messages: Sequence[Message], sink: Sink) -> None:
        url = f"{self.base_url}/chat/completions"
        await self._stream_deltas(url, self.build_payload(messages, stream=True), self._headers(), sink, self.extract_delta)
