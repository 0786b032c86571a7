from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Sequence

from egypto.auth import issue_token
from egypto.errors import ProviderError
from egypto.models import Message
from egypto.services.providers.base import ProviderAdapter, Sink


class FakeProvider(ProviderAdapter):
    """Scripted provider: streams `deltas`, answers single-shot calls with `once_reply`."""

    supports_streaming = True

    def __init__(
        self,
        name: str,
        deltas: Sequence[str] = ("Ahlan", " ya ", "basha"),
        fail_after: Optional[int] = None,
        once_reply: str = '"رحلة الأهرامات"',
        once_error: bool = False,
        once_hangs: bool = False,
        failure: Optional[Exception] = None,
    ):
        super().__init__()
        self.name = name
        self.deltas = list(deltas)
        self.fail_after = fail_after
        self.once_reply = once_reply
        self.once_error = once_error
        self.once_hangs = once_hangs
        self.failure = failure
        self.stream_calls: List[List[Message]] = []
        self.once_calls: List[List[Message]] = []

    async def call_once(self, messages: Sequence[Message]) -> str:
        self.once_calls.append(list(messages))
        if self.once_hangs:
            await asyncio.Event().wait()
        if self.once_error:
            raise ProviderError("Failed to fetch response.", provider=self.name, upstream_status=503,
                                details="upstream says no")
        return self.once_reply

    async def call_streaming(self, messages: Sequence[Message], sink: Sink) -> None:
        self.stream_calls.append(list(messages))
        for i, delta in enumerate(self.deltas):
            if self.fail_after is not None and i == self.fail_after:
                if self.failure is not None:
                    raise self.failure
                raise ProviderError("Failed to fetch response.", provider=self.name, upstream_status=502)
            await asyncio.sleep(0)
            sink(delta)


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def parse_sse(body: str) -> List[tuple]:
    """Split an SSE body into (event, data) pairs; multi-line data is joined with '\\n'."""
    events = []
    for block in body.split("\n\n"):
        if not block:
            continue
        event, data = "message", []
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data.append(line[len("data: "):])
        events.append((event, "\n".join(data)))
    return events


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()
