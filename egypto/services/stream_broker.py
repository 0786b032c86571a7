"""
STREAM BROKER MODULE
====================

Drives one streaming provider call and keeps the whole reply.

  reply = await broker.stream_chat("gemini", messages, on_delta)

Every delta the provider emits is appended to an accumulator and then handed to
`on_delta` (normally SseTransport.send), unchanged and in emission order. The
return value is the accumulator joined, i.e. exactly what was forwarded.

FAILURES:
  - Unknown provider name: InvalidProviderError, raised before any I/O.
  - Provider fails mid-stream: StreamInterruptedError with `partial_text`.
  - `on_delta` raises TransportClosedError (client went away): the provider call
    is abandoned and StreamInterruptedError(client_disconnected=True) carries
    what was received.
  - Anything else (a non-text delta, a bug in a sink): StreamInterruptedError
    with the partial text, so the caller can still persist it.
No retries here; a retry is the caller's decision.
"""

import logging
from typing import Callable, List, Sequence

from egypto.errors import ProviderError, StreamInterruptedError, TransportClosedError
from egypto.models import Message
from egypto.services.providers import ProviderRegistry

logger = logging.getLogger("EgyptoAI")


class _ForwardingFailed(Exception):
    """Internal: lifts a disconnect out of the adapter untouched."""

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


class StreamBroker:
    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def stream_chat(
        self,
        provider_name: str,
        messages: Sequence[Message],
        on_delta: Callable[[str], None],
    ) -> str:
        adapter = self.registry.resolve(provider_name)
        parts: List[str] = []

        def sink(delta: str) -> None:
            if not isinstance(delta, str):
                raise TypeError(f"{provider_name} emitted a {type(delta).__name__} delta")
            parts.append(delta)
            try:
                on_delta(delta)
            except TransportClosedError as e:
                raise _ForwardingFailed(e) from e

        try:
            await adapter.call_streaming(messages, sink)
        except _ForwardingFailed as e:
            partial = "".join(parts)
            logger.warning(
                "Stopped forwarding %s deltas after %d chars: %s", provider_name, len(partial), e.cause
            )
            raise StreamInterruptedError(
                "Client disconnected during streaming.",
                partial_text=partial,
                provider=provider_name,
                details=str(e.cause),
                client_disconnected=True,
            ) from e.cause
        except ProviderError as e:
            partial = "".join(parts)
            logger.error("%s stream failed after %d chars: %s", provider_name, len(partial), e.message)
            raise StreamInterruptedError(
                e.message,
                partial_text=partial,
                provider=provider_name,
                upstream_status=e.upstream_status,
                details=e.details,
            ) from e
        except Exception as e:
            partial = "".join(parts)
            logger.error(
                "%s stream broke after %d chars: %s", provider_name, len(partial), e, exc_info=True
            )
            raise StreamInterruptedError(
                "Streaming failed.",
                partial_text=partial,
                provider=provider_name,
                details=f"{type(e).__name__}: {e}",
            ) from e

        return "".join(parts)
