import asyncio

import httpx
import pytest

from egypto.errors import InvalidProviderError, StreamInterruptedError, TransportClosedError
from egypto.models import Message, Role
from egypto.services.providers import DeepSeekProvider, ProviderRegistry
from egypto.services.stream_broker import StreamBroker

MESSAGES = [Message(role=Role.USER, content="Tell me about Luxor")]


def test_reply_is_exactly_the_forwarded_deltas(registry, providers):
    broker = StreamBroker(registry)
    forwarded = []

    reply = asyncio.run(broker.stream_chat("gemini", MESSAGES, forwarded.append))

    assert forwarded == ["Ahlan", " ya ", "basha"]
    assert reply == "".join(forwarded) == "Ahlan ya basha"
    assert providers[0].stream_calls == [MESSAGES]
    assert providers[1].stream_calls == []


def test_unknown_provider_fails_before_any_call(registry, providers):
    broker = StreamBroker(registry)
    forwarded = []

    with pytest.raises(InvalidProviderError):
        asyncio.run(broker.stream_chat("openai", MESSAGES, forwarded.append))

    assert forwarded == []
    assert all(not p.stream_calls for p in providers)


def test_mid_stream_failure_keeps_partial_text(registry, providers):
    providers[1].fail_after = 2
    broker = StreamBroker(registry)
    forwarded = []

    with pytest.raises(StreamInterruptedError) as exc:
        asyncio.run(broker.stream_chat("deepseek", MESSAGES, forwarded.append))

    assert exc.value.partial_text == "Ahlan ya "
    assert forwarded == ["Ahlan", " ya "]
    assert exc.value.upstream_status == 502
    assert exc.value.client_disconnected is False


def test_failing_sink_stops_the_provider_call(registry):
    broker = StreamBroker(registry)
    forwarded = []

    def on_delta(delta):
        if forwarded:
            raise TransportClosedError("client disconnected")
        forwarded.append(delta)

    with pytest.raises(StreamInterruptedError) as exc:
        asyncio.run(broker.stream_chat("gemini", MESSAGES, on_delta))

    assert exc.value.client_disconnected is True
    assert exc.value.partial_text == "Ahlan ya "
    assert isinstance(exc.value.__cause__, TransportClosedError)
    assert forwarded == ["Ahlan"]


def test_non_text_chunk_from_deepseek_is_skipped_end_to_end():
    def handler(request):
        body = (
            'data: {"choices":[{"delta":{"content":"A"}}]}\n\n'
            'data: {"choices":[{"delta":{"content":123}}]}\n\n'
            'data: {"choices":[{"delta":{"content":"B"}}]}\n\n'
            "data: [DONE]\n\n"
        )
        return httpx.Response(200, content=body.encode())

    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        broker = StreamBroker(ProviderRegistry([DeepSeekProvider(client, ["k"])]))
        forwarded = []
        try:
            return await broker.stream_chat("deepseek", MESSAGES, forwarded.append), forwarded
        finally:
            await client.aclose()

    reply, forwarded = asyncio.run(go())
    assert reply == "AB"
    assert forwarded == ["A", "B"]


def test_non_text_delta_from_an_adapter_keeps_partial_text(registry, providers):
    providers[0].deltas = ["Ahlan", 123, "never"]
    broker = StreamBroker(registry)
    forwarded = []

    with pytest.raises(StreamInterruptedError) as exc:
        asyncio.run(broker.stream_chat("gemini", MESSAGES, forwarded.append))

    assert exc.value.partial_text == "Ahlan"
    assert exc.value.client_disconnected is False
    assert forwarded == ["Ahlan"]


def test_sink_bug_is_not_reported_as_a_disconnect(registry):
    broker = StreamBroker(registry)

    def on_delta(delta):
        raise AttributeError("boom")

    with pytest.raises(StreamInterruptedError) as exc:
        asyncio.run(broker.stream_chat("gemini", MESSAGES, on_delta))

    assert exc.value.client_disconnected is False
    assert exc.value.partial_text == "Ahlan"
    assert isinstance(exc.value.__cause__, AttributeError)
