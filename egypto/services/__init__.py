"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (egypto.main) calls these services;
they don't handle routing, only chat flow, LLM calls, streaming and data.

MODULES:
    providers/               - One adapter per LLM backend + ProviderRegistry
    stream_broker            - Runs a streaming provider call, forwards and accumulates deltas
    sse                      - SseTransport: deltas -> Server-Sent Events frames
    chat_store               - SQLite conversations and turns
    conversation_coordinator - Ownership checks, turn recording, background titles
    chat_service             - Whole request lifecycle used by the endpoints
"""
