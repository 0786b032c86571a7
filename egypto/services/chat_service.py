"""
CHAT SERVICE MODULE
===================

The request-level chat flow. The HTTP layer (egypto.main) calls this service;
it never touches provider payloads or SQL itself.

STREAMING REQUEST LIFECYCLE (open_stream):
  1. Received     - prompt must be non-empty, model must be a known provider.
                    An authenticated chatId must belong to the caller. Any
                    failure here is a plain JSON error (400/404); no stream.
  2. StreamOpened - SSE headers go out. From now on errors are in-band frames.
  3. Streaming    - A background producer runs the broker; every delta goes to
                    the client as soon as the provider emits it. For an
                    authenticated caller the conversation row is created at
                    the same time, without holding up the deltas.
  4. Persisting   - After the provider call ends (fully or not) the turn is
                    stored once, with whatever text was accumulated.
  5. Completed    - `event: done` (or an error frame), then the stream closes.
                    New conversations get their title generated in the
                    background; the response does not wait for it.

Anonymous callers are never persisted. A store failure is logged and does not
stop a stream that is already running; that turn is lost.
"""

import asyncio
import logging
import uuid
from typing import List, Optional, Tuple

from fastapi.responses import StreamingResponse

from config import HISTORY_TURNS, MAX_PROMPT_LENGTH
from egypto.errors import EgyptoError, InvalidProviderError, StoreError, StreamInterruptedError, ValidationError
from egypto.models import ChatDetail, ChatReply, ChatReplyData, ChatRequest, ChatTitle, Message, Role
from egypto.services.conversation_coordinator import ConversationCoordinator
from egypto.services.providers import ProviderRegistry
from egypto.services.sse import SseTransport
from egypto.services.stream_broker import StreamBroker
from egypto.utils.background import BackgroundTasks

logger = logging.getLogger("EgyptoAI")

STREAM_ERROR_MESSAGE = "An error occurred during streaming"


class ChatService:
    def __init__(
        self,
        registry: ProviderRegistry,
        broker: StreamBroker,
        coordinator: ConversationCoordinator,
        max_prompt_length: int = MAX_PROMPT_LENGTH,
        history_turns: int = HISTORY_TURNS,
    ):
        self.registry = registry
        self.broker = broker
        self.coordinator = coordinator
        self.max_prompt_length = max_prompt_length
        self.history_turns = history_turns
        # Producers of open SSE responses; kept so shutdown can cancel them.
        self.streams = BackgroundTasks()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, request: ChatRequest) -> Tuple[str, str]:
        """Return (prompt, provider_name) or raise ValidationError / InvalidProviderError."""
        prompt = request.prompt
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required.")
        if len(prompt) > self.max_prompt_length:
            raise ValidationError(
                "Prompt is too long.",
                details=f"{len(prompt)} characters, limit is {self.max_prompt_length}",
            )
        if request.model not in self.registry:
            raise InvalidProviderError(request.model)
        return prompt, request.model

    # =========================================================================
    # STREAMING CHAT
    # =========================================================================

    async def open_stream(self, request: ChatRequest, user_id: Optional[str]) -> StreamingResponse:
        prompt, provider = self.validate(request)

        chat_id = request.chat_id if user_id else None
        new_id = None
        if chat_id:
            await self.coordinator.get_owned_conversation(user_id, chat_id)
        elif user_id:
            new_id = uuid.uuid4().hex

        logger.info(
            "Chat stream: provider=%s user=%s conversation=%s",
            provider, user_id or "anonymous", chat_id or new_id or "-",
        )
        transport = SseTransport()
        response = transport.open(headers={"X-Chat-Id": chat_id or new_id} if user_id else None)
        self.streams.spawn(
            self._run_stream(transport, prompt, provider, user_id, chat_id, new_id),
            name=f"stream:{chat_id or new_id or 'anonymous'}",
        )
        return response

    async def _run_stream(
        self,
        transport: SseTransport,
        prompt: str,
        provider: str,
        user_id: Optional[str],
        chat_id: Optional[str],
        new_id: Optional[str],
    ) -> None:
        bootstrap = None
        if user_id:
            bootstrap = asyncio.create_task(
                self.coordinator.ensure_conversation(user_id, chat_id, prompt, new_id=new_id)
            )

        try:
            reply = ""
            disconnected = False
            error: Optional[str] = None
            try:
                reply = await self.broker.stream_chat(
                    provider, [Message(role=Role.USER, content=prompt)], transport.send
                )
            except StreamInterruptedError as e:
                reply, disconnected = e.partial_text, e.client_disconnected
                error = None if disconnected else e.message
            except Exception as e:
                logger.error("Chat stream failed before the broker could report it: %s", e, exc_info=True)
                error = str(e) or type(e).__name__

            if bootstrap is not None:
                await self._persist(bootstrap, created=chat_id is None, provider=provider, prompt=prompt, reply=reply)

            if disconnected:
                logger.warning("Chat stream abandoned by client after %d chars", len(reply))
            elif error is not None:
                transport.send_error(STREAM_ERROR_MESSAGE)
                logger.warning("Chat stream ended with error after %d chars: %s", len(reply), error)
            else:
                transport.end()
                logger.info("Chat stream completed: provider=%s, %d chars", provider, len(reply))
        finally:
            # Cancelled mid-stream.
            if bootstrap is not None and not bootstrap.done():
                bootstrap.cancel()
            # Whatever went wrong above, the client must not be left waiting.
            if not transport.closed:
                transport.send_error(STREAM_ERROR_MESSAGE)

    async def _persist(
        self, bootstrap: "asyncio.Task[str]", created: bool, provider: str, prompt: str, reply: str
    ) -> Optional[str]:
        """Store the turn. Every failure is logged here; nothing propagates to the stream."""
        try:
            conversation_id = await bootstrap
        except EgyptoError as e:
            logger.error("Conversation bootstrap failed, turn not stored: %s", e.details or e.message)
            return None
        except Exception as e:
            logger.error("Conversation bootstrap failed, turn not stored: %s", e, exc_info=True)
            return None

        if not reply:
            if created:
                await self.coordinator.discard_conversation(conversation_id)
            return None

        try:
            await self.coordinator.record_turn(conversation_id, prompt, reply)
        except StoreError as e:
            logger.error("Turn for conversation %s lost: %s", conversation_id, e.details or e.message, exc_info=True)
            if created:
                await self.coordinator.discard_conversation(conversation_id)
            return None

        if created:
            self.coordinator.maybe_summarize_title(conversation_id, provider, prompt)
        return conversation_id

    # =========================================================================
    # SINGLE-SHOT CHAT
    # =========================================================================

    async def complete(self, request: ChatRequest, user_id: Optional[str]) -> ChatReply:
        """Whole reply in one JSON response. Provider failures propagate (500 before any output)."""
        prompt, provider = self.validate(request)
        adapter = self.registry.resolve(provider)

        chat_id = request.chat_id if user_id else None
        if chat_id:
            await self.coordinator.get_owned_conversation(user_id, chat_id)

        logger.info("Chat: provider=%s user=%s", provider, user_id or "anonymous")
        reply = await adapter.call_once([Message(role=Role.USER, content=prompt)])

        conversation_id = None
        if user_id:
            conversation_id = await self.coordinator.ensure_conversation(user_id, chat_id, prompt)
            try:
                await self.coordinator.record_turn(conversation_id, prompt, reply)
            except StoreError:
                if chat_id is None:
                    await self.coordinator.discard_conversation(conversation_id)
                raise
            if chat_id is None:
                self.coordinator.maybe_summarize_title(conversation_id, provider, prompt)

        return ChatReply(data=ChatReplyData(chat_id=conversation_id, reply=reply))

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def list_titles(self, user_id: str) -> List[ChatTitle]:
        conversations = await self.coordinator.store.list_conversations(user_id)
        return [ChatTitle(id=c.id, title=c.title) for c in conversations]

    async def get_chat(self, user_id: str, chat_id: str) -> ChatDetail:
        conversation = await self.coordinator.get_owned_conversation(user_id, chat_id)
        turns = await self.coordinator.store.list_recent_turns(chat_id, limit=self.history_turns)
        return ChatDetail(chat=conversation, messages=turns)

    async def shutdown(self) -> None:
        await self.streams.cancel_all()
        await self.coordinator.background.cancel_all()
