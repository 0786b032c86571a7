"""
CONVERSATION COORDINATOR MODULE
===============================

Keeps the stored conversation in step with one authenticated chat request.

  ensure_conversation(owner_id, existing_id, first_prompt) -> conversation id
      existing_id given: it must exist and belong to owner_id, otherwise
      ConversationAccessError (404, whether missing or someone else's).
      existing_id absent: a new conversation titled with the prompt cut to
      PLACEHOLDER_TITLE_LENGTH characters.

  record_turn(conversation_id, prompt, reply)
      One Turn row with the full reply, then updated_at is bumped. Called once
      per request, after the provider call has finished. A failed bump is
      logged; the stored turn stays.

  maybe_summarize_title(conversation_id, provider_name, first_prompt)
      Detached task: asks a provider for a short title and replaces the
      placeholder. Failures are logged; the placeholder simply stays.

  discard_conversation(conversation_id)
      Best-effort delete of a conversation created by this request whose first
      turn never got stored, so listings never show an empty conversation.
"""

import logging
from typing import Optional

from config import PLACEHOLDER_TITLE_LENGTH, TITLE_PROMPT_TEMPLATE, TITLE_PROVIDER
from egypto.errors import ConversationAccessError, EgyptoError, StoreError, TitleSummarizationError
from egypto.models import Conversation, Message, Role, Turn
from egypto.services.chat_store import ChatStore
from egypto.services.providers import ProviderRegistry
from egypto.utils.background import BackgroundTasks
from egypto.utils.text import clean_title, placeholder_title

logger = logging.getLogger("EgyptoAI")


class ConversationCoordinator:
    def __init__(
        self,
        store: ChatStore,
        registry: ProviderRegistry,
        background: Optional[BackgroundTasks] = None,
        title_provider: Optional[str] = TITLE_PROVIDER,
        title_length: int = PLACEHOLDER_TITLE_LENGTH,
    ):
        self.store = store
        self.registry = registry
        self.background = background or BackgroundTasks()
        self.title_provider = title_provider
        self.title_length = title_length

    async def get_owned_conversation(self, owner_id: str, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None or conversation.owner_id != owner_id:
            logger.info("Conversation %s not accessible for user %s", conversation_id, owner_id)
            raise ConversationAccessError(conversation_id)
        return conversation

    async def ensure_conversation(
        self,
        owner_id: str,
        existing_id: Optional[str],
        first_prompt: str,
        new_id: Optional[str] = None,
    ) -> str:
        """`new_id` lets the caller announce the id of a conversation before it is stored."""
        if existing_id:
            conversation = await self.get_owned_conversation(owner_id, existing_id)
            return conversation.id
        conversation = await self.store.create_conversation(
            owner_id, placeholder_title(first_prompt, self.title_length), conversation_id=new_id
        )
        logger.info("Created conversation %s for user %s", conversation.id, owner_id)
        return conversation.id

    async def record_turn(self, conversation_id: str, prompt: str, reply: str) -> Turn:
        """Raises StoreError only when the turn itself was not stored."""
        turn = await self.store.create_turn(conversation_id, prompt, reply)
        try:
            await self.store.touch_conversation(conversation_id)
        except StoreError as e:
            logger.warning("Turn stored but activity time of %s not updated: %s", conversation_id, e.details or e)
        return turn

    async def discard_conversation(self, conversation_id: str) -> None:
        try:
            await self.store.delete_conversation(conversation_id)
            logger.info("Discarded conversation %s (first turn not stored)", conversation_id)
        except StoreError as e:
            logger.error("Could not discard conversation %s: %s", conversation_id, e.details or e)

    # -------------------------------------------------------------------------
    # TITLE SUMMARIZATION
    # -------------------------------------------------------------------------

    def maybe_summarize_title(self, conversation_id: str, provider_name: str, first_prompt: str) -> None:
        """Start title generation in the background and return immediately."""
        self.background.spawn(
            self._summarize_title_safely(conversation_id, provider_name, first_prompt),
            name=f"title:{conversation_id}",
        )

    async def _summarize_title_safely(self, conversation_id: str, provider_name: str, first_prompt: str) -> None:
        try:
            title = await self.summarize_title(conversation_id, provider_name, first_prompt)
            logger.info("Conversation %s titled %r", conversation_id, title)
        except EgyptoError as e:
            logger.warning("Title generation failed for %s: %s", conversation_id, e.details or e.message)
        except Exception as e:
            logger.warning("Title generation failed for %s: %s", conversation_id, e, exc_info=True)

    async def summarize_title(self, conversation_id: str, provider_name: str, first_prompt: str) -> str:
        """Generate and store the title. Raises on any failure; the caller decides what to do."""
        adapter = self.registry.resolve(self.title_provider or provider_name)
        prompt = TITLE_PROMPT_TEMPLATE.format(prompt=first_prompt)
        raw = await adapter.call_once([Message(role=Role.USER, content=prompt)])
        title = clean_title(raw)
        if not title:
            raise TitleSummarizationError("Empty title", details=f"provider returned {raw!r}")
        await self.store.update_conversation_title(conversation_id, title)
        return title
