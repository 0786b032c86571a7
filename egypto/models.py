"""
DATA MODELS MODULE
==================

Pydantic models used for API requests, responses, and the records the chat
store hands back. FastAPI uses these to parse incoming JSON and to serialize
responses; the services use them as plain typed values.

MODELS:
  Role / ProviderName - Closed sets of message roles and supported LLM backends.
  Message             - One message sent to a provider (role + content).
  ChatRequest         - Body of POST /chat and POST /chat/stream.
  ChatReply           - Body returned by POST /chat.
  Conversation        - A stored conversation row.
  Turn                - A stored prompt/reply pair.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==============================================================================
# ENUMS
# ==============================================================================

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ProviderName(str, Enum):
    """Supported LLM backends. Groq has no incremental protocol here (single-shot only)."""
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    GROQ = "groq"


# ==============================================================================
# MESSAGE AND REQUEST/RESPONSE MODELS
# ==============================================================================

class Message(BaseModel):
    """A single message handed to a provider. Order in the list defines chronology."""
    role: Role
    content: str


class ChatRequest(BaseModel):
    """
    Request body for POST /chat and POST /chat/stream.

    - prompt: The user's question. Checked by the chat service (not here) so an
      empty prompt is a 400, like an unknown model.
    - model: Provider name, one of ProviderName. Kept as a plain string for the
      same reason.
    - chatId: Optional. Continue this conversation (authenticated callers only).
    """
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    model: Optional[str] = None
    chat_id: Optional[str] = Field(default=None, alias="chatId")


class ChatReplyData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: Optional[str] = Field(default=None, alias="chatId")
    reply: str


class ChatReply(BaseModel):
    """Response body for POST /chat, same envelope as the other JSON endpoints."""
    data: ChatReplyData
    status: bool = True
    message: str = "Success"


# ==============================================================================
# STORED RECORDS
# ==============================================================================

class Conversation(BaseModel):
    id: str
    owner_id: Optional[str] = None
    title: str
    created_at: datetime
    updated_at: datetime


class Turn(BaseModel):
    """One prompt/reply exchange. Immutable once created."""
    id: str
    conversation_id: str
    prompt: str
    reply: str
    created_at: datetime


class ChatTitle(BaseModel):
    id: str
    title: str


class ChatDetail(BaseModel):
    chat: Conversation
    messages: List[Turn]
