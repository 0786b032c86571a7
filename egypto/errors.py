"""
ERRORS MODULE
=============

Every failure the chat flow knows about. Each error carries the HTTP status it
maps to when it happens BEFORE a stream has opened; after that point the status
line is gone and the error can only travel as an in-band SSE frame.

  ValidationError          400  missing prompt, prompt too long
  InvalidProviderError     400  model is not one of the supported providers
  AuthenticationError      401  bearer token present but invalid/expired, or required and missing
  ConversationAccessError  404  chatId not found OR owned by someone else (same answer for both)
  ProviderError            500  upstream LLM failure (status/body kept in details)
  StreamInterruptedError   500  provider or client failure mid-stream; keeps the partial text
  StoreError               500  persistence failure
  TitleSummarizationError  -    never leaves the background title task
  TransportClosedError     -    the SSE client went away; raised by SseTransport.send
"""

from typing import Optional


class EgyptoError(Exception):
    """Base class. `details` is extra context for logs and non-production error bodies."""

    status_code = 500
    # Hidden from clients in production (upstream bodies, driver messages).
    internal_details = False

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(EgyptoError):
    status_code = 400


class InvalidProviderError(ValidationError):
    def __init__(self, provider_name: Optional[str]):
        super().__init__("Invalid model specified.", details=f"unknown provider: {provider_name!r}")
        self.provider_name = provider_name


class AuthenticationError(EgyptoError):
    status_code = 401


class ConversationAccessError(EgyptoError):
    status_code = 404

    def __init__(self, conversation_id: str):
        super().__init__("Chat not found or does not belong to the user.")
        self.conversation_id = conversation_id


class ProviderError(EgyptoError):
    internal_details = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        upstream_status: Optional[int] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider
        self.upstream_status = upstream_status


class StreamInterruptedError(ProviderError):
    """A streaming call stopped early. `partial_text` is everything accumulated so far."""

    def __init__(self, message: str, partial_text: str, provider: Optional[str] = None,
                 upstream_status: Optional[int] = None, details: Optional[str] = None,
                 client_disconnected: bool = False):
        super().__init__(message, provider=provider, upstream_status=upstream_status, details=details)
        self.partial_text = partial_text
        self.client_disconnected = client_disconnected


class StoreError(EgyptoError):
    internal_details = True


class TitleSummarizationError(EgyptoError):
    pass


class TransportClosedError(EgyptoError):
    pass
