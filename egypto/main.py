"""
EGYPTOAI MAIN API
=================

This module defines the FastAPI application and all HTTP endpoints of the
EgyptoAI travel-chatbot backend.

ENDPOINTS:
  GET  /               - Returns API name and list of endpoints.
  GET  /health         - Returns status of all services (for monitoring).
  POST /chat/stream    - Streaming chat: Server-Sent Events, one `data:` frame per
                         text delta, then `event: done`. Gemini and DeepSeek stream
                         natively; Groq arrives as a single delta.
  POST /chat           - Single-shot chat: the whole reply as JSON.
  GET  /chat/titles    - The caller's conversations (id + title), newest activity first.
  GET  /chat/{chat_id} - One conversation with its last 10 turns.

AUTH:
  Send `Authorization: Bearer <jwt>` to have chats stored. Without it, chat
  endpoints still answer but nothing is persisted. History endpoints need a token.

STARTUP:
  The lifespan function is the composition root: it opens the shared httpx client
  and the SQLite store, builds the provider adapters, the stream broker, the
  conversation coordinator and the chat service. On shutdown it cancels pending
  background work and closes the client and the store.
"""


from contextlib import asynccontextmanager
from typing import Optional
import logging

import httpx
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import DATABASE_PATH, IS_PRODUCTION, JWT_SECRET_CONFIGURED, PROVIDER_TIMEOUT
from egypto.auth import optional_user, require_user
from egypto.errors import EgyptoError
from egypto.models import ChatDetail, ChatReply, ChatRequest
from egypto.services.chat_service import ChatService
from egypto.services.chat_store import ChatStore
from egypto.services.conversation_coordinator import ConversationCoordinator
from egypto.services.providers import build_provider_registry
from egypto.services.sse import error_body
from egypto.services.stream_broker import StreamBroker


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("EgyptoAI")


# -----------------------------------------------------------------------------
# GLOBAL SERVICE REFERENCES
# -----------------------------------------------------------------------------
# Set during startup (lifespan) and used by all route handlers.
http_client: Optional[httpx.AsyncClient] = None
chat_store: Optional[ChatStore] = None
chat_service: Optional[ChatService] = None


def print_title():
    """Print the EgyptoAI banner to the console when the server starts."""
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    banner = f"""
{BOLD}{YELLOW}          /\\
{YELLOW}         /  \\        {CYAN}E G Y P T O A I{RESET}
{BOLD}{YELLOW}        /____\\       {RESET}your friendly Egyptian tour guide
"""
    print(banner)


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build every service once, in dependency order:
      1. httpx.AsyncClient: shared by the HTTP provider adapters
      2. ChatStore: SQLite conversations and turns
      3. ProviderRegistry: gemini, deepseek, groq adapters
      4. StreamBroker and ConversationCoordinator
      5. ChatService: used by every chat endpoint
    """
    global http_client, chat_store, chat_service

    print_title()
    logger.info("=" * 60)
    logger.info("EgyptoAI - Starting Up...")
    logger.info("=" * 60)

    try:
        if IS_PRODUCTION and not JWT_SECRET_CONFIGURED:
            raise RuntimeError("JWT_SECRET must be set when APP_ENV=production")

        http_client = httpx.AsyncClient(timeout=PROVIDER_TIMEOUT)

        logger.info("Opening chat store at %s", DATABASE_PATH)
        chat_store = ChatStore(DATABASE_PATH)

        registry = build_provider_registry(http_client)
        logger.info("Providers: %s", ", ".join(registry.names()))

        coordinator = ConversationCoordinator(chat_store, registry)
        chat_service = ChatService(registry, StreamBroker(registry), coordinator)

        logger.info("=" * 60)
        logger.info("EgyptoAI is online and ready!")
        logger.info("Docs: http://localhost:8000/docs")
        logger.info("=" * 60)
    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down EgyptoAI...")
    if chat_service:
        await chat_service.shutdown()
    if http_client:
        await http_client.aclose()
    if chat_store:
        chat_store.close()
    logger.info("Goodbye!")


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="EgyptoAI API",
    description="Travel-chatbot backend: streaming chat over several LLM providers",
    lifespan=lifespan
)

# The web and mobile frontends run on other origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Chat-Id"],
)


@app.exception_handler(EgyptoError)
async def egypto_error_handler(request: Request, exc: EgyptoError):
    """Errors raised before any response bytes: `{error, details?}` with the error's status."""
    details = exc.details
    if IS_PRODUCTION and exc.internal_details:
        details = None
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, details))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same 400 shape as every other validation failure."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    details = f"{field}: {first.get('msg')}" if field else first.get("msg")
    return JSONResponse(status_code=400, content=error_body("Invalid request body.", details))


def _service() -> ChatService:
    if not chat_service:
        raise HTTPException(status_code=503, detail="Chat service not initialized")
    return chat_service


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint."""
    return {
        "message": "EgyptoAI API",
        "endpoints": {
            "/chat/stream": "Streaming chat (Server-Sent Events)",
            "/chat": "Single-shot chat (JSON)",
            "/chat/titles": "Your conversations",
            "/chat/{chat_id}": "One conversation with its latest messages",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health():
    """Return 'healthy', store counts, and each provider with its streaming mode."""
    providers = {}
    if chat_service:
        for name in chat_service.registry.names():
            adapter = chat_service.registry.resolve(name)
            providers[name] = "native" if adapter.supports_streaming else "simulated"
    return {
        "status": "healthy",
        "chat_store": await chat_store.get_stats() if chat_store else None,
        "providers": providers,
        "chat_service": chat_service is not None,
    }


@app.post("/chat/stream")
async def chat_stream(request: ChatRequest, user_id: Optional[str] = Depends(optional_user)):
    """
    Streaming chat.

    REQUEST BODY:
    {
        "prompt": "Where are the pyramids?",
        "model": "gemini",           // gemini | deepseek | groq
        "chatId": "optional-chat-id" // continue a stored conversation
    }

    RESPONSE (text/event-stream):
        data: The pyramids
        data:  of Giza are ...
        event: done
        data: END

    Validation problems, an unknown model, or a chatId that is not yours are
    answered with JSON (400/404) before the stream opens. A failure after that
    arrives as `data: {"error": "..."}` followed by the end of the stream.
    Authenticated responses carry the conversation id in the X-Chat-Id header.
    """
    return await _service().open_stream(request, user_id)


@app.post("/chat", response_model=ChatReply)
async def chat(request: ChatRequest, user_id: Optional[str] = Depends(optional_user)):
    """Single-shot chat: same body as /chat/stream, reply returned as one JSON object."""
    return await _service().complete(request, user_id)


@app.get("/chat/titles")
async def get_chat_titles(user_id: str = Depends(require_user)):
    titles = await _service().list_titles(user_id)
    return {
        "data": [t.model_dump() for t in titles],
        "status": True,
        "message": "Chats retrieved successfully",
    }


@app.get("/chat/{chat_id}")
async def get_chat(chat_id: str, user_id: str = Depends(require_user)):
    detail: ChatDetail = await _service().get_chat(user_id, chat_id)
    return {
        "data": detail.model_dump(mode="json"),
        "status": True,
        "message": "Chat details retrieved successfully",
    }


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m egypto.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py)."""
    uvicorn.run(
        "egypto.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
