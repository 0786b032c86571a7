"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all EgyptoAI backend settings: provider API keys, model
  names, endpoint URLs, the database path, the auth secret, and the persona
  prompt every provider receives as its first message.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Collects one or more API keys per LLM provider (GEMINI, DEEPSEEK, GROQ).
  - Defines the SQLite database path and creates its folder if missing.
  - Holds the chat constants: placeholder title length, title prompt, prompt limit.

USAGE:
  Import what you need: `from config import DATABASE_PATH, PERSONA_SYSTEM_PROMPT`
  All services receive these values from the lifespan in egypto.main, so tests
  can pass their own instead.
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()

# "production" hides upstream provider/store details from error bodies.
APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# DATABASE
# ============================================================================
# Conversations and turns live in one SQLite file. Override with DATABASE_PATH.

DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(BASE_DIR / "database" / "egypto.db")))
DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

# ============================================================================
# PROVIDER API KEYS
# ============================================================================
# Every provider accepts one key (e.g. GEMINI_API_KEY) or several:
#   GEMINI_API_KEY, GEMINI_API_KEY_2, GEMINI_API_KEY_3, ... (no upper limit).
# Call 1 uses the 1st key, call 2 the 2nd, and so on, then back to the 1st.
# A failing key is not retried with the next one; the call fails as a whole.

def _load_api_keys(prefix: str) -> list:
    """
    Load all API keys for one provider from the environment.
    Reads <PREFIX>_API_KEY first, then <PREFIX>_API_KEY_2, _3, ... until a number
    has no value. Returns a list of non-empty key strings (may be empty).
    """
    keys = []
    first = os.getenv(f"{prefix}_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"{prefix}_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


GEMINI_API_KEYS = _load_api_keys("GEMINI")
DEEPSEEK_API_KEYS = _load_api_keys("DEEPSEEK")
GROQ_API_KEYS = _load_api_keys("GROQ")

# ============================================================================
# PROVIDER ENDPOINTS AND MODELS
# ============================================================================

GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com").rstrip("/")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")

GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# Seconds for the shared httpx client; unset means no timeout.
_timeout = os.getenv("PROVIDER_TIMEOUT", "").strip()
PROVIDER_TIMEOUT = float(_timeout) if _timeout else None

# Provider used for conversation titles; empty means "same as the chat request".
TITLE_PROVIDER = os.getenv("TITLE_PROVIDER", "").strip().lower() or None

# ============================================================================
# AUTH
# ============================================================================

JWT_SECRET_CONFIGURED = bool(os.getenv("JWT_SECRET", "").strip())
JWT_SECRET = os.getenv("JWT_SECRET", "").strip() or "egypto-secret"
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = 7

# The development secret is refused in production (see egypto.main lifespan).
if not JWT_SECRET_CONFIGURED and not IS_PRODUCTION:
    logger.warning("JWT_SECRET not set; using the development secret.")

# ============================================================================
# CHAT CONSTANTS
# ============================================================================

# First-turn conversations are titled with the prompt cut to this length until
# the title summarizer replaces it.
PLACEHOLDER_TITLE_LENGTH = 50

# Maximum length (characters) for a single prompt.
MAX_PROMPT_LENGTH = 32_000

# Number of most recent turns returned by GET /chat/{chatId}.
HISTORY_TURNS = 10

# ============================================================================
# EGYPTOAI PERSONA
# ============================================================================
# Sent as the first (system) message to every provider, so the tone is the same
# whichever backend answers.

PERSONA_SYSTEM_PROMPT = (
    "You are EgyptoAI, a friendly Egyptian tour guide that speaks Egyptian Arabic "
    "slang but polite and also helps others with other things other than tourism."
)

TITLE_PROMPT_TEMPLATE = (
    "Generate a concise title (max 20 characters) for this conversation "
    "in Egyptian Arabic only:\n\n{prompt}"
)
