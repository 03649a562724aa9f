"""Configuration management for the semantic chat backend."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _get_int(name: str, default: int) -> int:
    """Read an integer setting, falling back to the default if it does not parse."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {value!r}, using default {default}")
        return default


def _get_float(name: str, default: float) -> float:
    """Read a float setting, falling back to the default if it does not parse."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {value!r}, using default {default}")
        return default


# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = _get_int("PORT", 8000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")  # "json" or "text"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Storage backend: "supabase" for Postgres/pgvector, "memory" for local development
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase")

# Model Configuration
COMPLETION_MODEL = os.getenv("COMPLETION_MODEL", "llama-3.3-70b-versatile")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_DIMENSIONS = _get_int("EMBEDDING_DIMENSIONS", 768)
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "o200k_base")

# Conversation Configuration
MAX_CONVERSATION_TOKENS = _get_int("MAX_CONVERSATION_TOKENS", 4000)
DEFAULT_SESSION_NAME = "New Chat"

# Semantic Cache Configuration
CACHE_SIMILARITY_SCORE = _get_float("CACHE_SIMILARITY_SCORE", 0.99)  # > 0.99 is an exact semantic match
CACHE_TTL_SECONDS = _get_int("CACHE_TTL_SECONDS", 86400)  # 1 day
CACHE_PURGE_INTERVAL_SECONDS = _get_int("CACHE_PURGE_INTERVAL_SECONDS", 900)

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
