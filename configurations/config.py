import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

def get_env_var(name: str) -> str:
    """Get environment variable or raise a clear error if missing."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable: {name}\n"
            f"Did you copy .env.example to .env and fill in your keys?"
        )
    return value

def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))

# Required only when the upstream model / DB are actually built
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
DATABASE_URL = os.getenv("DATABASE_URL")

GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
PORT = _int_env("PORT", 8000)

CACHE_TTL_SECONDS = _int_env("CACHE_TTL_SECONDS", 30)

USER_RATE_LIMIT = _int_env("USER_RATE_LIMIT", 10)
USER_RATE_WINDOW_SECONDS = _int_env("USER_RATE_WINDOW_SECONDS", 60)
ADDRESS_RATE_LIMIT = _int_env("ADDRESS_RATE_LIMIT", 20)
ADDRESS_RATE_WINDOW_SECONDS = _int_env("ADDRESS_RATE_WINDOW_SECONDS", 60)

MAX_TOOL_ROUNDS = _int_env("MAX_TOOL_ROUNDS", 5)
TRANSACTION_PREVIEW_LIMIT = _int_env("TRANSACTION_PREVIEW_LIMIT", 15)


def expose_error_detail() -> bool:
    """Technical error detail is only returned outside production."""
    return DEBUG or ENVIRONMENT.lower() != "production"
