"""
Central configuration — reads from .env file.

Every value is a plain module attribute. Code reads config.X at call time
(never `from config import X`) so tests and operators can override a value
without re-importing anything.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Model providers ───────────────────────────────────────────────────────────
# Only the key for the selected CHAT_PROVIDER is required. When it is missing
# /api/chat answers 503 instead of forwarding anything.
GOOGLE_GENERATIVE_AI_API_KEY: str | None = (
    os.getenv("GOOGLE_GENERATIVE_AI_API_KEY") or os.getenv("GOOGLE_API_KEY")
)
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")

# google | openai | anthropic
CHAT_PROVIDER: str = os.getenv("CHAT_PROVIDER", "google").strip().lower()

# Leave blank to use the provider default (google → gemini-2.5-flash)
CHAT_MODEL: str | None = os.getenv("CHAT_MODEL", "").strip() or None

# ── HTTP server ───────────────────────────────────────────────────────────────
# Origin echoed in Access-Control-Allow-Origin
FRONTEND_URL: str = os.getenv("FRONTEND_URL", "").strip() or "http://localhost:5173"
CHAT_HOST: str    = os.getenv("CHAT_HOST", "0.0.0.0")
CHAT_PORT: int    = int(os.getenv("CHAT_PORT", "8080"))

# ── Rate limiting (fixed window, per client IP) ───────────────────────────────
RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "20"))
RATE_LIMIT_WINDOW_SECS: int  = int(os.getenv("RATE_LIMIT_WINDOW_SECS", "60"))
# Expired entries are swept once the table grows past this many identifiers
RATE_LIMIT_MAX_ENTRIES: int  = int(os.getenv("RATE_LIMIT_MAX_ENTRIES", "10000"))

# ── Logging ───────────────────────────────────────────────────────────────────
DATA_DIR: str = os.getenv("DATA_DIR", "data")
