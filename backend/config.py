"""
config.py
---------
Central configuration for the itinerary backend.
All secrets loaded from environment variables — never hard-coded.
"""

import os
from pathlib import Path

# Load .env from the backend directory (if it exists) so env vars in that file
# are picked up by os.getenv() below.  Won't override vars already set in the shell.
from dotenv import load_dotenv

_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
# JSONL audit trail for plan saves/adoptions (one file per trip)
AUDIT_LOG_DIR: str = os.getenv("AUDIT_LOG_DIR", str(Path(__file__).parent / "logs"))

# ── Google Distance Matrix (optional) ─────────────────────────────────────────
# Empty key → every ETA is estimated locally (haversine + mode speed).
GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
DISTANCE_MATRIX_URL: str = os.getenv(
    "DISTANCE_MATRIX_URL",
    "https://maps.googleapis.com/maps/api/distancematrix/json",
)
# Provider ceiling: origins ≤ 25 and destinations ≤ 25 per request
DISTANCE_MATRIX_BATCH_LIMIT: int = int(os.getenv("DISTANCE_MATRIX_BATCH_LIMIT", "25"))
DISTANCE_MATRIX_TIMEOUT_S: float = float(os.getenv("DISTANCE_MATRIX_TIMEOUT_S", "5"))
DEFAULT_TRAVEL_MODE: str = os.getenv("DEFAULT_TRAVEL_MODE", "driving")

# ── Scheduling (all values in minutes) ────────────────────────────────────────
TRAVEL_BUFFER_MINUTES: int        = int(os.getenv("TRAVEL_BUFFER_MINUTES", "15"))
# Added on top of a live leg estimate when a travel-time tool is attached
TRAVEL_SAFETY_MARGIN_MINUTES: int = int(os.getenv("TRAVEL_SAFETY_MARGIN_MINUTES", "10"))
DAY_START_TIME: str               = os.getenv("DAY_START_TIME", "09:00")
STOPS_PER_DAY: int                = int(os.getenv("STOPS_PER_DAY", "5"))

# ── Plan storage ──────────────────────────────────────────────────────────────
PLAN_STORE_BACKEND: str   = os.getenv("PLAN_STORE_BACKEND", "in_memory")   # "in_memory" | "postgres"
VERSION_SAVE_RETRIES: int = int(os.getenv("VERSION_SAVE_RETRIES", "3"))

# ── PostgreSQL ────────────────────────────────────────────────────────────────
# Schema defined in db/schema.sql
# Apply with: python scripts/run_migrations.py
POSTGRES_HOST: str     = os.getenv("POSTGRES_HOST",     "localhost")
POSTGRES_PORT: int     = int(os.getenv("POSTGRES_PORT", "5432"))
POSTGRES_DB: str       = os.getenv("POSTGRES_DB",       "itinerary")
POSTGRES_USER: str     = os.getenv("POSTGRES_USER",     "itinerary_user")
POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "itinerary_pass")
POSTGRES_MIN_CONN: int = int(os.getenv("POSTGRES_MIN_CONN", "1"))
POSTGRES_MAX_CONN: int = int(os.getenv("POSTGRES_MAX_CONN", "10"))
POSTGRES_CONNECT_TIMEOUT_S: int = int(os.getenv("POSTGRES_CONNECT_TIMEOUT_S", "5"))

# ── Redis (ETA matrix cache) ──────────────────────────────────────────────────
REDIS_HOST: str        = os.getenv("REDIS_HOST",     "localhost")
REDIS_PORT: int        = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB: int          = int(os.getenv("REDIS_DB",   "0"))
REDIS_PASSWORD: str    = os.getenv("REDIS_PASSWORD", "")
ETA_CACHE_ENABLED: bool = _flag("ETA_CACHE_ENABLED", "false")
# 1 day
ETA_CACHE_TTL: int      = int(os.getenv("ETA_CACHE_TTL", "86400"))

# ── LLM suggestion source ─────────────────────────────────────────────────────
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
LLM_MODEL_NAME: str = os.getenv("LLM_MODEL_NAME", "gemini-2.0-flash")
