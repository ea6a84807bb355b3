from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from exc


def _optional_int_env(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = _int_env(name, 0)
    return value if value > 0 else None


PORT = _int_env("PORT", 3001)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "text").strip().lower()

AI_PROVIDER = os.getenv("AI_PROVIDER", "openai").strip().lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
AZURE_OPENAI_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT", "").strip()
AZURE_OPENAI_API_KEY = os.getenv("AZURE_OPENAI_API_KEY", "").strip()
AZURE_OPENAI_DEPLOYMENT = os.getenv("AZURE_OPENAI_DEPLOYMENT", "").strip()
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "").strip()
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514").strip()

LLM_TIMEOUT_SECONDS = _int_env("LLM_TIMEOUT_SECONDS", 60)
LLM_MAX_ATTEMPTS = _int_env("LLM_MAX_ATTEMPTS", 5)
LLM_BACKOFF_MAX_SECONDS = _int_env("LLM_BACKOFF_MAX_SECONDS", 16)
LLM_FAILURE_THRESHOLD = _int_env("LLM_FAILURE_THRESHOLD", 5)
LLM_COOLDOWN_SECONDS = _int_env("LLM_COOLDOWN_SECONDS", 60)

RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 10)

MAX_UPLOAD_BYTES = _int_env("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)

# Unset means unbounded, which is the demo default.
DATASET_STORE_MAX_ITEMS = _optional_int_env("DATASET_STORE_MAX_ITEMS")
QUERY_CACHE_MAX_ENTRIES = _optional_int_env("QUERY_CACHE_MAX_ENTRIES")
QUERY_CACHE_TTL_SECONDS = _optional_int_env("QUERY_CACHE_TTL_SECONDS")
REDIS_URL = os.getenv("REDIS_URL", "").strip()

DEMO_DATASETS_DIR = Path(os.getenv("DEMO_DATASETS_DIR", "") or Path(__file__).parent / "demo_datasets")

PROMPT_FULL_ROWS_MAX = _int_env("PROMPT_FULL_ROWS_MAX", 4000)
PROMPT_SAMPLE_ROWS = _int_env("PROMPT_SAMPLE_ROWS", 1000)
PROMPT_MAX_CHARS = _int_env("PROMPT_MAX_CHARS", 3_200_000)
