"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from newsbird.models import SimilarityConfig

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DB_PATH: Path = Path(os.getenv("NEWSBIRD_DB", str(PROJECT_ROOT / "var" / "newsbird.sqlite3")))

# ── X API ──────────────────────────────────────────────────────────────────
X_ACCESS_TOKEN: str = os.getenv("X_ACCESS_TOKEN", "")
X_API_BASE: str = os.getenv("X_API_BASE", "https://api.twitter.com")

# ── LLM ────────────────────────────────────────────────────────────────────
LLM_API_KEY: str = os.getenv("LLM_API_KEY", "")
LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "")

# ── Duplicate detection ────────────────────────────────────────────────────
TITLE_THRESHOLD: float = float(os.getenv("NEWSBIRD_TITLE_THRESHOLD", "0.8"))
CONTENT_THRESHOLD: float = float(os.getenv("NEWSBIRD_CONTENT_THRESHOLD", "0.6"))
TIME_WINDOW_HOURS: float = float(os.getenv("NEWSBIRD_TIME_WINDOW_HOURS", "48"))
CACHE_TTL_SECONDS: float = float(os.getenv("NEWSBIRD_CACHE_TTL", "600"))
RETENTION_DAYS: int = int(os.getenv("NEWSBIRD_RETENTION_DAYS", "30"))

# ── Timeouts (seconds) ─────────────────────────────────────────────────────
GENERATION_TIMEOUT: float = float(os.getenv("NEWSBIRD_GENERATION_TIMEOUT", "30"))
PUBLISH_TIMEOUT: float = float(os.getenv("NEWSBIRD_PUBLISH_TIMEOUT", "20"))
STORAGE_TIMEOUT: float = float(os.getenv("NEWSBIRD_STORAGE_TIMEOUT", "5"))

LOG_LEVEL: str = os.getenv("NEWSBIRD_LOG_LEVEL", "INFO")


def default_similarity() -> SimilarityConfig:
    """Build the per-call similarity settings from the environment defaults."""
    return SimilarityConfig(
        title_similarity_threshold=TITLE_THRESHOLD,
        content_similarity_threshold=CONTENT_THRESHOLD,
        time_window_hours=TIME_WINDOW_HOURS,
    )


def publishing_enabled() -> bool:
    return bool(X_ACCESS_TOKEN)
