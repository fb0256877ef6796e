"""
Central configuration — reads from .env file.

Every setting is a module attribute so tests can monkeypatch config.X and all
code reading config.X sees the new value without re-importing.

The only hard requirement for analysis is GOOGLE_API_KEY. The bot still
starts without it (so it can tell users what's wrong) but every analysis is
refused with a ConfigurationError until the key is set.
"""
import os
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigurationError

load_dotenv()

# ── Telegram ──────────────────────────────────────────────────────────────────
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# Comma-separated Telegram user IDs that receive admin notifications and /stats
ADMIN_IDS: set[int] = {
    int(x.strip())
    for x in os.getenv("ADMIN_IDS", "").split(",")
    if x.strip().isdigit()
}

# ── Gemini ────────────────────────────────────────────────────────────────────
# API_KEY is accepted as a legacy name for the same credential.
GOOGLE_API_KEY: Optional[str] = os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY") or None

GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-3-pro-preview")

# Profile extraction wants repeatable answers; insights tolerate more variety.
PROFILE_TEMPERATURE: float  = float(os.getenv("PROFILE_TEMPERATURE", "0.3"))
INSIGHTS_TEMPERATURE: float = float(os.getenv("INSIGHTS_TEMPERATURE", "0.5"))

# Google Search grounding (adds cited web sources to each response)
SEARCH_GROUNDING: bool = os.getenv("SEARCH_GROUNDING", "true").lower() == "true"

# ── Analysis ──────────────────────────────────────────────────────────────────
# vi | en | ko: language the model is asked to answer in
DEFAULT_LANGUAGE: str = os.getenv("DEFAULT_LANGUAGE", "vi")

# ── Bot behaviour ─────────────────────────────────────────────────────────────
RATE_MAX_REQUESTS: int = int(os.getenv("RATE_MAX_REQUESTS", "5"))
RATE_WINDOW_SECS: int  = int(os.getenv("RATE_WINDOW_SECS", "60"))

# ── Export ────────────────────────────────────────────────────────────────────
REPORT_BRAND: str = os.getenv("REPORT_BRAND", "SweetTech")

# Optional TTF font for PDF export. The built-in Helvetica has no Vietnamese
# or Korean glyphs, so point this at e.g. NotoSans-Regular.ttf when needed.
PDF_FONT_PATH: Optional[str] = os.getenv("PDF_FONT_PATH", "").strip() or None


def require_api_key() -> str:
    """Return the Gemini API key or raise ConfigurationError if it isn't set."""
    if not GOOGLE_API_KEY:
        raise ConfigurationError(
            "GOOGLE_API_KEY is missing. Please check your environment configuration."
        )
    return GOOGLE_API_KEY
