"""Centralized configuration for the venue booking agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/venue-agent/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store, or ``None``."""
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/venue-agent/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /venue-agent/{name} (AWS)."
    )


def _optional_env(name: str) -> str | None:
    """Like ``_require_env`` but returns ``None`` when the value is absent."""
    value = os.getenv(name)
    if value:
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
MAX_TOOL_ROUNDS: int = int(os.getenv("MAX_TOOL_ROUNDS", "8"))

# ── Persistence ─────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./venue_agent.db")

# ── Notifications / realtime ────────────────────────────────────────
NOTIFICATION_WEBHOOK_URL: str | None = _optional_env("NOTIFICATION_WEBHOOK_URL")
REALTIME_WEBHOOK_URL: str | None = _optional_env("REALTIME_WEBHOOK_URL")
WEBHOOK_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "5.0"))

# ── Booking rules ───────────────────────────────────────────────────
PLATFORM_FEE_RATE: float = 0.12
CALENDAR_WINDOW_MONTHS: int = 3
ALTERNATIVE_SEARCH_DAYS: int = 30
MAX_ALTERNATIVES: int = 3
CONVERSATION_TTL_DAYS: int = int(os.getenv("CONVERSATION_TTL_DAYS", "7"))
ACTION_TTL_HOURS: int = int(os.getenv("ACTION_TTL_HOURS", "72"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
