from __future__ import annotations

from typing import Final

from decouple import config


def _seconds(name: str, default: float) -> float:
    """Return env var as a non-negative number of seconds."""
    return max(0.0, config(name, default=default, cast=float))


ENVIRONMENT: Final[str] = config("ENVIRONMENT", default="production")
DEBUG: Final[bool] = ENVIRONMENT != "production"

APP_VERSION: Final[str] = config("APP_VERSION", default="dev")

LOG_LEVEL: Final[str] = config("LOG_LEVEL", default="INFO").upper()

# --- Session lifecycle ---
RECONNECT_GRACE_SECONDS: Final[float] = _seconds("RECONNECT_GRACE_SECONDS", 30.0)
ROOM_IDLE_TIMEOUT_SECONDS: Final[float] = _seconds("ROOM_IDLE_TIMEOUT_SECONDS", 1800.0)
IDLE_SWEEP_INTERVAL_SECONDS: Final[float] = _seconds("IDLE_SWEEP_INTERVAL_SECONDS", 60.0)

# --- AI opponent ---
AI_THINK_MIN_SECONDS: Final[float] = _seconds("AI_THINK_MIN_SECONDS", 0.5)
AI_THINK_MAX_SECONDS: Final[float] = max(
    AI_THINK_MIN_SECONDS,
    _seconds("AI_THINK_MAX_SECONDS", 1.0),
)
