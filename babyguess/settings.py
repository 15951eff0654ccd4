# babyguess/settings.py
from __future__ import annotations

from pydantic import BaseModel
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    APP_NAME: str = "babyguess-server"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_SEC: int = 7200
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SEC: float = 1.0

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173,null"
    # Dev helper: allow any private LAN IP on port 5173
    WS_ALLOW_LAN_ORIGINS: bool = True

    # Game
    GAME_TOPIC: str = "baby-game"
    SETTLE_DELAY_SEC: float = 3.0
    POINTS_PER_CORRECT: int = 1
    DEFAULT_SECONDS_PER_ROUND: int = 10
    ROUND_TIMERS_ENABLED: bool = True

    # Presence
    HEARTBEAT_TTL_SEC: int = 60
    ONLINE_WINDOW_SEC: int = 30

    # History
    HISTORY_MAX_ENTRIES: int = 50


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "babyguess-server"),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        SESSION_TTL_SEC=int(os.getenv("SESSION_TTL_SEC", "7200")),
        STORE_RETRY_ATTEMPTS=int(os.getenv("STORE_RETRY_ATTEMPTS", "3")),
        STORE_RETRY_BACKOFF_SEC=float(os.getenv("STORE_RETRY_BACKOFF_SEC", "1.0")),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        LOG_FORMAT=os.getenv("LOG_FORMAT", "json"),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_bool("WS_ALLOW_LAN_ORIGINS", "true"),

        GAME_TOPIC=os.getenv("GAME_TOPIC", "baby-game"),
        SETTLE_DELAY_SEC=float(os.getenv("SETTLE_DELAY_SEC", "3")),
        POINTS_PER_CORRECT=int(os.getenv("POINTS_PER_CORRECT", "1")),
        DEFAULT_SECONDS_PER_ROUND=int(os.getenv("DEFAULT_SECONDS_PER_ROUND", "10")),
        ROUND_TIMERS_ENABLED=_env_bool("ROUND_TIMERS_ENABLED", "true"),

        HEARTBEAT_TTL_SEC=int(os.getenv("HEARTBEAT_TTL_SEC", "60")),
        ONLINE_WINDOW_SEC=int(os.getenv("ONLINE_WINDOW_SEC", "30")),
        HISTORY_MAX_ENTRIES=int(os.getenv("HISTORY_MAX_ENTRIES", "50")),
    )
