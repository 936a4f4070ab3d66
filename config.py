# ============================================================
# Configuration (environment variables, optionally from .env)
# ============================================================

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Disboard's application id (public, fixed)
DEFAULT_DISBOARD_BOT_ID = 302050872383242240

DEFAULT_PORT = 3000
DEFAULT_BUMP_INTERVAL_SECONDS = 2 * 60 * 60
DEFAULT_REPLY_DELETE_AFTER = 300


class ConfigError(RuntimeError):
    """Raised when the environment is missing or has malformed settings."""


@dataclass(frozen=True)
class Settings:
    token: str
    guild_id: int | None = None
    port: int = DEFAULT_PORT
    bump_channel_id: int | None = None
    disboard_bot_id: int = DEFAULT_DISBOARD_BOT_ID
    bump_interval_seconds: int = DEFAULT_BUMP_INTERVAL_SECONDS
    reply_delete_after: int = DEFAULT_REPLY_DELETE_AFTER
    log_level: str = "INFO"


def _int_env(env, name: str, default: int | None) -> int | None:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env=None) -> Settings:
    """
    Build Settings from `env` (defaults to os.environ after loading .env).
    The token is the only required value.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    token = (env.get("DISCORD_TOKEN") or "").strip()
    if not token:
        raise ConfigError("DISCORD_TOKEN is not set. Put it in your environment or .env.")

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"LOG_LEVEL {log_level!r} is not a logging level name")

    return Settings(
        token=token,
        guild_id=_int_env(env, "GUILD_ID", None),
        port=_int_env(env, "PORT", DEFAULT_PORT),
        bump_channel_id=_int_env(env, "BUMP_CHANNEL_ID", None),
        disboard_bot_id=_int_env(env, "DISBOARD_BOT_ID", DEFAULT_DISBOARD_BOT_ID),
        bump_interval_seconds=_int_env(env, "BUMP_INTERVAL_SECONDS", DEFAULT_BUMP_INTERVAL_SECONDS),
        reply_delete_after=_int_env(env, "REPLY_DELETE_AFTER", DEFAULT_REPLY_DELETE_AFTER),
        log_level=log_level,
    )
