from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from loomra.logging import parse_level


def _get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an int, got: {raw!r}") from e
    return value


def _get_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw


@dataclass(frozen=True)
class Settings:
    """Process configuration. Not to be confused with the persisted user settings document."""

    # Database
    db_path: Path
    db_timeout_ms: int

    # Server (used by loomra.main when starting uvicorn programmatically)
    host: str
    port: int
    log_level: str

    @property
    def db_timeout_s(self) -> float:
        return self.db_timeout_ms / 1000.0


def load_settings() -> Settings:
    """
    Loads settings from env vars with sane defaults.

    Env vars:
      - LOOMRA_DB_PATH (default: ./var/loomra.db)
      - LOOMRA_DB_TIMEOUT_MS (default: 5000)
      - LOOMRA_HOST (default: 127.0.0.1)
      - LOOMRA_PORT (default: 8000)
      - LOOMRA_LOG_LEVEL (default: info)
    """
    db_path = Path(_get_env_str("LOOMRA_DB_PATH", "./var/loomra.db")).expanduser()

    db_timeout_ms = _get_env_int("LOOMRA_DB_TIMEOUT_MS", 5_000)
    if db_timeout_ms <= 0:
        raise ValueError("LOOMRA_DB_TIMEOUT_MS must be > 0")

    host = _get_env_str("LOOMRA_HOST", "127.0.0.1")
    port = _get_env_int("LOOMRA_PORT", 8000)
    if not (1 <= port <= 65535):
        raise ValueError("LOOMRA_PORT must be between 1 and 65535")

    log_level = _get_env_str("LOOMRA_LOG_LEVEL", "info").lower()
    parse_level(log_level)

    return Settings(
        db_path=db_path,
        db_timeout_ms=db_timeout_ms,
        host=host,
        port=port,
        log_level=log_level,
    )
