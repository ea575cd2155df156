# src/flowtask/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Tests build their own settings object instead of reading the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "FLOWTASK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Persistence API ----
    api_base_url: str  # empty -> in-process API
    api_token: Optional[str]
    http_timeout_seconds: float
    offline_latency_seconds: float

    # ---- Session ----
    user_id: Optional[str]  # None -> signed out, mutations stay local

    # ---- Sync behaviour ----
    strict_ordering: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    persist_tasks: bool
    tasks_cache_path: Path

    # ---- Front-end ----
    console_enabled: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "flowtask") or "flowtask"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_base_url = _env(_k("API_BASE_URL"), "").strip()
        api_token = _env(_k("API_TOKEN"), "").strip() or None
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)
        offline_latency_seconds = _env_float(_k("OFFLINE_LATENCY_SECONDS"), 0.0)

        user_id = _env(_k("USER_ID"), "").strip() or None

        strict_ordering = _env_bool(_k("STRICT_ORDERING"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/flowtask"))
        persist_tasks = _env_bool(_k("PERSIST_TASKS"), True)
        tasks_cache_path = _env_path(_k("TASKS_CACHE_PATH"), data_dir / "tasks.json")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_base_url=api_base_url,
            api_token=api_token,
            http_timeout_seconds=http_timeout_seconds,
            offline_latency_seconds=offline_latency_seconds,
            user_id=user_id,
            strict_ordering=strict_ordering,
            data_dir=data_dir,
            persist_tasks=persist_tasks,
            tasks_cache_path=tasks_cache_path,
            console_enabled=console_enabled,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load settings once (reads .env on first call)."""
    global _SETTINGS
    if _SETTINGS is None:
        # Real environment variables win over .env values.
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
