"""
Runtime settings read from the environment.

A ``.env`` file in the working directory is loaded first; variables already
set in the environment win over it.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .core.exceptions import ConfigurationError

STORE_TYPES = ("memory", "sqlite")


def _str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    store_type: str = "memory"
    database_path: str = "lms.db"
    seed_fixtures: bool = True
    log_level: str = "INFO"
    lock_timeout: float = 5.0
    default_task_days: int = 7
    default_max_attempts: int = 2
    enforce_deadlines: bool = False
    rest_host: str = "0.0.0.0"
    rest_port: int = 8000

    def validate(self) -> 'Settings':
        if self.store_type not in STORE_TYPES:
            raise ConfigurationError(f"Unsupported store type: {self.store_type}")
        if self.default_max_attempts < 1:
            raise ConfigurationError("LMS_DEFAULT_MAX_ATTEMPTS must be at least 1")
        if self.default_task_days < 1:
            raise ConfigurationError("LMS_DEFAULT_TASK_DAYS must be at least 1")
        if self.lock_timeout <= 0:
            raise ConfigurationError("LMS_LOCK_TIMEOUT must be positive")
        return self


def load_settings(overrides: Optional[Dict[str, Any]] = None, dotenv: bool = True) -> Settings:
    """Build Settings from the environment, then apply ``overrides``."""
    if dotenv:
        load_dotenv(Path.cwd() / ".env", override=False)

    settings = Settings(
        store_type=_str_env("LMS_STORE", "memory").lower(),
        database_path=_str_env("LMS_DATABASE_PATH", "lms.db"),
        seed_fixtures=_bool_env("LMS_SEED_FIXTURES", True),
        log_level=_str_env("LMS_LOG_LEVEL", "INFO").upper(),
        lock_timeout=_float_env("LMS_LOCK_TIMEOUT", 5.0),
        default_task_days=_int_env("LMS_DEFAULT_TASK_DAYS", 7),
        default_max_attempts=_int_env("LMS_DEFAULT_MAX_ATTEMPTS", 2),
        enforce_deadlines=_bool_env("LMS_ENFORCE_DEADLINES", False),
        rest_host=_str_env("LMS_REST_HOST", "0.0.0.0"),
        rest_port=_int_env("LMS_REST_PORT", 8000),
    )

    if overrides:
        known = {f.name for f in fields(Settings)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    return settings.validate()
