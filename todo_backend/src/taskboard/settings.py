from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

_BACKENDS = {"memory", "sqlite", "remote"}


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default), 'sqlite' or 'remote'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/taskboard.db'
    - REMOTE_API_URL: base URL of the remote record API (required for 'remote')
    - REMOTE_API_KEY: optional bearer token sent to the remote record API
    - REMOTE_TIMEOUT: request timeout in seconds for the remote API (default 10)
    - SEED_DEFAULT_CATEGORIES: 'true' to create the starter categories on an empty store
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - LOG_LEVEL: root log level name (default INFO)
    """

    persistence_backend: str
    sqlite_db_path: str
    remote_api_url: Optional[str]
    remote_api_key: Optional[str]
    remote_timeout: float
    seed_default_categories: bool
    cors_allow_origins: List[str]
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """
    Return application settings loaded from environment variables.

    Raises:
        ValueError: the remote backend is selected but REMOTE_API_URL is not set.
    """
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in _BACKENDS:
        # Fallback to memory if unsupported
        backend = "memory"

    remote_url = os.getenv("REMOTE_API_URL") or None
    if backend == "remote" and not remote_url:
        raise ValueError("REMOTE_API_URL must be set when PERSISTENCE_BACKEND=remote")

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/taskboard.db").strip(),
        remote_api_url=remote_url.strip().rstrip("/") if remote_url else None,
        remote_api_key=os.getenv("REMOTE_API_KEY") or None,
        remote_timeout=_parse_float(_get_env("REMOTE_TIMEOUT", "10"), 10.0),
        seed_default_categories=_parse_bool(_get_env("SEED_DEFAULT_CATEGORIES", "false"), False),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
