"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no app imports, to avoid circular deps.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw


LOG_LEVEL: str = _str_env("LOG_LEVEL", "INFO").upper()

# Connection pool: DB_POOL_SIZE persistent connections plus DB_MAX_OVERFLOW burst.
DB_POOL_SIZE: int = _int_env("DB_POOL_SIZE", 5)
DB_MAX_OVERFLOW: int = _int_env("DB_MAX_OVERFLOW", 5)
DB_POOL_TIMEOUT_S: int = _int_env("DB_POOL_TIMEOUT_S", 30)
DB_STATEMENT_TIMEOUT_MS: int = _int_env("DB_STATEMENT_TIMEOUT_MS", 15000)
DB_QUERY_TIMEOUT_S: float = _float_env("DB_QUERY_TIMEOUT_S", 30.0)

# "migrate" runs Alembic at startup, "ensure" uses the runtime schema ensurer,
# "none" assumes the schema is already in place.
SCHEMA_MODE: str = _str_env("SCHEMA_MODE", "migrate").lower()

# Cache TTLs in seconds
CACHE_DEFAULT_TTL: int = _int_env("CACHE_DEFAULT_TTL", 300)
RECENT_CITIES_CACHE_TTL: int = _int_env("RECENT_CITIES_CACHE_TTL", 120)
SEARCH_CACHE_TTL: int = _int_env("SEARCH_CACHE_TTL", 120)
COMMUNITY_STATS_CACHE_TTL: int = _int_env("COMMUNITY_STATS_CACHE_TTL", 300)
FILTER_OPTIONS_CACHE_TTL: int = _int_env("FILTER_OPTIONS_CACHE_TTL", 900)

BACKGROUND_TASKS_ENABLED: bool = _bool_env("BACKGROUND_TASKS_ENABLED", True)
HEALTH_CHECK_INTERVAL_S: int = _int_env("HEALTH_CHECK_INTERVAL_S", 300)
CACHE_WARM_DELAY_S: int = _int_env("CACHE_WARM_DELAY_S", 10)
RECONNECT_ATTEMPTS: int = _int_env("DB_RECONNECT_ATTEMPTS", 5)
RECONNECT_BASE_DELAY_S: float = _float_env("DB_RECONNECT_BASE_DELAY_S", 1.0)

SESSION_COOKIE_NAME: str = _str_env("SESSION_COOKIE_NAME", "cc_session")
INTERNAL_API_TOKEN: str = _str_env("INTERNAL_API_TOKEN", "")

PUBLIC_BASE_URL: str = _str_env("PUBLIC_BASE_URL", "https://citiescollective.space").rstrip("/")
HOF_API_BASE_URL: str = _str_env("HOF_API_BASE_URL", "https://halloffame.cs2.mtq.io/api/v1").rstrip("/")
HOF_API_TIMEOUT_S: float = _float_env("HOF_API_TIMEOUT_S", 15.0)

# Comment limits
COMMENT_MIN_LENGTH: int = _int_env("COMMENT_MIN_LENGTH", 3)
COMMENT_MAX_LENGTH: int = _int_env("COMMENT_MAX_LENGTH", 1000)

PASSWORD_RESET_TOKEN_TTL_MINUTES: int = _int_env("PASSWORD_RESET_TOKEN_TTL_MINUTES", 60)
