from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    rate_limit: str
    api_key: str | None
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    requests_per_minute: int
    requests_per_hour: int
    requests_per_day: int
    request_limiter_backend: str
    request_limiter_db_path: str
    ip_hash_salt: str
    cache_ttl_seconds: int
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int
    resume_store_backend: str
    resume_store_db_path: str
    supabase_url: str | None
    supabase_key: str | None
    site_url: str
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    stripe_price_id_2d: str | None
    stripe_price_id_7d: str | None
    stripe_price_id_30d: str | None
    free_resume_limit: int
    default_model_key: str
    llm_timeout_s: float
    max_job_description_chars: int


settings = Settings(
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    api_key=_get_env("API_KEY"),
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX", r"^https:\/\/[a-z0-9-]+-.*\.vercel\.app$"),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", True),
    requests_per_minute=_get_env_int("RATE_LIMIT_REQUESTS_PER_MINUTE", 5),
    requests_per_hour=_get_env_int("RATE_LIMIT_REQUESTS_PER_HOUR", 30),
    requests_per_day=_get_env_int("RATE_LIMIT_REQUESTS_PER_DAY", 200),
    request_limiter_backend=(_get_env("REQUEST_LIMITER_BACKEND", "memory") or "memory").strip().lower(),
    request_limiter_db_path=_get_env("REQUEST_LIMITER_DB_PATH", "data/request_limiter.db") or "data/request_limiter.db",
    ip_hash_salt=_get_env("IP_HASH_SALT", "") or "",
    cache_ttl_seconds=_get_env_int("CACHE_TTL_SECONDS", 300),
    analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
    analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
    analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 180),
    resume_store_backend=(_get_env("RESUME_STORE_BACKEND", "sqlite") or "sqlite").strip().lower(),
    resume_store_db_path=_get_env("RESUME_STORE_DB_PATH", "data/resumes.db") or "data/resumes.db",
    supabase_url=_get_env("SUPABASE_URL"),
    supabase_key=_get_env("SUPABASE_SERVICE_ROLE_KEY") or _get_env("SUPABASE_KEY"),
    site_url=(_get_env("SITE_URL", "http://localhost:3000") or "http://localhost:3000").rstrip("/"),
    stripe_secret_key=_get_env("STRIPE_SECRET_KEY"),
    stripe_webhook_secret=_get_env("STRIPE_WEBHOOK_SECRET"),
    stripe_price_id_2d=_get_env("STRIPE_PRICE_ID_2D"),
    stripe_price_id_7d=_get_env("STRIPE_PRICE_ID_7D"),
    stripe_price_id_30d=_get_env("STRIPE_PRICE_ID_30D"),
    free_resume_limit=_get_env_int("FREE_RESUME_LIMIT", 3),
    default_model_key=(_get_env("DEFAULT_MODEL_KEY", "gemini:gemini-2.5-flash-lite") or "gemini:gemini-2.5-flash-lite").strip(),
    llm_timeout_s=_get_env_float("TOOLS_LLM_TIMEOUT_S", 60.0),
    max_job_description_chars=_get_env_int("MAX_JOB_DESCRIPTION_CHARS", 12000),
)

if settings.resume_store_backend not in {"sqlite", "supabase"}:
    raise RuntimeError("RESUME_STORE_BACKEND must be either 'sqlite' or 'supabase'.")

if settings.resume_store_backend == "supabase" and not (settings.supabase_url and settings.supabase_key):
    raise RuntimeError("RESUME_STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.")

if settings.request_limiter_backend not in {"memory", "sqlite"}:
    raise RuntimeError("REQUEST_LIMITER_BACKEND must be either 'memory' or 'sqlite'.")
