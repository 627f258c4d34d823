from __future__ import annotations

"""Runtime configuration helpers for little-things."""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class StorageSettings:
    local_store_path: str
    key_prefix: str
    remote_backend: str
    default_owner_email: str


@dataclass(frozen=True)
class CacheSettings:
    profile_ttl_seconds: float
    settings_ttl_seconds: float


@dataclass(frozen=True)
class SupabaseSettings:
    url: str | None
    api_key: str | None
    timeout: float


@dataclass(frozen=True)
class PostgresSettings:
    dsn: str | None
    min_pool_size: int
    max_pool_size: int


@dataclass(frozen=True)
class OpenAISettings:
    api_key: str | None
    organization: str | None
    base_url: str | None


@dataclass(frozen=True)
class SuggestionSettings:
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    retry_limit: int
    retry_backoff_seconds: float
    min_memories: int
    min_confidence: int


@dataclass(frozen=True)
class LocationSettings:
    reverse_geocode_url: str
    timeout: float
    cache_seconds: float


@dataclass(frozen=True)
class ServiceSettings:
    host: str
    port: int
    log_level: str


@dataclass(frozen=True)
class Settings:
    storage: StorageSettings
    cache: CacheSettings
    supabase: SupabaseSettings
    postgres: PostgresSettings
    openai: OpenAISettings
    suggestions: SuggestionSettings
    location: LocationSettings
    service: ServiceSettings


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""

    storage_settings = StorageSettings(
        local_store_path=os.getenv("LOCAL_STORE_PATH", "./data/little_things.sqlite"),
        key_prefix=os.getenv("STORAGE_KEY_PREFIX", "little-things"),
        remote_backend=os.getenv("REMOTE_BACKEND", "postgrest").strip().lower(),
        default_owner_email=os.getenv("DEFAULT_OWNER_EMAIL", "unknown@example.com"),
    )

    ttl = _env_float("PROFILE_CACHE_TTL_SECONDS", 300.0)
    cache_settings = CacheSettings(
        profile_ttl_seconds=ttl,
        settings_ttl_seconds=_env_float("SETTINGS_CACHE_TTL_SECONDS", ttl),
    )

    supabase_settings = SupabaseSettings(
        url=os.getenv("SUPABASE_URL"),
        api_key=os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
        timeout=_env_float("SUPABASE_TIMEOUT", 10.0),
    )

    postgres_settings = PostgresSettings(
        dsn=os.getenv("DATABASE_URL"),
        min_pool_size=_env_int("DATABASE_MIN_POOL_SIZE", 1),
        max_pool_size=_env_int("DATABASE_MAX_POOL_SIZE", 10),
    )

    openai_settings = OpenAISettings(
        api_key=os.getenv("OPENAI_API_KEY"),
        organization=os.getenv("OPENAI_ORG_ID"),
        base_url=os.getenv("OPENAI_BASE_URL"),
    )

    suggestion_settings = SuggestionSettings(
        model=os.getenv("SUGGESTIONS_MODEL", "gpt-4o-mini"),
        temperature=_env_float("SUGGESTIONS_TEMPERATURE", 0.8),
        max_tokens=_env_int("SUGGESTIONS_MAX_TOKENS", 2000),
        timeout=_env_float("SUGGESTIONS_TIMEOUT", 60.0),
        retry_limit=_env_int("SUGGESTIONS_RETRY_LIMIT", 1),
        retry_backoff_seconds=_env_float("SUGGESTIONS_RETRY_BACKOFF_SECONDS", 0.5),
        min_memories=_env_int("SUGGESTIONS_MIN_MEMORIES", 7),
        min_confidence=_env_int("SUGGESTIONS_MIN_CONFIDENCE", 70),
    )

    location_settings = LocationSettings(
        reverse_geocode_url=os.getenv(
            "REVERSE_GEOCODE_URL",
            "https://api.bigdatacloud.net/data/reverse-geocode-client",
        ),
        timeout=_env_float("LOCATION_TIMEOUT", 10.0),
        cache_seconds=_env_float("LOCATION_CACHE_SECONDS", 300.0),
    )

    service_settings = ServiceSettings(
        host=os.getenv("SERVICE_HOST", "0.0.0.0"),
        port=_env_int("SERVICE_PORT", 8300),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )

    return Settings(
        storage=storage_settings,
        cache=cache_settings,
        supabase=supabase_settings,
        postgres=postgres_settings,
        openai=openai_settings,
        suggestions=suggestion_settings,
        location=location_settings,
        service=service_settings,
    )


settings = load_settings()

__all__ = [
    "Settings",
    "StorageSettings",
    "CacheSettings",
    "SupabaseSettings",
    "PostgresSettings",
    "OpenAISettings",
    "SuggestionSettings",
    "LocationSettings",
    "ServiceSettings",
    "settings",
    "load_settings",
]
