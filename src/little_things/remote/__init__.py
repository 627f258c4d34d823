"""
Remote store backends
"""
import logging
from typing import Optional

from ..settings import Settings
from .base import RemoteStore, classify_remote_error
from .postgres import PostgresRemoteStore
from .postgrest import PostgrestRemoteStore

logger = logging.getLogger(__name__)


def create_remote_store(config: Settings) -> Optional[RemoteStore]:
    """Build the configured backend, or None when remote storage is disabled."""
    backend = config.storage.remote_backend
    if backend == "postgrest":
        if not config.supabase.url:
            logger.warning("remote.disabled", extra={"reason": "SUPABASE_URL not set"})
            return None
        return PostgrestRemoteStore(
            base_url=config.supabase.url,
            api_key=config.supabase.api_key,
            timeout=config.supabase.timeout,
        )
    if backend == "postgres":
        if not config.postgres.dsn:
            logger.warning("remote.disabled", extra={"reason": "DATABASE_URL not set"})
            return None
        return PostgresRemoteStore(
            dsn=config.postgres.dsn,
            min_size=config.postgres.min_pool_size,
            max_size=config.postgres.max_pool_size,
        )
    if backend not in ("", "none"):
        raise ValueError(f"unknown REMOTE_BACKEND: {backend}")
    return None


__all__ = [
    "RemoteStore",
    "PostgrestRemoteStore",
    "PostgresRemoteStore",
    "classify_remote_error",
    "create_remote_store",
]
