from __future__ import annotations

"""Local key-value storage used when no user is signed in."""

import json
import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MEMORIES = "memories"
PARTNER_PROFILE = "partner-profile"
PLANS = "plans"
APP_SETTINGS = "app-settings"


class LocalStoreError(RuntimeError):
    """Raised when the local store cannot be read or written."""


class LocalStore(ABC):
    """Synchronous JSON key-value store namespaced by a fixed prefix."""

    def __init__(self, *, prefix: str = "little-things") -> None:
        self._prefix = prefix

    def key_for(self, entity: str) -> str:
        return f"{self._prefix}-{entity}"

    def get(self, entity: str) -> Any:
        raw = self._get_raw(self.key_for(entity))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("local.decode.error", extra={"key": self.key_for(entity)})
            return None

    def set(self, entity: str, value: Any) -> None:
        self._set_raw(self.key_for(entity), json.dumps(value, ensure_ascii=False))

    def remove(self, entity: str) -> None:
        self._remove_raw(self.key_for(entity))

    @abstractmethod
    def _get_raw(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _set_raw(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _remove_raw(self, key: str) -> None:
        ...


class InMemoryLocalStore(LocalStore):
    """Process-local store, contents are lost on exit."""

    def __init__(self, *, prefix: str = "little-things") -> None:
        super().__init__(prefix=prefix)
        self._items: Dict[str, str] = {}

    def _get_raw(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def _set_raw(self, key: str, value: str) -> None:
        self._items[key] = value

    def _remove_raw(self, key: str) -> None:
        self._items.pop(key, None)


class SQLiteLocalStore(LocalStore):
    """SQLite-backed store, one row per key."""

    def __init__(self, *, db_path: str, prefix: str = "little-things") -> None:
        super().__init__(prefix=prefix)
        self._db_path = db_path
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        try:
            if not self._ready:
                directory = os.path.dirname(self._db_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
            conn = sqlite3.connect(self._db_path)
        except (OSError, sqlite3.Error) as exc:
            logger.debug("local.connect.error", exc_info=True)
            raise LocalStoreError("failed to open local store") from exc

        if not self._ready:
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_items(
                      key TEXT PRIMARY KEY,
                      value TEXT NOT NULL
                    );
                    """
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.close()
                raise LocalStoreError("failed to prepare local store") from exc
            self._ready = True
        return conn

    def _get_raw(self, key: str) -> Optional[str]:
        if not self._ready and not os.path.exists(self._db_path):
            return None
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv_items WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.debug("local.query.error", exc_info=True)
            raise LocalStoreError("failed to query local store") from exc
        finally:
            conn.close()
        return row[0] if row else None

    def _set_raw(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO kv_items(key, value) VALUES(?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise LocalStoreError("failed to write local store") from exc
        finally:
            conn.close()

    def _remove_raw(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv_items WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as exc:
            raise LocalStoreError("failed to write local store") from exc
        finally:
            conn.close()


def create_local_store(db_path: str, *, prefix: str = "little-things") -> LocalStore:
    if not db_path or db_path == ":memory:":
        return InMemoryLocalStore(prefix=prefix)
    return SQLiteLocalStore(db_path=db_path, prefix=prefix)


__all__ = [
    "LocalStore",
    "LocalStoreError",
    "InMemoryLocalStore",
    "SQLiteLocalStore",
    "create_local_store",
    "MEMORIES",
    "PARTNER_PROFILE",
    "PLANS",
    "APP_SETTINGS",
]
