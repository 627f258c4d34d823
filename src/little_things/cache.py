from __future__ import annotations

"""Per-user request cache with in-flight de-duplication."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Pending(Generic[T]):
    task: "asyncio.Task[T]"


@dataclass(frozen=True)
class Ready(Generic[T]):
    value: T
    timestamp: float


CacheEntry = Union[Pending[T], Ready[T]]


def cache_key(user_id: Optional[str]) -> str:
    return user_id or ANONYMOUS


class RequestCache(Generic[T]):
    """Memoizes one fetch per key.

    A missing key is ``Empty``; while a fetch runs the key holds ``Pending``
    with the shared task, so concurrent callers await the same fetch; once
    it resolves the key holds ``Ready`` until ``ttl`` seconds have passed.
    """

    def __init__(
        self,
        name: str,
        *,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def init(self) -> None:
        self._entries = {}

    def clear(self) -> None:
        self._entries.clear()

    def peek(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug("cache.invalidate", extra={"cache": self.name, "key": key})

    def set(self, key: str, value: T) -> None:
        self._entries[key] = Ready(value, self._clock())

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        if isinstance(entry, Pending):
            logger.debug("cache.join_pending", extra={"cache": self.name, "key": key})
            return await asyncio.shield(entry.task)
        if isinstance(entry, Ready):
            if self._clock() - entry.timestamp < self.ttl:
                return entry.value
            self._entries.pop(key, None)

        pending: Pending[T]

        async def _run() -> T:
            try:
                value = await fetch()
            except BaseException:
                if self._entries.get(key) is pending:
                    del self._entries[key]
                raise
            # an invalidation while pending means the result may predate a write
            if self._entries.get(key) is pending:
                self._entries[key] = Ready(value, self._clock())
            return value

        pending = Pending(asyncio.ensure_future(_run()))
        self._entries[key] = pending
        logger.debug("cache.miss", extra={"cache": self.name, "key": key})
        return await asyncio.shield(pending.task)


__all__ = ["RequestCache", "Pending", "Ready", "CacheEntry", "ANONYMOUS", "cache_key"]
