from __future__ import annotations

"""Reconcile the local partner profile with the remote one.

Anonymous use writes the profile to the local store; after signing in the
remote copy may still be empty. When the local copy carries real data and
the remote one does not, the local fields are merged over the remote
record and the merge is persisted in the background.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from .models import PLACEHOLDER, PartnerProfile
from .outcome import Outcome

logger = logging.getLogger(__name__)

PersistFn = Callable[[str, PartnerProfile], Awaitable[Outcome[PartnerProfile]]]


def _is_set(value: Optional[str]) -> bool:
    return value is not None and value != PLACEHOLDER


def has_real_data(profile: Optional[PartnerProfile]) -> bool:
    if profile is None:
        return False
    return (
        _is_set(profile.favorite_color)
        or _is_set(profile.favorite_food)
        or len(profile.favorite_hobbies) > 0
        or len(profile.important_dates) > 0
        or bool(profile.notes.strip())
    )


def local_is_more_complete(local: Optional[PartnerProfile], remote: Optional[PartnerProfile]) -> bool:
    """True when ``local`` has real data and ``remote`` is missing or has none."""
    if not has_real_data(local):
        return False
    return not has_real_data(remote)


def merge_profiles(local: PartnerProfile, remote: Optional[PartnerProfile]) -> PartnerProfile:
    """Overlay the meaningful local fields onto the remote record.

    Identity and timestamps stay remote. Each of color, food, hobbies,
    important dates and notes comes from the local copy only when the local
    value is set; otherwise the remote value is kept.
    """
    if remote is None:
        return local

    update = {}
    if _is_set(local.favorite_color):
        update["favorite_color"] = local.favorite_color
    if _is_set(local.favorite_food):
        update["favorite_food"] = local.favorite_food
    if local.favorite_hobbies:
        update["favorite_hobbies"] = list(local.favorite_hobbies)
    if local.important_dates:
        update["important_dates"] = [d.model_copy() for d in local.important_dates]
    if local.notes.strip():
        update["notes"] = local.notes
    return remote.model_copy(update=update)


class ProfileFetchState(str, Enum):
    MERGED = "merged"
    NO_MERGE_NEEDED = "no_merge_needed"
    LOCAL_FALLBACK = "local_fallback"


@dataclass(frozen=True)
class Reconciliation:
    state: ProfileFetchState
    profile: Optional[PartnerProfile]


class ProfileReconciler:
    """Decides which profile copy to serve and persists merges in the background."""

    def __init__(self, persist: PersistFn):
        self._persist = persist
        self._tasks: Set[asyncio.Task] = set()

    def reconcile(
        self,
        user_id: str,
        remote: Outcome[PartnerProfile],
        local: Optional[PartnerProfile],
    ) -> Reconciliation:
        if not remote.is_ok:
            # remote unreachable, the router already served the local copy
            logger.warning(
                "profile.reconcile.local_fallback",
                extra={"user_id": user_id, "error": remote.error.message if remote.error else None},
            )
            return Reconciliation(ProfileFetchState.LOCAL_FALLBACK, remote.value)

        if local is None or not local_is_more_complete(local, remote.value):
            return Reconciliation(ProfileFetchState.NO_MERGE_NEEDED, remote.value)

        merged = merge_profiles(local, remote.value)
        logger.info("profile.reconcile.merged", extra={"user_id": user_id})
        self._schedule_persist(user_id, merged)
        return Reconciliation(ProfileFetchState.MERGED, merged)

    def _schedule_persist(self, user_id: str, profile: PartnerProfile) -> None:
        task = asyncio.create_task(self._persist(user_id, profile))
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_persisted(user_id, t))

    def _on_persisted(self, user_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("profile.merge.persist_failed", extra={"user_id": user_id, "error": repr(exc)})
            return
        outcome = task.result()
        if not outcome.is_ok:
            logger.warning(
                "profile.merge.persist_degraded",
                extra={"user_id": user_id, "status": outcome.status.value},
            )

    async def drain(self) -> None:
        """Wait for background merge writes started so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = [
    "ProfileFetchState",
    "Reconciliation",
    "ProfileReconciler",
    "has_real_data",
    "local_is_more_complete",
    "merge_profiles",
]
