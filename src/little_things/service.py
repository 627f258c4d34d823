from __future__ import annotations

"""Composition root for the data layer.

``DataService`` owns one router, one reconciler and the two per-user
request caches. Nothing here is a module-level singleton; callers build a
service (``create_data_service``) and pass it where it is needed.
"""

import logging
from typing import Any, List, Mapping, Optional, Union

from .cache import RequestCache, cache_key
from .local_store import create_local_store
from .mappings import FieldMappings
from .models import AppSettings, Difficulty, Memory, MemoryDraft, PartnerProfile, Plan, PlanDraft, PlanSuggestion, Priority
from .outcome import Outcome
from .reconciler import ProfileReconciler
from .remote import create_remote_store
from .router import StorageRouter, is_authenticated
from .settings import Settings

logger = logging.getLogger(__name__)

SUGGESTED_PLAN_CATEGORY = "ai-suggested"

_DIFFICULTY_PRIORITY = {
    Difficulty.EASY: Priority.LOW.value,
    Difficulty.MEDIUM: Priority.MEDIUM.value,
    Difficulty.HARD: Priority.HIGH.value,
}


class DataService:
    def __init__(
        self,
        router: StorageRouter,
        *,
        reconciler: Optional[ProfileReconciler] = None,
        profile_cache: Optional[RequestCache[Outcome[PartnerProfile]]] = None,
        settings_cache: Optional[RequestCache[Outcome[AppSettings]]] = None,
    ) -> None:
        self.router = router
        # merges are written straight through the router so they do not evict the cached merge
        self.reconciler = reconciler or ProfileReconciler(router.save_profile)
        self.profile_cache = profile_cache or RequestCache("partner_profile")
        self.settings_cache = settings_cache or RequestCache("app_settings")

    def init(self) -> None:
        self.profile_cache.init()
        self.settings_cache.init()

    def clear(self) -> None:
        """Drop every cached profile and settings entry, e.g. on sign-out."""
        self.profile_cache.clear()
        self.settings_cache.clear()

    async def close(self) -> None:
        await self.reconciler.drain()
        self.clear()
        if self.router.remote is not None:
            await self.router.remote.close()

    # -- memories -----------------------------------------------------------

    async def get_memories(self, user_id: Optional[str] = None) -> List[Memory]:
        return await self.router.get_memories(user_id)

    async def save_memory(self, user_id: Optional[str], memory: Union[MemoryDraft, Mapping[str, Any]]) -> Memory:
        return await self.router.save_memory(user_id, memory)

    async def update_memory(self, user_id: Optional[str], memory_id: str, changes: Mapping[str, Any]) -> Optional[Memory]:
        return await self.router.update_memory(user_id, memory_id, changes)

    async def delete_memory(self, user_id: Optional[str], memory_id: str) -> bool:
        return await self.router.delete_memory(user_id, memory_id)

    # -- plans --------------------------------------------------------------

    async def get_plans(self, user_id: Optional[str] = None) -> List[Plan]:
        return await self.router.get_plans(user_id)

    async def save_plan(self, user_id: Optional[str], plan: Union[PlanDraft, Mapping[str, Any]]) -> Plan:
        return await self.router.save_plan(user_id, plan)

    async def update_plan(self, user_id: Optional[str], plan_id: str, changes: Mapping[str, Any]) -> Optional[Plan]:
        return await self.router.update_plan(user_id, plan_id, changes)

    async def delete_plan(self, user_id: Optional[str], plan_id: str) -> bool:
        return await self.router.delete_plan(user_id, plan_id)

    async def accept_suggestion(self, user_id: Optional[str], suggestion: PlanSuggestion) -> Plan:
        """Save an AI suggestion as a regular plan."""
        draft = PlanDraft(
            title=suggestion.title,
            description=suggestion.description,
            category=suggestion.tags[0] if suggestion.tags else SUGGESTED_PLAN_CATEGORY,
            priority=_DIFFICULTY_PRIORITY[Difficulty(suggestion.difficulty)],
        )
        return await self.router.save_plan(user_id, draft)

    # -- partner profile ----------------------------------------------------

    async def _load_partner_profile(self, user_id: Optional[str]) -> Outcome[PartnerProfile]:
        remote = await self.router.fetch_profile(user_id)
        if not is_authenticated(user_id):
            return remote
        result = self.reconciler.reconcile(user_id, remote, self.router.load_local_profile())
        logger.debug("profile.fetch.%s", result.state.value, extra={"user_id": user_id})
        return Outcome(remote.status, result.profile, remote.error)

    async def get_partner_profile(self, user_id: Optional[str] = None) -> Outcome[PartnerProfile]:
        """Cached profile read; concurrent callers for one user share a single fetch."""
        return await self.profile_cache.get_or_fetch(
            cache_key(user_id), lambda: self._load_partner_profile(user_id)
        )

    async def save_partner_profile(
        self, user_id: Optional[str], profile: Union[PartnerProfile, Mapping[str, Any]]
    ) -> Outcome[PartnerProfile]:
        self.profile_cache.invalidate(cache_key(user_id))
        return await self.router.save_profile(user_id, profile)

    # -- app settings -------------------------------------------------------

    async def get_app_settings(self, user_id: Optional[str] = None) -> Outcome[AppSettings]:
        return await self.settings_cache.get_or_fetch(
            cache_key(user_id), lambda: self.router.fetch_settings(user_id)
        )

    async def save_app_settings(
        self, user_id: Optional[str], app_settings: Union[AppSettings, Mapping[str, Any]]
    ) -> Outcome[AppSettings]:
        self.settings_cache.invalidate(cache_key(user_id))
        return await self.router.save_settings(user_id, app_settings)

    # -- users --------------------------------------------------------------

    async def ensure_user(self, user_id: str, email: Optional[str] = None) -> bool:
        return await self.router.ensure_user_exists(user_id, email)


def create_data_service(config: Settings) -> DataService:
    """Build a service with stores and cache lifetimes taken from ``config``."""
    local = create_local_store(config.storage.local_store_path, prefix=config.storage.key_prefix)
    router = StorageRouter(
        local=local,
        remote=create_remote_store(config),
        mappings=FieldMappings.load(),
        default_owner_email=config.storage.default_owner_email,
    )
    service = DataService(
        router,
        profile_cache=RequestCache("partner_profile", ttl=config.cache.profile_ttl_seconds),
        settings_cache=RequestCache("app_settings", ttl=config.cache.settings_ttl_seconds),
    )
    service.init()
    return service


__all__ = ["DataService", "create_data_service", "SUGGESTED_PLAN_CATEGORY"]
