from __future__ import annotations

"""Routes every entity operation to local or remote storage.

Without a user identity everything lives in the local store. With one, the
remote store is authoritative: profile and settings writes fall back to the
local store when the remote side fails, while memory and plan failures are
raised to the caller so remote IDs stay the only IDs.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    AppError,
    DuplicateRecord,
    ErrorCode,
    OwnershipSetupFailed,
    RecordNotFound,
    RemoteRejected,
    RemoteUnavailable,
    ValidationError,
)
from .local_store import APP_SETTINGS, MEMORIES, PARTNER_PROFILE, PLANS, LocalStore, LocalStoreError
from .mappings import FieldMappings
from .models import (
    AppSettings,
    Memory,
    MemoryDraft,
    PartnerProfile,
    Plan,
    PlanDraft,
    new_local_id,
    now_iso,
)
from .outcome import Outcome
from .remote.base import RemoteStore, Row

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
RecordT = TypeVar("RecordT", Memory, Plan)


def is_authenticated(user_id: Optional[str]) -> bool:
    return bool(user_id and user_id.strip())


def _coerce(model: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {model.__name__}: {exc.error_count()} error(s)",
            user_message="Some of the details you entered are not valid.",
        ) from exc


def _require_title(title: Optional[str], what: str) -> None:
    if not (title or "").strip():
        raise ValidationError(
            f"{what} title is required",
            user_message=f"Please enter a title for your {what}.",
        )


def _surface(error: AppError, user_message: str) -> AppError:
    if not isinstance(error, OwnershipSetupFailed):
        error.user_message = user_message
    return error


class StorageRouter:
    """Local/remote routing for memories, plans, the partner profile and settings."""

    def __init__(
        self,
        *,
        local: LocalStore,
        remote: Optional[RemoteStore],
        mappings: Optional[FieldMappings] = None,
        default_owner_email: str = "unknown@example.com",
    ) -> None:
        self.local = local
        self.remote = remote
        self.mappings = mappings or FieldMappings.load()
        self.default_owner_email = default_owner_email

    def _require_remote(self) -> RemoteStore:
        if self.remote is None:
            raise RemoteUnavailable("remote store is not configured")
        return self.remote

    # ------------------------------------------------------------------
    # users

    async def ensure_user_exists(self, user_id: str, email: Optional[str] = None) -> bool:
        """Create the owning ``users`` row if missing; True when this call created it."""
        remote = self._require_remote()
        table = self.mappings.table("users")
        try:
            await remote.select_one(table, {"id": user_id})
            return False
        except RecordNotFound:
            pass
        except RemoteRejected as exc:
            raise OwnershipSetupFailed(f"cannot read user {user_id}: {exc.message}") from exc

        logger.info("users.create", extra={"user_id": user_id})
        try:
            await remote.insert(table, {"id": user_id, "email": email or self.default_owner_email})
        except DuplicateRecord:
            # another writer created the row between our check and insert
            logger.info("users.create.already_exists", extra={"user_id": user_id})
            return False
        except RemoteRejected as exc:
            raise OwnershipSetupFailed(f"cannot create user {user_id}: {exc.message}") from exc
        return True

    # ------------------------------------------------------------------
    # local list helpers shared by memories and plans

    def _local_records(self, entity: str, model: Type[RecordT]) -> List[RecordT]:
        try:
            stored = self.local.get(entity)
        except LocalStoreError:
            logger.error("local.read.error", extra={"entity": entity}, exc_info=True)
            return []
        if not isinstance(stored, list):
            return []
        records: List[RecordT] = []
        for item in stored:
            try:
                records.append(model.model_validate(item))
            except PydanticValidationError:
                logger.warning("local.record.invalid", extra={"entity": entity})
        records.sort(key=lambda r: r.created_at or "", reverse=True)
        return records

    def _write_local_records(self, entity: str, records: List[RecordT], what: str) -> None:
        try:
            self.local.set(entity, [record.to_storage() for record in records])
        except LocalStoreError as exc:
            raise AppError(
                f"failed to write {what} to local storage",
                code=ErrorCode.DATABASE_ERROR,
                user_message=f"Unable to save your {what}. Please try again.",
            ) from exc

    def _local_insert(self, entity: str, record: RecordT, model: Type[RecordT], what: str) -> RecordT:
        records = self._local_records(entity, model)
        self._write_local_records(entity, [record, *records], what)
        return record

    def _local_update(
        self,
        entity: str,
        model: Type[RecordT],
        record_id: str,
        changes: Mapping[str, Any],
        what: str,
    ) -> Optional[RecordT]:
        records = self._local_records(entity, model)
        for index, record in enumerate(records):
            if record.id == record_id:
                merged = {**record.model_dump(), **changes, "updated_at": now_iso()}
                records[index] = _coerce(model, merged)
                self._write_local_records(entity, records, what)
                return records[index]
        return None

    def _local_delete(self, entity: str, model: Type[RecordT], record_id: str, what: str) -> bool:
        records = self._local_records(entity, model)
        remaining = [record for record in records if record.id != record_id]
        if len(remaining) == len(records):
            return False
        self._write_local_records(entity, remaining, what)
        return True

    # ------------------------------------------------------------------
    # remote helpers shared by memories and plans

    async def _remote_list(self, table: str, user_id: str, convert: Callable[[Row], RecordT], what: str) -> List[RecordT]:
        try:
            rows = await self._require_remote().select(
                table, {"user_id": user_id}, order_by="created_at", descending=True
            )
        except AppError as exc:
            logger.error("remote.list.error", extra={"table": table, "error": exc.message})
            raise _surface(exc, f"Unable to load your {what}. Please try again.")
        return [convert(row) for row in rows]

    async def _remote_insert(self, table: str, user_id: str, row: Dict[str, Any], convert, what: str):
        try:
            await self.ensure_user_exists(user_id)
            inserted = await self._require_remote().insert(table, {**row, "user_id": user_id})
        except AppError as exc:
            logger.error("remote.insert.error", extra={"table": table, "error": exc.message})
            raise _surface(exc, f"Unable to save your {what}. Please try again.")
        return convert(inserted)

    async def _remote_update(self, table: str, user_id: str, record_id: str, row: Dict[str, Any], convert, what: str):
        try:
            await self.ensure_user_exists(user_id)
            updated = await self._require_remote().update(
                table, {**row, "updated_at": now_iso()}, {"id": record_id, "user_id": user_id}
            )
        except RecordNotFound:
            return None
        except AppError as exc:
            logger.error("remote.update.error", extra={"table": table, "error": exc.message})
            raise _surface(exc, f"Unable to update your {what}. Please try again.")
        return convert(updated)

    async def _remote_delete(self, table: str, user_id: str, record_id: str, what: str) -> bool:
        try:
            await self.ensure_user_exists(user_id)
            removed = await self._require_remote().delete(table, {"id": record_id, "user_id": user_id})
        except AppError as exc:
            logger.error("remote.delete.error", extra={"table": table, "error": exc.message})
            raise _surface(exc, f"Unable to delete your {what}. Please try again.")
        return removed > 0

    @staticmethod
    def _validate_changes(draft_model: Type[BaseModel], changes: Mapping[str, Any], what: str) -> Dict[str, Any]:
        allowed = {k: v for k, v in dict(changes).items() if k in draft_model.model_fields}
        if "title" in allowed:
            _require_title(allowed["title"], what)
        validated = _coerce(draft_model, {"title": "placeholder", **allowed})
        return {k: getattr(validated, k) for k in allowed}

    # ------------------------------------------------------------------
    # memories

    async def get_memories(self, user_id: Optional[str] = None) -> List[Memory]:
        if not is_authenticated(user_id):
            return self._local_records(MEMORIES, Memory)
        return await self._remote_list(
            self.mappings.table("memories"), user_id, self.mappings.memory_from_row, "memories"
        )

    async def save_memory(self, user_id: Optional[str], memory: Union[MemoryDraft, Mapping[str, Any]]) -> Memory:
        draft = _coerce(MemoryDraft, memory)
        _require_title(draft.title, "memory")

        if not is_authenticated(user_id):
            now = now_iso()
            record = Memory(
                **draft.model_dump(exclude={"date"}),
                date=draft.date or now,
                id=new_local_id(),
                created_at=now,
                updated_at=now,
            )
            logger.debug("memory.save.local", extra={"memory_id": record.id})
            return self._local_insert(MEMORIES, record, Memory, "memory")

        row = {k: v for k, v in self.mappings.memory_to_row(draft.model_dump(mode="json")).items() if v is not None}
        return await self._remote_insert(
            self.mappings.table("memories"), user_id, row, self.mappings.memory_from_row, "memory"
        )

    async def update_memory(self, user_id: Optional[str], memory_id: str, changes: Mapping[str, Any]) -> Optional[Memory]:
        clean = self._validate_changes(MemoryDraft, changes, "memory")
        if not is_authenticated(user_id):
            return self._local_update(MEMORIES, Memory, memory_id, clean, "memory")
        return await self._remote_update(
            self.mappings.table("memories"),
            user_id,
            memory_id,
            self.mappings.memory_to_row(clean),
            self.mappings.memory_from_row,
            "memory",
        )

    async def delete_memory(self, user_id: Optional[str], memory_id: str) -> bool:
        if not is_authenticated(user_id):
            return self._local_delete(MEMORIES, Memory, memory_id, "memory")
        return await self._remote_delete(self.mappings.table("memories"), user_id, memory_id, "memory")

    # ------------------------------------------------------------------
    # plans

    async def get_plans(self, user_id: Optional[str] = None) -> List[Plan]:
        if not is_authenticated(user_id):
            return self._local_records(PLANS, Plan)
        return await self._remote_list(self.mappings.table("plans"), user_id, self.mappings.plan_from_row, "plans")

    async def save_plan(self, user_id: Optional[str], plan: Union[PlanDraft, Mapping[str, Any]]) -> Plan:
        draft = _coerce(PlanDraft, plan)
        _require_title(draft.title, "plan")
        now = now_iso()
        values = {**draft.model_dump(mode="json"), "date": draft.date or now}

        if not is_authenticated(user_id):
            record = Plan(**values, id=new_local_id(), created_at=now, updated_at=now)
            return self._local_insert(PLANS, record, Plan, "plan")

        return await self._remote_insert(
            self.mappings.table("plans"),
            user_id,
            self.mappings.plan_to_row(values),
            self.mappings.plan_from_row,
            "plan",
        )

    async def update_plan(self, user_id: Optional[str], plan_id: str, changes: Mapping[str, Any]) -> Optional[Plan]:
        clean = self._validate_changes(PlanDraft, changes, "plan")
        if not is_authenticated(user_id):
            return self._local_update(PLANS, Plan, plan_id, clean, "plan")
        return await self._remote_update(
            self.mappings.table("plans"),
            user_id,
            plan_id,
            self.mappings.plan_to_row(clean),
            self.mappings.plan_from_row,
            "plan",
        )

    async def delete_plan(self, user_id: Optional[str], plan_id: str) -> bool:
        if not is_authenticated(user_id):
            return self._local_delete(PLANS, Plan, plan_id, "plan")
        return await self._remote_delete(self.mappings.table("plans"), user_id, plan_id, "plan")

    # ------------------------------------------------------------------
    # single-record-per-user entities

    def _read_local_single(self, entity: str, model: Type[ModelT]) -> Optional[ModelT]:
        try:
            stored = self.local.get(entity)
        except LocalStoreError:
            logger.error("local.read.error", extra={"entity": entity}, exc_info=True)
            return None
        if not isinstance(stored, dict):
            return None
        try:
            return model.model_validate(stored)
        except PydanticValidationError:
            logger.warning("local.record.invalid", extra={"entity": entity})
            return None

    def _write_local_single(self, entity: str, record: ModelT, cause: Optional[AppError] = None) -> Outcome[ModelT]:
        now = now_iso()
        stamped = record.model_copy(
            update={
                "id": getattr(record, "id", None) or new_local_id(),
                "created_at": getattr(record, "created_at", None) or now,
                "updated_at": now,
            }
        )
        try:
            self.local.set(entity, stamped.to_storage())
        except LocalStoreError:
            logger.error("local.write.error", extra={"entity": entity}, exc_info=True)
            return Outcome.failed(
                AppError(
                    f"failed to write {entity} to local storage",
                    code=ErrorCode.DATABASE_ERROR,
                    user_message="Unable to save your changes. Please try again.",
                )
            )
        if cause is not None:
            logger.warning("local.fallback.saved", extra={"entity": entity, "error": cause.message})
            return Outcome.degraded(stamped, cause)
        return Outcome.ok(stamped)

    async def _fetch_single(self, table: str, entity: str, user_id: str, model, convert) -> Outcome:
        try:
            row = await self._require_remote().select_one(table, {"user_id": user_id})
        except RecordNotFound:
            return Outcome.ok(None)
        except AppError as exc:
            logger.warning("remote.fetch.fallback", extra={"table": table, "error": exc.message})
            return Outcome.degraded(self._read_local_single(entity, model), exc)
        return Outcome.ok(convert(row))

    async def _upsert_single(self, table: str, user_id: str, row: Dict[str, Any]) -> Row:
        remote = self._require_remote()
        await self.ensure_user_exists(user_id)
        filters = {"user_id": user_id}
        update_values = {**row, "updated_at": now_iso()}
        try:
            await remote.select_one(table, filters)
        except RecordNotFound:
            try:
                return await remote.insert(table, {**row, "user_id": user_id})
            except DuplicateRecord:
                logger.info("remote.upsert.raced", extra={"table": table})
        return await remote.update(table, update_values, filters)

    async def _save_single(self, table: str, entity: str, user_id: Optional[str], record, row_for, convert) -> Outcome:
        if not is_authenticated(user_id):
            return self._write_local_single(entity, record)
        try:
            saved = await self._upsert_single(table, user_id, row_for(record))
        except OwnershipSetupFailed as exc:
            logger.error("remote.ownership.failed", extra={"table": table, "error": exc.message})
            return Outcome.failed(exc)
        except AppError as exc:
            logger.warning("remote.save.fallback", extra={"table": table, "error": exc.message})
            return self._write_local_single(entity, record, cause=exc)
        return Outcome.ok(convert(saved))

    # partner profile

    def load_local_profile(self) -> Optional[PartnerProfile]:
        return self._read_local_single(PARTNER_PROFILE, PartnerProfile)

    async def fetch_profile(self, user_id: Optional[str]) -> Outcome[PartnerProfile]:
        """Remote profile for ``user_id``; degraded to the local copy when the remote fails."""
        if not is_authenticated(user_id):
            return Outcome.ok(self.load_local_profile())
        return await self._fetch_single(
            self.mappings.table("partner_profiles"),
            PARTNER_PROFILE,
            user_id,
            PartnerProfile,
            self.mappings.profile_from_row,
        )

    async def save_profile(
        self, user_id: Optional[str], profile: Union[PartnerProfile, Mapping[str, Any]]
    ) -> Outcome[PartnerProfile]:
        return await self._save_single(
            self.mappings.table("partner_profiles"),
            PARTNER_PROFILE,
            user_id,
            _coerce(PartnerProfile, profile),
            self.mappings.profile_to_row,
            self.mappings.profile_from_row,
        )

    # app settings

    def load_local_settings(self) -> Optional[AppSettings]:
        return self._read_local_single(APP_SETTINGS, AppSettings)

    async def fetch_settings(self, user_id: Optional[str]) -> Outcome[AppSettings]:
        if not is_authenticated(user_id):
            return Outcome.ok(self.load_local_settings())
        outcome = await self._fetch_single(
            self.mappings.table("app_settings"),
            APP_SETTINGS,
            user_id,
            AppSettings,
            self.mappings.settings_from_row,
        )
        if outcome.is_ok and outcome.value is None:
            # nothing stored remotely yet, serve any shadow copy left by a fallback save
            return Outcome.ok(self.load_local_settings())
        return outcome

    async def save_settings(
        self, user_id: Optional[str], app_settings: Union[AppSettings, Mapping[str, Any]]
    ) -> Outcome[AppSettings]:
        return await self._save_single(
            self.mappings.table("app_settings"),
            APP_SETTINGS,
            user_id,
            _coerce(AppSettings, app_settings),
            self.mappings.settings_to_row,
            self.mappings.settings_from_row,
        )


__all__ = ["StorageRouter", "is_authenticated"]
