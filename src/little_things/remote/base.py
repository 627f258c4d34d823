"""
Remote relational store contract

Every backend exposes the same table-level operations with equality
filters and reports failures as typed errors carrying the backend's own
error code, so callers can tell "no rows" from "table missing" from a
genuine outage.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from ..errors import (
    AppError,
    DuplicateRecord,
    RecordNotFound,
    RemoteRejected,
    RemoteUnavailable,
    SchemaMismatch,
)

Row = Dict[str, Any]
Filters = Mapping[str, Any]

NOT_FOUND_CODES = {"PGRST116"}
SCHEMA_CODES = {"42P01", "42703", "3F000", "PGRST200", "PGRST204", "PGRST205"}
DUPLICATE_CODES = {"23505"}
REJECTED_CODES = {"42501", "23502", "23503", "23514", "22P02", "PGRST301", "PGRST302"}


def classify_remote_error(
    code: Optional[str],
    message: str,
    *,
    status: Optional[int] = None,
) -> AppError:
    """Map a backend error code / HTTP status onto the error taxonomy."""
    code = (code or "").strip() or None
    if code in NOT_FOUND_CODES or status == 406:
        return RecordNotFound(message, remote_code=code)
    if code in SCHEMA_CODES:
        return SchemaMismatch(message, remote_code=code)
    if code in DUPLICATE_CODES or status == 409:
        return DuplicateRecord(message, remote_code=code)
    if code in REJECTED_CODES or status in (401, 403):
        return RemoteRejected(message, remote_code=code)
    if status is not None and 400 <= status < 500:
        return RemoteRejected(message, remote_code=code)
    return RemoteUnavailable(message, remote_code=code)


class RemoteStore(ABC):
    """Table-oriented async access to the remote database."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Filters,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        """Return every row matching ``filters``."""

    @abstractmethod
    async def select_one(self, table: str, filters: Filters) -> Row:
        """Return the single matching row, raising RecordNotFound when absent."""

    @abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        """Insert ``row`` and return it as stored."""

    @abstractmethod
    async def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> Row:
        """Update the single matching row and return it, RecordNotFound when absent."""

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> int:
        """Delete matching rows and return how many were removed."""

    async def close(self) -> None:
        return None


__all__ = [
    "Row",
    "Filters",
    "RemoteStore",
    "classify_remote_error",
    "NOT_FOUND_CODES",
    "SCHEMA_CODES",
    "DUPLICATE_CODES",
    "REJECTED_CODES",
]
