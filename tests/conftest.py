"""
pytest configuration
Shared fakes and fixtures for the storage layer tests
"""

import asyncio
import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import pytest

from little_things.errors import DuplicateRecord, RecordNotFound
from little_things.local_store import InMemoryLocalStore
from little_things.mappings import FieldMappings
from little_things.remote.base import RemoteStore
from little_things.router import StorageRouter
from little_things.service import DataService


class FakeRemoteStore(RemoteStore):
    """In-memory stand-in for the remote database.

    ``failures`` maps ``"method"`` or ``"method:table"`` to an exception that
    is raised instead of running the call. ``gate``, when set, blocks
    ``select_one`` until the event fires.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.closed = False
        self._ids = itertools.count(1)
        self._base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def seed(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        stored = dict(row)
        stored.setdefault("id", str(next(self._ids)))
        self.tables.setdefault(table, []).append(stored)
        return stored

    def count(self, method: str, table: Optional[str] = None) -> int:
        return sum(1 for call in self.calls if call[0] == method and (table is None or call[1] == table))

    def _check(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        error = self.failures.get(f"{method}:{table}") or self.failures.get(method)
        if error is not None:
            raise error

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        return all(row.get(key) == value for key, value in filters.items())

    def _stamp(self) -> str:
        return (self._base_time + timedelta(seconds=next(self._ids))).isoformat()

    async def select(self, table, filters, *, order_by=None, descending=False):
        self._check("select", table)
        rows = [copy.deepcopy(r) for r in self.tables.get(table, []) if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        return rows

    async def select_one(self, table, filters):
        if self.gate is not None:
            await self.gate.wait()
        self._check("select_one", table)
        rows = [r for r in self.tables.get(table, []) if self._matches(r, filters)]
        if len(rows) != 1:
            raise RecordNotFound(f"{len(rows)} rows in {table}", remote_code="PGRST116")
        return copy.deepcopy(rows[0])

    async def insert(self, table, row):
        self._check("insert", table)
        rows = self.tables.setdefault(table, [])
        if "id" in row and any(r.get("id") == row["id"] for r in rows):
            raise DuplicateRecord(f"duplicate key in {table}", remote_code="23505")
        stamp = self._stamp()
        stored = {"id": str(next(self._ids)), "created_at": stamp, "updated_at": stamp, **row}
        rows.append(stored)
        return copy.deepcopy(stored)

    async def update(self, table, values, filters):
        self._check("update", table)
        rows = [r for r in self.tables.get(table, []) if self._matches(r, filters)]
        if not rows:
            raise RecordNotFound(f"no rows in {table}", remote_code="PGRST116")
        rows[0].update(values)
        return copy.deepcopy(rows[0])

    async def delete(self, table, filters):
        self._check("delete", table)
        rows = self.tables.get(table, [])
        keep = [r for r in rows if not self._matches(r, filters)]
        self.tables[table] = keep
        return len(rows) - len(keep)

    async def close(self):
        self.closed = True


@pytest.fixture
def local_store():
    return InMemoryLocalStore()


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def field_mappings():
    return FieldMappings.load()


@pytest.fixture
def router(local_store, remote_store, field_mappings):
    return StorageRouter(local=local_store, remote=remote_store, mappings=field_mappings)


@pytest.fixture
def data_service(router):
    service = DataService(router)
    service.init()
    return service


@pytest.fixture
def sample_profile_row():
    """A remote partner_profiles row with nothing filled in yet"""
    return {
        "id": "profile-1",
        "user_id": "user-1",
        "name": "Sam",
        "favorite_color": "Unknown",
        "favorite_food": "Unknown",
        "favorite_hobbies": [],
        "important_dates": [],
        "notes": "",
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests that need a live remote store")
