"""
PostgreSQL remote store

Talks to the same tables as the PostgREST backend, directly through an
asyncpg connection pool:
- lazy pool creation on first use
- json/jsonb codecs so list and dict columns round-trip as Python objects
- every asyncpg failure translated into the shared error taxonomy
"""
import json
import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

import asyncpg

from ..errors import RecordNotFound, RemoteUnavailable
from .base import Filters, RemoteStore, Row, classify_remote_error

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TIMESTAMP_SUFFIXES = ("_at", "_for")


def _ident(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid identifier: {name!r}")
    return f'"{name}"'


def _to_db_value(column: str, value: Any) -> Any:
    if isinstance(value, str) and column.endswith(_TIMESTAMP_SUFFIXES):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _from_db_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


class PostgresRemoteStore(RemoteStore):
    """asyncpg-backed remote store"""

    def __init__(
        self,
        *,
        dsn: str,
        min_size: int = 1,
        max_size: int = 10,
        pool: Optional[asyncpg.Pool] = None,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool = pool
        self._owns_pool = pool is None
        self.logger = logging.getLogger(__name__)

    async def connect(self) -> None:
        """Create the connection pool"""
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                init=self._setup_connection,
            )
            self.logger.info("postgres.pool.ready")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error(f"postgres.pool.error: {e}")
            raise RemoteUnavailable(f"failed to connect to database: {e}") from e

    async def close(self) -> None:
        """Close the pool if this store created it"""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def _setup_connection(self, conn) -> None:
        for type_name in ("json", "jsonb"):
            await conn.set_type_codec(
                type_name,
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

    async def _ensure_connection(self) -> None:
        if self._pool is None:
            await self.connect()

    @staticmethod
    def _where(filters: Filters, start: int = 1) -> Tuple[str, List[Any]]:
        clauses = []
        args: List[Any] = []
        for offset, (column, value) in enumerate(filters.items()):
            clauses.append(f"{_ident(column)} = ${start + offset}")
            args.append(_to_db_value(column, value))
        if not clauses:
            return "", args
        return " WHERE " + " AND ".join(clauses), args

    @staticmethod
    def _row(record: Mapping[str, Any]) -> Row:
        return {key: _from_db_value(value) for key, value in dict(record).items()}

    async def _run(self, table: str, method: str, sql: str, args: List[Any]):
        await self._ensure_connection()
        try:
            async with self._pool.acquire() as conn:
                return await getattr(conn, method)(sql, *args)
        except asyncpg.PostgresError as e:
            code = getattr(e, "sqlstate", None)
            self.logger.warning(
                "postgres.query.error",
                extra={"table": table, "sqlstate": code, "error": repr(e)},
            )
            raise classify_remote_error(code, f"{table}: {e}") from e
        except (OSError, asyncpg.InterfaceError) as e:
            self.logger.warning("postgres.connection.error", extra={"table": table, "error": repr(e)})
            raise RemoteUnavailable(f"{table}: {e}") from e

    async def select(
        self,
        table: str,
        filters: Filters,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        where, args = self._where(filters)
        sql = f"SELECT * FROM {_ident(table)}{where}"
        if order_by:
            sql += f" ORDER BY {_ident(order_by)} {'DESC' if descending else 'ASC'}"
        records = await self._run(table, "fetch", sql, args)
        return [self._row(record) for record in records]

    async def select_one(self, table: str, filters: Filters) -> Row:
        where, args = self._where(filters)
        records = await self._run(table, "fetch", f"SELECT * FROM {_ident(table)}{where} LIMIT 2", args)
        if len(records) != 1:
            raise RecordNotFound(f"{table}: expected one row, got {len(records)}", remote_code="PGRST116")
        return self._row(records[0])

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        columns = list(row.keys())
        if not columns:
            raise ValueError("insert requires at least one column")
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        sql = (
            f"INSERT INTO {_ident(table)} ({', '.join(_ident(c) for c in columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        args = [_to_db_value(c, row[c]) for c in columns]
        record = await self._run(table, "fetchrow", sql, args)
        return self._row(record)

    async def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> Row:
        columns = list(values.keys())
        if not columns:
            raise ValueError("update requires at least one column")
        assignments = ", ".join(f"{_ident(c)} = ${i}" for i, c in enumerate(columns, start=1))
        where, where_args = self._where(filters, start=len(columns) + 1)
        sql = f"UPDATE {_ident(table)} SET {assignments}{where} RETURNING *"
        args = [_to_db_value(c, values[c]) for c in columns] + where_args
        records = await self._run(table, "fetch", sql, args)
        if not records:
            raise RecordNotFound(f"{table}: no rows to update", remote_code="PGRST116")
        return self._row(records[0])

    async def delete(self, table: str, filters: Filters) -> int:
        where, args = self._where(filters)
        result = await self._run(table, "execute", f"DELETE FROM {_ident(table)}{where}", args)
        # asyncpg returns a status string such as "DELETE 3"
        try:
            return int(str(result).split()[-1])
        except (IndexError, ValueError):
            return 0

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = ["PostgresRemoteStore"]
