from __future__ import annotations

"""PostgREST (Supabase) remote store over HTTP."""

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..errors import AppError, RecordNotFound, RemoteUnavailable
from .base import Filters, RemoteStore, Row, classify_remote_error

logger = logging.getLogger(__name__)

_SINGLE_OBJECT = "application/vnd.pgrst.object+json"


def _encode_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class PostgrestRemoteStore(RemoteStore):
    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str],
        timeout: float = 10.0,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        token = self._access_token or self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._base_url}/rest/v1",
                headers=self._headers(),
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _filter_params(filters: Filters) -> Dict[str, str]:
        return {column: f"eq.{_encode_filter_value(value)}" for column, value in filters.items()}

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._get_client().request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("postgrest.request.error", extra={"table": table, "error": repr(exc)})
            raise RemoteUnavailable(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_from_response(response, table)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"{method} {table} returned invalid JSON") from exc

    @staticmethod
    def _error_from_response(response: httpx.Response, table: str) -> AppError:
        code: Optional[str] = None
        message = f"{table}: HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            if body.get("message"):
                message = f"{table}: {body['message']}"
        logger.debug(
            "postgrest.response.error",
            extra={"table": table, "status": response.status_code, "code": code},
        )
        return classify_remote_error(code, message, status=response.status_code)

    async def select(
        self,
        table: str,
        filters: Filters,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        data = await self._request("GET", table, params=params)
        return list(data or [])

    async def select_one(self, table: str, filters: Filters) -> Row:
        params = {"select": "*", **self._filter_params(filters)}
        data = await self._request("GET", table, params=params, headers={"Accept": _SINGLE_OBJECT})
        if not data:
            raise RecordNotFound(f"{table}: no rows", remote_code="PGRST116")
        return dict(data)

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        data = await self._request(
            "POST",
            table,
            params={"select": "*"},
            json=[dict(row)],
            headers={"Prefer": "return=representation"},
        )
        if isinstance(data, list):
            if not data:
                raise RemoteUnavailable(f"{table}: insert returned no rows")
            return dict(data[0])
        return dict(data or {})

    async def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> Row:
        params = {"select": "*", **self._filter_params(filters)}
        data = await self._request(
            "PATCH",
            table,
            params=params,
            json=dict(values),
            headers={"Prefer": "return=representation", "Accept": _SINGLE_OBJECT},
        )
        if not data:
            raise RecordNotFound(f"{table}: no rows to update", remote_code="PGRST116")
        return dict(data)

    async def delete(self, table: str, filters: Filters) -> int:
        data = await self._request(
            "DELETE",
            table,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(data) if isinstance(data, list) else 0


__all__ = ["PostgrestRemoteStore"]
