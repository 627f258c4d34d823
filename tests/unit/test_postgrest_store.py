import json

import httpx
import pytest

from little_things.errors import (
    DuplicateRecord,
    RecordNotFound,
    RemoteRejected,
    RemoteUnavailable,
    SchemaMismatch,
)
from little_things.remote.postgrest import PostgrestRemoteStore


def _store(handler) -> PostgrestRemoteStore:
    client = httpx.AsyncClient(base_url="http://test/rest/v1", transport=httpx.MockTransport(handler))
    return PostgrestRemoteStore(base_url="http://test", api_key="anon", client=client)


@pytest.mark.asyncio
async def test_select_sends_equality_filters_and_order():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{"id": 1, "title": "a"}])

    rows = await _store(handler).select("memories", {"user_id": "u1"}, order_by="created_at", descending=True)

    assert rows == [{"id": 1, "title": "a"}]
    assert seen["path"] == "/rest/v1/memories"
    assert seen["params"] == {"select": "*", "user_id": "eq.u1", "order": "created_at.desc"}


@pytest.mark.asyncio
async def test_select_one_requests_single_object():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "application/vnd.pgrst.object+json"
        return httpx.Response(200, json={"id": "p1"})

    assert await _store(handler).select_one("partner_profiles", {"user_id": "u1"}) == {"id": "p1"}


@pytest.mark.asyncio
async def test_select_one_no_rows_is_record_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            406,
            json={"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"},
        )

    with pytest.raises(RecordNotFound) as excinfo:
        await _store(handler).select_one("partner_profiles", {"user_id": "u1"})
    assert excinfo.value.remote_code == "PGRST116"


@pytest.mark.asyncio
async def test_insert_posts_row_and_returns_representation():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.headers["prefer"] == "return=representation"
        body = json.loads(request.content)
        return httpx.Response(201, json=[{"id": "new", **body[0]}])

    row = await _store(handler).insert("plans", {"title": "Picnic", "user_id": "u1"})

    assert row == {"id": "new", "title": "Picnic", "user_id": "u1"}


@pytest.mark.asyncio
async def test_update_patches_filtered_row():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.7"
        assert request.url.params["user_id"] == "eq.u1"
        return httpx.Response(200, json={"id": 7, **json.loads(request.content)})

    row = await _store(handler).update("memories", {"title": "new"}, {"id": 7, "user_id": "u1"})

    assert row == {"id": 7, "title": "new"}


@pytest.mark.asyncio
async def test_delete_counts_returned_rows():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

    assert await _store(handler).delete("memories", {"user_id": "u1"}) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,code,expected",
    [
        (404, "42P01", SchemaMismatch),
        (400, "PGRST204", SchemaMismatch),
        (409, "23505", DuplicateRecord),
        (403, "42501", RemoteRejected),
        (401, None, RemoteRejected),
        (500, None, RemoteUnavailable),
        (503, "XX000", RemoteUnavailable),
    ],
)
async def test_error_responses_are_classified(status, code, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"code": code, "message": "nope"})

    with pytest.raises(expected):
        await _store(handler).select("memories", {"user_id": "u1"})


@pytest.mark.asyncio
async def test_transport_error_is_remote_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteUnavailable):
        await _store(handler).select("memories", {"user_id": "u1"})


@pytest.mark.asyncio
async def test_default_client_sends_api_key_headers():
    store = PostgrestRemoteStore(base_url="https://example.supabase.co/", api_key="anon", access_token="jwt")

    client = store._get_client()
    try:
        assert str(client.base_url) == "https://example.supabase.co/rest/v1/"
        assert client.headers["apikey"] == "anon"
        assert client.headers["authorization"] == "Bearer jwt"
    finally:
        await store.close()
