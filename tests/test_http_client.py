# tests/test_http_client.py
"""
Unit tests for the API client interceptor.

Uses pytest-asyncio and respx for async HTTP mocking.
"""

import httpx
import pytest
import respx

from mobile.errors import ApiRequestError, RefreshFailed
from mobile.http_client import ApiClient
from mobile.token_store import MemoryKeyValueStore, TokenStore

BASE = "http://api.test"
USER = {"id": "u1", "email": "mock@example.com"}


@pytest.fixture
async def tokens():
    store = TokenStore(MemoryKeyValueStore())
    await store.save_session("access-old", "refresh-old", USER)
    return store


@pytest.fixture
def mock_api():
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        yield router


@pytest.fixture
async def api(tokens, mock_api):
    client = ApiClient(BASE, tokens)
    yield client
    await client.close()


def refreshed():
    return httpx.Response(200, json={
        "accessToken": "access-new", "refreshToken": "refresh-new", "refreshExpiresAt": "2026-12-31T00:00:00.000000Z",
    })


async def test_attaches_bearer_token(api, mock_api):
    route = mock_api.get("/v1/artists").mock(return_value=httpx.Response(200, json={"items": []}))

    response = await api.get("/v1/artists")

    assert response.json() == {"items": []}
    assert route.calls.last.request.headers["Authorization"] == "Bearer access-old"


async def test_refreshes_once_and_retries(api, mock_api, tokens):
    route = mock_api.get("/v1/artists").mock(side_effect=[
        httpx.Response(401, json={"code": "UNAUTHORIZED", "message": "expired"}),
        httpx.Response(200, json={"items": []}),
    ])
    refresh = mock_api.post("/v1/auth/refresh").mock(return_value=refreshed())

    response = await api.get("/v1/artists")

    assert response.status_code == 200
    assert refresh.call_count == 1
    assert refresh.calls.last.request.headers["Authorization"] == "Bearer access-old"
    assert route.call_count == 2
    assert route.calls.last.request.headers["Authorization"] == "Bearer access-new"
    assert await tokens.get_access_token() == "access-new"
    assert await tokens.get_refresh_token() == "refresh-new"


async def test_second_401_is_not_retried(api, mock_api):
    route = mock_api.get("/v1/artists").mock(
        return_value=httpx.Response(401, json={"code": "UNAUTHORIZED", "message": "still no"})
    )
    refresh = mock_api.post("/v1/auth/refresh").mock(return_value=refreshed())

    with pytest.raises(ApiRequestError) as excinfo:
        await api.get("/v1/artists")

    assert excinfo.value.status_code == 401
    assert excinfo.value.code == "UNAUTHORIZED"
    assert route.call_count == 2
    assert refresh.call_count == 1


async def test_missing_refresh_token_logs_out(mock_api):
    store = TokenStore(MemoryKeyValueStore({"accessToken": "access-old"}))
    logged_out = []

    async def on_logout():
        logged_out.append(True)

    mock_api.get("/v1/artists").mock(return_value=httpx.Response(401))
    refresh = mock_api.post("/v1/auth/refresh")

    async with ApiClient(BASE, store, on_logout=on_logout) as api:
        with pytest.raises(RefreshFailed):
            await api.get("/v1/artists")

    assert not refresh.called
    assert logged_out == [True]
    assert await store.get_access_token() is None


async def test_rejected_refresh_clears_session(api, mock_api, tokens):
    mock_api.get("/v1/artists").mock(return_value=httpx.Response(401))
    mock_api.post("/v1/auth/refresh").mock(
        return_value=httpx.Response(401, json={"code": "INVALID_REFRESH", "message": "Invalid refresh token"})
    )

    with pytest.raises(RefreshFailed):
        await api.get("/v1/artists")

    assert await tokens.get_access_token() is None
    assert await tokens.get_refresh_token() is None
    assert await tokens.get_user() is None


async def test_unauthenticated_request_skips_token_and_refresh(api, mock_api):
    route = mock_api.post("/v1/auth/google").mock(
        return_value=httpx.Response(401, json={"code": "AUTH_FAILED", "message": "Invalid Google token"})
    )
    refresh = mock_api.post("/v1/auth/refresh")

    with pytest.raises(ApiRequestError) as excinfo:
        await api.post("/v1/auth/google", json={"idToken": "x" * 20}, authenticate=False)

    assert excinfo.value.code == "AUTH_FAILED"
    assert "Authorization" not in route.calls.last.request.headers
    assert not refresh.called


async def test_error_without_json_body(api, mock_api):
    mock_api.delete("/v1/artists/abc").mock(return_value=httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(ApiRequestError) as excinfo:
        await api.delete("/v1/artists/abc")

    assert excinfo.value.status_code == 502
    assert excinfo.value.code is None
    assert excinfo.value.message == "HTTP 502"
