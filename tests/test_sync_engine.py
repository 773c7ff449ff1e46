# tests/test_sync_engine.py
"""End-to-end sync rounds: devices talk to the app in-process through ASGITransport."""

import asyncio
from datetime import timedelta

import httpx
import pytest

from auth import create_access_token
from conftest import MOCK_ID_TOKEN, bearer
from mobile.field_mapping import ARTIST, LIVE_EVENT, MEMORY


class DropSyncResponse(httpx.AsyncBaseTransport):
    """Delivers /v1/sync to the server, then loses the response."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)
        self.failing = False

    async def handle_async_request(self, request):
        response = await self.inner.handle_async_request(request)
        if self.failing and request.url.path == "/v1/sync":
            raise httpx.ReadError("connection reset", request=request)
        return response


class EditDuringSync(httpx.AsyncBaseTransport):
    """Runs a local edit while /v1/sync is on the wire."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)
        self.during_sync = None

    async def handle_async_request(self, request):
        if self.during_sync and request.url.path == "/v1/sync":
            edit, self.during_sync = self.during_sync, None
            await edit()
        return await self.inner.handle_async_request(request)


async def server_items(client, device, path):
    headers = bearer(await device.tokens.get_access_token())
    response = await client.get(path, headers=headers)
    assert response.status_code == 200
    return response.json()["items"]


async def test_pending_artist_becomes_synced_and_reaches_second_device(make_device):
    phone = await make_device("phone")
    tablet = await make_device("tablet")

    artist = await phone.local_db.create(ARTIST, {"name": "The Band", "social_media": "@theband"})
    assert artist["sync_status"] == "pending"

    result = await phone.engine.sync()

    assert result.success, result.error
    assert result.pushed == 1
    assert (await phone.local_db.get(ARTIST, artist["id"]))["sync_status"] == "synced"
    assert await phone.tokens.get_last_sync_at() == result.synced_at

    pulled = await tablet.engine.sync()
    assert pulled.success
    on_tablet = await tablet.local_db.get(ARTIST, artist["id"])
    assert on_tablet["name"] == "The Band"
    assert on_tablet["social_media"] == "@theband"
    assert on_tablet["sync_status"] == "synced"


async def test_event_and_memory_round_trip(make_device):
    phone = await make_device("phone")
    tablet = await make_device("tablet")

    artist = await phone.local_db.create(ARTIST, {"name": "Headliner"})
    event = await phone.local_db.create(LIVE_EVENT, {
        "title": "Arena Tour", "artist_id": artist["id"], "date": "2026-05-01T10:00:00.000Z",
        "venue_name": "Arena", "ticket_status": "won", "ticket_price": 8800,
    })
    memory = await phone.local_db.create(MEMORY, {
        "live_event_id": event["id"], "review": "Loud", "photos": '["https://img.example.com/1.jpg"]',
    })
    assert (await phone.engine.sync()).success

    assert (await tablet.engine.sync()).success
    tablet_event = await tablet.local_db.get(LIVE_EVENT, event["id"])
    assert tablet_event["artist_id"] == artist["id"]
    assert tablet_event["venue_name"] == "Arena"
    assert tablet_event["ticket_price"] == 8800
    tablet_memory = await tablet.local_db.get(MEMORY, memory["id"])
    assert tablet_memory["live_event_id"] == event["id"]
    assert tablet_memory["photos"] == '["https://img.example.com/1.jpg"]'

    rows = await tablet.local_db.list_live_events_with_artists()
    assert rows[0]["artist_name"] == "Headliner"


async def test_deleted_event_tombstone_is_cleared_after_sync(client, make_device):
    phone = await make_device("phone")
    event = await phone.local_db.create(LIVE_EVENT, {"title": "Club Night", "date": "2026-06-01T20:00:00.000Z"})
    memory = await phone.local_db.create(MEMORY, {"live_event_id": event["id"]})
    assert (await phone.engine.sync()).success

    assert await phone.local_db.delete(LIVE_EVENT, event["id"])
    tombstones = await phone.local_db.deleted_items()
    assert {(t["entity_type"], t["entity_id"]) for t in tombstones} == {
        (LIVE_EVENT, event["id"]), (MEMORY, memory["id"]),
    }
    assert await phone.local_db.get(MEMORY, memory["id"]) is None

    result = await phone.engine.sync()

    assert result.success, result.error
    assert await phone.local_db.deleted_items() == []
    assert await server_items(client, phone, "/v1/live-events") == []
    assert await server_items(client, phone, "/v1/memories") == []


async def test_tombstone_is_recorded_once(make_device):
    phone = await make_device("phone", logged_in=False)
    artist = await phone.local_db.create(ARTIST, {"name": "Twice"})

    assert await phone.local_db.delete(ARTIST, artist["id"]) is True
    assert await phone.local_db.delete(ARTIST, artist["id"]) is False
    assert len(await phone.local_db.deleted_items()) == 1


async def test_failed_round_keeps_cursor_and_is_retryable(app, client, make_device):
    transport = DropSyncResponse(app)
    phone = await make_device("phone", transport=transport)
    first = await phone.engine.sync()
    assert first.success

    event = await phone.local_db.create(LIVE_EVENT, {"title": "Doomed", "date": "2026-06-01T20:00:00.000Z"})
    assert (await phone.engine.sync()).success
    artist = await phone.local_db.create(ARTIST, {"name": "Retry Me"})
    await phone.local_db.delete(LIVE_EVENT, event["id"])

    transport.failing = True
    cursor = await phone.tokens.get_last_sync_at()
    failed = await phone.engine.sync()

    assert not failed.success
    assert failed.error
    assert await phone.tokens.get_last_sync_at() == cursor
    assert len(await phone.local_db.deleted_items()) == 1
    assert (await phone.local_db.get(ARTIST, artist["id"]))["sync_status"] == "pending"

    transport.failing = False
    retried = await phone.engine.sync()

    assert retried.success, retried.error
    assert retried.synced_at > cursor
    assert await phone.local_db.deleted_items() == []
    assert (await phone.local_db.get(ARTIST, artist["id"]))["sync_status"] == "synced"
    assert [a["name"] for a in await server_items(client, phone, "/v1/artists")] == ["Retry Me"]


async def test_applying_the_same_delta_twice_is_idempotent(make_device):
    phone = await make_device("phone", logged_in=False)
    changes = {
        ARTIST: [{"id": "5b1f4f4e-2a55-4f3e-9a3c-3b0c7c1f0a11", "name": "Pulled", "sync_status": "synced",
                  "created_at": "2026-01-01T00:00:00.000000Z", "updated_at": "2026-01-02T00:00:00.000000Z"}],
    }

    await phone.local_db.apply_sync_round(changes, {}, [])
    once = await phone.local_db.list_all(ARTIST)
    await phone.local_db.apply_sync_round(changes, {}, [])

    assert await phone.local_db.list_all(ARTIST) == once
    assert len(once) == 1


async def test_pull_overwrites_local_copy(client, make_device):
    phone = await make_device("phone")
    artist = await phone.local_db.create(ARTIST, {"name": "Original", "website": "https://a.example.com"})
    assert (await phone.engine.sync()).success

    headers = bearer(await phone.tokens.get_access_token())
    await client.patch(f"/v1/artists/{artist['id']}", json={"name": "Edited on the web"}, headers=headers)
    assert (await phone.engine.sync()).success

    local = await phone.local_db.get(ARTIST, artist["id"])
    assert local["name"] == "Edited on the web"
    assert local["website"] == "https://a.example.com"


async def test_full_sync_pushes_nothing(client, make_device):
    phone = await make_device("phone")
    tablet = await make_device("tablet")
    await phone.local_db.create(ARTIST, {"name": "From Phone"})
    assert (await phone.engine.sync()).success

    local_only = await tablet.local_db.create(ARTIST, {"name": "Tablet Draft"})
    result = await tablet.engine.full_sync()

    assert result.success
    assert result.pushed == 0
    assert result.pulled == 1
    names = {a["name"] for a in await tablet.local_db.list_all(ARTIST)}
    assert names == {"From Phone", "Tablet Draft"}
    assert (await tablet.local_db.get(ARTIST, local_only["id"]))["sync_status"] == "pending"
    assert {a["name"] for a in await server_items(client, phone, "/v1/artists")} == {"From Phone"}


async def test_sync_without_session_fails_softly(make_device):
    phone = await make_device("phone", logged_in=False)
    await phone.local_db.create(ARTIST, {"name": "Offline"})

    result = await phone.engine.sync()

    assert not result.success
    assert result.error == "Not authenticated"
    assert await phone.tokens.get_last_sync_at() is None


async def test_concurrent_syncs_run_one_at_a_time(make_device):
    phone = await make_device("phone")
    await phone.local_db.create(ARTIST, {"name": "Once"})

    active = 0
    overlaps = []
    original_post = phone.api.post

    async def tracking_post(*args, **kwargs):
        nonlocal active
        active += 1
        overlaps.append(active)
        try:
            await asyncio.sleep(0.01)
            return await original_post(*args, **kwargs)
        finally:
            active -= 1

    phone.api.post = tracking_post
    first, second = await asyncio.gather(phone.engine.sync(), phone.engine.sync())

    assert first.success and second.success
    assert max(overlaps) == 1
    assert first.pushed + second.pushed == 1
    assert await phone.tokens.get_last_sync_at() == max(first.synced_at, second.synced_at)
    assert not phone.engine.in_progress


async def test_logout_revokes_and_keeps_local_data(client, make_device):
    phone = await make_device("phone")
    refresh_token = await phone.tokens.get_refresh_token()
    await phone.local_db.create(ARTIST, {"name": "Stays"})
    assert (await phone.engine.sync()).success

    await phone.auth.logout()

    assert not await phone.auth.is_authenticated()
    assert await phone.auth.current_user() is None
    assert await phone.tokens.get_last_sync_at() is not None
    assert len(await phone.local_db.list_all(ARTIST)) == 1

    login = await client.post("/v1/auth/google", json={"idToken": MOCK_ID_TOKEN})
    replay = await client.post("/v1/auth/refresh", json={"refreshToken": refresh_token},
                               headers=bearer(login.json()["accessToken"]))
    assert replay.status_code == 401


async def test_expired_access_token_is_refreshed_during_sync(settings, make_device):
    phone = await make_device("phone")
    old_refresh = await phone.tokens.get_refresh_token()
    user = await phone.auth.current_user()
    expired_settings = settings.model_copy(update={"access_token_ttl": timedelta(minutes=-5)})
    await phone.tokens.set_tokens(create_access_token(user["id"], expired_settings))

    result = await phone.engine.sync()

    assert result.success, result.error
    assert await phone.tokens.get_refresh_token() != old_refresh


async def test_rows_the_server_would_refuse_never_reach_the_queue(make_device):
    phone = await make_device("phone")
    event = await phone.local_db.create(LIVE_EVENT, {"title": "Show", "date": "2026-06-01T20:00:00.000Z"})

    with pytest.raises(ValueError):
        await phone.local_db.create(ARTIST, {"name": ""})
    with pytest.raises(ValueError):
        await phone.local_db.update(LIVE_EVENT, event["id"], {"ticket_status": "lottery"})
    artist = await phone.local_db.create(ARTIST, {"name": "Valid"})

    result = await phone.engine.sync()

    assert result.success, result.error
    assert result.pushed == 2
    assert (await phone.local_db.get(ARTIST, artist["id"]))["sync_status"] == "synced"
    assert (await phone.local_db.get(LIVE_EVENT, event["id"]))["sync_status"] == "synced"


async def test_edit_made_during_a_round_is_pushed_by_the_next_one(app, client, make_device):
    transport = EditDuringSync(app)
    phone = await make_device("phone", transport=transport)
    artist = await phone.local_db.create(ARTIST, {"name": "First Draft"})

    async def edit():
        await phone.local_db.update(ARTIST, artist["id"], {"name": "Final"})

    transport.during_sync = edit
    assert (await phone.engine.sync()).success

    local = await phone.local_db.get(ARTIST, artist["id"])
    assert local["name"] == "Final"
    assert local["sync_status"] == "pending"

    assert (await phone.engine.sync()).success
    assert (await phone.local_db.get(ARTIST, artist["id"]))["sync_status"] == "synced"
    assert [a["name"] for a in await server_items(client, phone, "/v1/artists")] == ["Final"]
