# tests/test_core.py
import httpx
import pytest

from conftest import BASE_URL, MOCK_ID_TOKEN
from mobile.config import ClientSettings
from mobile.core import SyncCore
from mobile.errors import ApiRequestError
from mobile.field_mapping import ARTIST


async def test_session_survives_restart_with_file_store(app, tmp_path):
    settings = ClientSettings(
        api_base_url=BASE_URL,
        token_store_path=str(tmp_path / "tokens.json"),
        local_database_url=f"sqlite+aiosqlite:///{tmp_path / 'local.db'}",
    )

    async with SyncCore(settings, transport=httpx.ASGITransport(app=app)) as core:
        user = await core.auth.login_with_google(MOCK_ID_TOKEN)
        await core.local_db.create(ARTIST, {"name": "Persisted"})
        assert (await core.engine.sync()).success

    async with SyncCore(settings, transport=httpx.ASGITransport(app=app)) as core:
        assert await core.auth.is_authenticated()
        assert (await core.auth.current_user())["id"] == user["id"]
        assert await core.tokens.get_last_sync_at() is not None
        assert [a["sync_status"] for a in await core.local_db.list_all(ARTIST)] == ["synced"]
        assert (await core.engine.sync()).success


async def test_login_failure_leaves_no_session(app, tmp_path):
    settings = ClientSettings(api_base_url=BASE_URL, local_database_url=f"sqlite+aiosqlite:///{tmp_path / 'l.db'}")

    async with SyncCore(settings, transport=httpx.ASGITransport(app=app)) as core:
        with pytest.raises(ApiRequestError) as excinfo:
            await core.auth.login_with_google("short")
        assert excinfo.value.code == "VALIDATION_ERROR"
        assert not await core.auth.is_authenticated()
