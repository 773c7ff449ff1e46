# tests/conftest.py
"""
Pytest fixtures for the livememo test suite.

Provides:
- A FastAPI app per test on a throwaway SQLite file (mock Google login)
- An httpx.AsyncClient wired to the app through ASGITransport
- Devices: an on-device sync core (token store, API client, local DB, sync engine)
  talking to the same app in-process
"""

import httpx
import pytest

from auth import GoogleProfile, create_access_token, find_or_create_user
from config import Settings
from main import create_app
from mobile.config import ClientSettings
from mobile.core import SyncCore

TEST_SECRET = "test-secret-key-for-jwt-signing"
MOCK_ID_TOKEN = "aaaaaaaaaaaaaaaaaaaa"
BASE_URL = "http://testserver"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'server.db'}",
        jwt_secret=TEST_SECRET,
        mock_google=True,
    )


@pytest.fixture
async def app(settings):
    # ASGITransport does not run the lifespan, so tables are created here.
    app = create_app(settings)
    await app.state.db.create_db_and_tables()
    yield app
    await app.state.db.dispose()


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL) as c:
        yield c


@pytest.fixture
async def db_session(app):
    async with app.state.db.session_factory() as session:
        yield session


@pytest.fixture
async def login(client):
    """Mock Google login; returns the response body."""
    response = await client.post("/v1/auth/google", json={"idToken": MOCK_ID_TOKEN})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def auth_headers(login):
    return bearer(login["accessToken"])


@pytest.fixture
async def other_headers(app, settings):
    """Access token for a second account."""
    async with app.state.db.session_factory() as session:
        user = await find_or_create_user(session, GoogleProfile(sub="other-sub", email="other@example.com", name="Other"))
    return bearer(create_access_token(user.id, settings))


@pytest.fixture
async def make_device(app, tmp_path):
    """Builds SyncCore instances ("devices") that reach the app in-process."""
    devices = []

    async def factory(name: str = "device", transport=None, logged_in: bool = True) -> SyncCore:
        settings = ClientSettings(api_base_url=BASE_URL, local_database_url=f"sqlite+aiosqlite:///{tmp_path / name}.db")
        device = await SyncCore(settings, transport=transport or httpx.ASGITransport(app=app)).open()
        devices.append(device)
        if logged_in:
            await device.auth.login_with_google(MOCK_ID_TOKEN)
        return device

    yield factory
    for device in devices:
        await device.close()
