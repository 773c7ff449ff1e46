# mobile/core.py
"""Wires the on-device sync core together from ClientSettings."""

import logging
from typing import Optional

import httpx

from .config import ClientSettings
from .http_client import ApiClient
from .local_db import LocalDatabase
from .session import AuthSession
from .sync_engine import SyncEngine
from .token_store import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, TokenStore

logger = logging.getLogger(__name__)


class SyncCore:
    """
    One device's sync context: token store, API client, local database,
    session and sync engine, created together and closed together.
    """

    def __init__(
        self,
        settings: ClientSettings,
        store: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        if store is None:
            store = JsonFileKeyValueStore(settings.token_store_path) if settings.token_store_path else MemoryKeyValueStore()
        self.tokens = TokenStore(store)
        self.api = ApiClient(settings.api_base_url, self.tokens, timeout=settings.request_timeout, transport=transport)
        self.local_db = LocalDatabase(settings.local_database_url)
        self.auth = AuthSession(self.api, self.tokens)
        self.engine = SyncEngine(self.api, self.local_db, self.tokens)

    @classmethod
    def from_env(cls) -> "SyncCore":
        return cls(ClientSettings.from_env())

    async def open(self) -> "SyncCore":
        await self.local_db.create_tables()
        logger.info(f"Sync core ready against {self.settings.api_base_url}")
        return self

    async def close(self) -> None:
        await self.api.close()
        await self.local_db.dispose()

    async def __aenter__(self) -> "SyncCore":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
