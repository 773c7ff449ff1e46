# mobile/token_store.py
"""
Token Store - on-device persistence for the session and the sync cursor.

Everything is kept as opaque strings in a key-value store, the same way the
app keeps them in secure storage.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_INFO_KEY = "userInfo"
LAST_SYNC_KEY = "lastSyncAt"


class KeyValueStore(ABC):
    """String key-value storage."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        pass


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used when nothing should touch the disk."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """Stores all items in one JSON file, rewritten atomically on every change."""

    def __init__(self, path: str):
        self.path = path
        self._items: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Could not read token store {self.path}: {e}")
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _save(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._save()

    async def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save()


class TokenStore:
    """Typed access to the session values kept in a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get_access_token(self) -> Optional[str]:
        return await self._store.get_item(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return await self._store.get_item(REFRESH_TOKEN_KEY)

    async def set_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        await self._store.set_item(ACCESS_TOKEN_KEY, access_token)
        if refresh_token:
            await self._store.set_item(REFRESH_TOKEN_KEY, refresh_token)

    async def save_session(self, access_token: str, refresh_token: str, user: Dict[str, Any]) -> None:
        await self.set_tokens(access_token, refresh_token)
        await self._store.set_item(USER_INFO_KEY, json.dumps(user))

    async def get_user(self) -> Optional[Dict[str, Any]]:
        raw = await self._store.get_item(USER_INFO_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored user profile is not valid JSON, ignoring it")
            return None

    async def clear_session(self) -> None:
        """Local logout. The sync cursor survives so the next login resumes from it."""
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_INFO_KEY):
            await self._store.remove_item(key)

    async def get_last_sync_at(self) -> Optional[str]:
        return await self._store.get_item(LAST_SYNC_KEY)

    async def set_last_sync_at(self, synced_at: str) -> None:
        await self._store.set_item(LAST_SYNC_KEY, synced_at)
