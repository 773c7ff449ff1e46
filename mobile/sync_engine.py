# mobile/sync_engine.py
"""
Sync Engine - pushes local pending rows and tombstones, pulls the server delta
since the stored cursor, applies it locally and advances the cursor.

One round at a time: rounds are serialised by an asyncio.Lock, so a caller
that triggers sync() while a round is in flight waits for it and then runs
its own round.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import field_mapping
from .errors import NotAuthenticated
from .field_mapping import WIRE_COLLECTIONS
from .http_client import ApiClient
from .local_db import ENTITY_ORDER, LocalDatabase
from .token_store import TokenStore

logger = logging.getLogger(__name__)

SYNC_PATH = "/v1/sync"


@dataclass
class SyncResult:
    success: bool
    error: Optional[str] = None
    synced_at: Optional[str] = None
    pushed: int = 0
    pulled: int = 0


class SyncEngine:
    """Runs sync rounds between a LocalDatabase and the server."""

    def __init__(self, api: ApiClient, local_db: LocalDatabase, tokens: TokenStore):
        self.api = api
        self.local_db = local_db
        self.tokens = tokens
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def sync(self) -> SyncResult:
        """Incremental round: push pending changes, pull everything since the cursor."""
        async with self._lock:
            return await self._run_round(full=False)

    async def full_sync(self) -> SyncResult:
        """Bootstrap round: push nothing and pull the whole account."""
        async with self._lock:
            return await self._run_round(full=True)

    async def _gather(self) -> Dict[str, Any]:
        pending = {entity_type: await self.local_db.pending(entity_type) for entity_type in ENTITY_ORDER}
        deleted = await self.local_db.deleted_items()
        return {"pending": pending, "deleted": deleted}

    @staticmethod
    def _build_changes(pending: Dict[str, List[Dict[str, Any]]], deleted: List[Dict[str, Any]]) -> Dict[str, Any]:
        changes: Dict[str, Any] = {
            WIRE_COLLECTIONS[entity_type]: [field_mapping.to_wire(entity_type, row) for row in rows]
            for entity_type, rows in pending.items()
        }
        changes["deletions"] = [{"entityType": item["entity_type"], "id": item["entity_id"]} for item in deleted]
        return changes

    async def _run_round(self, full: bool) -> SyncResult:
        mode = "full" if full else "incremental"
        try:
            if not await self.tokens.get_access_token():
                raise NotAuthenticated()

            if full:
                pending: Dict[str, List[Dict[str, Any]]] = {}
                deleted: List[Dict[str, Any]] = []
                body: Dict[str, Any] = {"clientChanges": {}}
            else:
                gathered = await self._gather()
                pending, deleted = gathered["pending"], gathered["deleted"]
                body = {"clientChanges": self._build_changes(pending, deleted)}
                last_sync_at = await self.tokens.get_last_sync_at()
                if last_sync_at:
                    body["lastSyncAt"] = last_sync_at

            pushed = sum(len(rows) for rows in pending.values()) + len(deleted)
            logger.info(f"Starting {mode} sync round, pushing {pushed} changes")

            response = await self.api.post(SYNC_PATH, json=body)
            data = response.json()

            server_changes = data.get("serverChanges") or {}
            local_changes = {
                entity_type: [
                    field_mapping.from_wire(entity_type, item)
                    for item in server_changes.get(WIRE_COLLECTIONS[entity_type]) or []
                ]
                for entity_type in ENTITY_ORDER
            }
            pulled = await self.local_db.apply_sync_round(local_changes, pending, [item["id"] for item in deleted])

            # Last step, so a failed round retries from the previous cursor.
            synced_at = data["syncedAt"]
            await self.tokens.set_last_sync_at(synced_at)
        except Exception as e:
            logger.error(f"{mode.capitalize()} sync round failed: {e}", exc_info=True)
            return SyncResult(success=False, error=str(e) or type(e).__name__)

        logger.info(f"Sync round finished: pushed={pushed} pulled={pulled} syncedAt={synced_at}")
        return SyncResult(success=True, synced_at=synced_at, pushed=pushed, pulled=pulled)
