# backend/services/sync_service.py
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Type
from sqlmodel import SQLModel, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Forbidden
from models import Artist, LiveEvent, Memory, User, next_timestamp, utcnow
from schemas import (ArtistOut, ClientChanges, EntityType, LiveEventOut, MemoryOut, ServerChanges,
                     SyncCounts, SyncedRow, SyncResponse, SyncStatusOut)
from services.entity_service import check_artist_ref, check_event_ref, delete_owned, get_owned

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MODELS: Dict[str, Type[SQLModel]] = {
    EntityType.ARTIST.value: Artist,
    EntityType.LIVE_EVENT.value: LiveEvent,
    EntityType.MEMORY.value: Memory,
}

async def _upsert_rows(session: AsyncSession, model: Type[SQLModel], rows: List[SyncedRow], user_id: str) -> int:
    for row in rows:
        # Full-row replacement: fields the client left out become null.
        fields = row.model_dump(exclude={"id", "createdAt", "updatedAt"})
        existing = await session.get(model, row.id)
        if existing is not None and existing.userId != user_id:
            raise Forbidden(f"{model.__name__} {row.id} belongs to another account")
        if existing is None:
            created = row.createdAt or utcnow()
            existing = model(id=row.id, userId=user_id, createdAt=created, updatedAt=next_timestamp(created), **fields)
        else:
            for key, value in fields.items(): setattr(existing, key, value)
            existing.updatedAt = next_timestamp(existing.updatedAt)
        session.add(existing)
    await session.flush()
    return len(rows)

async def apply_client_changes(session: AsyncSession, changes: ClientChanges, user_id: str) -> int:
    """Upserts then deletions, all in the caller's transaction. Returns the number of rows touched."""
    # Parents are flushed before their children are checked, so references may point into the same push.
    applied = await _upsert_rows(session, Artist, changes.artists, user_id)
    for event in changes.liveEvents: await check_artist_ref(session, event.model_dump(), user_id)
    applied += await _upsert_rows(session, LiveEvent, changes.liveEvents, user_id)
    for memory in changes.memories: await check_event_ref(session, memory.model_dump(), user_id)
    applied += await _upsert_rows(session, Memory, changes.memories, user_id)
    for deletion in changes.deletions:
        row = await get_owned(session, MODELS[deletion.entityType], deletion.id, user_id)
        if row is None: continue
        await delete_owned(session, row)
        applied += 1
    await session.flush()
    return applied

async def changes_since(session: AsyncSession, user_id: str, cursor: datetime) -> ServerChanges:
    async def fetch(model):
        statement = select(model).where(model.userId == user_id, model.updatedAt > cursor).order_by(model.updatedAt)
        result = await session.execute(statement)
        return result.scalars().all()
    return ServerChanges(
        artists=[ArtistOut.model_validate(a) for a in await fetch(Artist)],
        liveEvents=[LiveEventOut.model_validate(e) for e in await fetch(LiveEvent)],
        memories=[MemoryOut.model_validate(m) for m in await fetch(Memory)],
    )

async def run_sync(session: AsyncSession, user_id: str, last_sync_at: Optional[datetime],
                   changes: Optional[ClientChanges]) -> SyncResponse:
    cursor = last_sync_at or EPOCH
    applied = 0
    try:
        if changes is not None:
            applied = await apply_client_changes(session, changes, user_id)
        user = await session.get(User, user_id)
        synced_at = next_timestamp(user.lastSyncAt if user else None)
        if user is not None:
            user.lastSyncAt = synced_at
            session.add(user)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    server_changes = await changes_since(session, user_id, cursor)
    logger.info("sync:done user=%s applied=%d pulled=%d/%d/%d", user_id, applied, len(server_changes.artists),
                len(server_changes.liveEvents), len(server_changes.memories))
    return SyncResponse(serverChanges=server_changes, syncedAt=synced_at, conflicts=[])

async def sync_status(session: AsyncSession, user_id: str) -> SyncStatusOut:
    async def count(model) -> int:
        result = await session.execute(select(func.count()).select_from(model).where(model.userId == user_id))
        return result.scalar_one()
    user = await session.get(User, user_id)
    return SyncStatusOut(
        lastSyncAt=user.lastSyncAt if user else None,
        counts=SyncCounts(artists=await count(Artist), liveEvents=await count(LiveEvent), memories=await count(Memory)),
    )
