# backend/services/entity_service.py
from typing import Optional, Type, TypeVar
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ReferenceNotFound
from models import Artist, LiveEvent, Memory, next_timestamp

T = TypeVar("T", bound=SQLModel)

async def get_owned(session: AsyncSession, model: Type[T], entity_id: str, user_id: str) -> Optional[T]:
    """Rows of other users are reported as missing."""
    statement = select(model).where(model.id == entity_id, model.userId == user_id)
    result = await session.execute(statement)
    return result.scalar_one_or_none()

async def check_artist_ref(session: AsyncSession, data: dict, user_id: str):
    if data.get("artistId") and not await get_owned(session, Artist, data["artistId"], user_id):
        raise ReferenceNotFound("Artist not found", code="ARTIST_NOT_FOUND")

async def check_event_ref(session: AsyncSession, data: dict, user_id: str):
    if data.get("eventId") and not await get_owned(session, LiveEvent, data["eventId"], user_id):
        raise ReferenceNotFound("Live event not found", code="EVENT_NOT_FOUND")

def touch(row) -> None:
    row.updatedAt = next_timestamp(row.updatedAt)

async def delete_owned(session: AsyncSession, row) -> None:
    """Deletes a row and keeps dependants consistent. Caller commits."""
    if isinstance(row, LiveEvent):
        result = await session.execute(select(Memory).where(Memory.eventId == row.id, Memory.userId == row.userId))
        for memory in result.scalars().all():
            await session.delete(memory)
        await session.flush()
    elif isinstance(row, Artist):
        result = await session.execute(select(LiveEvent).where(LiveEvent.artistId == row.id, LiveEvent.userId == row.userId))
        for event in result.scalars().all():
            event.artistId = None
            touch(event)
            session.add(event)
        await session.flush()
    await session.delete(row)
