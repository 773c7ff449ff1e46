# backend/routes/entities.py
import uuid
from typing import Awaitable, Callable, Optional, Type
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user_id
from database import get_session
from errors import NotFound
from models import Artist, LiveEvent, Memory
from schemas import (ArtistCreate, ArtistList, ArtistOut, ArtistUpdate, DeletedOut, LiveEventCreate, LiveEventList,
                     LiveEventOut, LiveEventUpdate, MemoryCreate, MemoryList, MemoryOut, MemoryUpdate)
from services.entity_service import check_artist_ref, check_event_ref, delete_owned, get_owned, touch

RefCheck = Callable[[AsyncSession, dict, str], Awaitable[None]]
NOT_NULL = {"name", "title", "date", "photos"}

def build_crud_router(prefix: str, model: Type[SQLModel], create_schema: Type[BaseModel],
                      update_schema: Type[BaseModel], out_schema: Type[BaseModel], list_schema: Type[BaseModel],
                      order_by, check_refs: Optional[RefCheck] = None) -> APIRouter:
    router = APIRouter(prefix=prefix)

    async def load(session: AsyncSession, entity_id: uuid.UUID, user_id: str):
        row = await get_owned(session, model, str(entity_id), user_id)
        if row is None: raise NotFound(f"{model.__name__} not found")
        return row

    @router.get("", response_model=list_schema)
    async def list_items(user_id: str = Depends(get_current_user_id), session: AsyncSession = Depends(get_session)):
        result = await session.execute(select(model).where(model.userId == user_id).order_by(order_by))
        return list_schema(items=[out_schema.model_validate(row) for row in result.scalars().all()])

    @router.get("/{entity_id}", response_model=out_schema)
    async def get_item(entity_id: uuid.UUID, user_id: str = Depends(get_current_user_id),
                       session: AsyncSession = Depends(get_session)):
        return out_schema.model_validate(await load(session, entity_id, user_id))

    @router.post("", response_model=out_schema)
    async def create_item(body: create_schema, user_id: str = Depends(get_current_user_id),
                          session: AsyncSession = Depends(get_session)):
        data = body.model_dump(exclude_none=True)
        if check_refs: await check_refs(session, data, user_id)
        row = model(userId=user_id, **data)
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return out_schema.model_validate(row)

    @router.patch("/{entity_id}", response_model=out_schema)
    async def update_item(entity_id: uuid.UUID, body: update_schema, user_id: str = Depends(get_current_user_id),
                          session: AsyncSession = Depends(get_session)):
        row = await load(session, entity_id, user_id)
        data = {k: v for k, v in body.model_dump(exclude_unset=True).items() if not (k in NOT_NULL and v is None)}
        if check_refs: await check_refs(session, data, user_id)
        for key, value in data.items(): setattr(row, key, value)
        touch(row)
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return out_schema.model_validate(row)

    @router.delete("/{entity_id}", response_model=DeletedOut)
    async def delete_item(entity_id: uuid.UUID, user_id: str = Depends(get_current_user_id),
                          session: AsyncSession = Depends(get_session)):
        row = await load(session, entity_id, user_id)
        await delete_owned(session, row)
        await session.commit()
        return DeletedOut()

    return router

artists_router = build_crud_router("/v1/artists", Artist, ArtistCreate, ArtistUpdate, ArtistOut, ArtistList,
                                   Artist.createdAt.desc())
live_events_router = build_crud_router("/v1/live-events", LiveEvent, LiveEventCreate, LiveEventUpdate, LiveEventOut,
                                       LiveEventList, LiveEvent.date.desc(), check_refs=check_artist_ref)
memories_router = build_crud_router("/v1/memories", Memory, MemoryCreate, MemoryUpdate, MemoryOut, MemoryList,
                                    Memory.createdAt.desc(), check_refs=check_event_ref)
