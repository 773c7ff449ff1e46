# mobile/local_db.py
"""
On-device tables and the operations the app and the sync engine run on them.

Rows are handed out as plain dicts in the local (snake_case) shape that
field_mapping understands. Timestamps are ISO-8601 strings in UTC.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Type

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import Field, SQLModel, select

from .field_mapping import ARTIST, LIVE_EVENT, MEMORY, SYNCED
from .validation import validate_row

logger = logging.getLogger(__name__)

PENDING = "pending"


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_local_id() -> str:
    return str(uuid.uuid4())


class LocalArtist(SQLModel, table=True):
    __tablename__ = "local_artists"
    id: str = Field(default_factory=new_local_id, primary_key=True)
    name: str
    website: Optional[str] = None
    social_media: Optional[str] = None
    photo: Optional[str] = None
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)
    sync_status: str = Field(default=PENDING, index=True)


class LocalLiveEvent(SQLModel, table=True):
    __tablename__ = "local_live_events"
    id: str = Field(default_factory=new_local_id, primary_key=True)
    title: str
    artist_id: Optional[str] = Field(default=None, index=True)
    date: str
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    doors_open: Optional[str] = None
    show_start: Optional[str] = None
    ticket_status: Optional[str] = None
    ticket_price: Optional[int] = None
    seat_number: Optional[str] = None
    memo: Optional[str] = None
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)
    sync_status: str = Field(default=PENDING, index=True)


class LocalMemory(SQLModel, table=True):
    __tablename__ = "local_memories"
    id: str = Field(default_factory=new_local_id, primary_key=True)
    live_event_id: str = Field(index=True)
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: Optional[str] = None  # JSON array
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)
    sync_status: str = Field(default=PENDING, index=True)


class DeletedItem(SQLModel, table=True):
    __tablename__ = "deleted_items"
    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(index=True)
    entity_id: str = Field(index=True)
    deleted_at: str = Field(default_factory=utc_iso)


LOCAL_MODELS: Dict[str, Type[SQLModel]] = {
    ARTIST: LocalArtist,
    LIVE_EVENT: LocalLiveEvent,
    MEMORY: LocalMemory,
}

# Parents before children so references resolve in insertion order.
ENTITY_ORDER = (ARTIST, LIVE_EVENT, MEMORY)

REQUIRED_FIELDS = {
    ARTIST: ("name",),
    LIVE_EVENT: ("title", "date"),
    MEMORY: ("live_event_id",),
}

# Columns the app may not set directly
PROTECTED_FIELDS = {"id", "created_at", "updated_at", "sync_status"}

LOCAL_TABLES = [LocalArtist.__table__, LocalLiveEvent.__table__, LocalMemory.__table__, DeletedItem.__table__]


def _model(entity_type: str) -> Type[SQLModel]:
    try:
        return LOCAL_MODELS[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type}")


def _columns(model: Type[SQLModel], values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if k in model.model_fields}


class LocalDatabase:
    """Engine and session factory for the on-device store."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=LOCAL_TABLES)

    async def dispose(self):
        await self.engine.dispose()

    # App-facing CRUD. Every write marks the row pending; a row the server would refuse raises ValueError.

    async def create(self, entity_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        model = _model(entity_type)
        missing = [f for f in REQUIRED_FIELDS[entity_type] if values.get(f) is None]
        if missing:
            raise ValueError(f"Missing required fields for {entity_type}: {', '.join(missing)}")

        fields = {k: v for k, v in _columns(model, values).items() if k not in PROTECTED_FIELDS - {"id"}}
        now = utc_iso()
        row = model(**fields, created_at=now, updated_at=now, sync_status=PENDING)
        validate_row(entity_type, row.model_dump())
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        return row.model_dump()

    async def update(self, entity_type: str, entity_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        model = _model(entity_type)
        async with self.session_factory() as session:
            row = await session.get(model, entity_id)
            if row is None:
                return None
            for key, value in _columns(model, values).items():
                if key in PROTECTED_FIELDS:
                    continue
                if value is None and key in REQUIRED_FIELDS[entity_type]:
                    continue
                setattr(row, key, value)
            row.updated_at = utc_iso()
            row.sync_status = PENDING
            validate_row(entity_type, row.model_dump())
            session.add(row)
            await session.commit()
            return row.model_dump()

    async def delete(self, entity_type: str, entity_id: str) -> bool:
        """Deletes a row and records a tombstone for the next sync round."""
        model = _model(entity_type)
        async with self.session_factory() as session:
            row = await session.get(model, entity_id)
            if row is None:
                return False
            if entity_type == LIVE_EVENT:
                result = await session.execute(select(LocalMemory).where(LocalMemory.live_event_id == entity_id))
                for memory in result.scalars().all():
                    await self._tombstone(session, MEMORY, memory.id)
                    await session.delete(memory)
            elif entity_type == ARTIST:
                result = await session.execute(select(LocalLiveEvent).where(LocalLiveEvent.artist_id == entity_id))
                for event in result.scalars().all():
                    event.artist_id = None
                    event.updated_at = utc_iso()
                    event.sync_status = PENDING
                    session.add(event)
            await self._tombstone(session, entity_type, entity_id)
            await session.delete(row)
            await session.commit()
        return True

    async def _tombstone(self, session: AsyncSession, entity_type: str, entity_id: str) -> None:
        existing = await session.execute(
            select(DeletedItem).where(DeletedItem.entity_type == entity_type, DeletedItem.entity_id == entity_id)
        )
        if existing.scalars().first() is None:
            session.add(DeletedItem(entity_type=entity_type, entity_id=entity_id))

    async def _tombstoned_ids(self, session: AsyncSession, entity_type: str) -> Set[str]:
        result = await session.execute(select(DeletedItem.entity_id).where(DeletedItem.entity_type == entity_type))
        return set(result.scalars().all())

    async def get(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            row = await session.get(_model(entity_type), entity_id)
            return row.model_dump() if row else None

    async def list_all(self, entity_type: str) -> List[Dict[str, Any]]:
        model = _model(entity_type)
        async with self.session_factory() as session:
            result = await session.execute(select(model).order_by(model.created_at))
            return [row.model_dump() for row in result.scalars().all()]

    async def list_live_events_with_artists(self) -> List[Dict[str, Any]]:
        """Live events newest first, each with the name of its artist (or None)."""
        async with self.session_factory() as session:
            statement = (
                select(LocalLiveEvent, LocalArtist.name)
                .join(LocalArtist, LocalArtist.id == LocalLiveEvent.artist_id, isouter=True)
                .order_by(LocalLiveEvent.date.desc())
            )
            result = await session.execute(statement)
            return [{**event.model_dump(), "artist_name": name} for event, name in result.all()]

    # Sync-facing operations

    async def pending(self, entity_type: str) -> List[Dict[str, Any]]:
        model = _model(entity_type)
        async with self.session_factory() as session:
            result = await session.execute(select(model).where(model.sync_status == PENDING).order_by(model.created_at))
            return [row.model_dump() for row in result.scalars().all()]

    async def deleted_items(self) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(DeletedItem).order_by(DeletedItem.id))
            return [item.model_dump() for item in result.scalars().all()]

    async def _upsert(
        self, session: AsyncSession, entity_type: str, rows: Iterable[Dict[str, Any]], skip: Iterable[str] = ()
    ) -> int:
        model = _model(entity_type)
        skip = set(skip)
        count = 0
        for values in rows:
            fields = _columns(model, values)
            if fields["id"] in skip:
                continue
            existing = await session.get(model, fields["id"])
            if existing is None:
                existing = model(**fields)
            else:
                # Pulled rows overwrite the local copy wholesale.
                for key in model.model_fields:
                    if key != "id":
                        setattr(existing, key, fields.get(key))
            existing.sync_status = SYNCED
            if existing.created_at is None:
                existing.created_at = utc_iso()
            if existing.updated_at is None:
                existing.updated_at = existing.created_at
            session.add(existing)
            count += 1
        await session.flush()
        return count

    async def upsert_synced(self, entity_type: str, rows: List[Dict[str, Any]]) -> int:
        async with self.session_factory() as session:
            count = await self._upsert(session, entity_type, rows)
            await session.commit()
        return count

    async def apply_sync_round(
        self,
        server_changes: Dict[str, List[Dict[str, Any]]],
        pushed: Dict[str, List[Dict[str, Any]]],
        deleted_item_ids: List[int],
    ) -> int:
        """
        Applies one sync round in a single local transaction.

        Args:
            server_changes: pulled rows in local shape, keyed by entity type
            pushed: the rows as they were gathered for the push, keyed by entity type
            deleted_item_ids: DeletedItem ids the server acknowledged

        Returns:
            Number of pulled rows written
        """
        pulled = 0
        async with self.session_factory() as session:
            try:
                for entity_type in ENTITY_ORDER:
                    # Rows edited or deleted while the round was in flight keep the local change.
                    keep_local = await self._tombstoned_ids(session, entity_type)
                    model = _model(entity_type)
                    for gathered in pushed.get(entity_type, []):
                        row = await session.get(model, gathered["id"])
                        if row is None:
                            continue
                        if row.updated_at != gathered["updated_at"]:
                            keep_local.add(row.id)
                        elif row.sync_status != SYNCED:
                            row.sync_status = SYNCED
                            session.add(row)

                    pulled += await self._upsert(
                        session, entity_type, server_changes.get(entity_type, []), skip=keep_local
                    )

                for item_id in deleted_item_ids:
                    item = await session.get(DeletedItem, item_id)
                    if item is not None:
                        await session.delete(item)

                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.debug(f"Applied sync round: pulled={pulled} deletions_cleared={len(deleted_item_ids)}")
        return pulled
