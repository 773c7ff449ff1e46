# backend/models.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands stored values back without tzinfo; they were written as UTC.
    if value is None: return None
    if value.tzinfo is None: return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    now = utcnow()
    previous = as_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now

def new_id() -> str:
    return str(uuid.uuid4())

# Columns hold timezone-aware UTC values.
TZ_DATETIME = DateTime(timezone=True)

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=new_id, primary_key=True)
    providerSub: str = Field(unique=True, index=True)
    provider: str = Field(default="google")
    email: str
    displayName: Optional[str] = Field(default=None)
    lastSyncAt: Optional[datetime] = Field(default=None, sa_type=TZ_DATETIME)
    createdAt: datetime = Field(default_factory=utcnow, sa_type=TZ_DATETIME)

class RefreshToken(SQLModel, table=True):
    __tablename__ = "refresh_tokens"
    id: str = Field(default_factory=new_id, primary_key=True)
    userId: str = Field(foreign_key="users.id", index=True)
    tokenHash: str = Field(unique=True, index=True, max_length=64)
    createdAt: datetime = Field(default_factory=utcnow, sa_type=TZ_DATETIME)
    expiresAt: datetime = Field(sa_type=TZ_DATETIME)
    revokedAt: Optional[datetime] = Field(default=None, sa_type=TZ_DATETIME)
    lastUsedAt: Optional[datetime] = Field(default=None, sa_type=TZ_DATETIME)

class Artist(SQLModel, table=True):
    __tablename__ = "artists"
    id: str = Field(default_factory=new_id, primary_key=True)
    userId: str = Field(foreign_key="users.id", index=True)
    name: str
    website: Optional[str] = Field(default=None, max_length=512)
    socialMedia: Optional[str] = Field(default=None)
    photoUrl: Optional[str] = Field(default=None, max_length=1024)
    createdAt: datetime = Field(default_factory=utcnow, sa_type=TZ_DATETIME)
    updatedAt: datetime = Field(default_factory=utcnow, index=True, sa_type=TZ_DATETIME)

class LiveEvent(SQLModel, table=True):
    __tablename__ = "live_events"
    id: str = Field(default_factory=new_id, primary_key=True)
    userId: str = Field(foreign_key="users.id", index=True)
    title: str
    artistId: Optional[str] = Field(default=None, foreign_key="artists.id", index=True)
    date: datetime = Field(sa_type=TZ_DATETIME)
    venue: Optional[str] = Field(default=None)
    venueAddress: Optional[str] = Field(default=None)
    doorsOpen: Optional[str] = Field(default=None)
    showStart: Optional[str] = Field(default=None)
    ticketStatus: Optional[str] = Field(default=None)
    ticketPrice: Optional[int] = Field(default=None)
    seatNumber: Optional[str] = Field(default=None)
    memo: Optional[str] = Field(default=None)
    createdAt: datetime = Field(default_factory=utcnow, sa_type=TZ_DATETIME)
    updatedAt: datetime = Field(default_factory=utcnow, index=True, sa_type=TZ_DATETIME)

class Memory(SQLModel, table=True):
    __tablename__ = "memories"
    id: str = Field(default_factory=new_id, primary_key=True)
    userId: str = Field(foreign_key="users.id", index=True)
    eventId: str = Field(foreign_key="live_events.id", index=True)
    review: Optional[str] = Field(default=None)
    setlist: Optional[str] = Field(default=None)
    photos: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    createdAt: datetime = Field(default_factory=utcnow, sa_type=TZ_DATETIME)
    updatedAt: datetime = Field(default_factory=utcnow, index=True, sa_type=TZ_DATETIME)

SERVER_TABLES = [User.__table__, RefreshToken.__table__, Artist.__table__, LiveEvent.__table__, Memory.__table__]
