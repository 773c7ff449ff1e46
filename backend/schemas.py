# backend/schemas.py
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Optional
from urllib.parse import urlparse
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

from models import as_utc

def iso_utc(value: datetime) -> str:
    return as_utc(value).replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"

def _canonical_uuid(value: str) -> str:
    return str(uuid.UUID(value))

def _url(value: str) -> str:
    parsed = urlparse(value)
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise ValueError("must be a URL")
    return value

def _urls(values: Optional[List[str]]) -> Optional[List[str]]:
    for value in values or []: _url(value)
    return values

EntityId = Annotated[str, AfterValidator(_canonical_uuid)]
UtcDateTime = Annotated[datetime, AfterValidator(as_utc), PlainSerializer(iso_utc, return_type=str, when_used="json")]
UrlStr = Annotated[str, AfterValidator(_url)]
UrlList = Annotated[Optional[List[str]], AfterValidator(_urls)]

class EntityType(str, Enum):
    ARTIST = "artist"
    LIVE_EVENT = "liveEvent"
    MEMORY = "memory"

class TicketStatus(str, Enum):
    WON = "won"
    LOST = "lost"
    PENDING = "pending"
    PURCHASED = "purchased"

class WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

# --- Auth ---
class GoogleLoginRequest(WireModel): idToken: str = Field(min_length=10)
class RefreshRequest(WireModel): refreshToken: str = Field(min_length=10)
class UserOut(BaseModel): id: str; email: str; name: Optional[str] = None

class TokenPairOut(BaseModel):
    accessToken: str
    refreshToken: str
    refreshExpiresAt: UtcDateTime

class LoginOut(TokenPairOut):
    user: UserOut

class LogoutOut(BaseModel): revoked: bool

# --- Entities (CRUD) ---
class ArtistCreate(WireModel):
    name: str = Field(min_length=1)
    website: Optional[UrlStr] = None
    socialMedia: Optional[str] = None
    photoUrl: Optional[UrlStr] = None

class ArtistUpdate(ArtistCreate):
    name: Optional[str] = Field(default=None, min_length=1)

class LiveEventCreate(WireModel):
    title: str = Field(min_length=1)
    artistId: Optional[EntityId] = None
    date: UtcDateTime
    venue: Optional[str] = None
    venueAddress: Optional[str] = None
    doorsOpen: Optional[str] = None
    showStart: Optional[str] = None
    ticketStatus: Optional[TicketStatus] = None
    ticketPrice: Optional[int] = Field(default=None, ge=0)
    seatNumber: Optional[str] = None
    memo: Optional[str] = None

class LiveEventUpdate(LiveEventCreate):
    title: Optional[str] = Field(default=None, min_length=1)
    date: Optional[UtcDateTime] = None

class MemoryCreate(WireModel):
    eventId: EntityId
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: UrlList = None

class MemoryUpdate(WireModel):
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: UrlList = None

class ArtistOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    website: Optional[str] = None
    socialMedia: Optional[str] = None
    photoUrl: Optional[str] = None
    createdAt: UtcDateTime
    updatedAt: UtcDateTime

class LiveEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    title: str
    artistId: Optional[str] = None
    date: UtcDateTime
    venue: Optional[str] = None
    venueAddress: Optional[str] = None
    doorsOpen: Optional[str] = None
    showStart: Optional[str] = None
    ticketStatus: Optional[str] = None
    ticketPrice: Optional[int] = None
    seatNumber: Optional[str] = None
    memo: Optional[str] = None
    createdAt: UtcDateTime
    updatedAt: UtcDateTime

class MemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    eventId: str
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: List[str] = []
    createdAt: UtcDateTime
    updatedAt: UtcDateTime

class ArtistList(BaseModel): items: List[ArtistOut]
class LiveEventList(BaseModel): items: List[LiveEventOut]
class MemoryList(BaseModel): items: List[MemoryOut]
class DeletedOut(BaseModel): ok: bool = True

# --- Sync ---
class SyncedRow(WireModel):
    id: EntityId
    createdAt: Optional[UtcDateTime] = None
    updatedAt: Optional[UtcDateTime] = None  # ignored, the server stamps its own

class ArtistPush(SyncedRow):
    name: str = Field(min_length=1)
    website: Optional[str] = None
    socialMedia: Optional[str] = None
    photoUrl: Optional[str] = None

class LiveEventPush(SyncedRow):
    title: str = Field(min_length=1)
    artistId: Optional[EntityId] = None
    date: UtcDateTime
    venue: Optional[str] = None
    venueAddress: Optional[str] = None
    doorsOpen: Optional[str] = None
    showStart: Optional[str] = None
    ticketStatus: Optional[TicketStatus] = None
    ticketPrice: Optional[int] = Field(default=None, ge=0)
    seatNumber: Optional[str] = None
    memo: Optional[str] = None

class MemoryPush(SyncedRow):
    eventId: EntityId
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: List[str] = []

class DeletionPush(WireModel):
    entityType: EntityType
    id: EntityId

class ClientChanges(WireModel):
    artists: List[ArtistPush] = []
    liveEvents: List[LiveEventPush] = []
    memories: List[MemoryPush] = []
    deletions: List[DeletionPush] = []

class SyncRequest(WireModel):
    lastSyncAt: Optional[UtcDateTime] = None
    clientChanges: Optional[ClientChanges] = None

class ServerChanges(BaseModel):
    artists: List[ArtistOut] = []
    liveEvents: List[LiveEventOut] = []
    memories: List[MemoryOut] = []

class SyncResponse(BaseModel):
    serverChanges: ServerChanges
    syncedAt: UtcDateTime
    conflicts: List[Any] = []

class SyncCounts(BaseModel): artists: int; liveEvents: int; memories: int

class SyncStatusOut(BaseModel):
    lastSyncAt: Optional[UtcDateTime] = None
    counts: SyncCounts
