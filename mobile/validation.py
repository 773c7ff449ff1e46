# mobile/validation.py
"""
Local row checks.

A row is checked against the same rules the server applies to a pushed row
before it is written, so a row the server would refuse never sits in the
pending queue and blocks every later sync round.
"""

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from .field_mapping import ARTIST, LIVE_EVENT, MEMORY


def _uuid(value: str) -> str:
    uuid.UUID(value)
    return value


def _photo_list(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    photos = json.loads(value)
    if not isinstance(photos, list) or not all(isinstance(p, str) for p in photos):
        raise ValueError("must be a JSON array of strings")
    return value


LocalId = Annotated[str, AfterValidator(_uuid)]
PhotoList = Annotated[Optional[str], AfterValidator(_photo_list)]


class TicketStatus(str, Enum):
    WON = "won"
    LOST = "lost"
    PENDING = "pending"
    PURCHASED = "purchased"


class LocalRow(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: LocalId
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ArtistRow(LocalRow):
    name: str = Field(min_length=1)
    website: Optional[str] = None
    social_media: Optional[str] = None
    photo: Optional[str] = None


class LiveEventRow(LocalRow):
    title: str = Field(min_length=1)
    artist_id: Optional[LocalId] = None
    date: datetime
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    doors_open: Optional[str] = None
    show_start: Optional[str] = None
    ticket_status: Optional[TicketStatus] = None
    ticket_price: Optional[int] = Field(default=None, ge=0)
    seat_number: Optional[str] = None
    memo: Optional[str] = None


class MemoryRow(LocalRow):
    live_event_id: LocalId
    review: Optional[str] = None
    setlist: Optional[str] = None
    photos: PhotoList = None


ROW_MODELS: Dict[str, Type[LocalRow]] = {
    ARTIST: ArtistRow,
    LIVE_EVENT: LiveEventRow,
    MEMORY: MemoryRow,
}


def validate_row(entity_type: str, row: Dict[str, Any]) -> None:
    """Raises ValueError naming every field the server would reject."""
    try:
        ROW_MODELS[entity_type].model_validate(row)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ValueError(f"Invalid {entity_type}: {problems}") from e
