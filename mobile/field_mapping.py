# mobile/field_mapping.py
"""
Field mapping between the wire shape (camelCase, relational) and the local
shape (snake_case, flat, JSON arrays stored as strings).

All functions are pure. Keys whose value is None are treated the same as
missing keys, and fields the local schema does not track are dropped.
"""

import json
from typing import Any, Callable, Dict, Tuple

ARTIST = "artist"
LIVE_EVENT = "liveEvent"
MEMORY = "memory"

SYNCED = "synced"

# (wire name, local name)
ARTIST_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("name", "name"),
    ("website", "website"),
    ("socialMedia", "social_media"),
    ("photoUrl", "photo"),
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
)

LIVE_EVENT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("title", "title"),
    ("artistId", "artist_id"),
    ("date", "date"),
    ("venue", "venue_name"),
    ("venueAddress", "venue_address"),
    ("doorsOpen", "doors_open"),
    ("showStart", "show_start"),
    ("ticketStatus", "ticket_status"),
    ("ticketPrice", "ticket_price"),
    ("seatNumber", "seat_number"),
    ("memo", "memo"),
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
)

MEMORY_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("eventId", "live_event_id"),
    ("review", "review"),
    ("setlist", "setlist"),
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
)


def _rename(source: Dict[str, Any], pairs, reverse: bool = False) -> Dict[str, Any]:
    result = {}
    for wire_name, local_name in pairs:
        src, dst = (local_name, wire_name) if reverse else (wire_name, local_name)
        value = source.get(src)
        if value is not None:
            result[dst] = value
    return result


def artist_from_wire(item: Dict[str, Any]) -> Dict[str, Any]:
    local = _rename(item, ARTIST_FIELDS)
    local["sync_status"] = SYNCED
    return local


def artist_to_wire(artist: Dict[str, Any]) -> Dict[str, Any]:
    return _rename(artist, ARTIST_FIELDS, reverse=True)


def live_event_from_wire(item: Dict[str, Any]) -> Dict[str, Any]:
    local = _rename(item, LIVE_EVENT_FIELDS)
    local["sync_status"] = SYNCED
    return local


def live_event_to_wire(event: Dict[str, Any]) -> Dict[str, Any]:
    return _rename(event, LIVE_EVENT_FIELDS, reverse=True)


def memory_from_wire(item: Dict[str, Any]) -> Dict[str, Any]:
    local = _rename(item, MEMORY_FIELDS)
    if item.get("photos") is not None:
        local["photos"] = json.dumps(list(item["photos"]))
    local["sync_status"] = SYNCED
    return local


def memory_to_wire(memory: Dict[str, Any]) -> Dict[str, Any]:
    wire = _rename(memory, MEMORY_FIELDS, reverse=True)
    if memory.get("photos") is not None:
        wire["photos"] = json.loads(memory["photos"]) if memory["photos"] else []
    return wire


FROM_WIRE: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    ARTIST: artist_from_wire,
    LIVE_EVENT: live_event_from_wire,
    MEMORY: memory_from_wire,
}

TO_WIRE: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    ARTIST: artist_to_wire,
    LIVE_EVENT: live_event_to_wire,
    MEMORY: memory_to_wire,
}

# Plural keys used in the sync payload
WIRE_COLLECTIONS: Dict[str, str] = {
    ARTIST: "artists",
    LIVE_EVENT: "liveEvents",
    MEMORY: "memories",
}


def from_wire(entity_type: str, item: Dict[str, Any]) -> Dict[str, Any]:
    return FROM_WIRE[entity_type](item)


def to_wire(entity_type: str, row: Dict[str, Any]) -> Dict[str, Any]:
    return TO_WIRE[entity_type](row)
