"""Record types for the marketplace document store.

Every record maps to one JSON object inside a collection file.  On-disk keys
are camelCase (``createdAt``, ``itemId`` ...) so existing data files stay
readable; attributes are snake_case.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


def new_id() -> str:
    """Generate a random (uuid4) record ID."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as a sortable ISO 8601 string: 2026-01-02T03:04:05.678Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _str(d: dict[str, Any], key: str) -> str:
    """d[key], which must be a string (KeyError if absent, TypeError otherwise)."""
    value = d[key]
    if not isinstance(value, str):
        msg = f"{key!r} must be a string, got {type(value).__name__}"
        raise TypeError(msg)
    return value


@dataclass(frozen=True)
class Item:
    """A marketplace listing."""

    id: str
    title: str
    description: str
    price: float
    seller: str
    created_at: str
    image_url: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Item:
        return cls(
            id=_str(d, "id"),
            title=d["title"],
            description=d.get("description", ""),
            price=d["price"],
            seller=d["seller"],
            created_at=d.get("createdAt", ""),
            image_url=d.get("imageUrl"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "seller": self.seller,
        }
        if self.image_url:
            d["imageUrl"] = self.image_url
        return d


@dataclass(frozen=True)
class Message:
    """One message in an item's thread."""

    id: str
    item_id: str
    sender: str
    text: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Message:
        return cls(
            id=_str(d, "id"),
            item_id=_str(d, "itemId"),
            sender=d["sender"],
            text=d["text"],
            created_at=d.get("createdAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "itemId": self.item_id,
            "createdAt": self.created_at,
            "sender": self.sender,
            "text": self.text,
        }


@dataclass(frozen=True)
class User:
    id: str
    name: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> User:
        return cls(id=_str(d, "id"), name=_str(d, "name"), created_at=d.get("createdAt", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "createdAt": self.created_at}


@dataclass(frozen=True)
class Friend:
    """Directed friendship edge: ``user`` follows ``friend``."""

    user: str
    friend: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Friend:
        return cls(user=_str(d, "user"), friend=_str(d, "friend"), created_at=d.get("createdAt", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user, "friend": self.friend, "createdAt": self.created_at}


@dataclass(frozen=True)
class PublicChatMessage:
    id: str
    sender: str
    text: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PublicChatMessage:
        return cls(id=_str(d, "id"), sender=d["sender"], text=d["text"], created_at=d.get("createdAt", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "sender": self.sender, "text": self.text, "createdAt": self.created_at}


@dataclass(frozen=True)
class DirectMessage:
    """A message between two users.  Stored under the keys ``from`` / ``to``."""

    id: str
    sender: str
    recipient: str
    text: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DirectMessage:
        return cls(
            id=_str(d, "id"),
            sender=_str(d, "from"),
            recipient=_str(d, "to"),
            text=d["text"],
            created_at=d.get("createdAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "text": self.text,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Event:
    id: str
    title: str
    description: str
    date: str                  # ISO date/time as entered by the organizer
    location: str
    organizer: str             # display name, not a user id
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Event:
        return cls(
            id=_str(d, "id"),
            title=d["title"],
            description=d.get("description", ""),
            date=d["date"],
            location=d.get("location", ""),
            organizer=d.get("organizer", ""),
            created_at=d.get("createdAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "title": self.title,
            "description": self.description,
            "date": self.date,
            "location": self.location,
            "organizer": self.organizer,
        }


@dataclass(frozen=True)
class EventRSVP:
    id: str
    event_id: str
    user_id: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> EventRSVP:
        return cls(
            id=_str(d, "id"),
            event_id=_str(d, "eventId"),
            user_id=_str(d, "userId"),
            created_at=d.get("createdAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "userId": self.user_id,
            "createdAt": self.created_at,
        }
