"""DocumentStore: the marketplace collections on top of a JSON-file tree.

    store = DocumentStore("/path/to/data")
    bob = store.create_user("Bob")
    item = store.add_item("Desk lamp", "Barely used", 15, seller=bob.name)
    store.add_message(item.id, sender=bob.id, text="Still available")

Layout (all files are JSON arrays):
    data/
        items.json              newest first
        users.json
        friends.json            directed edges {user, friend}
        publicChat.json         oldest first
        events.json             newest first
        rsvps.json
        messages/<itemId>.json  one item thread, oldest first
        dms/<a>__<b>.json       one conversation, a < b, oldest first
        .locks/                 sidecar flock files (safe to delete when idle)

Every mutation is a read-modify-write of one file under that file's lock, so
concurrent creates never lose each other's records and idempotent inserts
(users by name, friend edges, RSVPs) never duplicate.  Reads take no lock.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from campusdb.documents import (
    CorruptDocumentError,
    create_if_absent,
    lock_path_for,
    locked,
    read_document,
    write_document,
)
from campusdb.models import (
    DirectMessage,
    Event,
    EventRSVP,
    Friend,
    Item,
    Message,
    PublicChatMessage,
    User,
    new_id,
    now_iso,
)
from campusdb.partition import check_identity, dm_partition_key

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractContextManager

logger = logging.getLogger("campusdb.store")

T = TypeVar("T")

ITEMS_FILE = "items.json"
USERS_FILE = "users.json"
FRIENDS_FILE = "friends.json"
PUBLIC_CHAT_FILE = "publicChat.json"
EVENTS_FILE = "events.json"
RSVPS_FILE = "rsvps.json"
MESSAGES_DIR = "messages"
DMS_DIR = "dms"
LOCKS_DIR = ".locks"

COLLECTION_FILES = (ITEMS_FILE, USERS_FILE, FRIENDS_FILE, PUBLIC_CHAT_FILE, EVENTS_FILE, RSVPS_FILE)


class DocumentStore:
    """File-backed store for items, users, friends, chat, DMs, events and RSVPs."""

    def __init__(self, data_dir: Path | str, *, indent: int | None = 2, fsync: bool = False) -> None:
        self.data_dir = Path(data_dir)
        self.indent = indent
        self.fsync = fsync
        self.ensure_layout()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _thread_path(self, item_id: str) -> Path:
        return self.data_dir / MESSAGES_DIR / f"{check_identity(item_id, 'item id')}.json"

    def _dm_path(self, a: str, b: str) -> Path:
        return self.data_dir / DMS_DIR / f"{dm_partition_key(a, b)}.json"

    @property
    def lock_dir(self) -> Path:
        return self.data_dir / LOCKS_DIR

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def ensure_layout(self) -> None:
        """Create the data dirs and any missing collection file (as ``[]``).

        Idempotent; never touches an existing file.
        """
        for sub in (MESSAGES_DIR, DMS_DIR, LOCKS_DIR):
            (self.data_dir / sub).mkdir(parents=True, exist_ok=True)
        for name in COLLECTION_FILES:
            path = self._path(name)
            if not path.exists() and create_if_absent(path, [], indent=self.indent):
                logger.debug("initialized %s", path)

    # ------------------------------------------------------------------
    # Internal: read / read-modify-write
    # ------------------------------------------------------------------

    def _locked(self, path: Path) -> AbstractContextManager[None]:
        return locked(path, lock_path_for(path, self.data_dir, self.lock_dir))

    def _read_rows(self, path: Path) -> list[dict[str, Any]]:
        doc = read_document(path, [])
        if not isinstance(doc, list):
            raise CorruptDocumentError(path, f"expected a JSON array, got {type(doc).__name__}")
        return doc

    def _parse(self, path: Path, cls: type[T], rows: list[dict[str, Any]]) -> list[T]:
        try:
            return [cls.from_dict(row) for row in rows]  # type: ignore[attr-defined]
        except (KeyError, TypeError, AttributeError) as exc:
            raise CorruptDocumentError(path, f"malformed {cls.__name__} record: {exc!r}") from exc

    def _load(self, path: Path, cls: type[T]) -> list[T]:
        return self._parse(path, cls, self._read_rows(path))

    def _insert(
        self,
        path: Path,
        cls: type[T],
        build: Callable[[], T],
        *,
        front: bool = False,
        match: Callable[[T], bool] | None = None,
    ) -> tuple[T, bool]:
        """Insert build() into the collection at path unless match() finds a record.

        Returns (record, created).  The record is built only once the lock is
        held and no match exists, so its id and timestamp are assigned at the
        moment it is persisted.
        """
        with self._locked(path):
            rows = self._read_rows(path)
            if match is not None:
                for existing in self._parse(path, cls, rows):
                    if match(existing):
                        return existing, False
            record = build()
            row = record.to_dict()  # type: ignore[attr-defined]
            if front:
                rows.insert(0, row)
            else:
                rows.append(row)
            write_document(path, rows, indent=self.indent, fsync=self.fsync)
        return record, True

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_all_items(self) -> list[Item]:
        """All listings, newest first."""
        self.ensure_layout()
        return self._load(self._path(ITEMS_FILE), Item)

    def get_item(self, item_id: str) -> Item | None:
        return next((it for it in self.get_all_items() if it.id == item_id), None)

    def add_item(
        self,
        title: str,
        description: str,
        price: float,
        seller: str,
        image_url: str | None = None,
    ) -> Item:
        self.ensure_layout()
        item, _ = self._insert(
            self._path(ITEMS_FILE),
            Item,
            lambda: Item(
                id=new_id(),
                title=title,
                description=description,
                price=price,
                seller=seller,
                created_at=now_iso(),
                image_url=image_url,
            ),
            front=True,
        )
        logger.debug("created item %s", item.id)
        return item

    # ------------------------------------------------------------------
    # Item threads
    # ------------------------------------------------------------------

    def get_messages(self, item_id: str) -> list[Message]:
        """Messages for one item, oldest first.  Unknown items have an empty thread."""
        self.ensure_layout()
        path = self._thread_path(item_id)
        return self._load(path, Message)

    def add_message(self, item_id: str, sender: str, text: str) -> Message:
        self.ensure_layout()
        msg, _ = self._insert(
            self._thread_path(item_id),
            Message,
            lambda: Message(id=new_id(), item_id=item_id, sender=sender, text=text, created_at=now_iso()),
        )
        logger.debug("message %s on item %s", msg.id, item_id)
        return msg

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        self.ensure_layout()
        return self._load(self._path(USERS_FILE), User)

    def get_user(self, user_id: str) -> User | None:
        return next((u for u in self.list_users() if u.id == user_id), None)

    def search_users(self, query: str) -> list[User]:
        """Users whose name contains query (case-insensitive); all users for ''."""
        users = self.list_users()
        q = query.casefold()
        if not q:
            return users
        return [u for u in users if q in u.name.casefold()]

    def create_user(self, name: str) -> User:
        """Create a user, or return the existing one with the same name (case-insensitive)."""
        self.ensure_layout()
        key = name.casefold()
        user, created = self._insert(
            self._path(USERS_FILE),
            User,
            lambda: User(id=new_id(), name=name, created_at=now_iso()),
            match=lambda u: u.name.casefold() == key,
        )
        if created:
            logger.debug("created user %s (%s)", user.id, name)
        else:
            logger.debug("user %r already exists as %s", name, user.id)
        return user

    # ------------------------------------------------------------------
    # Friends (directed edges)
    # ------------------------------------------------------------------

    def list_friends(self, user_id: str) -> list[User]:
        """Users reachable by an outgoing edge from user_id, in users.json order."""
        users = self.list_users()
        edges = self._load(self._path(FRIENDS_FILE), Friend)
        friend_ids = {e.friend for e in edges if e.user == user_id}
        return [u for u in users if u.id in friend_ids]

    def add_friend(self, user_id: str, friend_id: str) -> Friend:
        """Add the edge user_id -> friend_id if absent.  Returns the stored edge."""
        self.ensure_layout()
        edge, created = self._insert(
            self._path(FRIENDS_FILE),
            Friend,
            lambda: Friend(user=user_id, friend=friend_id, created_at=now_iso()),
            match=lambda e: e.user == user_id and e.friend == friend_id,
        )
        if created:
            logger.debug("friend edge %s -> %s", user_id, friend_id)
        return edge

    # ------------------------------------------------------------------
    # Public chat
    # ------------------------------------------------------------------

    def list_public_chat(self) -> list[PublicChatMessage]:
        self.ensure_layout()
        return self._load(self._path(PUBLIC_CHAT_FILE), PublicChatMessage)

    def post_public_chat(self, sender: str, text: str) -> PublicChatMessage:
        self.ensure_layout()
        msg, _ = self._insert(
            self._path(PUBLIC_CHAT_FILE),
            PublicChatMessage,
            lambda: PublicChatMessage(id=new_id(), sender=sender, text=text, created_at=now_iso()),
        )
        return msg

    # ------------------------------------------------------------------
    # Direct messages
    # ------------------------------------------------------------------

    def list_dm(self, a: str, b: str) -> list[DirectMessage]:
        """The conversation between a and b (either order), oldest first."""
        self.ensure_layout()
        return self._load(self._dm_path(a, b), DirectMessage)

    def post_dm(self, sender: str, recipient: str, text: str) -> DirectMessage:
        self.ensure_layout()
        msg, _ = self._insert(
            self._dm_path(sender, recipient),
            DirectMessage,
            lambda: DirectMessage(
                id=new_id(), sender=sender, recipient=recipient, text=text, created_at=now_iso()
            ),
        )
        logger.debug("dm %s: %s -> %s", msg.id, sender, recipient)
        return msg

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def list_events(self) -> list[Event]:
        """All events, newest first."""
        self.ensure_layout()
        return self._load(self._path(EVENTS_FILE), Event)

    def get_event(self, event_id: str) -> Event | None:
        return next((e for e in self.list_events() if e.id == event_id), None)

    def create_event(
        self,
        title: str,
        description: str,
        date: str,
        location: str,
        organizer: str,
    ) -> Event:
        self.ensure_layout()
        event, _ = self._insert(
            self._path(EVENTS_FILE),
            Event,
            lambda: Event(
                id=new_id(),
                title=title,
                description=description,
                date=date,
                location=location,
                organizer=organizer,
                created_at=now_iso(),
            ),
            front=True,
        )
        logger.debug("created event %s", event.id)
        return event

    # ------------------------------------------------------------------
    # RSVPs
    # ------------------------------------------------------------------

    def list_rsvps(self, event_id: str) -> list[EventRSVP]:
        self.ensure_layout()
        return [r for r in self._load(self._path(RSVPS_FILE), EventRSVP) if r.event_id == event_id]

    def user_has_rsvp(self, event_id: str, user_id: str) -> bool:
        return any(r.user_id == user_id for r in self.list_rsvps(event_id))

    def create_rsvp(self, event_id: str, user_id: str) -> EventRSVP:
        """RSVP user_id to event_id; repeat calls return the original record."""
        return self.insert_rsvp(event_id, user_id)[0]

    def insert_rsvp(self, event_id: str, user_id: str) -> tuple[EventRSVP, bool]:
        """Like create_rsvp, also reporting whether this call created the record.

        The check and the insert happen under one lock, so of several racing
        calls for the same pair exactly one sees created=True.
        """
        self.ensure_layout()
        rsvp, created = self._insert(
            self._path(RSVPS_FILE),
            EventRSVP,
            lambda: EventRSVP(id=new_id(), event_id=event_id, user_id=user_id, created_at=now_iso()),
            match=lambda r: r.event_id == event_id and r.user_id == user_id,
        )
        if created:
            logger.debug("rsvp %s: user %s -> event %s", rsvp.id, user_id, event_id)
        return rsvp, created

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def counts(self) -> dict[str, int]:
        """Number of records in each top-level collection file, plus thread/DM file counts."""
        self.ensure_layout()
        stats = {name.removesuffix(".json"): len(self._read_rows(self._path(name))) for name in COLLECTION_FILES}
        stats["itemThreads"] = sum(1 for _ in (self.data_dir / MESSAGES_DIR).glob("*.json"))
        stats["dmThreads"] = sum(1 for _ in (self.data_dir / DMS_DIR).glob("*.json"))
        return stats
