"""File-backed document store for a college marketplace.

Layout (one JSON array per file, under the configured data dir):
    items.json              listings, newest first
    users.json              users (names unique, case-insensitive)
    friends.json            directed friend edges
    publicChat.json         public chat log, oldest first
    events.json             events, newest first
    rsvps.json              event RSVPs (unique per event/user)
    messages/<itemId>.json  item thread, oldest first
    dms/<a>__<b>.json       direct messages for the pair a < b, oldest first

Concurrent writes: every read-modify-write holds a per-file thread lock plus
flock(LOCK_EX) on .locks/<file>.lock; files are replaced via tmp + rename.
"""

from campusdb.config import CampusConfig, init_config, load_config
from campusdb.documents import CorruptDocumentError, StoreError
from campusdb.partition import InvalidIdentityError, dm_partition_key
from campusdb.store import DocumentStore

__all__ = [
    "CampusConfig",
    "CorruptDocumentError",
    "DocumentStore",
    "InvalidIdentityError",
    "StoreError",
    "dm_partition_key",
    "init_config",
    "load_config",
]
