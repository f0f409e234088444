"""JSON document I/O: whole-file reads, atomic replace writes, per-file locks.

A document is one UTF-8 JSON file holding a whole collection.  Writers replace
the file via tmp + rename, so an unlocked reader sees either the old or the
new content, never a torn write.  Read-modify-write sequences must hold
``locked(path)`` for the whole cycle:

    with locked(path, lock_path_for(path, data_dir, lock_dir)):
        rows = read_document(path, [])
        rows.append(row)
        write_document(path, rows)

Locking is two-level: a ``threading.Lock`` per document (threads of this
process) and ``flock(LOCK_EX)`` on a sidecar lock file (other processes).
Lock files live under ``lock_dir`` so the data directory keeps its layout.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("campusdb.documents")

_registry_lock = threading.Lock()
# key -> [lock, holders]; an entry is dropped once nobody holds or waits on it
_thread_locks: dict[str, list[Any]] = {}


class StoreError(Exception):
    """Base class for document store errors."""


class CorruptDocumentError(StoreError):
    """A document exists but cannot be parsed into the expected shape."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"corrupt document {path}: {reason}")


def read_document(path: Path, fallback: Any) -> Any:
    """Return the parsed JSON in path, or fallback if the file does not exist.

    A file that exists but is not valid UTF-8 JSON raises CorruptDocumentError.
    Other OSErrors (permissions, EIO) propagate.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return fallback
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("unreadable document %s: %s", path, exc)
        raise CorruptDocumentError(path, str(exc)) from exc


def write_document(path: Path, value: Any, *, indent: int | None = 2, fsync: bool = False) -> None:
    """Serialize value as JSON and replace path with it.

    Parent directories are created as needed.  Callers doing read-modify-write
    must hold locked(path) so the fixed tmp name is not shared.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(value, f, indent=indent, ensure_ascii=False)
        if fsync:
            f.flush()
            os.fsync(f.fileno())
    tmp.replace(path)


def create_if_absent(path: Path, value: Any, *, indent: int | None = 2) -> bool:
    """Create path holding value unless it already exists.  Returns True if created.

    The content is written to a private temp file and hard-linked into place,
    so readers never see an empty file and an existing file is never replaced.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.init")
    try:
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(value, f, indent=indent)
        os.link(tmp, path)
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)
    return True


def _acquire_entry(key: str) -> threading.Lock:
    with _registry_lock:
        entry = _thread_locks.get(key)
        if entry is None:
            entry = _thread_locks[key] = [threading.Lock(), 0]
        entry[1] += 1
        return entry[0]


def _release_entry(key: str) -> None:
    with _registry_lock:
        entry = _thread_locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _thread_locks[key]


def lock_path_for(path: Path, data_dir: Path, lock_dir: Path) -> Path:
    """Sidecar lock file for a document: <lock_dir>/<path relative to data_dir>.lock."""
    rel = path.relative_to(data_dir)
    return lock_dir / rel.with_name(rel.name + ".lock")


@contextlib.contextmanager
def locked(path: Path, lock_file: Path) -> Iterator[None]:
    """Hold the exclusive lock for document path (threads and processes)."""
    key = str(path.resolve())
    tlock = _acquire_entry(key)
    try:
        with tlock:
            lock_file.parent.mkdir(parents=True, exist_ok=True)
            with lock_file.open("a") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)
    finally:
        _release_entry(key)
