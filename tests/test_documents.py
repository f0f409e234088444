from __future__ import annotations

import json
import threading
import time

import pytest

from campusdb import documents
from campusdb.documents import (
    CorruptDocumentError,
    create_if_absent,
    lock_path_for,
    locked,
    read_document,
    write_document,
)


def test_read_missing_returns_fallback(tmp_path):
    assert read_document(tmp_path / "nope.json", []) == []
    sentinel = object()
    assert read_document(tmp_path / "nope.json", sentinel) is sentinel


def test_read_corrupt_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[{not json")
    with pytest.raises(CorruptDocumentError) as exc_info:
        read_document(path, [])
    assert exc_info.value.path == path


def test_read_invalid_utf8_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_bytes(b"\xff\xfe[]")
    with pytest.raises(CorruptDocumentError):
        read_document(path, [])


def test_write_creates_parents_and_pretty_prints(tmp_path):
    path = tmp_path / "a" / "b" / "doc.json"
    write_document(path, [{"id": "1"}])
    assert path.read_text() == json.dumps([{"id": "1"}], indent=2)
    assert not path.with_name("doc.json.tmp").exists()


def test_write_replaces_whole_file(tmp_path):
    path = tmp_path / "doc.json"
    write_document(path, [1, 2, 3, 4, 5, 6, 7, 8])
    write_document(path, [1], fsync=True)
    assert read_document(path, None) == [1]


def test_write_keeps_non_ascii(tmp_path):
    path = tmp_path / "doc.json"
    write_document(path, [{"text": "café ☕"}])
    assert "café ☕" in path.read_text(encoding="utf-8")


def test_create_if_absent_never_overwrites(tmp_path):
    path = tmp_path / "doc.json"
    assert create_if_absent(path, []) is True
    write_document(path, [{"id": "kept"}])
    assert create_if_absent(path, []) is False
    assert read_document(path, None) == [{"id": "kept"}]
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


def test_lock_path_mirrors_relative_path(tmp_path):
    data = tmp_path / "data"
    lock = lock_path_for(data / "dms" / "a__b.json", data, data / ".locks")
    assert lock == data / ".locks" / "dms" / "a__b.json.lock"


def test_locked_can_be_reacquired(tmp_path):
    path = tmp_path / "doc.json"
    lock_file = tmp_path / ".locks" / "doc.json.lock"
    with locked(path, lock_file):
        write_document(path, [1])
    with locked(path, lock_file):
        assert read_document(path, []) == [1]
    assert lock_file.exists()


def test_thread_locks_are_released_after_use(tmp_path):
    lock_dir = tmp_path / ".locks"
    paths = [tmp_path / f"doc{i}.json" for i in range(20)]
    for path in paths:
        with locked(path, lock_dir / (path.name + ".lock")):
            assert str(path.resolve()) in documents._thread_locks
    assert not any(str(p.resolve()) in documents._thread_locks for p in paths)


def test_thread_lock_kept_while_another_thread_waits(tmp_path):
    path = tmp_path / "doc.json"
    lock_file = tmp_path / ".locks" / "doc.json.lock"
    key = str(path.resolve())
    entered = threading.Event()
    order = []

    def second():
        entered.set()
        with locked(path, lock_file):
            order.append("second")

    with locked(path, lock_file):
        t = threading.Thread(target=second)
        t.start()
        entered.wait(5)
        # the waiter's reference keeps the entry (and the same lock) alive
        while documents._thread_locks[key][1] < 2:
            time.sleep(0.001)
        order.append("first")
    t.join(5)
    assert order == ["first", "second"]
    assert key not in documents._thread_locks
