from __future__ import annotations

import json
import re

import pytest

from campusdb.documents import CorruptDocumentError
from campusdb.partition import InvalidIdentityError
from campusdb.store import COLLECTION_FILES, DocumentStore

_ISO_RE = re.compile(r"^\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z$")


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def test_layout_created(data_dir):
    DocumentStore(data_dir)
    for name in COLLECTION_FILES:
        assert json.loads((data_dir / name).read_text()) == []
    assert (data_dir / "messages").is_dir()
    assert (data_dir / "dms").is_dir()


def test_ensure_layout_is_idempotent_and_preserves_data(store, data_dir):
    user = store.create_user("Ana")
    store.ensure_layout()
    store.ensure_layout()
    assert [u.id for u in DocumentStore(data_dir).list_users()] == [user.id]


def test_missing_collection_file_reads_empty(store, data_dir):
    (data_dir / "items.json").unlink()
    # ensure_layout recreates it lazily on the next call
    assert store.get_all_items() == []
    assert (data_dir / "items.json").exists()


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def test_items_newest_first(store):
    i1 = store.add_item("Lamp", "Desk lamp", 10, "ana")
    i2 = store.add_item("Chair", "Office chair", 25.5, "bo", image_url="https://img/chair.png")
    assert [it.id for it in store.get_all_items()] == [i2.id, i1.id]
    assert store.get_item(i2.id) == i2
    assert store.get_item("missing") is None


def test_item_fields(store, data_dir):
    item = store.add_item("Lamp", "Desk lamp", 10, "ana")
    assert _ISO_RE.match(item.created_at)
    assert item.image_url is None
    row = json.loads((data_dir / "items.json").read_text())[0]
    assert row == {
        "id": item.id,
        "createdAt": item.created_at,
        "title": "Lamp",
        "description": "Desk lamp",
        "price": 10,
        "seller": "ana",
    }


def test_ids_are_unique(store):
    ids = {store.add_item(f"t{i}", "d", i, "s").id for i in range(20)}
    assert len(ids) == 20


# ---------------------------------------------------------------------------
# Item threads
# ---------------------------------------------------------------------------


def test_messages_append_order(store, data_dir):
    item = store.add_item("Lamp", "Desk lamp", 10, "ana")
    m1 = store.add_message(item.id, "bo", "still available?")
    m2 = store.add_message(item.id, "ana", "yes")
    assert store.get_messages(item.id) == [m1, m2]
    assert (data_dir / "messages" / f"{item.id}.json").exists()


def test_threads_are_partitioned_by_item(store):
    a = store.add_item("A", "a", 1, "s")
    b = store.add_item("B", "b", 2, "s")
    store.add_message(a.id, "x", "hi a")
    assert store.get_messages(b.id) == []
    assert [m.item_id for m in store.get_messages(a.id)] == [a.id]


def test_unknown_scopes_are_empty(store):
    assert store.get_messages("nonexistent-item") == []
    assert store.list_rsvps("nonexistent-event") == []
    assert store.list_friends("nobody") == []


def test_thread_rejects_path_like_item_id(store):
    with pytest.raises(InvalidIdentityError):
        store.get_messages("../users")
    with pytest.raises(InvalidIdentityError):
        store.add_message("", "x", "y")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_create_user_idempotent(store):
    first = store.create_user("Bob")
    assert store.create_user("Bob") == first
    assert store.create_user("BOB") == first
    assert store.create_user("bob").name == "Bob"
    assert len(store.list_users()) == 1


def test_get_and_search_users(store):
    ana = store.create_user("Ana Lopez")
    bo = store.create_user("Bo")
    assert store.get_user(bo.id) == bo
    assert store.get_user("nope") is None
    assert store.search_users("LOP") == [ana]
    assert store.search_users("") == [ana, bo]


# ---------------------------------------------------------------------------
# Friends
# ---------------------------------------------------------------------------


def test_add_friend_idempotent(store):
    u = store.create_user("u")
    f = store.create_user("f")
    edge = store.add_friend(u.id, f.id)
    assert store.add_friend(u.id, f.id) == edge
    assert store.list_friends(u.id) == [f]


def test_friendship_is_directional(store):
    u = store.create_user("u")
    f = store.create_user("f")
    store.add_friend(u.id, f.id)
    assert store.list_friends(f.id) == []
    store.add_friend(f.id, u.id)
    assert store.list_friends(f.id) == [u]


def test_list_friends_ignores_unknown_user_ids(store):
    u = store.create_user("u")
    store.add_friend(u.id, "ghost")
    assert store.list_friends(u.id) == []


# ---------------------------------------------------------------------------
# Public chat / DMs
# ---------------------------------------------------------------------------


def test_public_chat_append_order(store):
    m1 = store.post_public_chat("ana", "hello")
    m2 = store.post_public_chat("bo", "hey")
    assert store.list_public_chat() == [m1, m2]


def test_dm_symmetric(store, data_dir):
    a = store.create_user("a").id
    b = store.create_user("b").id
    assert store.list_dm(a, b) == store.list_dm(b, a) == []
    m1 = store.post_dm(a, b, "hi")
    assert store.list_dm(a, b) == store.list_dm(b, a) == [m1]
    m2 = store.post_dm(b, a, "hello back")
    assert store.list_dm(a, b) == store.list_dm(b, a) == [m1, m2]
    assert (m2.sender, m2.recipient) == (b, a)
    x, y = sorted((a, b))
    rows = json.loads((data_dir / "dms" / f"{x}__{y}.json").read_text())
    assert rows[0]["from"] == a
    assert rows[0]["to"] == b


def test_dm_pairs_are_isolated(store):
    store.post_dm("a", "b", "ab")
    assert store.list_dm("a", "c") == []


def test_dm_rejects_separator(store):
    with pytest.raises(InvalidIdentityError):
        store.post_dm("a__b", "c", "x")


# ---------------------------------------------------------------------------
# Events / RSVPs
# ---------------------------------------------------------------------------


def test_events_newest_first(store):
    e1 = store.create_event("Fair", "Club fair", "2026-09-01T10:00", "Quad", "SGA")
    e2 = store.create_event("Movie", "Outdoor movie", "2026-09-02T20:00", "Lawn", "Film club")
    assert [e.id for e in store.list_events()] == [e2.id, e1.id]
    assert store.get_event(e1.id) == e1
    assert store.get_event("missing") is None


def test_create_rsvp_idempotent(store):
    e = store.create_event("Fair", "d", "2026-09-01", "Quad", "SGA")
    u = store.create_user("u")
    r1 = store.create_rsvp(e.id, u.id)
    r2 = store.create_rsvp(e.id, u.id)
    assert r1.id == r2.id
    assert [r.user_id for r in store.list_rsvps(e.id)] == [u.id]
    assert store.user_has_rsvp(e.id, u.id)
    assert not store.user_has_rsvp(e.id, "other")


def test_insert_rsvp_reports_creation(store):
    first, created = store.insert_rsvp("e1", "u1")
    assert created is True
    again, created = store.insert_rsvp("e1", "u1")
    assert created is False
    assert again == first
    assert store.create_rsvp("e1", "u1") == first


def test_rsvps_scoped_by_event(store):
    store.create_rsvp("e1", "u1")
    store.create_rsvp("e2", "u1")
    store.create_rsvp("e1", "u2")
    assert [r.user_id for r in store.list_rsvps("e1")] == ["u1", "u2"]
    assert [r.event_id for r in store.list_rsvps("e2")] == ["e2"]


# ---------------------------------------------------------------------------
# Corruption
# ---------------------------------------------------------------------------


def test_corrupt_file_is_reported_not_emptied(store, data_dir):
    store.create_user("Ana")
    path = data_dir / "users.json"
    path.write_text('[{"id": "1", "name": "Ana"')
    with pytest.raises(CorruptDocumentError):
        store.list_users()
    with pytest.raises(CorruptDocumentError):
        store.create_user("Bo")
    # nothing was overwritten
    assert path.read_text() == '[{"id": "1", "name": "Ana"'


def test_non_array_document_is_corrupt(store, data_dir):
    (data_dir / "events.json").write_text('{"id": "x"}')
    with pytest.raises(CorruptDocumentError, match="JSON array"):
        store.list_events()


def test_malformed_record_is_corrupt(store, data_dir):
    (data_dir / "rsvps.json").write_text('[{"eventId": "e"}]')
    with pytest.raises(CorruptDocumentError, match="EventRSVP"):
        store.list_rsvps("e")


def test_non_string_user_name_is_corrupt(store, data_dir):
    (data_dir / "users.json").write_text('[{"id": "1", "name": 42}]')
    with pytest.raises(CorruptDocumentError, match="User"):
        store.create_user("x")
    with pytest.raises(CorruptDocumentError):
        store.search_users("x")
    assert (data_dir / "users.json").read_text() == '[{"id": "1", "name": 42}]'


def test_non_string_edge_is_corrupt(store, data_dir):
    (data_dir / "friends.json").write_text('[{"user": ["a"], "friend": "b"}]')
    with pytest.raises(CorruptDocumentError, match="Friend"):
        store.add_friend("a", "b")


def test_unknown_fields_survive_rewrite(store, data_dir):
    path = data_dir / "items.json"
    path.write_text(json.dumps([{
        "id": "old", "createdAt": "2024-01-01T00:00:00.000Z", "title": "t",
        "description": "d", "price": 1, "seller": "s", "legacy": True,
    }]))
    store.add_item("new", "d", 2, "s")
    rows = json.loads(path.read_text())
    assert rows[1]["legacy"] is True


def test_counts(store):
    item = store.add_item("Lamp", "d", 1, "s")
    store.add_message(item.id, "x", "y")
    store.create_user("u")
    store.post_dm("a", "b", "hi")
    counts = store.counts()
    assert counts["items"] == 1
    assert counts["users"] == 1
    assert counts["rsvps"] == 0
    assert counts["itemThreads"] == 1
    assert counts["dmThreads"] == 1
