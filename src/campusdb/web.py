"""JSON HTTP API over the document store.

Routes:
    GET  /api/items                  → all items, newest first
    POST /api/items                  → create item
    GET  /api/items/<id>             → one item
    GET  /api/items/<id>/messages    → item thread
    POST /api/items/<id>/messages    → post to item thread
    GET  /api/users?q=...            → users (optional name filter)
    POST /api/users                  → create (or fetch) user by name
    GET  /api/friends?userId=...     → outgoing friends
    POST /api/friends                → add friend edge
    GET  /api/chat/public            → public chat log
    POST /api/chat/public            → post to public chat
    GET  /api/chat/dm?a=...&b=...    → DM conversation
    POST /api/chat/dm                → send DM
    GET  /api/events                 → all events, newest first
    POST /api/events                 → create event
    GET  /api/events/<id>            → one event
    GET  /api/events/<id>/rsvp       → RSVPs of an event
    POST /api/events/<id>/rsvp       → RSVP (idempotent)

Every request runs on its own thread; the store serializes writers per file.
"""

from __future__ import annotations

import json
import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any

from campusdb.documents import CorruptDocumentError
from campusdb.partition import InvalidIdentityError

if TYPE_CHECKING:
    from campusdb.store import DocumentStore

logger = logging.getLogger("campusdb.web")

_ITEM_RE = re.compile(r"^/api/items/([^/]+)$")
_ITEM_MESSAGES_RE = re.compile(r"^/api/items/([^/]+)/messages$")
_EVENT_RE = re.compile(r"^/api/events/([^/]+)$")
_EVENT_RSVP_RE = re.compile(r"^/api/events/([^/]+)/rsvp$")


class _BadRequest(Exception):
    """Client error: rendered as 400 {"error": message}."""


def _record(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, list):
        return [_record(o) for o in obj]
    return obj


def _require(body: dict[str, Any], *names: str, message: str = "Missing fields") -> list[str]:
    """Non-empty string values for names, in order."""
    values = [body.get(n) for n in names]
    if any(v is None or v == "" for v in values):
        raise _BadRequest(message)
    bad = [n for n, v in zip(names, values, strict=True) if not isinstance(v, str)]
    if bad:
        raise _BadRequest(f"Invalid {bad[0]}")
    return values


def _coerce_price(value: Any) -> int | float:
    """Numeric price; integral values stay integers ("15" → 15, 15.5 → 15.5)."""
    if isinstance(value, bool):
        raise _BadRequest("Invalid price")
    try:
        price = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise _BadRequest("Invalid price") from exc
    if price != price or price in (float("inf"), float("-inf")):
        raise _BadRequest("Invalid price")
    return int(price) if price.is_integer() else price


# ─── HTTP handler ─────────────────────────────────────────────────────────────

class _Handler(BaseHTTPRequestHandler):
    store: DocumentStore  # injected via make_server()
    _raw_body: bytes = b""

    def do_GET(self) -> None:
        self._dispatch("GET")

    def do_POST(self) -> None:
        self._dispatch("POST")

    def _dispatch(self, method: str) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        qs = urllib.parse.parse_qs(parsed.query)
        length = int(self.headers.get("Content-Length") or 0)
        self._raw_body = self.rfile.read(length) if length else b""
        try:
            self._route(method, path, qs)
        except _BadRequest as exc:
            self._json({"error": str(exc)}, 400)
        except InvalidIdentityError as exc:
            self._json({"error": str(exc)}, 400)
        except (CorruptDocumentError, OSError):
            logger.exception("%s %s failed", method, self.path)
            self._json({"error": "Storage error"}, 500)

    def _route(self, method: str, path: str, qs: dict[str, list[str]]) -> None:
        s = self.store
        if path == "/api/items":
            if method == "GET":
                self._json(_record(s.get_all_items()))
            else:
                self._create_item(self._body())
        elif m := _ITEM_MESSAGES_RE.match(path):
            item_id = urllib.parse.unquote(m.group(1))
            if s.get_item(item_id) is None:
                self._json({"error": "Item not found"}, 404)
            elif method == "GET":
                self._json(_record(s.get_messages(item_id)))
            else:
                sender, text = _require(self._body(), "sender", "text", message="Missing sender or text")
                self._json(_record(s.add_message(item_id, sender, text)), 201)
        elif (m := _ITEM_RE.match(path)) and method == "GET":
            item = s.get_item(urllib.parse.unquote(m.group(1)))
            if item is None:
                self._json({"error": "Not found"}, 404)
            else:
                self._json(item.to_dict())
        elif path == "/api/users":
            if method == "GET":
                self._json(_record(s.search_users(qs.get("q", [""])[0])))
            else:
                (name,) = _require(self._body(), "name", message="Missing name")
                self._json(s.create_user(name).to_dict(), 201)
        elif path == "/api/friends":
            self._friends(method, qs)
        elif path == "/api/chat/public":
            if method == "GET":
                self._json(_record(s.list_public_chat()))
            else:
                sender, text = _require(self._body(), "sender", "text", message="Missing sender or text")
                self._json(s.post_public_chat(sender, text).to_dict(), 201)
        elif path == "/api/chat/dm":
            self._dm(method, qs)
        elif path == "/api/events":
            if method == "GET":
                self._json(_record(s.list_events()))
            else:
                fields = _require(self._body(), "title", "description", "date", "location", "organizer")
                self._json(s.create_event(*fields).to_dict(), 201)
        elif m := _EVENT_RSVP_RE.match(path):
            self._rsvp(method, urllib.parse.unquote(m.group(1)))
        elif (m := _EVENT_RE.match(path)) and method == "GET":
            event = s.get_event(urllib.parse.unquote(m.group(1)))
            if event is None:
                self._json({"error": "Not found"}, 404)
            else:
                self._json(event.to_dict())
        else:
            self._json({"error": "Not found"}, 404)

    def _create_item(self, body: dict[str, Any]) -> None:
        title, description, seller = _require(
            body, "title", "description", "seller", message="Missing required fields"
        )
        if body.get("price") is None:
            raise _BadRequest("Missing required fields")
        image_url = body.get("imageUrl") or None
        if image_url is not None and not isinstance(image_url, str):
            raise _BadRequest("Invalid imageUrl")
        item = self.store.add_item(
            title=title,
            description=description,
            price=_coerce_price(body["price"]),
            seller=seller,
            image_url=image_url,
        )
        self._json(item.to_dict(), 201)

    def _friends(self, method: str, qs: dict[str, list[str]]) -> None:
        if method == "GET":
            user_id = qs.get("userId", [""])[0]
            if not user_id:
                raise _BadRequest("Missing userId")
            self._json(_record(self.store.list_friends(user_id)))
            return
        user_id, friend_id = _require(self._body(), "userId", "friendId", message="Missing userId or friendId")
        known = {u.id for u in self.store.list_users()}
        if user_id not in known or friend_id not in known:
            raise _BadRequest("Invalid user(s)")
        self.store.add_friend(user_id, friend_id)
        self._json({"ok": True}, 201)

    def _dm(self, method: str, qs: dict[str, list[str]]) -> None:
        if method == "GET":
            a = qs.get("a", [""])[0]
            b = qs.get("b", [""])[0]
            if not a or not b:
                raise _BadRequest("Missing a or b")
            self._json(_record(self.store.list_dm(a, b)))
            return
        sender, recipient, text = _require(self._body(), "from", "to", "text")
        known = {u.id for u in self.store.list_users()}
        if sender not in known or recipient not in known:
            raise _BadRequest("Invalid user")
        self._json(self.store.post_dm(sender, recipient, text).to_dict(), 201)

    def _rsvp(self, method: str, event_id: str) -> None:
        if self.store.get_event(event_id) is None:
            self._json({"error": "Not found"}, 404)
            return
        if method == "GET":
            self._json(_record(self.store.list_rsvps(event_id)))
            return
        (user_id,) = _require(self._body(), "userId", message="Missing userId")
        if self.store.get_user(user_id) is None:
            raise _BadRequest("Invalid user")
        record, created = self.store.insert_rsvp(event_id, user_id)
        if not created:
            self._json({"ok": True, "duplicate": True})
            return
        self._json(record.to_dict(), 201)

    # ── plumbing ──────────────────────────────────────────────────────────────

    def _body(self) -> dict[str, Any]:
        try:
            body = json.loads(self._raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise _BadRequest("Invalid JSON") from exc
        if not isinstance(body, dict):
            raise _BadRequest("Invalid JSON")
        return body

    def _json(self, payload: Any, status: int = 200) -> None:
        encoded = json.dumps(payload, ensure_ascii=False).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.info("%s - %s", self.address_string(), format % args)


def make_server(store: DocumentStore, host: str, port: int) -> ThreadingHTTPServer:
    """Bind a threading server for store (port 0 picks a free port)."""
    handler = type("CampusHandler", (_Handler,), {"store": store})
    return ThreadingHTTPServer((host, port), handler)


def serve(store: DocumentStore, host: str, port: int) -> None:
    """Start the API server (blocking until Ctrl+C)."""
    server = make_server(store, host, port)
    bound_host, bound_port = server.server_address[:2]
    logger.info("campus api  →  http://%s:%s  (Ctrl+C to stop)", bound_host, bound_port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
