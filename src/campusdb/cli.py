"""campus CLI — marketplace document store backed by JSON files.

Commands:
    campus init                      create campus.toml + data/ layout
    campus status                    collection counts
    campus serve                     start the JSON HTTP API
    campus users add NAME            create (or fetch) a user
    campus items add TITLE ...       create a listing
    campus messages post ITEM ...    post to an item thread
    campus friends add USER FRIEND   add a directed friend edge
    campus chat post SENDER TEXT     post to public chat
    campus dm send FROM TO TEXT      send a direct message
    campus events add TITLE ...      create an event
    campus rsvp add EVENT USER       RSVP a user to an event
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click

from campusdb.config import CampusConfig, init_config, load_config
from campusdb.documents import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from campusdb.store import DocumentStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> CampusConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


@contextlib.contextmanager
def _store() -> Iterator[DocumentStore]:
    """Open the configured store; store errors become a clean CLI error."""
    cfg = _load_cfg()
    try:
        yield cfg.open_store()
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc


def _print_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    from rich.console import Console
    from rich.table import Table

    table = Table(title=title, show_header=True, header_style="bold")
    for i, col in enumerate(columns):
        table.add_column(col, style="dim" if i == 0 else None, no_wrap=i == 0)
    for row in rows:
        table.add_row(*row)
    Console().print(table)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="campusdb")
def cli() -> None:
    """campus — college marketplace document store."""


# ---------------------------------------------------------------------------
# campus init / status / serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(root: str) -> None:
    """Create campus.toml and the data/ layout in the current project."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("campus.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.open_store()
    click.echo(f"Data dir : {cfg.data_dir}")


@cli.command()
def status() -> None:
    """Show record counts per collection."""
    with _store() as store:
        counts = store.counts()
        data_dir = store.data_dir
    _print_table(
        f"campus — {data_dir}",
        ["Collection", "Records"],
        [[name, str(n)] for name, n in counts.items()],
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default from campus.toml)")
@click.option("--port", default=None, type=int, help="Port (default from campus.toml)")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def serve(host: str | None, port: int | None, verbose: bool) -> None:
    """Start the JSON HTTP API (blocking until Ctrl+C)."""
    from campusdb.web import serve as _serve

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
    )
    cfg = _load_cfg()
    _serve(cfg.open_store(), host or cfg.server.host, port if port is not None else cfg.server.port)


# ---------------------------------------------------------------------------
# campus users
# ---------------------------------------------------------------------------


@cli.group()
def users() -> None:
    """Create and list users."""


@users.command("add")
@click.argument("name")
def users_add(name: str) -> None:
    """Create a user (returns the existing one on a case-insensitive name match)."""
    with _store() as store:
        user = store.create_user(name)
    click.echo(user.id)


@users.command("list")
@click.option("-q", "--query", default="", help="Case-insensitive name filter")
def users_list(query: str) -> None:
    """List users."""
    with _store() as store:
        found = store.search_users(query)
    _print_table("Users", ["ID", "Name", "Created"], [[u.id, u.name, u.created_at] for u in found])


# ---------------------------------------------------------------------------
# campus items / messages
# ---------------------------------------------------------------------------


@cli.group()
def items() -> None:
    """Marketplace listings."""


@items.command("add")
@click.argument("title")
@click.option("--description", "-d", required=True)
@click.option("--price", "-p", required=True, type=float)
@click.option("--seller", "-s", required=True)
@click.option("--image-url", default=None)
def items_add(title: str, description: str, price: float, seller: str, image_url: str | None) -> None:
    """Create a listing."""
    with _store() as store:
        item = store.add_item(
            title,
            description,
            int(price) if price.is_integer() else price,
            seller,
            image_url=image_url,
        )
    click.echo(item.id)


@items.command("list")
def items_list() -> None:
    """List listings, newest first."""
    with _store() as store:
        all_items = store.get_all_items()
    _print_table(
        "Items",
        ["ID", "Title", "Price", "Seller"],
        [[it.id, it.title, str(it.price), it.seller] for it in all_items],
    )


@items.command("show")
@click.argument("item_id")
def items_show(item_id: str) -> None:
    """Show a listing and its message thread."""
    with _store() as store:
        item = store.get_item(item_id)
        if item is None:
            raise click.ClickException(f"Item not found: {item_id}")
        thread = store.get_messages(item_id)
    click.echo(f"{item.title}  ({item.price})  by {item.seller}")
    click.echo(f"  {item.description}")
    if item.image_url:
        click.echo(f"  {item.image_url}")
    for msg in thread:
        click.echo(f"  [{msg.created_at}] {msg.sender}: {msg.text}")


@cli.group()
def messages() -> None:
    """Item message threads."""


@messages.command("post")
@click.argument("item_id")
@click.argument("sender")
@click.argument("text")
def messages_post(item_id: str, sender: str, text: str) -> None:
    """Post a message to an item's thread."""
    with _store() as store:
        if store.get_item(item_id) is None:
            raise click.ClickException(f"Item not found: {item_id}")
        msg = store.add_message(item_id, sender, text)
    click.echo(msg.id)


@messages.command("list")
@click.argument("item_id")
def messages_list(item_id: str) -> None:
    """List an item's thread, oldest first."""
    with _store() as store:
        thread = store.get_messages(item_id)
    for msg in thread:
        click.echo(f"[{msg.created_at}] {msg.sender}: {msg.text}")


# ---------------------------------------------------------------------------
# campus friends
# ---------------------------------------------------------------------------


@cli.group()
def friends() -> None:
    """Directed friend edges."""


@friends.command("add")
@click.argument("user_id")
@click.argument("friend_id")
def friends_add(user_id: str, friend_id: str) -> None:
    """Add USER_ID -> FRIEND_ID (no-op if present)."""
    with _store() as store:
        known = {u.id for u in store.list_users()}
        missing = [uid for uid in (user_id, friend_id) if uid not in known]
        if missing:
            raise click.ClickException(f"Unknown user(s): {', '.join(missing)}")
        store.add_friend(user_id, friend_id)
    click.echo(f"{user_id} -> {friend_id}")


@friends.command("list")
@click.argument("user_id")
def friends_list(user_id: str) -> None:
    """List users USER_ID has added as friends."""
    with _store() as store:
        found = store.list_friends(user_id)
    _print_table("Friends", ["ID", "Name"], [[u.id, u.name] for u in found])


# ---------------------------------------------------------------------------
# campus chat / dm
# ---------------------------------------------------------------------------


@cli.group()
def chat() -> None:
    """Public chat."""


@chat.command("post")
@click.argument("sender")
@click.argument("text")
def chat_post(sender: str, text: str) -> None:
    with _store() as store:
        msg = store.post_public_chat(sender, text)
    click.echo(msg.id)


@chat.command("list")
def chat_list() -> None:
    with _store() as store:
        log = store.list_public_chat()
    for msg in log:
        click.echo(f"[{msg.created_at}] {msg.sender}: {msg.text}")


@cli.group()
def dm() -> None:
    """Direct messages between two users."""


@dm.command("send")
@click.argument("sender")
@click.argument("recipient")
@click.argument("text")
def dm_send(sender: str, recipient: str, text: str) -> None:
    with _store() as store:
        msg = store.post_dm(sender, recipient, text)
    click.echo(msg.id)


@dm.command("list")
@click.argument("a")
@click.argument("b")
def dm_list(a: str, b: str) -> None:
    """Show the conversation between A and B (either order)."""
    with _store() as store:
        conversation = store.list_dm(a, b)
    for msg in conversation:
        click.echo(f"[{msg.created_at}] {msg.sender} -> {msg.recipient}: {msg.text}")


# ---------------------------------------------------------------------------
# campus events / rsvp
# ---------------------------------------------------------------------------


@cli.group()
def events() -> None:
    """Campus events."""


@events.command("add")
@click.argument("title")
@click.option("--description", "-d", required=True)
@click.option("--date", required=True, help="ISO date/time")
@click.option("--location", "-l", required=True)
@click.option("--organizer", "-o", required=True)
def events_add(title: str, description: str, date: str, location: str, organizer: str) -> None:
    """Create an event."""
    with _store() as store:
        event = store.create_event(title, description, date, location, organizer)
    click.echo(event.id)


@events.command("list")
def events_list() -> None:
    """List events, newest first."""
    with _store() as store:
        found = store.list_events()
    _print_table(
        "Events",
        ["ID", "Title", "Date", "Location", "Organizer"],
        [[e.id, e.title, e.date, e.location, e.organizer] for e in found],
    )


@events.command("show")
@click.argument("event_id")
def events_show(event_id: str) -> None:
    """Show an event and its RSVP count."""
    with _store() as store:
        event = store.get_event(event_id)
        if event is None:
            raise click.ClickException(f"Event not found: {event_id}")
        n = len(store.list_rsvps(event_id))
    click.echo(f"{event.title}  @ {event.location}  {event.date}")
    click.echo(f"  {event.description}")
    click.echo(f"  organized by {event.organizer} — {n} going")


@cli.group()
def rsvp() -> None:
    """Event RSVPs."""


@rsvp.command("add")
@click.argument("event_id")
@click.argument("user_id")
def rsvp_add(event_id: str, user_id: str) -> None:
    """RSVP USER_ID to EVENT_ID (idempotent)."""
    with _store() as store:
        if store.get_event(event_id) is None:
            raise click.ClickException(f"Event not found: {event_id}")
        if store.get_user(user_id) is None:
            raise click.ClickException(f"Unknown user: {user_id}")
        record = store.create_rsvp(event_id, user_id)
    click.echo(record.id)


@rsvp.command("list")
@click.argument("event_id")
def rsvp_list(event_id: str) -> None:
    with _store() as store:
        found = store.list_rsvps(event_id)
    _print_table("RSVPs", ["User", "Created"], [[r.user_id, r.created_at] for r in found])
