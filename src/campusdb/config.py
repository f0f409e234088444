"""CampusConfig: project-local config for the marketplace document store.

Default layout (all relative to the project root):

    campus.toml           # project config
    .env                  # optional: CAMPUS_DATA_DIR override
    data/                 # collection files (see campusdb.store)

campus.toml example:

    [store]
    data_dir = "data"
    indent = 2          # JSON pretty-print indent (0 = compact)
    fsync = false       # fsync each write before the rename

    [server]
    host = "127.0.0.1"
    port = 7350
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from campusdb.store import DocumentStore

_CONFIG_FILENAME = "campus.toml"
_DEFAULT_DATA_DIR = "data"
_DATA_DIR_ENV = "CAMPUS_DATA_DIR"


@dataclass
class StoreConfig:
    indent: int = 2
    fsync: bool = False


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 7350


@dataclass
class CampusConfig:
    """Resolved configuration for a marketplace project."""

    root: Path                      # directory that contains campus.toml
    data_dir: Path = field(default_factory=Path)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def open_store(self) -> DocumentStore:
        """Return a DocumentStore for data_dir (creates the layout)."""
        from campusdb.store import DocumentStore

        return DocumentStore(
            self.data_dir,
            indent=self.store.indent or None,
            fsync=self.store.fsync,
        )


def _dotenv_value(root: Path, key: str) -> str | None:
    """Value of key in root/.env, or None.

    Accepts ``KEY=value`` and ``export KEY=value`` lines; one pair of matching
    surrounding quotes is removed.  Later assignments win.
    """
    env_file = root / ".env"
    if not env_file.is_file():
        return None
    value = None
    for raw in env_file.read_text(encoding="utf-8").splitlines():
        name, sep, rest = raw.strip().removeprefix("export ").partition("=")
        if not sep or name.strip() != key:
            continue
        rest = rest.strip()
        if len(rest) >= 2 and rest[0] == rest[-1] and rest[0] in "\"'":
            rest = rest[1:-1]
        value = rest
    return value


def load_config(root: Path | str | None = None) -> CampusConfig:
    """Load campus.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    store_section = raw.get("store", {})
    srv_section = raw.get("server", {})

    # Process environment beats .env beats campus.toml
    data_rel = (
        os.environ.get(_DATA_DIR_ENV)
        or _dotenv_value(root_path, _DATA_DIR_ENV)
        or str(store_section.get("data_dir", _DEFAULT_DATA_DIR))
    )

    return CampusConfig(
        root=root_path,
        data_dir=root_path / data_rel,
        store=StoreConfig(
            indent=int(store_section.get("indent", 2)),
            fsync=bool(store_section.get("fsync", False)),
        ),
        server=ServerConfig(
            host=str(srv_section.get("host", "127.0.0.1")),
            port=int(srv_section.get("port", 7350)),
        ),
    )


def _find_root(start: Path) -> Path:
    """Nearest directory at or above start holding campus.toml (start if none)."""
    return next((d for d in (start, *start.parents) if (d / _CONFIG_FILENAME).is_file()), start)


def init_config(root: Path) -> Path:
    """Write a default campus.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"campus.toml already exists at {config_path}"
        raise FileExistsError(msg)

    content = """\
[store]
data_dir = "data"
# indent = 2          # JSON pretty-print indent (0 = compact)
# fsync = false       # fsync each write before the rename

[server]
# host = "127.0.0.1"
# port = 7350
"""
    config_path.write_text(content)
    return config_path
