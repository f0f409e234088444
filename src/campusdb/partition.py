"""File names derived from identities: item threads and DM pair partitions."""

from __future__ import annotations

from campusdb.documents import StoreError

SEPARATOR = "__"

_FORBIDDEN = ("/", "\\", "\x00")


class InvalidIdentityError(StoreError, ValueError):
    """An identity cannot be used as (part of) a file name."""


def check_identity(value: str, what: str = "id") -> str:
    """Return value if it is safe as a file-name component, else raise.

    Rejects empty strings, ``.``/``..``, path separators, NUL, and the
    DM separator (so a partition key always splits back into its two parts).
    """
    if not isinstance(value, str) or not value:
        msg = f"{what} must be a non-empty string"
        raise InvalidIdentityError(msg)
    if value in (".", ".."):
        msg = f"{what} may not be {value!r}"
        raise InvalidIdentityError(msg)
    for ch in _FORBIDDEN:
        if ch in value:
            msg = f"{what} may not contain {ch!r}: {value!r}"
            raise InvalidIdentityError(msg)
    if SEPARATOR in value:
        msg = f"{what} may not contain {SEPARATOR!r}: {value!r}"
        raise InvalidIdentityError(msg)
    return value


def dm_partition_key(a: str, b: str) -> str:
    """Canonical base name for the conversation between a and b.

    Order-independent: dm_partition_key(a, b) == dm_partition_key(b, a).
    """
    x, y = sorted((check_identity(a, "user id"), check_identity(b, "user id")))
    return f"{x}{SEPARATOR}{y}"
