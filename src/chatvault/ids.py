"""Time-ordered identifiers for chats, messages and parts."""

from __future__ import annotations

import uuid

from ulid import ULID


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Args:
        prefix: Short prefix for readability (e.g. ``"msg"``, ``"part"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{ULID()}"


def new_chat_id() -> str:
    """Mint a fresh chat id (a canonical ULID string)."""
    return str(ULID())


def validate_chat_id(value: str) -> str:
    """
    Check that *value* is a time-ordered chat identifier.

    Two formats are accepted: a 26-character ULID, or a version 7 UUID. The
    value is returned normalised (ULIDs upper-cased, UUIDs in lower-case
    hyphenated form).

    Raises:
        ValueError: If the value is neither a ULID nor a UUIDv7.
    """
    if len(value) == 26:
        try:
            return str(ULID.from_str(value.upper()))
        except ValueError:
            pass
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        raise ValueError(f"Invalid chat id format: {value!r}") from None
    if parsed.version != 7:
        raise ValueError(f"Chat id must be a UUIDv7 or ULID, got UUID version {parsed.version}")
    return str(parsed)
