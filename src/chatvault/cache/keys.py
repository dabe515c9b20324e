"""
Deterministic cache keys for a message history.

Two histories produce the same key exactly when, message by message, they
have the same role and the same concatenated text. Message ids, part ids,
non-text parts and key order in the input carry no weight.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

from chatvault.models.message import UIMessage

DEFAULT_KEY_PREFIX = "ai:chat:"


def normalize_message(message: UIMessage | Mapping[str, Any]) -> dict[str, str]:
    """
    Reduce a message to ``{"role", "content"}``.

    ``content`` is the concatenation of the message's text parts in part
    order; a message without text parts has ``content == ""``. Accepts a
    ``UIMessage`` or its wire dict.
    """
    if isinstance(message, UIMessage):
        return {"role": message.role, "content": message.text_content()}

    content = "".join(
        part["text"]
        for part in message.get("parts") or ()
        if isinstance(part, Mapping) and part.get("type") == "text" and "text" in part
    )
    return {"role": str(message.get("role", "")), "content": content}


def canonical_json(value: Any) -> str:
    """Serialise with sorted keys, no insignificant whitespace and raw UTF-8."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_cache_key(
    messages: Sequence[UIMessage | Mapping[str, Any]],
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """
    Return ``prefix + sha256(canonical_json(normalised history))``.

    Example::

        key = derive_cache_key(history)      # "ai:chat:3f0c..."
    """
    normalized = [normalize_message(m) for m in messages]
    digest = hashlib.sha256(canonical_json(normalized).encode("utf-8")).hexdigest()
    return f"{prefix}{digest}"

