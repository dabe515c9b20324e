"""Typed payloads for each :class:`~chatvault.events.bus.ChatEvent`.

Usage example::

    from chatvault.events.bus import ChatEvent
    from chatvault.events.payloads import AssistantPersistedPayload

    def on_persisted(event: ChatEvent, payload: AssistantPersistedPayload) -> None:
        print(f"{payload['part_count']} parts stored for {payload['message_id']}")

    bus.subscribe(ChatEvent.ASSISTANT_PERSISTED, on_persisted)  # type: ignore[arg-type]
"""

from __future__ import annotations

from typing import TypedDict

# ── Chat and message lifecycle ────────────────────────────────────────────────


class ChatCreatedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.CHAT_CREATED`."""

    chat_id: str
    user_id: str
    message_count: int
    """Messages written together with the chat row."""


class MessageAppendedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.MESSAGE_APPENDED`."""

    chat_id: str
    message_id: str
    role: str
    """``"user"`` or ``"assistant"``."""


# ── Generation ────────────────────────────────────────────────────────────────


class GenerationStartedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.GENERATION_STARTED`."""

    chat_id: str
    message_id: str


class GenerationCompletedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.GENERATION_COMPLETED`."""

    chat_id: str
    message_id: str
    finish_reason: str | None
    cached: bool
    """True when the response was replayed from the cache."""


class GenerationFailedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.GENERATION_FAILED`."""

    chat_id: str
    message_id: str
    error: str


# ── Persistence ───────────────────────────────────────────────────────────────


class AssistantPersistedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.ASSISTANT_PERSISTED`."""

    chat_id: str
    message_id: str
    part_count: int


class PersistenceFailedPayload(TypedDict):
    """Payload for :attr:`ChatEvent.PERSISTENCE_FAILED`."""

    chat_id: str
    message_id: str
    error: str


# ── Cache ─────────────────────────────────────────────────────────────────────


class CacheHitPayload(TypedDict):
    """Payload for :attr:`ChatEvent.CACHE_HIT`."""

    chat_id: str
    cache_key: str
