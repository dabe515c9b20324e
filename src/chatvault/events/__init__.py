"""chatvault event bus."""

from chatvault.events.bus import ChatEvent, EventBus, Handler
from chatvault.events.payloads import (
    AssistantPersistedPayload,
    CacheHitPayload,
    ChatCreatedPayload,
    GenerationCompletedPayload,
    GenerationFailedPayload,
    GenerationStartedPayload,
    MessageAppendedPayload,
    PersistenceFailedPayload,
)

__all__ = [
    "AssistantPersistedPayload",
    "CacheHitPayload",
    "ChatCreatedPayload",
    "ChatEvent",
    "EventBus",
    "GenerationCompletedPayload",
    "GenerationFailedPayload",
    "GenerationStartedPayload",
    "Handler",
    "MessageAppendedPayload",
    "PersistenceFailedPayload",
]
