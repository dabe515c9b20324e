"""In-process pub/sub for chat lifecycle events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["ChatEvent", dict[str, Any]], None | Awaitable[None]]


class ChatEvent(StrEnum):
    """Events published by :class:`~chatvault.pipeline.ChatPipeline`.

    Payload ``TypedDict`` definitions live in :mod:`chatvault.events.payloads`.

    ``CHAT_CREATED``
        ``chat_id``, ``user_id``, ``message_count``

    ``MESSAGE_APPENDED``
        ``chat_id``, ``message_id``, ``role``

    ``GENERATION_STARTED`` / ``GENERATION_COMPLETED`` / ``GENERATION_FAILED``
        ``chat_id``, ``message_id`` (the assistant message), plus
        ``finish_reason`` on completion and ``error`` on failure.

    ``ASSISTANT_PERSISTED``
        ``chat_id``, ``message_id``, ``part_count``

    ``PERSISTENCE_FAILED``
        ``chat_id``, ``message_id``, ``error``

    ``CACHE_HIT``
        ``chat_id``, ``cache_key``
    """

    CHAT_CREATED = "chat.created"
    MESSAGE_APPENDED = "message.appended"

    GENERATION_STARTED = "generation.started"
    GENERATION_COMPLETED = "generation.completed"
    GENERATION_FAILED = "generation.failed"

    ASSISTANT_PERSISTED = "assistant.persisted"
    PERSISTENCE_FAILED = "persistence.failed"

    CACHE_HIT = "cache.hit"


class EventBus:
    """
    Simple in-process pub/sub event bus.

    - Sync handlers are called inline within ``publish()``.
    - Async handlers are scheduled on the running loop; the bus keeps a
      reference until they finish.
    - Handler exceptions are logged and never reach the publisher.

    Example::

        bus = EventBus()

        def on_persisted(event, payload):
            print(f"stored {payload['message_id']} in {payload['chat_id']}")

        bus.subscribe(ChatEvent.ASSISTANT_PERSISTED, on_persisted)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[ChatEvent, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._logger = logger or structlog.get_logger("chatvault.events")

    def subscribe(self, event: ChatEvent, handler: Handler) -> None:
        """Register *handler* (sync or async) for one event type."""
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register *handler* for every event type."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event: ChatEvent, handler: Handler) -> None:
        """Remove a previously registered handler. No-op if not found."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: ChatEvent, payload: dict[str, Any]) -> None:
        """
        Deliver *payload* to every handler of *event*, then to global handlers.

        An async handler published outside a running loop is dropped with a
        warning.
        """
        for handler in [*self._handlers.get(event, []), *self._global_handlers]:
            try:
                result = handler(event, payload)
            except Exception as exc:
                self._log_handler_error(event, handler, exc)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(event, handler, result)

    def _schedule(self, event: ChatEvent, handler: Handler, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self._logger.warning("event_handler_skipped", event=str(event), reason="no_loop")
            return

        async def _run() -> None:
            try:
                await coro
            except Exception as exc:
                self._log_handler_error(event, handler, exc)

        task = loop.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _log_handler_error(self, event: ChatEvent, handler: Handler, exc: Exception) -> None:
        self._logger.error(
            "event_handler_error",
            event=str(event),
            handler=getattr(handler, "__qualname__", repr(handler)),
            error=str(exc),
        )
