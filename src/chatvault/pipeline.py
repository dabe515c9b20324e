"""ChatPipeline: validate a turn, persist it, stream the reply and persist that too."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Mapping
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from chatvault.cache.service import ResponseCache, create_response_cache
from chatvault.errors import (
    CodecError,
    DuplicateIDError,
    PersistenceError,
    ProviderError,
    RequestValidationError,
    StorageError,
)
from chatvault.events.bus import ChatEvent, EventBus
from chatvault.ids import make_id
from chatvault.llm import ModelClient, create_model
from chatvault.models.config import ChatVaultConfig
from chatvault.models.message import Chat, ChatHistory, ChatRequest, UIMessage
from chatvault.store.chat_store import ChatStore
from chatvault.store.pool import ConnectionPool
from chatvault.stream import (
    AssistantMessageBuilder,
    ErrorChunk,
    StartChunk,
    text_stream,
)
from chatvault.tools.registry import ToolRegistry


class PipelineState(StrEnum):
    """State of an accepted turn. Rejected requests raise before a turn exists."""

    CREATING = "creating"
    APPENDING = "appending"
    GENERATING = "generating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# ── ChatTurn ───────────────────────────────────────────────────────────────────


class ChatTurn:
    """
    One accepted turn: the user message is already stored, the reply is in flight.

    Generation runs in a background task owned by the pipeline. ``stream()``
    yields the reply chunks as they arrive; ``wait_persisted()`` resolves once
    the assistant message is durably stored (or raises why it is not).

    A caller that stops iterating ``stream()`` early does not cancel the
    turn: generation runs to completion and the reply is still persisted.
    """

    def __init__(
        self,
        *,
        chat_id: str,
        user_id: str,
        created: bool,
        user_message_id: str,
        assistant_message_id: str,
        history: list[UIMessage],
        logger: Any,
    ) -> None:
        self.chat_id = chat_id
        self.user_id = user_id
        self.created = created
        """True when this turn created the chat."""
        self.user_message_id = user_message_id
        self.assistant_message_id = assistant_message_id
        self.history = history
        """The pre-generation history sent to the model (system messages removed)."""
        self._state = PipelineState.CREATING if created else PipelineState.APPENDING
        self._logger = logger
        self._builder = AssistantMessageBuilder()
        self._queue: asyncio.Queue[BaseModel | None] = asyncio.Queue()
        self._task: asyncio.Task[UIMessage] | None = None
        self._stream_claimed = False
        self._stream_closed = False
        self._consumer_gone = False
        self._persist_claimed = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def text(self) -> str:
        """Assistant text produced so far."""
        return self._builder.text

    async def stream(self) -> AsyncIterator[BaseModel]:
        """
        Yield the reply chunks in order, ending after ``finish`` or ``error``.

        Raises:
            RuntimeError: If the stream has already been claimed by another consumer.
        """
        if self._stream_claimed:
            raise RuntimeError("ChatTurn.stream() can only be consumed once")
        self._stream_claimed = True
        try:
            while True:
                event = await self._queue.get()
                if event is None:
                    return
                yield event
        finally:
            if not self._stream_closed:
                self._logger.info("client_disconnected", state=str(self._state))
            self._consumer_gone = True

    async def wait_persisted(self) -> UIMessage:
        """
        Wait for the turn to finish and return the stored assistant message.

        Raises:
            ProviderError: If generation failed.
            PersistenceError: If the reply was generated but could not be stored.
        """
        if self._task is None:
            raise RuntimeError("ChatTurn has not been started")
        return await asyncio.shield(self._task)

    # Pipeline-side hooks

    def _set_state(self, state: PipelineState) -> None:
        self._logger.debug("turn_state", state=str(state))
        self._state = state

    def _emit(self, event: BaseModel) -> None:
        self._builder.add(event)
        if not self._consumer_gone:
            self._queue.put_nowait(event)

    def _end_stream(self) -> None:
        if not self._stream_closed:
            self._stream_closed = True
            self._queue.put_nowait(None)


# ── ChatPipeline ───────────────────────────────────────────────────────────────


class ChatPipeline:
    """
    Runs chat turns. A request is validated first; an accepted turn then goes
    ``CREATING | APPENDING -> GENERATING -> PERSISTING -> DONE``.

    A rejected request never touches storage. A storage failure while
    creating or appending aborts before any model call. Provider failures end
    the stream with an ``error`` chunk and leave the stored user message in
    place. Nothing is retried.

    Concurrent turns on the same chat are not serialised; both appends land
    in whatever order the database applies them.

    Usage::

        async with await ChatPipeline.create(ChatVaultConfig.from_env()) as pipeline:
            turn = await pipeline.handle(request_body, user_id="user-1")
            async for chunk in turn.stream():
                send(encode_sse(chunk))
            await turn.wait_persisted()
    """

    def __init__(
        self,
        store: ChatStore,
        model: ModelClient,
        *,
        config: ChatVaultConfig | None = None,
        cache: ResponseCache | None = None,
        tools: ToolRegistry | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._model = model
        self._config = config or ChatVaultConfig()
        self._cache = cache
        self._tools = tools
        self._event_bus = event_bus or EventBus()
        self._pending: set[asyncio.Task[UIMessage]] = set()
        self._owns_store = False
        self._logger = structlog.get_logger("chatvault.pipeline")

    @classmethod
    async def create(
        cls,
        config: ChatVaultConfig | None = None,
        *,
        pool: ConnectionPool | None = None,
        model: ModelClient | None = None,
        tools: ToolRegistry | None = None,
        event_bus: EventBus | None = None,
    ) -> ChatPipeline:
        """
        Build a pipeline with its own store, cache and model from *config*.

        The store is initialised here and closed by :meth:`close`.
        """
        cfg = config or ChatVaultConfig()
        store = ChatStore(cfg.store, pool=pool)
        await store.initialize()
        pipeline = cls(
            store,
            model or create_model(cfg.model),
            config=cfg,
            cache=create_response_cache(cfg.cache),
            tools=tools,
            event_bus=event_bus,
        )
        pipeline._owns_store = True
        return pipeline

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # ── Turn handling ──────────────────────────────────────────────────────────

    async def handle(self, payload: Mapping[str, Any] | ChatRequest, *, user_id: str) -> ChatTurn:
        """
        Accept a turn and start generating the reply.

        Returns once the user message is stored; generation continues in the
        background and is observed through the returned :class:`ChatTurn`.

        Raises:
            RequestValidationError: If the payload is malformed. Nothing is stored.
            StorageError: If the chat or user message could not be stored.
                No model call is made.
        """
        request = self._validate(payload)
        history = [m for m in request.messages if m.role != "system"]
        chat_id = request.id
        log = self._logger.bind(chat_id=chat_id, user_id=user_id)

        created = not await self._store.chat_exists(chat_id)
        if created:
            try:
                _, stored = await self._store.create_chat(chat_id, user_id, history)
            except DuplicateIDError as exc:
                if exc.record_id != chat_id:
                    raise
                # Lost a creation race with a concurrent turn; append instead.
                log.info("chat_created_concurrently")
                created = False
            else:
                log.info("turn_chat_created", message_count=len(stored))
                self._event_bus.publish(
                    ChatEvent.CHAT_CREATED,
                    {"chat_id": chat_id, "user_id": user_id, "message_count": len(stored)},
                )
        if not created:
            stored = await self._store.append_messages(chat_id, [history[-1]])
            log.info("turn_message_appended", message_id=stored[-1].id)

        user_message_id = stored[-1].id
        self._event_bus.publish(
            ChatEvent.MESSAGE_APPENDED,
            {"chat_id": chat_id, "message_id": user_message_id, "role": "user"},
        )

        assistant_message_id = make_id("msg")
        turn = ChatTurn(
            chat_id=chat_id,
            user_id=user_id,
            created=created,
            user_message_id=user_message_id,
            assistant_message_id=assistant_message_id,
            history=history,
            logger=log.bind(message_id=assistant_message_id),
        )
        task = asyncio.create_task(self._run(turn))
        turn._task = task
        self._pending.add(task)
        task.add_done_callback(self._on_turn_done)
        return turn

    def _validate(self, payload: Mapping[str, Any] | ChatRequest) -> ChatRequest:
        if isinstance(payload, ChatRequest):
            request = payload
        elif isinstance(payload, Mapping):
            try:
                request = ChatRequest.model_validate(payload)
            except ValidationError as exc:
                error = exc.errors()[0]
                field = ".".join(str(p) for p in error["loc"]) or None
                self._logger.info("turn_rejected", field=field, reason=error["msg"])
                raise RequestValidationError(
                    f"Invalid chat request: {error['msg']}", field=field
                ) from exc
        else:
            raise RequestValidationError("Chat request must be an object")

        reason: tuple[str, str] | None = None
        if not request.messages:
            reason = ("messages", "Messages must not be empty")
        elif request.messages[-1].role != "user":
            reason = ("messages", "The last message must come from the user")
        elif not request.messages[-1].parts:
            reason = ("messages", "The last message must have at least one part")
        if reason is not None:
            self._logger.info("turn_rejected", chat_id=request.id, field=reason[0], reason=reason[1])
            raise RequestValidationError(reason[1], field=reason[0])
        return request

    async def _run(self, turn: ChatTurn) -> UIMessage:
        log = turn._logger
        try:
            turn._set_state(PipelineState.GENERATING)
            log.info("generation_started")
            self._event_bus.publish(
                ChatEvent.GENERATION_STARTED,
                {"chat_id": turn.chat_id, "message_id": turn.assistant_message_id},
            )
            from_cache = await self._generate(turn)
        except ProviderError as exc:
            log.error("generation_failed", error=str(exc))
            turn._emit(ErrorChunk(error_text=str(exc)))
            turn._end_stream()
            self._event_bus.publish(
                ChatEvent.GENERATION_FAILED,
                {"chat_id": turn.chat_id, "message_id": turn.assistant_message_id, "error": str(exc)},
            )
            if self._config.pipeline.persist_partial_output and turn._builder.has_content:
                with contextlib.suppress(PersistenceError):
                    await self._persist(turn)
            turn._set_state(PipelineState.FAILED)
            raise
        except BaseException:
            turn._set_state(PipelineState.FAILED)
            raise
        finally:
            turn._end_stream()

        self._event_bus.publish(
            ChatEvent.GENERATION_COMPLETED,
            {
                "chat_id": turn.chat_id,
                "message_id": turn.assistant_message_id,
                "finish_reason": turn._builder.finish_reason,
                "cached": from_cache,
            },
        )

        turn._set_state(PipelineState.PERSISTING)
        try:
            message = await self._persist(turn)
        except PersistenceError:
            turn._set_state(PipelineState.FAILED)
            raise

        if not from_cache and self._cache is not None and turn.text:
            await self._cache.set(turn.history, turn.text)
        turn._set_state(PipelineState.DONE)
        return message

    async def _generate(self, turn: ChatTurn) -> bool:
        """Stream the reply into *turn*. Returns True when it was replayed from the cache."""
        if self._cache is not None:
            cached = await self._cache.get(turn.history)
            if cached is not None:
                cache_key = self._cache.key_for(turn.history)
                turn._logger.info("cache_hit", cache_key=cache_key)
                self._event_bus.publish(
                    ChatEvent.CACHE_HIT, {"chat_id": turn.chat_id, "cache_key": cache_key}
                )
                for event in text_stream(cached, message_id=turn.assistant_message_id):
                    turn._emit(event)
                return True

        turn._emit(StartChunk(message_id=turn.assistant_message_id))
        try:
            async for event in self._model.stream(
                turn.history,
                system=self._config.model.system_prompt,
                tools=self._tools,
            ):
                turn._emit(event)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        return False

    async def _persist(self, turn: ChatTurn) -> UIMessage:
        """Store the assistant message once. Later calls return the same message."""
        message = UIMessage(
            id=turn.assistant_message_id, role="assistant", parts=turn._builder.build()
        )
        if turn._persist_claimed:
            return message
        turn._persist_claimed = True

        log = turn._logger
        try:
            await self._store.append_messages(
                turn.chat_id, [message], message_ids=[turn.assistant_message_id]
            )
        except DuplicateIDError as exc:
            if exc.record_id != turn.assistant_message_id:
                raise self._persistence_failed(turn, exc) from exc
            log.info("assistant_already_persisted")
            return message
        except (StorageError, CodecError) as exc:
            raise self._persistence_failed(turn, exc) from exc

        log.info("assistant_persisted", part_count=len(message.parts))
        self._event_bus.publish(
            ChatEvent.ASSISTANT_PERSISTED,
            {
                "chat_id": turn.chat_id,
                "message_id": turn.assistant_message_id,
                "part_count": len(message.parts),
            },
        )
        return message

    def _persistence_failed(self, turn: ChatTurn, exc: Exception) -> PersistenceError:
        turn._logger.error("assistant_persist_failed", error=str(exc))
        self._event_bus.publish(
            ChatEvent.PERSISTENCE_FAILED,
            {"chat_id": turn.chat_id, "message_id": turn.assistant_message_id, "error": str(exc)},
        )
        return PersistenceError(turn.chat_id, turn.assistant_message_id, exc)

    def _on_turn_done(self, task: asyncio.Task[UIMessage]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, ProviderError | PersistenceError):
            self._logger.error("turn_crashed", error=repr(exc))

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def get_chat(self, chat_id: str) -> ChatHistory:
        """
        Reconstruct a stored chat.

        Raises:
            ChatNotFoundError: If the chat does not exist.
        """
        return ChatHistory(id=chat_id, messages=await self._store.get_messages(chat_id))

    async def list_chats(self, user_id: str, *, limit: int = 100, offset: int = 0) -> list[Chat]:
        """A user's chats, most recently updated first."""
        return await self._store.list_chats(user_id, limit=limit, offset=offset)

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def wait_for_pending(self) -> None:
        """Wait for every in-flight turn to finish. Turn errors are not re-raised here."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Drain in-flight turns, then close the store if this pipeline opened it."""
        await self.wait_for_pending()
        if self._owns_store:
            await self._store.close()

    async def __aenter__(self) -> ChatPipeline:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
