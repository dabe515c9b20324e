"""Shared fixtures for chatvault tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

import pytest
import pytest_asyncio
from pydantic import BaseModel

from chatvault.errors import ProviderError
from chatvault.events.bus import ChatEvent, EventBus
from chatvault.ids import new_chat_id
from chatvault.models.config import ChatVaultConfig, StoreConfig
from chatvault.models.message import (
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
)
from chatvault.store.chat_store import ChatStore
from chatvault.store.pool import ConnectionPool
from chatvault.stream import FinishChunk, FinishStepChunk, StartStepChunk, TextDeltaChunk


@pytest.fixture
def config(tmp_path):
    """ChatVaultConfig with a temp database path."""
    return ChatVaultConfig(store=StoreConfig(db_path=str(tmp_path / "test.db")))


@pytest_asyncio.fixture
async def pool(config):
    """ConnectionPool for the test database. Closed after each test."""
    p = ConnectionPool()
    yield p
    await p.close_all()


@pytest_asyncio.fixture
async def store(config, pool):
    """Initialized ChatStore backed by a temp SQLite database (pool-managed)."""
    s = ChatStore(config.store, pool=pool)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[ChatEvent, dict[str, Any]]] = []

    def _collect(event: ChatEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


# ── Collaborator fakes ────────────────────────────────────────────────────────


class FakeKV:
    """In-memory stand-in for ``redis.asyncio.Redis`` get/set."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False
        self.delay = 0.0
        self.get_calls = 0
        self.set_calls = 0

    async def get(self, name: str) -> str | None:
        self.get_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("redis unavailable")
        return self.data.get(name)

    async def set(self, name: str, value: str, ex: int | None = None) -> bool:
        self.set_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.data[name] = value
        self.ttls[name] = ex
        return True


class ScriptedModel:
    """
    Model client that replays a fixed list of chunks.

    ``fail_after`` raises ``ProviderError`` after that many chunks. ``gate``,
    when set, is awaited before the first chunk so a test can observe the
    turn mid-flight.
    """

    def __init__(
        self,
        events: Sequence[BaseModel] | None = None,
        *,
        fail_after: int | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.events = list(events) if events is not None else text_events("Hello there")
        self.fail_after = fail_after
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def stream(
        self,
        messages: Sequence[UIMessage],
        *,
        system: str | None = None,
        tools: Any = None,
    ) -> AsyncIterator[BaseModel]:
        self.calls.append({"messages": list(messages), "system": system, "tools": tools})
        if self.gate is not None:
            await self.gate.wait()
        for i, event in enumerate(self.events):
            if self.fail_after is not None and i >= self.fail_after:
                raise ProviderError("provider exploded")
            yield event
        if self.fail_after is not None and self.fail_after >= len(self.events):
            raise ProviderError("provider exploded")


@pytest.fixture
def kv():
    return FakeKV()


@pytest.fixture
def model():
    return ScriptedModel()


# ── Helpers ───────────────────────────────────────────────────────────────────


def text_events(text: str, text_id: str = "txt_1") -> list[BaseModel]:
    """A single-step model reply streaming *text* word by word."""
    words = text.split(" ")
    deltas = [
        TextDeltaChunk(id=text_id, delta=w if i == 0 else f" {w}") for i, w in enumerate(words)
    ]
    return [StartStepChunk(), *deltas, FinishStepChunk(), FinishChunk(finish_reason="stop")]


def user_message(text: str = "hello", msg_id: str = "client-u1") -> UIMessage:
    return UIMessage(id=msg_id, role="user", parts=[TextPart(text=text)])


def assistant_message(text: str, msg_id: str = "client-a1") -> UIMessage:
    return UIMessage(id=msg_id, role="assistant", parts=[StepStartPart(), TextPart(text=text)])


def make_request(
    messages: Sequence[UIMessage | dict[str, Any]],
    chat_id: str | None = None,
    trigger: str = "submit-message",
) -> dict[str, Any]:
    """Wire-shaped request body for ``ChatPipeline.handle``."""
    return {
        "id": chat_id or new_chat_id(),
        "trigger": trigger,
        "messages": [m.to_wire() if isinstance(m, UIMessage) else m for m in messages],
    }


def sample_parts() -> list[MessagePart]:
    """One instance of every part variant, with optional fields populated."""
    return [
        TextPart(text="Hello", provider_metadata={"openai": {"itemId": "it_1"}}),
        ReasoningPart(text="Thinking it through"),
        FilePart(media_type="image/png", url="https://example.com/cat.png", filename="cat.png"),
        SourceUrlPart(source_id="src_1", url="https://example.com", title="Example"),
        SourceDocumentPart(
            source_id="doc_1", media_type="application/pdf", title="Spec", filename="spec.pdf"
        ),
        StepStartPart(),
        DataPart(data={"weather": {"city": "Oslo", "temps": [1, 2.5, None]}, "ok": True}),
        ToolPart(
            tool_name="lookup",
            tool_call_id="call_1",
            state="output-available",
            input={"query": "ulid"},
            output={"answers": ["a", "b"]},
        ),
    ]
