"""Deterministic stand-in model for examples and offline runs (``CHATVAULT_MOCK_LLM=1``)."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING

from pydantic import BaseModel

from chatvault.ids import make_id
from chatvault.models.message import UIMessage
from chatvault.stream import FinishChunk, FinishStepChunk, StartStepChunk, TextDeltaChunk

if TYPE_CHECKING:
    from chatvault.tools.registry import ToolRegistry


class MockModel:
    """
    Echoes the last user message back, one word per text delta.

    Args:
        reply: Fixed response text. When omitted, a canned echo of the last
            user message is produced.
        delay: Seconds to sleep between deltas, to make streaming visible.
    """

    def __init__(self, reply: str | None = None, *, delay: float = 0.0) -> None:
        self._reply = reply
        self._delay = delay

    def _response_for(self, messages: Sequence[UIMessage]) -> str:
        if self._reply is not None:
            return self._reply
        last_user = next(
            (m.text_content() for m in reversed(messages) if m.role == "user"),
            "Hello",
        )
        return (
            f"[Mock response to: {last_user[:100]}]\n"
            "This is a simulated response. Unset CHATVAULT_MOCK_LLM and provide "
            "an API key to use a real model."
        )

    async def stream(
        self,
        messages: Sequence[UIMessage],
        *,
        system: str | None = None,
        tools: ToolRegistry | None = None,
    ) -> AsyncIterator[BaseModel]:
        text_id = make_id("txt")
        words = self._response_for(messages).split(" ")
        yield StartStepChunk()
        for i, word in enumerate(words):
            yield TextDeltaChunk(id=text_id, delta=word if i == 0 else f" {word}")
            if self._delay:
                await asyncio.sleep(self._delay)
        yield FinishStepChunk()
        yield FinishChunk(finish_reason="stop")
