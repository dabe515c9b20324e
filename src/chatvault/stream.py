"""
Streamed assistant output: chunk models, SSE framing and the message builder.

Chunks follow the UI message stream protocol: a ``type`` tag plus
camelCase fields on the wire. The pipeline forwards every chunk to the
caller as it arrives and folds the same chunks into assistant message parts
with :class:`AssistantMessageBuilder` for persistence.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Annotated, Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatvault.ids import make_id
from chatvault.models.message import (
    MessagePart,
    ReasoningPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
)

_logger = structlog.get_logger("chatvault.stream")

# ── Stream chunk models ────────────────────────────────────────────────────────


class _ChunkModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartChunk(_ChunkModel):
    type: Literal["start"] = "start"
    message_id: str | None = None


class StartStepChunk(_ChunkModel):
    type: Literal["start-step"] = "start-step"


class TextDeltaChunk(_ChunkModel):
    type: Literal["text-delta"] = "text-delta"
    id: str
    delta: str


class ReasoningDeltaChunk(_ChunkModel):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    id: str
    delta: str


class SourceUrlChunk(_ChunkModel):
    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None


class ToolInputAvailableChunk(_ChunkModel):
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: Any = None


class ToolOutputAvailableChunk(_ChunkModel):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    output: Any = None


class ToolOutputErrorChunk(_ChunkModel):
    type: Literal["tool-output-error"] = "tool-output-error"
    tool_call_id: str
    error_text: str


class FinishStepChunk(_ChunkModel):
    type: Literal["finish-step"] = "finish-step"


class FinishChunk(_ChunkModel):
    type: Literal["finish"] = "finish"
    finish_reason: str | None = None


class ErrorChunk(_ChunkModel):
    type: Literal["error"] = "error"
    error_text: str


StreamEvent = Annotated[
    StartChunk
    | StartStepChunk
    | TextDeltaChunk
    | ReasoningDeltaChunk
    | SourceUrlChunk
    | ToolInputAvailableChunk
    | ToolOutputAvailableChunk
    | ToolOutputErrorChunk
    | FinishStepChunk
    | FinishChunk
    | ErrorChunk,
    Field(discriminator="type"),
]

# ── SSE framing ────────────────────────────────────────────────────────────────

SSE_DONE = "data: [DONE]\n\n"


def encode_sse(event: BaseModel) -> str:
    """Frame one chunk as a server-sent event: ``data: <json>\\n\\n``."""
    payload = event.model_dump(by_alias=True, exclude_none=True)
    return f"data: {json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n\n"


def text_stream(text: str, *, message_id: str | None = None) -> Iterator[BaseModel]:
    """
    Chunks that deliver an already complete *text* as a single-step response.

    Used to replay a cached response through the same stream the model
    would have produced.
    """
    text_id = make_id("txt")
    yield StartChunk(message_id=message_id)
    yield StartStepChunk()
    if text:
        yield TextDeltaChunk(id=text_id, delta=text)
    yield FinishStepChunk()
    yield FinishChunk(finish_reason="stop")


# ── Assistant message builder ──────────────────────────────────────────────────


class AssistantMessageBuilder:
    """
    Fold stream chunks into the parts of one assistant message.

    - ``start-step`` opens a ``step-start`` part.
    - Consecutive text (or reasoning) deltas sharing an id extend one part.
    - Tool input, output and error chunks update a single ``tool`` part per
      call id.
    - ``source-url`` chunks become source parts.

    ``start``, ``finish-step``, ``finish`` and ``error`` chunks add no parts.
    """

    def __init__(self) -> None:
        self._parts: list[MessagePart] = []
        self._open_delta: tuple[str, str] | None = None
        self._tools: dict[str, ToolPart] = {}
        self.finish_reason: str | None = None
        self.error_text: str | None = None

    def add(self, event: BaseModel) -> None:
        if isinstance(event, TextDeltaChunk):
            self._append_delta("text", event.id, event.delta)
            return
        if isinstance(event, ReasoningDeltaChunk):
            self._append_delta("reasoning", event.id, event.delta)
            return

        self._open_delta = None
        if isinstance(event, StartStepChunk):
            self._parts.append(StepStartPart())
        elif isinstance(event, SourceUrlChunk):
            self._parts.append(
                SourceUrlPart(source_id=event.source_id, url=event.url, title=event.title)
            )
        elif isinstance(event, ToolInputAvailableChunk):
            known = self._tools.get(event.tool_call_id)
            if known is None:
                part = ToolPart(
                    tool_name=event.tool_name,
                    tool_call_id=event.tool_call_id,
                    state="input-available",
                    input=event.input,
                )
                self._tools[event.tool_call_id] = part
                self._parts.append(part)
            else:
                # A repeated input chunk for a call replaces its input in place.
                known.tool_name = event.tool_name
                known.state = "input-available"
                known.input = event.input
        elif isinstance(event, ToolOutputAvailableChunk | ToolOutputErrorChunk):
            tool = self._tools.get(event.tool_call_id)
            if tool is None:
                _logger.warning("tool_result_without_call", tool_call_id=event.tool_call_id)
            elif isinstance(event, ToolOutputAvailableChunk):
                tool.state = "output-available"
                tool.output = event.output
            else:
                tool.state = "output-error"
                tool.error_text = event.error_text
        elif isinstance(event, FinishChunk):
            self.finish_reason = event.finish_reason
        elif isinstance(event, ErrorChunk):
            self.error_text = event.error_text

    def _append_delta(self, kind: str, delta_id: str, delta: str) -> None:
        last = self._parts[-1] if self._parts else None
        if self._open_delta == (kind, delta_id) and isinstance(last, TextPart | ReasoningPart):
            last.text += delta
            return
        self._parts.append(TextPart(text=delta) if kind == "text" else ReasoningPart(text=delta))
        self._open_delta = (kind, delta_id)

    def build(self) -> list[MessagePart]:
        """Snapshot of the parts folded so far."""
        return [part.model_copy(deep=True) for part in self._parts]

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self._parts if isinstance(p, TextPart))

    @property
    def has_content(self) -> bool:
        """True once any part other than a bare step marker has been folded."""
        return any(not isinstance(p, StepStartPart) for p in self._parts)
