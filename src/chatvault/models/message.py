"""Core chat, message and part data models for chatvault."""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chatvault.ids import make_id, validate_chat_id

# ── Part Models ────────────────────────────────────────────────────────────────


class _PartModel(BaseModel):
    """Shared config: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextPart(_PartModel):
    """A plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str
    provider_metadata: dict[str, Any] | None = None


class ReasoningPart(_PartModel):
    """Chain-of-thought reasoning text emitted by the model."""

    type: Literal["reasoning"] = "reasoning"
    text: str
    provider_metadata: dict[str, Any] | None = None


class FilePart(_PartModel):
    """A file attached to a message, referenced by URL (or data URL)."""

    type: Literal["file"] = "file"
    media_type: str
    url: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


class SourceUrlPart(_PartModel):
    """A web source cited by the model."""

    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None
    provider_metadata: dict[str, Any] | None = None


class SourceDocumentPart(_PartModel):
    """A document source cited by the model."""

    type: Literal["source-document"] = "source-document"
    source_id: str
    media_type: str
    title: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


class StepStartPart(_PartModel):
    """Marker for the start of a generation step. Carries no payload."""

    type: Literal["step-start"] = "step-start"


class DataPart(_PartModel):
    """Caller-defined JSON payload. Stored and returned without interpretation."""

    type: Literal["data"] = "data"
    data: Any
    provider_metadata: dict[str, Any] | None = None


class ToolPart(_PartModel):
    """
    A tool invocation and (once available) its result.

    On the wire a tool part is typed ``tool-<toolName>``; in Python the tool
    name lives in ``tool_name`` and ``type`` is always ``"tool"``.
    """

    type: Literal["tool"] = "tool"
    tool_name: str
    tool_call_id: str
    state: Literal["input-streaming", "input-available", "output-available", "output-error"] = (
        "input-available"
    )
    input: Any = None
    output: Any = None
    error_text: str | None = None
    provider_metadata: dict[str, Any] | None = None


# Discriminated union on the ``type`` field.
MessagePart = Annotated[
    TextPart
    | ReasoningPart
    | FilePart
    | SourceUrlPart
    | SourceDocumentPart
    | StepStartPart
    | DataPart
    | ToolPart,
    Field(discriminator="type"),
]

PART_TYPES: frozenset[str] = frozenset(
    {"text", "reasoning", "file", "source-url", "source-document", "step-start", "data", "tool"}
)


def _normalize_wire_part(raw: Any) -> Any:
    """Rewrite ``tool-<name>`` / ``dynamic-tool`` wire parts to the ``tool`` variant."""
    if not isinstance(raw, dict):
        return raw
    part_type = raw.get("type")
    if not isinstance(part_type, str):
        return raw
    if part_type.startswith("tool-"):
        return {**raw, "type": "tool", "toolName": part_type[len("tool-") :]}
    if part_type == "dynamic-tool":
        return {**raw, "type": "tool"}
    return raw


def part_to_wire(part: BaseModel) -> dict[str, Any]:
    """Serialise a part to its camelCase wire form (``tool`` becomes ``tool-<name>``)."""
    data = part.model_dump(by_alias=True, exclude_none=True)
    if data.get("type") == "tool":
        data["type"] = f"tool-{data.pop('toolName')}"
    return data


# ── Message Models ─────────────────────────────────────────────────────────────


class UIMessage(BaseModel):
    """A message together with its ordered list of typed parts, as seen by callers."""

    id: str = Field(default_factory=lambda: make_id("msg"))
    """Clients may omit it; stored messages always get a server-generated id."""
    role: Literal["system", "user", "assistant"]
    parts: list[MessagePart] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _accept_wire_tool_parts(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_normalize_wire_part(item) for item in value]
        return value

    def text_content(self) -> str:
        """Concatenate text from all TextPart objects in this message."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def to_wire(self) -> dict[str, Any]:
        """Return the ``{id, role, parts}`` wire dict."""
        return {"id": self.id, "role": self.role, "parts": [part_to_wire(p) for p in self.parts]}


class Message(BaseModel):
    """
    A persisted message row.

    Messages are immutable once written: a new turn means a new message and
    new parts, never an update.
    """

    id: str
    """ULID-based sortable ID, e.g. ``msg_01JXYZ6K3MNPQR4STUVWXYZ01``."""
    chat_id: str
    role: Literal["user", "assistant"]
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    """Unix millisecond timestamp."""


class Chat(BaseModel):
    """A persisted chat row. Only ``updated_at`` changes after creation."""

    id: str
    user_id: str
    created_at: int
    updated_at: int


class ChatHistory(BaseModel):
    """A reconstructed chat: its id and ordered messages."""

    id: str
    messages: list[UIMessage] = Field(default_factory=list)


# ── Request Models ─────────────────────────────────────────────────────────────


class ChatRequest(BaseModel):
    """The body of a chat turn: ``{id, trigger, messages}``."""

    id: str
    trigger: str = Field(min_length=1)
    messages: list[UIMessage]

    @field_validator("id")
    @classmethod
    def _check_chat_id(cls, value: str) -> str:
        return validate_chat_id(value)
