"""The model collaborator interface and UI-to-provider message conversion."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel

from chatvault.models.message import (
    FilePart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
)

if TYPE_CHECKING:
    from chatvault.tools.registry import ToolRegistry


class ModelClient(Protocol):
    """
    Anything that can turn a message history into a stream of chunks.

    Implementations yield ``start-step`` / deltas / tool chunks /
    ``finish-step`` for every step and end with one ``finish`` chunk. They
    never yield ``start``; the pipeline owns the message id. A provider
    failure is raised as :class:`~chatvault.errors.ProviderError`.
    """

    def stream(
        self,
        messages: Sequence[UIMessage],
        *,
        system: str | None = None,
        tools: ToolRegistry | None = None,
    ) -> AsyncIterator[BaseModel]: ...


def _user_content(message: UIMessage) -> str | list[dict[str, Any]]:
    text = message.text_content()
    files = [p for p in message.parts if isinstance(p, FilePart)]
    if not files:
        return text

    blocks: list[dict[str, Any]] = []
    if text:
        blocks.append({"type": "text", "text": text})
    for file in files:
        if file.media_type.startswith("image/"):
            blocks.append({"type": "image_url", "image_url": {"url": file.url}})
        else:
            label = file.filename or file.url
            blocks.append({"type": "text", "text": f"[file {label} ({file.media_type})]"})
    return blocks


def _tool_result_content(part: ToolPart) -> str:
    if part.state == "output-error":
        return part.error_text or "tool call failed"
    if isinstance(part.output, str):
        return part.output
    return json.dumps(part.output, default=str)


def _assistant_messages(message: UIMessage) -> list[dict[str, Any]]:
    """Split an assistant message at step markers into assistant/tool message groups."""
    out: list[dict[str, Any]] = []
    text: list[str] = []
    calls: list[ToolPart] = []

    def flush() -> None:
        if not text and not calls:
            return
        entry: dict[str, Any] = {"role": "assistant", "content": "".join(text) or None}
        if calls:
            entry["tool_calls"] = [
                {
                    "id": call.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": call.tool_name,
                        "arguments": json.dumps(call.input if call.input is not None else {}),
                    },
                }
                for call in calls
            ]
        out.append(entry)
        for call in calls:
            out.append(
                {
                    "role": "tool",
                    "tool_call_id": call.tool_call_id,
                    "content": _tool_result_content(call),
                }
            )
        text.clear()
        calls.clear()

    for part in message.parts:
        if isinstance(part, StepStartPart):
            flush()
        elif isinstance(part, TextPart):
            text.append(part.text)
        elif isinstance(part, ToolPart) and part.state in ("output-available", "output-error"):
            calls.append(part)
    flush()
    return out


def to_model_messages(messages: Sequence[UIMessage]) -> list[dict[str, Any]]:
    """
    Convert UI messages to chat-completions message dicts.

    - Text parts are concatenated into ``content``.
    - Image files become ``image_url`` blocks; other files a short text label.
    - Completed tool parts become an assistant ``tool_calls`` entry followed
      by one ``tool`` message per call, split at ``step-start`` markers.
    - Reasoning, sources and data parts are not sent back to the provider.

    Assistant messages that carry nothing the provider can use are dropped.
    """
    result: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "assistant":
            result.extend(_assistant_messages(message))
        elif message.role == "system":
            result.append({"role": "system", "content": message.text_content()})
        else:
            result.append({"role": "user", "content": _user_content(message)})
    return result
