"""Streaming, multi-step tool-calling model client on top of litellm."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from chatvault.errors import ProviderError, ToolExecutionError
from chatvault.ids import make_id
from chatvault.llm.base import to_model_messages
from chatvault.models.config import ModelConfig
from chatvault.models.message import UIMessage
from chatvault.stream import (
    FinishChunk,
    FinishStepChunk,
    ReasoningDeltaChunk,
    StartStepChunk,
    TextDeltaChunk,
    ToolInputAvailableChunk,
    ToolOutputAvailableChunk,
    ToolOutputErrorChunk,
)

if TYPE_CHECKING:
    from chatvault.tools.registry import ToolRegistry


class _PendingCall:
    __slots__ = ("arguments", "id", "name")

    def __init__(self) -> None:
        self.id = ""
        self.name = ""
        self.arguments = ""


class LiteLLMModel:
    """
    Calls ``litellm.acompletion(stream=True)`` in a loop.

    Each iteration is one step: stream the provider response, forward text
    and reasoning deltas, and collect tool calls. If the step requested
    tools they are run through the registry, their results appended to the
    conversation and the next step starts. The loop ends on a step without
    tool calls or after ``ModelConfig.max_steps`` steps.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._logger = structlog.get_logger("chatvault.llm")

    @property
    def model(self) -> str:
        return self._config.model

    async def stream(
        self,
        messages: Sequence[UIMessage],
        *,
        system: str | None = None,
        tools: ToolRegistry | None = None,
    ) -> AsyncIterator[BaseModel]:
        conversation: list[dict[str, Any]] = []
        if system:
            conversation.append({"role": "system", "content": system})
        conversation.extend(to_model_messages(messages))
        definitions = tools.definitions() if tools else []

        finish_reason: str | None = None
        for step in range(self._config.max_steps):
            yield StartStepChunk()
            text_id = make_id("txt")
            reasoning_id = make_id("rsn")
            text: list[str] = []
            calls: dict[int, _PendingCall] = {}

            call_kwargs: dict[str, Any] = {
                "model": self._config.model,
                "messages": conversation,
                "stream": True,
                "max_tokens": self._config.max_output_tokens,
            }
            if definitions:
                call_kwargs["tools"] = definitions

            try:
                import litellm

                response = await litellm.acompletion(**call_kwargs)
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    if delta is not None:
                        if delta.content:
                            text.append(delta.content)
                            yield TextDeltaChunk(id=text_id, delta=delta.content)
                        reasoning = getattr(delta, "reasoning_content", None)
                        if reasoning:
                            yield ReasoningDeltaChunk(id=reasoning_id, delta=reasoning)
                        for tool_call in getattr(delta, "tool_calls", None) or []:
                            self._collect_tool_call(calls, tool_call)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
            except Exception as exc:
                self._logger.error("llm_call_failed", model=self._config.model, error=str(exc))
                raise ProviderError(f"{self._config.model}: {exc}") from exc

            if not calls:
                yield FinishStepChunk()
                break

            pending = [calls[i] for i in sorted(calls)]
            for call in pending:
                call.id = call.id or make_id("call")
            conversation.append(
                {
                    "role": "assistant",
                    "content": "".join(text) or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments or "{}"},
                        }
                        for call in pending
                    ],
                }
            )
            for call in pending:
                async for event in self._run_tool(call, tools, conversation):
                    yield event
            yield FinishStepChunk()
            self._logger.debug("llm_step_completed", step=step, tool_calls=len(pending))
        else:
            self._logger.warning("max_steps_reached", max_steps=self._config.max_steps)
            finish_reason = "max-steps"

        yield FinishChunk(finish_reason=finish_reason or "stop")

    @staticmethod
    def _collect_tool_call(calls: dict[int, _PendingCall], tool_call: Any) -> None:
        index = getattr(tool_call, "index", None) or 0
        slot = calls.setdefault(index, _PendingCall())
        if getattr(tool_call, "id", None):
            slot.id = tool_call.id
        function = getattr(tool_call, "function", None)
        if function is not None:
            if getattr(function, "name", None):
                slot.name += function.name
            if getattr(function, "arguments", None):
                slot.arguments += function.arguments

    async def _run_tool(
        self,
        call: _PendingCall,
        tools: ToolRegistry | None,
        conversation: list[dict[str, Any]],
    ) -> AsyncIterator[BaseModel]:
        call_id = call.id
        try:
            arguments = json.loads(call.arguments) if call.arguments else {}
        except json.JSONDecodeError:
            arguments = None
        yield ToolInputAvailableChunk(
            tool_call_id=call_id,
            tool_name=call.name,
            input=arguments if arguments is not None else call.arguments,
        )

        try:
            if tools is None:
                raise ToolExecutionError(call.name, "no tools are registered")
            if not isinstance(arguments, dict):
                raise ToolExecutionError(call.name, "arguments are not a JSON object")
            output = await tools.execute(call.name, arguments)
        except ToolExecutionError as exc:
            error_text = str(exc)
            conversation.append({"role": "tool", "tool_call_id": call_id, "content": error_text})
            yield ToolOutputErrorChunk(tool_call_id=call_id, error_text=error_text)
            return

        content = output if isinstance(output, str) else json.dumps(output, default=str)
        conversation.append({"role": "tool", "tool_call_id": call_id, "content": content})
        yield ToolOutputAvailableChunk(tool_call_id=call_id, output=output)
