"""Tools the model may call during a turn, and the registry that runs them."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from chatvault.errors import ToolExecutionError

ToolHandler = Callable[[dict[str, Any]], Any | Awaitable[Any]]


@dataclass
class Tool:
    """
    A callable tool described in JSON Schema.

    ``handler`` receives the decoded argument object and returns any
    JSON-serialisable value. Both plain and ``async`` handlers are accepted.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def definition(self) -> dict[str, Any]:
        """This tool in the chat-completions ``tools`` format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """
    Name-keyed collection of tools.

    Example::

        registry = ToolRegistry()
        registry.register(Tool("echo", "Echo the input", handler=lambda args: args))
        result = await registry.execute("echo", {"x": 1})
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._logger = structlog.get_logger("chatvault.tools")
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """
        Add *tool*.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Run tool *name* with *arguments* and return its result.

        Raises:
            ToolExecutionError: If the tool is unknown or its handler raises.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, "no such tool")
        try:
            result = tool.handler(arguments)
            if asyncio.iscoroutine(result):
                result = await result
        except ToolExecutionError:
            raise
        except Exception as exc:
            self._logger.warning("tool_failed", tool_name=name, error=str(exc))
            raise ToolExecutionError(name, str(exc)) from exc
        self._logger.debug("tool_executed", tool_name=name)
        return result
