"""A tool that hands the model the full text of a reference document."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from chatvault.errors import ToolExecutionError
from chatvault.tools.registry import Tool

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    {".txt", ".csv", ".json", ".toon", ".onnx", ".safetensors", ".pt", ".py", ".gguf"}
)

DEFAULT_INSTRUCTIONS = (
    "Use the provided full text to answer the question comprehensively and "
    "accurately. Reference specific passages where relevant."
)


def check_extension(path: str | Path) -> None:
    """
    Raise ``ValueError`` unless *path* has a supported extension (case-insensitive).
    """
    suffix = Path(path).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
        raise ValueError(
            f"Invalid file extension for {str(path)!r}. Supported extensions are: {supported}"
        )


class ReferenceTextCache:
    """
    In-memory cache of reference file contents, keyed by resolved path.

    The cache belongs to whoever creates it; nothing is shared between
    instances. Files are read as UTF-8 on first access and kept until
    ``clear()``. Empty files are reported as ``None`` and not cached.
    """

    def __init__(self) -> None:
        self._contents: dict[str, str] = {}
        self._logger = structlog.get_logger("chatvault.tools.reference_text")

    @staticmethod
    def _key(path: str | Path) -> str:
        return str(Path(path).expanduser().resolve())

    def get(self, path: str | Path) -> str | None:
        """
        Return the text of *path*, reading the file on a cache miss.

        Raises:
            ValueError: If the extension is not supported.
            ToolExecutionError: If the file is missing or unreadable.
        """
        check_extension(path)
        key = self._key(path)
        cached = self._contents.get(key)
        if cached is not None:
            self._logger.debug("reference_text_cache_hit", path=key)
            return cached

        try:
            content = Path(key).read_text(encoding="utf-8")  # noqa: ASYNC240
        except FileNotFoundError as exc:
            raise ToolExecutionError(
                "reference_text", f"File not found: {Path(path).name}"
            ) from exc
        except OSError as exc:
            raise ToolExecutionError("reference_text", f"Error reading {key!r}: {exc}") from exc

        if not content:
            return None
        self._contents[key] = content
        self._logger.info("reference_text_loaded", path=key, text_length=len(content))
        return content

    def contains(self, path: str | Path) -> bool:
        return self._key(path) in self._contents

    def clear(self, path: str | Path | None = None) -> None:
        """Forget one file, or everything when *path* is omitted."""
        if path is None:
            self._contents.clear()
        else:
            self._contents.pop(self._key(path), None)

    def cached_paths(self) -> list[str]:
        return list(self._contents)


def reference_text_tool(
    cache: ReferenceTextCache,
    path: str | Path,
    *,
    name: str = "reference_text",
    description: str = "Answer questions about a reference document using its full text.",
    instructions: str = DEFAULT_INSTRUCTIONS,
) -> Tool:
    """
    Build a tool that answers ``{"question": ...}`` with the text of *path*.

    The extension is checked immediately so a misconfigured tool fails at
    start-up rather than mid-conversation.
    """
    check_extension(path)

    def handler(arguments: dict[str, Any]) -> dict[str, Any]:
        question = arguments.get("question")
        if not isinstance(question, str):
            raise ToolExecutionError(name, "argument 'question' must be a string")
        text = cache.get(path)
        return {
            "question": question,
            "textLength": len(text) if text else 0,
            "context": text,
            "instructions": instructions,
        }

    return Tool(
        name=name,
        description=description,
        handler=handler,
        parameters={
            "type": "object",
            "properties": {
                "question": {
                    "type": "string",
                    "description": "The question to answer about the document",
                }
            },
            "required": ["question"],
        },
    )
