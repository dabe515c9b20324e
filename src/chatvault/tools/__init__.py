"""Model-callable tools."""

from chatvault.tools.reference_text import (
    SUPPORTED_EXTENSIONS,
    ReferenceTextCache,
    reference_text_tool,
)
from chatvault.tools.registry import Tool, ToolRegistry

__all__ = [
    "Tool",
    "ToolRegistry",
    "ReferenceTextCache",
    "reference_text_tool",
    "SUPPORTED_EXTENSIONS",
]
