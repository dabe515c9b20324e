"""chatvault data models."""

from chatvault.models.config import (
    CacheConfig,
    ChatVaultConfig,
    ModelConfig,
    PipelineConfig,
    StoreConfig,
)
from chatvault.models.message import (
    PART_TYPES,
    Chat,
    ChatHistory,
    ChatRequest,
    DataPart,
    FilePart,
    Message,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
    part_to_wire,
)

__all__ = [
    # Config
    "CacheConfig",
    "ChatVaultConfig",
    "ModelConfig",
    "PipelineConfig",
    "StoreConfig",
    # Message parts
    "PART_TYPES",
    "TextPart",
    "ReasoningPart",
    "FilePart",
    "SourceUrlPart",
    "SourceDocumentPart",
    "StepStartPart",
    "DataPart",
    "ToolPart",
    "MessagePart",
    "part_to_wire",
    # Messages and chats
    "UIMessage",
    "Message",
    "Chat",
    "ChatHistory",
    "ChatRequest",
]
