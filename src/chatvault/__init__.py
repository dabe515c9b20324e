"""
chatvault: durable chat persistence and streaming turn handling.

Primary entry point::

    from chatvault import ChatPipeline, ChatVaultConfig

    async with await ChatPipeline.create(ChatVaultConfig.from_env()) as pipeline:
        turn = await pipeline.handle(request_body, user_id="user-1")
        async for chunk in turn.stream():
            ...
        await turn.wait_persisted()
"""

from chatvault.cache import ResponseCache, create_response_cache, derive_cache_key
from chatvault.errors import (
    CacheError,
    ChatNotFoundError,
    ChatVaultError,
    CodecError,
    DuplicateIDError,
    MalformedRowError,
    PersistenceError,
    ProviderError,
    RequestValidationError,
    StorageError,
    ToolExecutionError,
    UnsupportedVariantError,
)
from chatvault.events.bus import ChatEvent, EventBus
from chatvault.ids import make_id, new_chat_id, validate_chat_id
from chatvault.llm import LiteLLMModel, MockModel, ModelClient, create_model
from chatvault.models import (
    CacheConfig,
    Chat,
    ChatHistory,
    ChatRequest,
    ChatVaultConfig,
    DataPart,
    FilePart,
    Message,
    MessagePart,
    ModelConfig,
    PipelineConfig,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    StoreConfig,
    TextPart,
    ToolPart,
    UIMessage,
)
from chatvault.pipeline import ChatPipeline, ChatTurn, PipelineState
from chatvault.store import ChatStore, ConnectionPool, decode_part, encode_part
from chatvault.store.reconstruct import reconstruct_messages
from chatvault.stream import SSE_DONE, AssistantMessageBuilder, encode_sse
from chatvault.tools import ReferenceTextCache, Tool, ToolRegistry, reference_text_tool

__version__ = "0.1.0"

__all__ = [
    # Core
    "ChatPipeline",
    "ChatTurn",
    "PipelineState",
    "make_id",
    "new_chat_id",
    "validate_chat_id",
    # Config
    "ChatVaultConfig",
    "StoreConfig",
    "CacheConfig",
    "ModelConfig",
    "PipelineConfig",
    # Models
    "TextPart",
    "ReasoningPart",
    "FilePart",
    "SourceUrlPart",
    "SourceDocumentPart",
    "StepStartPart",
    "DataPart",
    "ToolPart",
    "MessagePart",
    "UIMessage",
    "Message",
    "Chat",
    "ChatHistory",
    "ChatRequest",
    # Storage
    "ChatStore",
    "ConnectionPool",
    "encode_part",
    "decode_part",
    "reconstruct_messages",
    # Cache
    "ResponseCache",
    "create_response_cache",
    "derive_cache_key",
    # Model collaborators
    "ModelClient",
    "LiteLLMModel",
    "MockModel",
    "create_model",
    # Streaming
    "AssistantMessageBuilder",
    "encode_sse",
    "SSE_DONE",
    # Tools
    "Tool",
    "ToolRegistry",
    "ReferenceTextCache",
    "reference_text_tool",
    # Events
    "EventBus",
    "ChatEvent",
    # Errors
    "ChatVaultError",
    "RequestValidationError",
    "CodecError",
    "UnsupportedVariantError",
    "MalformedRowError",
    "StorageError",
    "ChatNotFoundError",
    "DuplicateIDError",
    "PersistenceError",
    "CacheError",
    "ProviderError",
    "ToolExecutionError",
]
