"""Exception hierarchy shared by every chatvault component."""

from __future__ import annotations


class ChatVaultError(Exception):
    """Base class for all chatvault errors."""


# ── Request validation ─────────────────────────────────────────────────────────


class RequestValidationError(ChatVaultError):
    """Raised when an incoming chat turn is malformed. Nothing is persisted."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


# ── Codec ──────────────────────────────────────────────────────────────────────


class CodecError(ChatVaultError):
    """Base class for part encode/decode failures (data-integrity errors)."""


class UnsupportedVariantError(CodecError):
    """Raised when a part or row carries a ``type`` tag outside the known set."""

    def __init__(self, part_type: object) -> None:
        super().__init__(f"Unsupported part type: {part_type!r}")
        self.part_type = part_type


class MalformedRowError(CodecError):
    """Raised when a stored part row does not satisfy its variant's invariants."""

    def __init__(self, part_id: str | None, reason: str) -> None:
        super().__init__(f"Malformed part row {part_id!r}: {reason}")
        self.part_id = part_id
        self.reason = reason


# ── Storage ────────────────────────────────────────────────────────────────────


class StorageError(ChatVaultError):
    """Base class for chat store failures."""


class ChatNotFoundError(StorageError):
    """Raised when a chat_id does not exist in the store."""

    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat not found: {chat_id!r}")
        self.chat_id = chat_id


class DuplicateIDError(StorageError):
    """Raised when attempting to insert a record with a duplicate primary key."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Duplicate ID: {record_id!r}")
        self.record_id = record_id


class PersistenceError(StorageError):
    """
    Raised when the assistant turn could not be persisted after generation.

    The caller may already have received the complete stream; this error
    reports a durability failure, not a delivery failure.
    """

    def __init__(self, chat_id: str, message_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to persist assistant message {message_id!r} for chat {chat_id!r}: {cause}"
        )
        self.chat_id = chat_id
        self.message_id = message_id


# ── Collaborators ──────────────────────────────────────────────────────────────


class CacheError(ChatVaultError):
    """Key/value cache failure. Never escapes ``ResponseCache``."""


class ProviderError(ChatVaultError):
    """Raised when the model provider fails during generation."""


class ToolExecutionError(ChatVaultError):
    """Raised when a registered tool cannot be found or its handler fails."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool {tool_name!r} failed: {message}")
        self.tool_name = tool_name
