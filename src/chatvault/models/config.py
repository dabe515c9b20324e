"""Configuration models for chatvault components."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer concisely and use the available tools "
    "when a question needs reference material."
)


class StoreConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    db_path: str = Field(
        default="~/.chatvault/chats.db",
        description="Path to the SQLite database file. ~ is expanded at runtime.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = 30.0
    """Seconds to wait for the database connection before raising."""


class CacheConfig(BaseModel):
    """Configuration for the response cache."""

    enabled: bool = True
    """Set False to skip the cache entirely even when ``redis_url`` is set."""

    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL, e.g. ``redis://localhost:6379/0``. None = no cache.",
    )

    ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="Expiration applied to every cached response.",
    )

    timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Upper bound on a single cache get/set before it is treated as failed.",
    )

    key_prefix: str = "ai:chat:"


class ModelConfig(BaseModel):
    """Configuration for the model collaborator."""

    model: str = Field(
        default="gemini/gemini-2.0-flash-001",
        description="litellm model string.",
    )

    max_steps: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum model/tool round-trips within a single assistant turn.",
    )

    max_output_tokens: int = Field(default=8_192, ge=1)

    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class PipelineConfig(BaseModel):
    """Behavioural switches for the ingestion pipeline."""

    persist_partial_output: bool = False
    """Persist whatever the assistant produced before a provider failure."""


class ChatVaultConfig(BaseModel):
    """
    Top-level configuration.

    All sub-configs have sensible defaults and can be overridden individually.

    Example::

        config = ChatVaultConfig(
            store=StoreConfig(db_path="/var/lib/chatvault/chats.db"),
            cache=CacheConfig(redis_url="redis://localhost:6379/0", ttl_seconds=600),
        )
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> ChatVaultConfig:
        """
        Build a config from ``CHATVAULT_*`` environment variables.

        Recognised variables: ``CHATVAULT_DB_PATH``, ``CHATVAULT_REDIS_URL``,
        ``CHATVAULT_CACHE_TTL``, ``CHATVAULT_MODEL``, ``CHATVAULT_SYSTEM_PROMPT``.
        Unset variables keep their defaults.
        """
        store: dict[str, object] = {}
        cache: dict[str, object] = {}
        model: dict[str, object] = {}

        if db_path := os.environ.get("CHATVAULT_DB_PATH"):
            store["db_path"] = db_path
        if redis_url := os.environ.get("CHATVAULT_REDIS_URL"):
            cache["redis_url"] = redis_url
        if ttl := os.environ.get("CHATVAULT_CACHE_TTL"):
            cache["ttl_seconds"] = int(ttl)
        if model_name := os.environ.get("CHATVAULT_MODEL"):
            model["model"] = model_name
        if system_prompt := os.environ.get("CHATVAULT_SYSTEM_PROMPT"):
            model["system_prompt"] = system_prompt

        return cls(
            store=StoreConfig(**store),
            cache=CacheConfig(**cache),
            model=ModelConfig(**model),
        )
