"""Best-effort response cache in front of the model, backed by a key/value store."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol

import structlog
from redis.asyncio import Redis

from chatvault.cache.keys import DEFAULT_KEY_PREFIX, derive_cache_key
from chatvault.errors import CacheError
from chatvault.models.config import CacheConfig
from chatvault.models.message import UIMessage

History = Sequence[UIMessage | Mapping[str, Any]]


class KVClient(Protocol):
    """The subset of the ``redis.asyncio.Redis`` API the cache relies on."""

    async def get(self, name: str) -> Any: ...

    async def set(self, name: str, value: str, ex: int | None = None) -> Any: ...


class ResponseCache:
    """
    Cache of final assistant text keyed by the history that produced it.

    The cache never fails a request: a client error or a call that exceeds
    ``timeout_seconds`` is logged and treated as a miss (``get``) or a no-op
    (``set``).

    Usage::

        cache = ResponseCache(Redis.from_url(url, decode_responses=True))
        text = await cache.get(history)
        if text is None:
            text = await generate(history)
            await cache.set(history, text)
    """

    def __init__(
        self,
        client: KVClient,
        *,
        ttl_seconds: int = 3600,
        timeout_seconds: float = 1.0,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._timeout_seconds = timeout_seconds
        self._key_prefix = key_prefix
        self._logger = structlog.get_logger("chatvault.cache")

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def key_for(self, history: History) -> str:
        """The cache key for *history*."""
        return derive_cache_key(history, prefix=self._key_prefix)

    async def get(self, history: History) -> str | None:
        """Return the cached text for *history*, or ``None`` on a miss or any failure."""
        key = self.key_for(history)
        try:
            value = await self._call(lambda: self._client.get(key))
        except CacheError as exc:
            self._logger.warning("cache_get_failed", cache_key=key, error=str(exc))
            return None

        if value is None:
            self._logger.debug("cache_miss", cache_key=key)
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        self._logger.debug("cache_hit", cache_key=key)
        return str(value)

    async def set(self, history: History, text: str, ttl_seconds: int | None = None) -> None:
        """Store *text* under the key for *history*. Failures are logged and dropped."""
        key = self.key_for(history)
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        try:
            await self._call(lambda: self._client.set(key, text, ex=ttl))
        except CacheError as exc:
            self._logger.warning("cache_set_failed", cache_key=key, error=str(exc))
            return
        self._logger.debug("cache_stored", cache_key=key, text_length=len(text), ttl_seconds=ttl)

    async def _call(self, request: Callable[[], Awaitable[Any]]) -> Any:
        """Await a client call under the timeout, folding every failure into ``CacheError``."""
        try:
            async with asyncio.timeout(self._timeout_seconds):
                return await request()
        except TimeoutError as exc:
            raise CacheError(f"cache call timed out after {self._timeout_seconds}s") from exc
        except Exception as exc:
            raise CacheError(f"{type(exc).__name__}: {exc}") from exc


def create_response_cache(config: CacheConfig) -> ResponseCache | None:
    """
    Build a Redis-backed ``ResponseCache`` from *config*.

    Returns ``None`` (and logs a warning) when caching is disabled or no
    ``redis_url`` is configured; the pipeline then runs without a cache.
    """
    logger = structlog.get_logger("chatvault.cache")
    if not config.enabled or not config.redis_url:
        logger.warning("cache_disabled", reason="disabled" if not config.enabled else "no_redis_url")
        return None

    client = Redis.from_url(config.redis_url, decode_responses=True)
    logger.info("cache_enabled", ttl_seconds=config.ttl_seconds)
    return ResponseCache(
        client,
        ttl_seconds=config.ttl_seconds,
        timeout_seconds=config.timeout_seconds,
        key_prefix=config.key_prefix,
    )
