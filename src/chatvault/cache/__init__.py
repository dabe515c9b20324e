"""Semantic response cache."""

from chatvault.cache.keys import (
    DEFAULT_KEY_PREFIX,
    canonical_json,
    derive_cache_key,
    normalize_message,
)
from chatvault.cache.service import KVClient, ResponseCache, create_response_cache

__all__ = [
    "DEFAULT_KEY_PREFIX",
    "canonical_json",
    "derive_cache_key",
    "normalize_message",
    "KVClient",
    "ResponseCache",
    "create_response_cache",
]
