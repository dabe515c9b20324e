"""Tests for cache key derivation and the response cache."""

from __future__ import annotations

import hashlib

import pytest

from chatvault.cache.keys import canonical_json, derive_cache_key, normalize_message
from chatvault.cache.service import ResponseCache, create_response_cache
from chatvault.models.config import CacheConfig
from chatvault.models.message import DataPart, StepStartPart, TextPart, UIMessage
from tests.conftest import user_message


class TestCacheKeys:
    def test_known_digest(self):
        """The key is the sha256 of the compact, key-sorted normalised history."""
        history = [{"role": "user", "parts": [{"type": "text", "text": "Hi"}]}]
        expected = hashlib.sha256(b'[{"content":"Hi","role":"user"}]').hexdigest()
        assert derive_cache_key(history) == f"ai:chat:{expected}"

    def test_key_order_and_metadata_ignored(self):
        a = [{"role": "user", "parts": [{"type": "text", "text": "Hi"}]}]
        b = [
            {
                "parts": [{"providerMetadata": {"x": 1}, "text": "Hi", "type": "text"}],
                "id": "whatever",
                "role": "user",
            }
        ]
        assert derive_cache_key(a) == derive_cache_key(b)

    def test_non_text_parts_ignored(self):
        plain = UIMessage(id="1", role="user", parts=[TextPart(text="Hi")])
        decorated = UIMessage(
            id="2",
            role="user",
            parts=[StepStartPart(), TextPart(text="Hi"), DataPart(data={"k": "v"})],
        )
        assert derive_cache_key([plain]) == derive_cache_key([decorated])

    def test_models_and_wire_dicts_agree(self):
        message = user_message("Hello there")
        assert derive_cache_key([message]) == derive_cache_key([message.to_wire()])

    def test_text_change_changes_key(self):
        assert derive_cache_key([user_message("Hi")]) != derive_cache_key([user_message("Hi!")])

    def test_role_change_changes_key(self):
        a = UIMessage(id="1", role="user", parts=[TextPart(text="Hi")])
        b = UIMessage(id="1", role="assistant", parts=[TextPart(text="Hi")])
        assert derive_cache_key([a]) != derive_cache_key([b])

    def test_text_parts_concatenated_in_order(self):
        message = UIMessage(
            id="1", role="user", parts=[TextPart(text="Hel"), TextPart(text="lo")]
        )
        assert normalize_message(message) == {"role": "user", "content": "Hello"}

    def test_canonical_json_is_compact_and_sorted(self):
        assert canonical_json({"b": 1, "a": {"d": [1, 2], "c": "é"}}) == (
            '{"a":{"c":"é","d":[1,2]},"b":1}'
        )

    def test_custom_prefix(self):
        assert derive_cache_key([user_message()], prefix="test:").startswith("test:")


class TestResponseCache:
    async def test_set_then_get(self, kv):
        cache = ResponseCache(kv, ttl_seconds=60)
        history = [user_message("question")]
        await cache.set(history, "answer")
        assert await cache.get(history) == "answer"
        assert kv.ttls[cache.key_for(history)] == 60

    async def test_miss(self, kv):
        cache = ResponseCache(kv)
        assert await cache.get([user_message("never stored")]) is None

    async def test_ttl_override(self, kv):
        cache = ResponseCache(kv, ttl_seconds=60)
        history = [user_message()]
        await cache.set(history, "x", ttl_seconds=5)
        assert kv.ttls[cache.key_for(history)] == 5

    async def test_get_failure_is_a_miss(self, kv):
        kv.fail = True
        cache = ResponseCache(kv)
        assert await cache.get([user_message()]) is None

    async def test_set_failure_is_swallowed(self, kv):
        kv.fail = True
        cache = ResponseCache(kv)
        await cache.set([user_message()], "answer")
        assert kv.data == {}

    async def test_slow_backend_times_out(self, kv):
        """A call slower than timeout_seconds is abandoned and treated as a miss."""
        kv.delay = 0.5
        cache = ResponseCache(kv, timeout_seconds=0.01)
        history = [user_message()]
        kv.data[cache.key_for(history)] = "too late"
        assert await cache.get(history) is None

    async def test_bytes_values_decoded(self, kv):
        cache = ResponseCache(kv)
        history = [user_message()]
        kv.data[cache.key_for(history)] = "réponse".encode()  # type: ignore[assignment]
        assert await cache.get(history) == "réponse"


class TestCreateResponseCache:
    def test_disabled_without_url(self):
        assert create_response_cache(CacheConfig()) is None

    def test_disabled_by_flag(self):
        assert create_response_cache(CacheConfig(enabled=False, redis_url="redis://x:6379/0")) is None

    def test_built_from_url(self):
        cache = create_response_cache(
            CacheConfig(redis_url="redis://localhost:6379/0", ttl_seconds=120)
        )
        assert isinstance(cache, ResponseCache)
        assert cache.ttl_seconds == 120

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            CacheConfig(ttl_seconds=0)
