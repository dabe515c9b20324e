"""Tests for configuration models, environment loading and the package version."""

from __future__ import annotations

import re
from importlib.metadata import version

import pytest

import chatvault
from chatvault.models.config import (
    DEFAULT_SYSTEM_PROMPT,
    CacheConfig,
    ChatVaultConfig,
    ModelConfig,
    PipelineConfig,
    StoreConfig,
)


class TestDefaults:
    def test_sub_configs_present(self) -> None:
        cfg = ChatVaultConfig()
        assert isinstance(cfg.store, StoreConfig)
        assert isinstance(cfg.cache, CacheConfig)
        assert isinstance(cfg.model, ModelConfig)
        assert isinstance(cfg.pipeline, PipelineConfig)

    def test_cache_off_without_url(self) -> None:
        cfg = CacheConfig()
        assert cfg.enabled
        assert cfg.redis_url is None
        assert cfg.ttl_seconds == 3600
        assert cfg.key_prefix == "ai:chat:"

    def test_partial_output_not_persisted_by_default(self) -> None:
        assert PipelineConfig().persist_partial_output is False

    def test_model_defaults(self) -> None:
        cfg = ModelConfig()
        assert cfg.max_steps == 20
        assert cfg.system_prompt == DEFAULT_SYSTEM_PROMPT


class TestBounds:
    def test_max_steps_bounds(self) -> None:
        with pytest.raises(ValueError):
            ModelConfig(max_steps=0)
        with pytest.raises(ValueError):
            ModelConfig(max_steps=101)

    def test_cache_timeout_bounds(self) -> None:
        with pytest.raises(ValueError):
            CacheConfig(timeout_seconds=0)
        with pytest.raises(ValueError):
            CacheConfig(timeout_seconds=60)


class TestFromEnv:
    """ChatVaultConfig.from_env reads CHATVAULT_* variables."""

    _VARS = (
        "CHATVAULT_DB_PATH",
        "CHATVAULT_REDIS_URL",
        "CHATVAULT_CACHE_TTL",
        "CHATVAULT_MODEL",
        "CHATVAULT_SYSTEM_PROMPT",
    )

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in self._VARS:
            monkeypatch.delenv(name, raising=False)

    def test_unset_keeps_defaults(self) -> None:
        assert ChatVaultConfig.from_env() == ChatVaultConfig()

    def test_all_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_DB_PATH", "/tmp/chats.db")
        monkeypatch.setenv("CHATVAULT_REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("CHATVAULT_CACHE_TTL", "120")
        monkeypatch.setenv("CHATVAULT_MODEL", "openai/gpt-4o-mini")
        monkeypatch.setenv("CHATVAULT_SYSTEM_PROMPT", "Be brief.")

        cfg = ChatVaultConfig.from_env()
        assert cfg.store.db_path == "/tmp/chats.db"
        assert cfg.cache.redis_url == "redis://cache:6379/1"
        assert cfg.cache.ttl_seconds == 120
        assert cfg.model.model == "openai/gpt-4o-mini"
        assert cfg.model.system_prompt == "Be brief."

    def test_invalid_ttl_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_CACHE_TTL", "0")
        with pytest.raises(ValueError):
            ChatVaultConfig.from_env()


class TestVersion:
    """__version__ matches the installed package metadata."""

    def test_version_matches_package_metadata(self) -> None:
        assert chatvault.__version__ == version("chatvault")

    def test_version_has_semver_shape(self) -> None:
        parts = chatvault.__version__.split(".")
        assert len(parts) >= 2, "Expected at least MAJOR.MINOR"
        assert all(re.match(r"^\d", p) for p in parts), "Each segment must start with a digit"
