"""Model collaborators."""

from __future__ import annotations

import os

from chatvault.llm.base import ModelClient, to_model_messages
from chatvault.llm.litellm_model import LiteLLMModel
from chatvault.llm.mock import MockModel
from chatvault.models.config import ModelConfig


def create_model(config: ModelConfig) -> ModelClient:
    """Return a :class:`MockModel` when ``CHATVAULT_MOCK_LLM=1``, else a :class:`LiteLLMModel`."""
    if os.environ.get("CHATVAULT_MOCK_LLM") == "1":
        return MockModel()
    return LiteLLMModel(config)


__all__ = ["LiteLLMModel", "MockModel", "ModelClient", "create_model", "to_model_messages"]
