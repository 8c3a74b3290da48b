"""Model registry, model tiers, and fallback chains."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ModelTier(str, Enum):
    """Pipeline roles that drive model selection."""

    TINY = "tiny"  # Batch relevance filtering, high volume
    MAIN = "main"  # Program implementation
    STRATEGY = "strategy"  # Planning


class ModelID(str, Enum):
    """Registered model identifiers."""

    OLLAMA_QWEN = "ollama_qwen"
    GPT_OSS_20B = "gpt_oss_20b"
    GPT_OSS_120B = "gpt_oss_120b"
    GPT4O_MINI = "gpt4o_mini"
    GPT4O = "gpt4o"
    CLAUDE_SONNET = "claude_sonnet"


class ModelSpec(BaseModel):
    """Specification for a registered model."""

    model_id: ModelID
    provider: str  # "ollama", "openai", "anthropic", "openrouter"
    model_name: str  # Provider-specific model name
    max_tokens: int = 4096
    temperature: float = 0.0


MODEL_REGISTRY: dict[ModelID, ModelSpec] = {
    ModelID.OLLAMA_QWEN: ModelSpec(
        model_id=ModelID.OLLAMA_QWEN,
        provider="ollama",
        model_name="qwen2.5:3b",
        max_tokens=512,
    ),
    ModelID.GPT_OSS_20B: ModelSpec(
        model_id=ModelID.GPT_OSS_20B,
        provider="openrouter",
        model_name="openai/gpt-oss-20b",
        max_tokens=512,
    ),
    ModelID.GPT_OSS_120B: ModelSpec(
        model_id=ModelID.GPT_OSS_120B,
        provider="openrouter",
        model_name="openai/gpt-oss-120b",
        max_tokens=8192,
    ),
    ModelID.GPT4O_MINI: ModelSpec(
        model_id=ModelID.GPT4O_MINI,
        provider="openai",
        model_name="gpt-4o-mini",
        max_tokens=512,
    ),
    ModelID.GPT4O: ModelSpec(
        model_id=ModelID.GPT4O,
        provider="openai",
        model_name="gpt-4o",
        max_tokens=8192,
    ),
    ModelID.CLAUDE_SONNET: ModelSpec(
        model_id=ModelID.CLAUDE_SONNET,
        provider="anthropic",
        model_name="claude-sonnet-4-5",
        max_tokens=4096,
        temperature=0.2,
    ),
}

# Tier -> primary model
TIER_MODEL_MAP: dict[ModelTier, ModelID] = {
    ModelTier.TINY: ModelID.GPT_OSS_20B,
    ModelTier.MAIN: ModelID.GPT_OSS_120B,
    ModelTier.STRATEGY: ModelID.CLAUDE_SONNET,
}

# Fallback chains per model (ordered by preference)
FALLBACK_CHAINS: dict[ModelID, list[ModelID]] = {
    ModelID.OLLAMA_QWEN: [ModelID.GPT4O_MINI],
    ModelID.GPT_OSS_20B: [ModelID.GPT4O_MINI, ModelID.OLLAMA_QWEN],
    ModelID.GPT_OSS_120B: [ModelID.GPT4O],
    ModelID.GPT4O_MINI: [ModelID.GPT_OSS_20B],
    ModelID.GPT4O: [ModelID.GPT_OSS_120B],
    ModelID.CLAUDE_SONNET: [ModelID.GPT4O],
}


class LLMSettings(BaseSettings):
    """Environment-driven LLM settings."""

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ollama_base_url: str = "http://localhost:11434"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}
