"""LLM router: maps model ids and pipeline tiers to LangChain chat models."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import Runnable
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from codemode.llm.config import (
    FALLBACK_CHAINS,
    MODEL_REGISTRY,
    TIER_MODEL_MAP,
    LLMSettings,
    ModelID,
    ModelSpec,
    ModelTier,
)
from codemode.llm.functions import LLMFunction, chat_model_function

if TYPE_CHECKING:
    from codemode.pipeline import PipelineLLMs

logger = logging.getLogger(__name__)


class LLMRouter:
    """Creates and caches LangChain ChatModel instances by ModelID."""

    def __init__(self, settings: LLMSettings | None = None) -> None:
        self._settings = settings or LLMSettings()
        self._cache: dict[ModelID, BaseChatModel] = {}

    def get_model(self, model_id: ModelID) -> BaseChatModel:
        """Get or create a ChatModel for the given model ID."""
        if model_id in self._cache:
            return self._cache[model_id]

        spec = MODEL_REGISTRY[model_id]
        model = self._create_model(spec)
        self._cache[model_id] = model
        return model

    def get_model_for_tier(self, tier: ModelTier) -> BaseChatModel:
        """Get the primary model for a pipeline tier."""
        return self.get_model(TIER_MODEL_MAP[tier])

    def get_model_with_fallbacks(self, model_id: ModelID) -> BaseChatModel | Runnable:
        """Wrap ``model_id`` with its ``FALLBACK_CHAINS`` entry via ``with_fallbacks``.

        Fallbacks that cannot be constructed (missing credentials, unknown
        provider) are skipped; with none left the bare model is returned.
        """
        primary = self.get_model(model_id)
        fallbacks: list[BaseChatModel] = []
        used: list[str] = []
        for fb_id in FALLBACK_CHAINS.get(model_id, []):
            if fb_id == model_id:
                continue
            try:
                fallbacks.append(self.get_model(fb_id))
            except Exception:
                logger.warning("Could not create fallback %s for %s", fb_id.value, model_id.value, exc_info=True)
                continue
            used.append(fb_id.value)

        if not fallbacks:
            return primary
        logger.debug("%s falls back to %s", model_id.value, ", ".join(used))
        return primary.with_fallbacks(fallbacks)

    def get_llm(self, model_id: ModelID, *, with_fallbacks: bool = True) -> LLMFunction:
        """Return a prompt -> text function for ``model_id``."""
        if with_fallbacks:
            return chat_model_function(self.get_model_with_fallbacks(model_id))
        return chat_model_function(self.get_model(model_id))

    def get_llm_for_tier(self, tier: ModelTier, *, with_fallbacks: bool = True) -> LLMFunction:
        return self.get_llm(TIER_MODEL_MAP[tier], with_fallbacks=with_fallbacks)

    def pipeline_llms(self) -> PipelineLLMs:
        """Build the tiny/main/strategy functions the pipeline needs."""
        from codemode.pipeline import PipelineLLMs

        return PipelineLLMs(
            tiny=self.get_llm_for_tier(ModelTier.TINY),
            main=self.get_llm_for_tier(ModelTier.MAIN),
            strategy=self.get_llm_for_tier(ModelTier.STRATEGY),
        )

    def _create_model(self, spec: ModelSpec) -> BaseChatModel:
        """Instantiate a LangChain ChatModel from a ModelSpec."""
        if spec.provider == "ollama":
            return ChatOllama(
                model=spec.model_name,
                base_url=self._settings.ollama_base_url,
                temperature=spec.temperature,
                num_predict=spec.max_tokens,
            )
        elif spec.provider == "openai":
            return ChatOpenAI(
                model=spec.model_name,
                api_key=self._settings.openai_api_key,
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
            )
        elif spec.provider == "openrouter":
            return ChatOpenAI(
                model=spec.model_name,
                api_key=self._settings.openrouter_api_key,
                base_url=self._settings.openrouter_base_url,
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
                default_headers={"X-Title": "codemode"},
            )
        elif spec.provider == "anthropic":
            return ChatAnthropic(
                model=spec.model_name,
                api_key=self._settings.anthropic_api_key,
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
            )
        else:
            raise ValueError(f"Unknown provider: {spec.provider}")
