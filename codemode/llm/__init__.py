"""LLM collaborators: model registry, router, and prompt -> text functions."""

from codemode.llm.config import LLMSettings, ModelID, ModelTier
from codemode.llm.functions import LLMFunction, chat_model_function, with_prompt_log
from codemode.llm.router import LLMRouter

__all__ = [
    "LLMFunction",
    "LLMRouter",
    "LLMSettings",
    "ModelID",
    "ModelTier",
    "chat_model_function",
    "with_prompt_log",
]
