"""Pipeline settings (environment-driven, ``CODEMODE_`` prefix)."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field
from pydantic_settings import BaseSettings


class FilterFailurePolicy(StrEnum):
    """What the batch filter does with a batch whose relevance call failed."""

    OPEN = "open"  # Keep every tool in the batch
    CLOSED = "closed"  # Drop the batch


class PipelineSettings(BaseSettings):
    """Defaults for pipeline runs; per-run options override them."""

    max_tools_per_prompt: int = Field(20, gt=0)
    max_concurrent_threads: int = Field(5, gt=0)
    filter_failure_policy: FilterFailurePolicy = FilterFailurePolicy.OPEN
    entry_function: str = "main"
    log_path: str = ""

    max_tool_calls: int = Field(100, gt=0)
    total_execution_timeout: float = Field(60.0, gt=0)
    tool_call_timeout: float = Field(10.0, gt=0)

    model_config = {"env_prefix": "CODEMODE_", "env_file": ".env", "extra": "ignore"}
