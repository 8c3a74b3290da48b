"""Execution backends for running code strings outside the pipeline process."""

from __future__ import annotations

from .local import LocalRunEnvironment
from .types import DEFAULT_TIMEOUT_MS, ExecutionOptions, ExecutionResult, RunEnvironment

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "ExecutionOptions",
    "ExecutionResult",
    "LocalRunEnvironment",
    "RunEnvironment",
]
