"""codemode: turn a query and a large tool catalog into one verified, executed program.

The pipeline filters the catalog with a cheap model, synthesizes typed
signatures for the surviving tools, has a strong model write a program
against them, type-checks it, and runs it once with the real tools wired in.
"""

from __future__ import annotations

from .catalog import Catalog, Tool, ToolParameter
from .exceptions import CodeModeError
from .interpreter import InProcessInterpreter, Interpreter
from .pipeline import (
    CodeModePipeline,
    PipelineLLMs,
    PipelineResult,
    ResultType,
    RunOptions,
    StageTiming,
    format_timing_report,
)
from .settings import FilterFailurePolicy, PipelineSettings

__all__ = [
    "Catalog",
    "CodeModeError",
    "CodeModePipeline",
    "FilterFailurePolicy",
    "InProcessInterpreter",
    "Interpreter",
    "PipelineLLMs",
    "PipelineResult",
    "PipelineSettings",
    "ResultType",
    "RunOptions",
    "StageTiming",
    "Tool",
    "ToolParameter",
    "format_timing_report",
]
