"""Execution backend contract: run a code string, capture its output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

DEFAULT_TIMEOUT_MS = 30_000


@dataclass(slots=True)
class ExecutionOptions:
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    language: str = "bash"


@dataclass(slots=True)
class ExecutionResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    execution_time_ms: float = 0.0
    error: str | None = None


@runtime_checkable
class RunEnvironment(Protocol):
    async def execute(self, code: str, options: ExecutionOptions | None = None) -> ExecutionResult: ...

    async def is_ready(self) -> bool: ...

    async def cleanup(self) -> None: ...

    @property
    def working_directory(self) -> str: ...
