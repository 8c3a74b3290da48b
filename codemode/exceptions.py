"""Exception hierarchy for the codemode pipeline.

All pipeline exceptions inherit from ``CodeModeError`` so the pipeline
boundary (``CodeModePipeline.run``) can turn any of them into a result value
with a single ``except CodeModeError`` clause.
"""

from __future__ import annotations

from typing import Any


class CodeModeError(Exception):
    """Base exception for all codemode failures."""

    __slots__ = ()


class CatalogError(CodeModeError):
    """Raised when a catalog contains something that is neither a tool nor a sub-catalog."""

    __slots__ = ("key",)

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(f"Catalog entry {key!r} is invalid: {detail}")
        self.key = key


class CallNameCollisionError(CodeModeError):
    """Raised when two tool paths map to the same canonical call name.

    Attributes
    ----------
    collisions : dict[str, list[str]]
        Call name -> every tool path that produced it.
    """

    __slots__ = ("collisions",)

    def __init__(self, collisions: dict[str, list[str]]) -> None:
        rendered = "; ".join(
            f"{name} <- {', '.join(paths)}" for name, paths in sorted(collisions.items())
        )
        super().__init__(f"Canonical call name collision: {rendered}")
        self.collisions = collisions


# ---------------------------------------------------------------------------
# Tool invocation (raised inside generated programs by the binding table)
# ---------------------------------------------------------------------------


class ToolInvocationError(CodeModeError):
    """Base exception for failures of a wired tool call."""

    __slots__ = ("path",)

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


class ToolExecutionError(ToolInvocationError):
    """Raised when a tool's invoke capability fails."""

    __slots__ = ("message", "original_error")

    def __init__(
        self,
        path: str,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(path, f"tool {path!r} failed: {message}")
        self.message = message
        self.original_error = original_error


class ToolArgumentError(ToolInvocationError):
    """Raised when call arguments do not match the tool's parameters."""

    __slots__ = ("errors",)

    def __init__(self, path: str, errors: list[dict[str, Any]]) -> None:
        n = len(errors)
        super().__init__(
            path,
            f"tool {path!r} called with invalid arguments: "
            f"{n} error{'s' if n != 1 else ''}",
        )
        self.errors = errors


class ToolCallTimeoutError(ToolInvocationError):
    """Raised when a single tool call exceeds the per-call timeout."""

    __slots__ = ("timeout_s",)

    def __init__(self, path: str, timeout_s: float) -> None:
        super().__init__(path, f"tool {path!r} timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class ToolCallLimitExceededError(ToolInvocationError):
    """Raised when a program makes more tool calls than allowed."""

    __slots__ = ("limit",)

    def __init__(self, path: str, limit: int) -> None:
        super().__init__(path, f"tool call limit of {limit} exceeded (calling {path!r})")
        self.limit = limit


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(CodeModeError):
    """Base exception for failures of the execution wirer."""

    __slots__ = ()


class NoToolsWiredError(ExecutionError):
    """Raised when there is nothing to wire into a program."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__("No tools available in catalog")


class EntryPointMissingError(ExecutionError):
    """Raised when the evaluated program does not define its entry function."""

    __slots__ = ("entry",)

    def __init__(self, entry: str) -> None:
        super().__init__(f"Program does not define a callable {entry!r}")
        self.entry = entry


class ExecutionTimeoutError(ExecutionError):
    """Raised when the entry function runs longer than the total execution timeout."""

    __slots__ = ("timeout_s",)

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Program execution timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class ProgramExitError(ExecutionError):
    """Raised in place of a ``SystemExit`` or ``KeyboardInterrupt`` from program code."""

    __slots__ = ("exit_code",)

    def __init__(self, exc: BaseException) -> None:
        if isinstance(exc, SystemExit):
            super().__init__(f"Program called exit with status {exc.code!r}")
            self.exit_code = exc.code
        else:
            super().__init__(f"Program raised {type(exc).__name__}")
            self.exit_code = None


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ProviderError(CodeModeError):
    """Raised when a tool provider cannot list or execute tools."""

    __slots__ = ("provider", "status")

    def __init__(self, provider: str, message: str, *, status: int | None = None) -> None:
        prefix = f"{provider} API error"
        if status is not None:
            prefix = f"{prefix}: {status}"
        super().__init__(f"{prefix} - {message}")
        self.provider = provider
        self.status = status
