"""Execution wirer: bind call names to live tools and run the program once.

Each tool in the filtered catalog is exposed to the program under the same
canonical call name used for its synthesized signature. The binding logs the
call, validates the argument object against the tool's parameters, forwards
it to the tool's invoke capability, and records the outcome. Failures are
re-raised into the program, which may handle them; anything that escapes the
entry function is reported as an execution failure, never raised to the
caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from codemode.catalog import Catalog, Tool, flatten
from codemode.exceptions import (
    NoToolsWiredError,
    ToolArgumentError,
    ToolCallLimitExceededError,
    ToolCallTimeoutError,
    ToolExecutionError,
    ToolInvocationError,
)
from codemode.interpreter import InProcessInterpreter, Interpreter
from codemode.naming import params_type_name
from codemode.providers.schema import args_model
from codemode.steps.synthesize import SignatureSet

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 500


def _preview(value: Any) -> str:
    try:
        text = json.dumps(value, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    return text if len(text) <= _PREVIEW_CHARS else text[:_PREVIEW_CHARS] + "..."


@dataclass(slots=True)
class ToolCallRecord:
    path: str
    call_name: str
    arguments: dict[str, Any]
    ok: bool
    error: str | None = None
    duration_ms: float = 0.0


class ToolBindingTable:
    """Per-run mapping of call names to logging, validating tool wrappers."""

    def __init__(
        self,
        catalog: Catalog,
        call_names: Mapping[str, str],
        *,
        max_tool_calls: int | None = None,
        tool_call_timeout: float | None = None,
    ) -> None:
        self.max_tool_calls = max_tool_calls
        self.tool_call_timeout = tool_call_timeout
        self.records: list[ToolCallRecord] = []
        self.paths: dict[str, str] = {}
        self._bindings: dict[str, Callable[..., Any]] = {}
        self._calls = 0

        for path, tool in flatten(catalog):
            call_name = call_names.get(path)
            if call_name is None:
                logger.warning("No signature for %s; not wiring it", path)
                continue
            self._bindings[call_name] = self._bind(path, call_name, tool)
            self.paths[call_name] = path

    def __len__(self) -> int:
        return len(self._bindings)

    @property
    def bindings(self) -> dict[str, Callable[..., Any]]:
        return dict(self._bindings)

    @property
    def call_count(self) -> int:
        return self._calls

    @property
    def failed_calls(self) -> list[ToolCallRecord]:
        return [r for r in self.records if not r.ok]

    def _bind(self, path: str, call_name: str, tool: Tool) -> Callable[..., Any]:
        validator = args_model(params_type_name(call_name), tool.parameters)

        async def binding(params: Mapping[str, Any] | None = None) -> Any:
            arguments = dict(params) if isinstance(params, Mapping) else {}
            self._calls += 1
            logger.info("Tool call: %s (%s) args=%s", path, call_name, _preview(arguments))
            start = time.perf_counter()

            try:
                if self.max_tool_calls is not None and self._calls > self.max_tool_calls:
                    raise ToolCallLimitExceededError(path, self.max_tool_calls)
                if params is not None and not isinstance(params, Mapping):
                    raise ToolArgumentError(
                        path,
                        [{"type": "dict_type", "loc": (), "msg": "Input should be a mapping"}],
                    )
                try:
                    validator.model_validate(arguments)
                except ValidationError as exc:
                    raise ToolArgumentError(path, exc.errors(include_url=False)) from exc
                result = await self._invoke(path, tool, arguments)
            except ToolInvocationError as exc:
                duration = (time.perf_counter() - start) * 1000
                self.records.append(
                    ToolCallRecord(path, call_name, arguments, ok=False, error=str(exc), duration_ms=duration)
                )
                logger.error("Tool call failed: %s args=%s: %s", path, _preview(arguments), exc)
                raise

            duration = (time.perf_counter() - start) * 1000
            self.records.append(ToolCallRecord(path, call_name, arguments, ok=True, duration_ms=duration))
            logger.info("Tool result: %s (%.0f ms) %s", path, duration, _preview(result))
            return result

        binding.__name__ = call_name
        binding.__qualname__ = call_name
        return binding

    async def _invoke(self, path: str, tool: Tool, arguments: dict[str, Any]) -> Any:
        try:
            if self.tool_call_timeout is None:
                return await tool(arguments)
            return await asyncio.wait_for(tool(arguments), self.tool_call_timeout)
        except asyncio.TimeoutError as exc:
            raise ToolCallTimeoutError(path, self.tool_call_timeout or 0.0) from exc
        except ToolInvocationError:
            raise
        except Exception as exc:
            raise ToolExecutionError(path, str(exc) or type(exc).__name__, exc) from exc


@dataclass(slots=True)
class ExecuteCodeResult:
    success: bool
    output: str = ""
    value: Any = None
    error: str | None = None
    tools_wired: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    stdout: str = ""

    @property
    def failed_tool_calls(self) -> list[ToolCallRecord]:
        return [r for r in self.tool_calls if not r.ok]


def _describe(exc: Exception) -> str:
    if isinstance(exc, ToolInvocationError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


async def execute_code(
    program: str,
    catalog: Catalog,
    signatures: SignatureSet,
    *,
    interpreter: Interpreter | None = None,
    max_tool_calls: int | None = None,
    tool_call_timeout: float | None = None,
    total_timeout: float | None = None,
    entry: str = "main",
) -> ExecuteCodeResult:
    """Wire ``catalog`` into ``program`` and run its entry function once."""
    table = ToolBindingTable(
        catalog,
        signatures.call_names,
        max_tool_calls=max_tool_calls,
        tool_call_timeout=tool_call_timeout,
    )
    if not len(table):
        error = NoToolsWiredError()
        logger.error("Execution aborted: %s", error)
        return ExecuteCodeResult(success=False, error=str(error), tools_wired=0)

    logger.info("Wired %d tools: %s", len(table), ", ".join(table.paths.values()))
    interpreter = interpreter or InProcessInterpreter()
    outcome = await interpreter.evaluate(
        program,
        table.bindings,
        prelude=signatures.types_code,
        entry=entry,
        timeout=total_timeout,
    )
    if outcome.stripped_statements:
        logger.info("Removed %d self-invoking statement(s) from program", outcome.stripped_statements)
    if outcome.stdout:
        logger.info("Program output:\n%s", outcome.stdout.rstrip())

    if outcome.error is not None:
        logger.error("Execution failed: %s", outcome.error, exc_info=outcome.error)
        return ExecuteCodeResult(
            success=False,
            error=_describe(outcome.error),
            tools_wired=len(table),
            tool_calls=table.records,
            stdout=outcome.stdout,
        )

    output = json.dumps(outcome.value, indent=2, default=str)
    logger.info(
        "Execution completed (%d tool calls, %d failed)",
        table.call_count,
        len(table.failed_calls),
    )
    logger.info("Result: %s", output)
    return ExecuteCodeResult(
        success=True,
        output=output,
        value=outcome.value,
        tools_wired=len(table),
        tool_calls=table.records,
        stdout=outcome.stdout,
    )
