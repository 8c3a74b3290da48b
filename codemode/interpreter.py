"""In-process evaluation of generated programs.

The interpreter receives program text plus a binding table (call name ->
async callable), evaluates the module in a fresh namespace, and then calls
the entry function itself. Statements in the program that would invoke the
entry function on their own (``asyncio.run(main())``, an
``if __name__ == "__main__":`` block, ...) are removed from the parsed tree
first, so the entry function runs exactly once and its return value can be
captured.

This is not a sandbox: the program runs with full interpreter privileges.
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import inspect
import io
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from codemode.exceptions import EntryPointMissingError, ExecutionTimeoutError, ProgramExitError

logger = logging.getLogger(__name__)

PROGRAM_MODULE_NAME = "codemode_program"


@dataclass(slots=True)
class EvaluationOutcome:
    """Result of one evaluation. ``error`` is set instead of raising."""

    value: Any = None
    error: Exception | None = None
    stdout: str = ""
    stripped_statements: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class Interpreter(Protocol):
    async def evaluate(
        self,
        source: str,
        bindings: Mapping[str, Callable[..., Any]],
        *,
        prelude: str = "",
        entry: str = "main",
        timeout: float | None = None,
    ) -> EvaluationOutcome: ...


def _invokes(node: ast.AST, entry: str) -> bool:
    return any(
        isinstance(n, ast.Call) and isinstance(n.func, ast.Name) and n.func.id == entry
        for n in ast.walk(node)
    )


def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If):
        return False
    test = node.test
    if not (isinstance(test, ast.Compare) and len(test.ops) == 1 and isinstance(test.ops[0], ast.Eq)):
        return False
    operands = [test.left, *test.comparators]
    has_name = any(isinstance(o, ast.Name) and o.id == "__name__" for o in operands)
    has_main = any(isinstance(o, ast.Constant) and o.value == "__main__" for o in operands)
    return has_name and has_main


def strip_entry_invocation(tree: ast.Module, entry: str = "main") -> int:
    """Remove top-level statements that run ``entry`` themselves.

    Handles bare calls (``main()``, ``await main()``), runner calls
    (``asyncio.run(main())``, ``loop.run_until_complete(main())``),
    assignments of those, and ``if __name__ == "__main__":`` blocks.
    Mutates ``tree`` in place and returns the number of statements removed.
    """
    kept: list[ast.stmt] = []
    removed = 0
    for stmt in tree.body:
        match stmt:
            case ast.Expr(value=value) | ast.Assign(value=value) if _invokes(value, entry):
                removed += 1
            case ast.AnnAssign(value=value) if value is not None and _invokes(value, entry):
                removed += 1
            case _ if _is_main_guard(stmt):
                removed += 1
            case _:
                kept.append(stmt)
    tree.body = kept
    return removed


class InProcessInterpreter:
    """Evaluate programs with ``exec`` in an isolated module namespace."""

    def __init__(self, module_name: str = PROGRAM_MODULE_NAME) -> None:
        self._module_name = module_name

    async def evaluate(
        self,
        source: str,
        bindings: Mapping[str, Callable[..., Any]],
        *,
        prelude: str = "",
        entry: str = "main",
        timeout: float | None = None,
    ) -> EvaluationOutcome:
        buffer = io.StringIO()
        outcome = EvaluationOutcome()

        def _print(*args: Any, file: Any = None, **kwargs: Any) -> None:
            builtins.print(*args, file=buffer if file is None else file, **kwargs)

        namespace: dict[str, Any] = {
            "__name__": self._module_name,
            "__builtins__": builtins,
            "print": _print,
        }
        namespace.update(bindings)

        try:
            if prelude:
                exec(compile(prelude, "<declarations>", "exec"), namespace)

            tree = ast.parse(source, filename="<program>")
            outcome.stripped_statements = strip_entry_invocation(tree, entry)
            exec(compile(tree, "<program>", "exec"), namespace)

            for name, fn in bindings.items():
                if namespace.get(name) is not fn:
                    logger.warning("Program redefined tool binding %s; restoring it", name)
                    namespace[name] = fn

            entry_fn = namespace.get(entry)
            if not callable(entry_fn):
                raise EntryPointMissingError(entry)

            outcome.value = await self._call_entry(entry_fn, timeout)
        except (SystemExit, KeyboardInterrupt) as exc:
            outcome.error = ProgramExitError(exc)
        except Exception as exc:
            outcome.error = exc
        finally:
            outcome.stdout = buffer.getvalue()
        return outcome

    @staticmethod
    async def _call_entry(entry_fn: Callable[[], Any], timeout: float | None) -> Any:
        async def _run() -> Any:
            # Converted here so they never reach the task running this coroutine.
            try:
                result = entry_fn()
                if inspect.isawaitable(result):
                    result = await result
            except (SystemExit, KeyboardInterrupt) as exc:
                raise ProgramExitError(exc) from exc
            return result

        if timeout is None:
            return await _run()
        try:
            return await asyncio.wait_for(_run(), timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionTimeoutError(timeout) from exc
