"""Compile verifier: static type check of a candidate program.

The synthesized signatures (TypedDicts plus ``async def`` forward
declarations) are prepended to the candidate program and the result is
parsed and type-checked with mypy. Nothing is executed.

The mypy profile is deliberately loose: untyped code, incomplete annotations
and ``None`` flowing anywhere are accepted, so generated code is rejected
only for syntax errors, undefined names, and real type mismatches (wrong
TypedDict keys or value types, calling a tool that was not declared, ...).
"""

from __future__ import annotations

import ast
import asyncio
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from typing import Literal

from mypy import api as mypy_api

from codemode.steps.synthesize import SignatureSet

logger = logging.getLogger(__name__)

MYPY_FLAGS: tuple[str, ...] = (
    "--no-strict-optional",
    "--allow-untyped-defs",
    "--allow-untyped-calls",
    "--allow-incomplete-defs",
    "--allow-empty-bodies",
    "--check-untyped-defs",
    "--ignore-missing-imports",
    "--follow-imports=silent",
    "--disable-error-code=var-annotated",
    "--no-incremental",
    f"--cache-dir={os.devnull}",
    "--show-column-numbers",
    "--no-error-summary",
    "--hide-error-context",
    "--no-color-output",
    "--no-pretty",
)

_MYPY_LINE = re.compile(
    r"^(?P<file>[^:\n]+):(?P<line>\d+):(?:(?P<column>\d+):)?\s*"
    r"(?P<severity>error|warning|note):\s*(?P<message>.*?)(?:\s+\[(?P<code>[a-z0-9-]+)\])?$"
)

# mypy keeps global state while it runs; one check at a time per process.
_MYPY_LOCK = threading.Lock()

Origin = Literal["program", "declarations"]


@dataclass(frozen=True, slots=True)
class CompileDiagnostic:
    """One verifier finding; ``line``/``column`` are 1-based when known."""

    message: str
    line: int | None = None
    column: int | None = None
    severity: str = "error"
    code: str | None = None
    origin: Origin = "program"

    def __str__(self) -> str:
        where = ""
        if self.line is not None:
            where = f"Line {self.line}:{self.column or 1}"
            if self.origin == "declarations":
                where += " (declarations)"
            where += " - "
        suffix = f" [{self.code}]" if self.code else ""
        return f"{where}{self.message}{suffix}"


@dataclass(slots=True)
class CompileResult:
    success: bool
    diagnostics: list[CompileDiagnostic] = field(default_factory=list)
    full_program: str = ""

    @property
    def errors(self) -> list[CompileDiagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]


def build_verification_source(program: str, signatures: SignatureSet) -> tuple[str, int]:
    """Return the checked source and the number of prelude lines before ``program``."""
    prelude = signatures.full_text
    if not prelude:
        return program, 0
    prelude = prelude.rstrip("\n") + "\n\n\n"
    return prelude + program, prelude.count("\n")


def _locate(line: int, offset: int) -> tuple[int, Origin]:
    if line > offset:
        return line - offset, "program"
    return line, "declarations"


def parse_mypy_output(output: str, offset: int) -> list[CompileDiagnostic]:
    """Parse mypy's ``file:line:col: severity: message  [code]`` lines."""
    diagnostics: list[CompileDiagnostic] = []
    for raw in output.splitlines():
        m = _MYPY_LINE.match(raw.strip())
        if not m:
            if raw.strip():
                logger.debug("Unparsed mypy output: %s", raw)
            continue
        line, origin = _locate(int(m.group("line")), offset)
        column = m.group("column")
        diagnostics.append(
            CompileDiagnostic(
                message=m.group("message").strip(),
                line=line,
                column=int(column) if column else None,
                severity=m.group("severity"),
                code=m.group("code"),
                origin=origin,
            )
        )
    return diagnostics


class CompileVerifier:
    """Parse and type-check candidate programs against synthesized signatures."""

    def __init__(self, extra_flags: tuple[str, ...] = ()) -> None:
        self._flags = MYPY_FLAGS + tuple(extra_flags)

    async def verify(self, program: str, signatures: SignatureSet) -> CompileResult:
        return await asyncio.to_thread(self.verify_sync, program, signatures)

    def verify_sync(self, program: str, signatures: SignatureSet) -> CompileResult:
        source, offset = build_verification_source(program, signatures)

        try:
            ast.parse(source, filename="<program>")
        except SyntaxError as exc:
            line, origin = _locate(exc.lineno or 1, offset)
            diag = CompileDiagnostic(
                message=f"SyntaxError: {exc.msg}",
                line=line,
                column=exc.offset,
                code="syntax",
                origin=origin,
            )
            logger.info("Compilation failed: %s", diag)
            return CompileResult(success=False, diagnostics=[diag], full_program=source)

        with _MYPY_LOCK:
            stdout, stderr, status = mypy_api.run([*self._flags, "-c", source])

        diagnostics = parse_mypy_output(stdout, offset)
        if status == 2 or (status != 0 and not diagnostics):
            diagnostics.append(
                CompileDiagnostic(message=f"Type checker failed: {(stderr or stdout).strip()}")
            )

        errors = [d for d in diagnostics if d.severity == "error"]
        if errors:
            logger.info("Compilation failed with %d error(s)", len(errors))
            for diag in errors:
                logger.info("  %s", diag)
        else:
            logger.info("Compilation successful")
        return CompileResult(success=not errors, diagnostics=diagnostics, full_program=source)
