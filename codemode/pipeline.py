"""Code-mode pipeline: query + tool catalog -> verified program -> one execution.

Stages, in order, each timed:

1. Filter Tools (tiny model): batch relevance filtering of the catalog
2. Synthesize Interfaces: typed signatures for the surviving tools
3. Generate Plan (strategy model): pseudocode for the task
4. Implement Code (main model): candidate program against the signatures
5. Verify Compilation: static type check, no execution
6. Wire and Execute Code: bind call names to live tools and run once

Any stage can end the run early with a ``failure`` result; a compile failure
always ends it before a single tool is invoked. ``run`` never raises for
pipeline failures: errors are returned in the ``PipelineResult``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from codemode.catalog import Catalog, Tool, resolve
from codemode.catalog import list_tool_paths as _list_tool_paths
from codemode.interpreter import InProcessInterpreter, Interpreter
from codemode.llm.functions import LLMFunction, with_prompt_log
from codemode.settings import PipelineSettings
from codemode.steps.execute import ExecuteCodeResult, execute_code
from codemode.steps.filter_tools import FilterToolsResult, filter_tools_for_query
from codemode.steps.implement import implement_code
from codemode.steps.plan import generate_plan
from codemode.steps.synthesize import SignatureSet, synthesize_signatures
from codemode.steps.verify import CompileDiagnostic, CompileResult, CompileVerifier

logger = logging.getLogger(__name__)

REPORT_WIDTH = 80
BAR_WIDTH = 30

STAGE_FILTER = "Filter Tools (tiny)"
STAGE_SYNTHESIZE = "Synthesize Interfaces"
STAGE_PLAN = "Generate Plan (strategy)"
STAGE_IMPLEMENT = "Implement Code (main)"
STAGE_VERIFY = "Verify Compilation"
STAGE_EXECUTE = "Wire and Execute Code"


class ResultType(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"  # Program returned, but some tool calls inside it failed
    FAILURE = "failure"


@dataclass(slots=True)
class PipelineLLMs:
    """The three model tiers the pipeline calls."""

    tiny: LLMFunction
    main: LLMFunction
    strategy: LLMFunction


class RunOptions(BaseModel):
    """Per-run options; unset optional fields fall back to ``PipelineSettings``."""

    query: str = ""
    max_tool_calls: int = Field(..., gt=0)
    total_execution_timeout: float = Field(..., gt=0)
    tool_call_timeout: float = Field(..., gt=0)
    max_tools_per_prompt: int | None = Field(None, gt=0)
    max_concurrent_threads: int | None = Field(None, gt=0)


@dataclass(slots=True)
class StageTiming:
    stage_name: str
    start_time: float
    end_time: float

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000


@dataclass(slots=True)
class PipelineRunState:
    """Everything one run produced. Owned by that run only."""

    query: str
    catalog: Catalog
    filter_result: FilterToolsResult | None = None
    signatures: SignatureSet | None = None
    plan: str = ""
    program: str = ""
    compile_result: CompileResult | None = None
    execution_result: ExecuteCodeResult | None = None
    timings: list[StageTiming] = field(default_factory=list)

    @property
    def filtered_catalog(self) -> Catalog:
        return self.filter_result.filtered_catalog if self.filter_result else Catalog()

    @property
    def signature_text(self) -> str:
        return self.signatures.full_text if self.signatures else ""


@dataclass(slots=True)
class PipelineResult:
    result_type: ResultType
    timings: list[StageTiming]
    total_duration_ms: float
    state: PipelineRunState
    error: str | None = None

    @property
    def diagnostics(self) -> list[CompileDiagnostic]:
        if self.state.compile_result is None:
            return []
        return self.state.compile_result.diagnostics


def _bar(value: float, total: float, width: int = BAR_WIDTH) -> str:
    filled = round(value / total * width) if total > 0 else 0
    filled = max(0, min(width, filled))
    return "█" * filled + "░" * (width - filled)


def format_timing_report(timings: list[StageTiming], total_duration_ms: float) -> str:
    """Numbered per-stage durations with share of the total and a bar."""
    lines = ["=" * REPORT_WIDTH, "TIMING REPORT", "=" * REPORT_WIDTH, ""]
    name_width = max((len(t.stage_name) for t in timings), default=5)
    for i, timing in enumerate(timings, start=1):
        share = timing.duration_ms / total_duration_ms * 100 if total_duration_ms > 0 else 0.0
        lines.append(
            f"{i}. {timing.stage_name.ljust(name_width)}  "
            f"{timing.duration_ms / 1000:.2f}s  ({share:.1f}%)  "
            f"{_bar(timing.duration_ms, total_duration_ms)}"
        )
    lines.append("")
    lines.append("─" * REPORT_WIDTH)
    lines.append(f"   {'TOTAL'.ljust(name_width)}  {total_duration_ms / 1000:.2f}s  (100.0%)")
    lines.append("=" * REPORT_WIDTH)
    return "\n".join(lines)


@contextmanager
def _timed(timings: list[StageTiming], stage_name: str) -> Iterator[None]:
    logger.info("%s", "=" * REPORT_WIDTH)
    logger.info("STAGE: %s", stage_name)
    start = time.time()
    try:
        yield
    finally:
        timings.append(StageTiming(stage_name, start, time.time()))


class CodeModePipeline:
    """Turns a natural-language query into one verified, executed program."""

    def __init__(
        self,
        llms: PipelineLLMs,
        catalog: Catalog | Mapping[str, Any] | None = None,
        *,
        interpreter: Interpreter | None = None,
        verifier: CompileVerifier | None = None,
        settings: PipelineSettings | None = None,
        log_path: str | Path | None = None,
    ) -> None:
        self._settings = settings or PipelineSettings()
        self._catalog = self._as_catalog(catalog)
        self._interpreter = interpreter or InProcessInterpreter()
        self._verifier = verifier or CompileVerifier()

        log_path = log_path or self._settings.log_path or None
        if log_path:
            logger.info("Logging LLM prompts and responses to %s", log_path)
            llms = PipelineLLMs(
                tiny=with_prompt_log(llms.tiny, log_path, "filter_tools"),
                main=with_prompt_log(llms.main, log_path, "implement_code"),
                strategy=with_prompt_log(llms.strategy, log_path, "generate_plan"),
            )
        self._llms = llms

    # ------------------------------------------------------------------
    # Catalog and model accessors
    # ------------------------------------------------------------------

    @staticmethod
    def _as_catalog(catalog: Catalog | Mapping[str, Any] | None) -> Catalog:
        if catalog is None:
            return Catalog()
        if isinstance(catalog, Catalog):
            return catalog
        return Catalog.from_dict(catalog)

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    def set_catalog(self, catalog: Catalog | Mapping[str, Any]) -> None:
        """Replace the catalog wholesale; later runs see the new one."""
        self._catalog = self._as_catalog(catalog)

    def get_tool(self, path: str) -> Tool | None:
        return resolve(self._catalog, path)

    def list_tool_paths(self) -> list[str]:
        return _list_tool_paths(self._catalog)

    async def use_tiny_llm(self, prompt: str) -> str:
        return await self._llms.tiny(prompt)

    async def use_main_llm(self, prompt: str) -> str:
        return await self._llms.main(prompt)

    async def use_strategy_llm(self, prompt: str) -> str:
        return await self._llms.strategy(prompt)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, options: RunOptions | Mapping[str, Any]) -> PipelineResult:
        """Run every stage for ``options.query`` against the current catalog."""
        if not isinstance(options, RunOptions):
            try:
                options = RunOptions.model_validate(options)
            except ValidationError as exc:
                details = "; ".join(
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
                )
                error = f"Invalid run options: {details}"
                query = str(options.get("query") or "") if isinstance(options, Mapping) else ""
                logger.error("Run rejected: %s", error)
                return PipelineResult(
                    result_type=ResultType.FAILURE,
                    timings=[],
                    total_duration_ms=0.0,
                    state=PipelineRunState(query=query, catalog=self._catalog),
                    error=error,
                )

        settings = self._settings
        max_tools_per_prompt = options.max_tools_per_prompt or settings.max_tools_per_prompt
        max_concurrent_threads = options.max_concurrent_threads or settings.max_concurrent_threads

        state = PipelineRunState(query=options.query, catalog=self._catalog)
        overall_start = time.time()
        logger.info(
            "Starting code-mode run: query=%r max_tool_calls=%d total_timeout=%.1fs "
            "tool_call_timeout=%.1fs max_tools_per_prompt=%d max_concurrent_threads=%d",
            options.query or "No query provided",
            options.max_tool_calls,
            options.total_execution_timeout,
            options.tool_call_timeout,
            max_tools_per_prompt,
            max_concurrent_threads,
        )

        try:
            result_type, error = await self._run_stages(
                options, state, max_tools_per_prompt, max_concurrent_threads
            )
        except Exception as exc:
            logger.exception("Pipeline run failed unexpectedly")
            result_type, error = ResultType.FAILURE, f"{type(exc).__name__}: {exc}"

        total_ms = (time.time() - overall_start) * 1000
        logger.info("Timing report:\n%s", format_timing_report(state.timings, total_ms))
        if error:
            logger.error("Run finished: %s (%s)", result_type, error)
        else:
            logger.info("Run finished: %s", result_type)
        return PipelineResult(
            result_type=result_type,
            timings=state.timings,
            total_duration_ms=total_ms,
            state=state,
            error=error,
        )

    async def _run_stages(
        self,
        options: RunOptions,
        state: PipelineRunState,
        max_tools_per_prompt: int,
        max_concurrent_threads: int,
    ) -> tuple[ResultType, str | None]:
        query = options.query
        timings = state.timings

        with _timed(timings, STAGE_FILTER):
            state.filter_result = await filter_tools_for_query(
                query,
                state.catalog,
                self._llms.tiny,
                max_tools_per_prompt=max_tools_per_prompt,
                max_concurrent_threads=max_concurrent_threads,
                failure_policy=self._settings.filter_failure_policy,
            )
        if state.filter_result.selected_tools == 0:
            if state.filter_result.total_tools == 0:
                return ResultType.FAILURE, "No tools available in catalog"
            return ResultType.FAILURE, "No relevant tools selected for query"

        with _timed(timings, STAGE_SYNTHESIZE):
            state.signatures = synthesize_signatures(state.filtered_catalog)
        logger.debug("Signatures:\n%s", state.signature_text)

        with _timed(timings, STAGE_PLAN):
            plan = await generate_plan(query, state.catalog, self._llms.strategy)
            state.plan = plan.plan

        entry = self._settings.entry_function
        with _timed(timings, STAGE_IMPLEMENT):
            try:
                implementation = await implement_code(
                    query, state.plan, state.signatures, self._llms.main, entry=entry
                )
            except Exception as exc:
                logger.error("Implementation failed: %s", exc, exc_info=True)
                return ResultType.FAILURE, f"Implementation failed: {exc}"
            state.program = implementation.program
        logger.info("Generated program:\n%s", state.program)

        with _timed(timings, STAGE_VERIFY):
            state.compile_result = await self._verifier.verify(state.program, state.signatures)
        if not state.compile_result.success:
            errors = state.compile_result.errors
            details = "; ".join(str(d) for d in errors)
            return ResultType.FAILURE, f"Compilation failed with {len(errors)} error(s): {details}"

        with _timed(timings, STAGE_EXECUTE):
            state.execution_result = await execute_code(
                state.program,
                state.filtered_catalog,
                state.signatures,
                interpreter=self._interpreter,
                max_tool_calls=options.max_tool_calls,
                tool_call_timeout=options.tool_call_timeout,
                total_timeout=options.total_execution_timeout,
                entry=entry,
            )

        execution = state.execution_result
        if not execution.success:
            return ResultType.FAILURE, execution.error
        failed = execution.failed_tool_calls
        if failed:
            paths = ", ".join(r.path for r in failed)
            return ResultType.PARTIAL, f"{len(failed)} tool call(s) failed: {paths}"
        return ResultType.SUCCESS, None
