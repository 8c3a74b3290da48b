"""Implement stage: ask the main model for a program against the signatures."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from codemode.llm.functions import LLMFunction
from codemode.steps.synthesize import SignatureSet

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_+-]*[ \t]*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


@dataclass(slots=True)
class ImplementResult:
    program: str
    raw_response: str


def strip_code_fence(text: str) -> str:
    """Remove one Markdown code fence wrapping the whole response, if present."""
    m = _FENCE.match(text)
    return m.group("body") if m else text


def build_implementation_prompt(
    query: str,
    plan: str,
    signatures: SignatureSet,
    entry: str = "main",
) -> str:
    return f"""You are a Python code generator. Your task is to implement working code based on a strategic plan and the typed tool signatures below.

USER QUERY:
{query}

STRATEGIC PLAN:
{plan}

AVAILABLE TOOLS (already defined, do not redefine them):
{signatures.full_text}

YOUR TASK:
Write a self-contained Python module that follows the strategic plan.

STRUCTURE REQUIREMENTS:
1. Call tools ONLY through the async functions declared above, by their exact
   UPPER_CASE names, passing a single dict that matches the tool's Params
   TypedDict, e.g. `channels = await SLACK_LIST_ALL_CHANNELS({{"limit": 100}})`.
2. Define exactly one entry point: `async def {entry}() -> dict:` that follows
   the plan step by step, handles errors with try/except, prints progress, and
   returns a structured result dict (for example with "success" and "error" keys).
3. Do NOT call `{entry}()` yourself: no `asyncio.run({entry}())`, no
   `if __name__ == "__main__":` block. The runtime invokes `{entry}()`.

RULES:
- Do NOT redefine the TypedDicts or the tool functions; they are provided.
- Do NOT import tool code; standard library imports are allowed.
- Treat tool results as untyped values (dicts/lists) and check them defensively.

OUTPUT FORMAT:
Provide ONLY Python code, no explanations and no Markdown formatting."""


async def implement_code(
    query: str,
    plan: str,
    signatures: SignatureSet,
    llm: LLMFunction,
    *,
    entry: str = "main",
) -> ImplementResult:
    """Obtain a candidate program. Model failures propagate to the caller."""
    logger.info(
        "Generating implementation (signatures %d chars, plan %d chars)",
        len(signatures.full_text),
        len(plan),
    )
    raw = await llm(build_implementation_prompt(query, plan, signatures, entry))
    program = strip_code_fence(raw)
    logger.info("Received implementation (%d characters)", len(program))
    return ImplementResult(program=program, raw_response=raw)
