"""Batch filter: prune a large catalog to the tools relevant to a query.

1. Flatten the catalog into ``(path, tool)`` pairs.
2. Split the list into contiguous batches of ``max_tools_per_prompt``.
3. Ask the relevance model, once per batch, which numbered tools matter.
   At most ``max_concurrent_threads`` calls are in flight at a time.
4. Merge the kept paths in submission order and rebuild the hierarchy.

A batch whose relevance call fails is kept whole under the default
``FilterFailurePolicy.OPEN``; losing tools silently is worse than sending a
few extra signatures to the implementer.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field

from codemode.catalog import Catalog, Tool, flatten, reconstruct
from codemode.llm.functions import LLMFunction
from codemode.settings import FilterFailurePolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOLS_PER_PROMPT = 20
DEFAULT_MAX_CONCURRENT_THREADS = 5

_INTEGER = re.compile(r"\d+")
_SEPARATORS = re.compile(r"[,\s]+")

Batch = list[tuple[str, Tool]]


@dataclass(slots=True)
class FilterToolsResult:
    """Outcome of filtering a catalog for one query."""

    filtered_catalog: Catalog
    total_tools: int
    selected_tools: int
    selected_paths: list[str] = field(default_factory=list)
    batch_count: int = 0
    failed_batches: int = 0


def partition_batches(items: list[tuple[str, Tool]], size: int) -> list[Batch]:
    """Split ``items`` into ceil(len/size) contiguous, order-preserving batches."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]


def parse_selection(response: str, batch_size: int) -> list[int]:
    """Parse a comma-separated index list into unique 1-based indices.

    Tokens that are not plain integers, and integers outside ``[1, batch_size]``,
    are dropped. ``none`` (or an empty answer) selects nothing.
    """
    text = (response or "").strip().lower()
    if text in ("", "none"):
        return []

    indices: list[int] = []
    for token in _SEPARATORS.split(text):
        m = _INTEGER.fullmatch(token.strip("\"'`.()[]"))
        if not m:
            continue
        n = int(m.group())
        if 1 <= n <= batch_size and n not in indices:
            indices.append(n)
    return indices


def build_batch_prompt(batch: Batch, query: str) -> str:
    """Numbered tool listing plus the selection instructions."""
    entries = []
    for i, (path, tool) in enumerate(batch, start=1):
        params = ", ".join(
            f"{p.name}: {p.kind}{' (required)' if p.required else ''}" for p in tool.parameters
        )
        entries.append(f"{i}. {path}\n   Description: {tool.description}\n   Parameters: {params}")
    tool_descriptions = "\n\n".join(entries)

    return f"""
Select ONLY the tools that are directly relevant and necessary to accomplish the provided task.
Be permissive - select the most relevant tools, even if they are not strictly necessary.

Respond with ONLY the numbers of relevant tools, comma-separated (e.g., "1,3,5").
If no tools are relevant, respond with "none".

Given this user query: "{query}"

Available tools:
{tool_descriptions}
"""


async def filter_tool_batch(
    batch: Batch,
    query: str,
    llm: LLMFunction,
    *,
    failure_policy: FilterFailurePolicy = FilterFailurePolicy.OPEN,
) -> tuple[list[str], bool]:
    """Ask ``llm`` which tools in ``batch`` are relevant.

    Returns the kept paths and whether the relevance call failed.
    """
    prompt = build_batch_prompt(batch, query)
    try:
        response = await llm(prompt)
    except Exception as exc:
        if failure_policy is FilterFailurePolicy.CLOSED:
            logger.warning("Relevance call failed for batch (%d tools), dropping it: %s", len(batch), exc)
            return [], True
        logger.warning("Relevance call failed for batch (%d tools), keeping all: %s", len(batch), exc)
        return [path for path, _ in batch], True

    indices = parse_selection(str(response), len(batch))
    logger.debug("Batch response %r -> indices %s", response, indices)
    return [batch[i - 1][0] for i in indices], False


async def filter_tools_for_query(
    query: str,
    catalog: Catalog,
    llm: LLMFunction,
    *,
    max_tools_per_prompt: int = DEFAULT_MAX_TOOLS_PER_PROMPT,
    max_concurrent_threads: int = DEFAULT_MAX_CONCURRENT_THREADS,
    failure_policy: FilterFailurePolicy = FilterFailurePolicy.OPEN,
) -> FilterToolsResult:
    """Filter ``catalog`` down to the tools relevant to ``query``."""
    all_tools = flatten(catalog)
    total_tools = len(all_tools)

    logger.info("Tool filtering: %d tools in catalog", total_tools)
    if total_tools == 0:
        logger.info("Selected tools: 0 (catalog is empty)")
        return FilterToolsResult(filtered_catalog=Catalog(), total_tools=0, selected_tools=0)

    for path, _ in all_tools:
        logger.debug("  available: %s", path)

    batches = partition_batches(all_tools, max_tools_per_prompt)
    logger.info(
        "Batches to process: %d (%d tools per batch, %d concurrent)",
        len(batches),
        max_tools_per_prompt,
        max_concurrent_threads,
    )

    semaphore = asyncio.Semaphore(max_concurrent_threads)
    done = 0

    async def run_batch(batch: Batch) -> tuple[list[str], bool]:
        nonlocal done
        async with semaphore:
            outcome = await filter_tool_batch(batch, query, llm, failure_policy=failure_policy)
        done += 1
        logger.info("Progress: %d/%d batches processed", done, len(batches))
        return outcome

    # gather() returns results in submission order regardless of completion order.
    outcomes = await asyncio.gather(*(run_batch(b) for b in batches))

    selected_paths: list[str] = []
    failed_batches = 0
    for paths, failed in outcomes:
        selected_paths.extend(paths)
        failed_batches += int(failed)

    logger.info("Selected tools: %d out of %d", len(selected_paths), total_tools)
    by_path = dict(all_tools)
    for path in selected_paths:
        logger.info("  - %s: %s", path, by_path[path].description)

    return FilterToolsResult(
        filtered_catalog=reconstruct(catalog, selected_paths),
        total_tools=total_tools,
        selected_tools=len(selected_paths),
        selected_paths=selected_paths,
        batch_count=len(batches),
        failed_batches=failed_batches,
    )
