"""Plan stage: ask the strategy model for pseudocode describing an approach."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from codemode.catalog import PATH_SEPARATOR, Catalog, list_tool_paths
from codemode.llm.functions import LLMFunction

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 3


@dataclass(slots=True)
class PlanResult:
    plan: str
    total_tools_available: int
    used_fallback: bool = False


def category_overview(catalog: Catalog) -> str:
    """Count-and-sample overview of the catalog grouped by top-level key.

    ``slack (123 tools: slack.a, slack.b, slack.c, and 120 more); gmail (...)``
    """
    groups: dict[str, list[str]] = {}
    for path in list_tool_paths(catalog):
        groups.setdefault(path.split(PATH_SEPARATOR)[0], []).append(path)

    overview = []
    for category, paths in groups.items():
        sample = ", ".join(paths[:SAMPLE_SIZE])
        more = f", and {len(paths) - SAMPLE_SIZE} more" if len(paths) > SAMPLE_SIZE else ""
        overview.append(f"{category} ({len(paths)} tools: {sample}{more})")
    return "; ".join(overview)


def fallback_plan(query: str) -> str:
    return f'''
# Analyze the user query: "{query}"
# Execute required operations using available tools
result = await execute_task()
'''


def build_plan_prompt(query: str, overview: str) -> str:
    return f'''
You are a strategic planning assistant. Your task is to analyze a user's request and write Python-style pseudocode that outlines how to accomplish the task.

Given:
- User Query: "{query}"
- Available Tool Categories: {overview}

Write pseudocode that looks like actual async Python code showing:
- Function calls with approximate parameters (even if you don't know exact signatures)
- Variable assignments to store results
- Data flow showing how results from one call are passed to the next
- Loops and conditionals where needed
- Comments explaining the logic

Don't worry about exact function names or signatures - use your best guess based on what makes sense.

Example:
```python
# Get all channels from Slack
channels = await slack.list.all_channels()

# Filter for channels that start with 'test'
test_channels = [ch for ch in channels if ch["name"].startswith("test")]

# Send a message to each test channel
for channel in test_channels:
    await slack.send_message({{"channel_id": channel["id"], "text": "Hello from bot"}})
```

Generate the Python-style pseudocode now:
'''


async def generate_plan(query: str, catalog: Catalog, llm: LLMFunction) -> PlanResult:
    """Generate a plan; on any model failure fall back to a minimal placeholder."""
    total = len(list_tool_paths(catalog))
    logger.info("Generating plan for %r (%d tools available)", query, total)

    prompt = build_plan_prompt(query, category_overview(catalog))
    try:
        plan = await llm(prompt)
    except Exception as exc:
        logger.warning("Plan generation failed, using fallback plan: %s", exc)
        return PlanResult(plan=fallback_plan(query), total_tools_available=total, used_fallback=True)

    logger.info("Plan generated (%d characters)", len(plan))
    logger.debug("Plan:\n%s", plan)
    return PlanResult(plan=plan, total_tools_available=total)
