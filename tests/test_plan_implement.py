"""Tests for the plan and implement stages."""

from __future__ import annotations

import pytest

from codemode.steps.implement import build_implementation_prompt, implement_code, strip_code_fence
from codemode.steps.plan import category_overview, generate_plan
from codemode.steps.synthesize import synthesize_signatures


def test_category_overview_counts_and_samples(big_slack_catalog, slack_catalog):
    overview = category_overview(big_slack_catalog)
    assert overview.startswith("slack (123 tools: slack.action_000, slack.action_001, slack.action_002")
    assert overview.endswith("and 120 more)")

    assert category_overview(slack_catalog) == (
        "slack (2 tools: slack.list.all_channels, slack.chat.post_message); "
        "gmail (1 tools: gmail.send_email)"
    )


@pytest.mark.asyncio
async def test_generate_plan_uses_strategy_model(slack_catalog, scripted_llm):
    llm = scripted_llm("channels = await slack.list.all_channels()")
    result = await generate_plan("list channels", slack_catalog, llm)

    assert result.plan == "channels = await slack.list.all_channels()"
    assert result.total_tools_available == 3
    assert not result.used_fallback
    assert 'User Query: "list channels"' in llm.prompts[0]


@pytest.mark.asyncio
async def test_generate_plan_falls_back_on_failure(slack_catalog, scripted_llm):
    result = await generate_plan("list channels", slack_catalog, scripted_llm(fail_with=TimeoutError("slow")))

    assert result.used_fallback
    assert '# Analyze the user query: "list channels"' in result.plan


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("```python\nx = 1\n```", "x = 1"),
        ("```\nx = 1\n```\n", "x = 1"),
        ("x = 1", "x = 1"),
        ("Here:\n```python\nx = 1\n```", "Here:\n```python\nx = 1\n```"),
    ],
)
def test_strip_code_fence(raw, expected):
    assert strip_code_fence(raw) == expected


def test_implementation_prompt_contains_signatures(slack_catalog):
    sigs = synthesize_signatures(slack_catalog)
    prompt = build_implementation_prompt("post hi", "# plan", sigs, entry="run")
    assert sigs.full_text in prompt
    assert "async def run() -> dict:" in prompt
    assert "no `asyncio.run(run())`" in prompt


@pytest.mark.asyncio
async def test_implement_code_strips_fence(slack_catalog, scripted_llm):
    sigs = synthesize_signatures(slack_catalog)
    llm = scripted_llm("```python\nasync def main():\n    return {}\n```")

    result = await implement_code("q", "# plan", sigs, llm)

    assert result.program == "async def main():\n    return {}"
    assert result.raw_response.startswith("```python")


@pytest.mark.asyncio
async def test_implement_code_propagates_model_failure(slack_catalog, scripted_llm):
    sigs = synthesize_signatures(slack_catalog)
    with pytest.raises(RuntimeError):
        await implement_code("q", "# plan", sigs, scripted_llm(fail_with=RuntimeError("boom")))
