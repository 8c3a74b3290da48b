"""Shared test fixtures for codemode."""

from __future__ import annotations

import re
from typing import Any
from unittest.mock import MagicMock

import pytest

from codemode.catalog import Catalog, Tool, ToolParameter
from codemode.llm.config import LLMSettings
from codemode.llm.router import LLMRouter
from codemode.pipeline import PipelineLLMs


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-fake")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-fake")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test-fake")
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://localhost:11435")
    monkeypatch.setenv("COMPOSIO_API_KEY", "composio-test-fake")
    for key in ("CODEMODE_LOG_PATH", "CODEMODE_FILTER_FAILURE_POLICY", "CODEMODE_ENTRY_FUNCTION"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def llm_settings():
    """Test LLM settings."""
    return LLMSettings(
        openai_api_key="sk-test-fake",
        anthropic_api_key="sk-ant-test-fake",
        openrouter_api_key="sk-or-test-fake",
        ollama_base_url="http://localhost:11435",
    )


@pytest.fixture
def router(llm_settings):
    """Test LLM router."""
    return LLMRouter(llm_settings)


class ScriptedLLM:
    """Prompt -> text fake that records prompts and answers from a script.

    ``responses`` is either a fixed string, a list consumed in order, or a
    callable taking the prompt.
    """

    def __init__(self, responses: Any = "", *, fail_with: Exception | None = None) -> None:
        self.responses = responses
        self.fail_with = fail_with
        self.prompts: list[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail_with is not None:
            raise self.fail_with
        if callable(self.responses):
            return self.responses(prompt)
        if isinstance(self.responses, list):
            return self.responses.pop(0)
        return self.responses

    @property
    def calls(self) -> int:
        return len(self.prompts)


def select_by_keyword(*keywords: str):
    """Relevance fake: pick the numbered entries whose path contains a keyword."""

    def _answer(prompt: str) -> str:
        picked = []
        for m in re.finditer(r"^(\d+)\. (\S+)$", prompt, re.MULTILINE):
            if any(k in m.group(2) for k in keywords):
                picked.append(m.group(1))
        return ",".join(picked) or "none"

    return _answer


class ToolRecorder:
    """Builds tools whose invocations are recorded."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def tool(
        self,
        name: str,
        description: str = "",
        parameters: tuple[ToolParameter, ...] = (),
        result: Any = None,
        error: Exception | None = None,
    ) -> Tool:
        async def invoke(arguments: dict[str, Any]) -> Any:
            self.calls.append((name, arguments))
            if error is not None:
                raise error
            return result if result is not None else {"tool": name, "args": arguments}

        return Tool(name=name, description=description or f"{name} tool", parameters=parameters, invoke=invoke)


@pytest.fixture
def recorder():
    return ToolRecorder()


@pytest.fixture
def slack_catalog(recorder) -> Catalog:
    """A small two-app catalog with parameters of several kinds."""
    return Catalog.from_dict(
        {
            "slack": {
                "list": {
                    "all_channels": recorder.tool(
                        "all_channels",
                        "List all channels in the workspace",
                        (ToolParameter("limit", "integer", "Max channels", required=False, default=100),),
                        result=[{"id": "C1", "name": "general"}, {"id": "C2", "name": "test-bots"}],
                    ),
                },
                "chat": {
                    "post_message": recorder.tool(
                        "post_message",
                        "Post a message to a channel",
                        (
                            ToolParameter("channel", "string", "Channel id", required=True),
                            ToolParameter("text", "string", "Message text", required=True),
                        ),
                        result={"ok": True},
                    ),
                },
            },
            "gmail": {
                "send_email": recorder.tool(
                    "send_email",
                    "Send an email",
                    (
                        ToolParameter("to", "string", "Recipient", required=True),
                        ToolParameter("cc", "array of strings", "Copies"),
                    ),
                ),
            },
        }
    )


@pytest.fixture
def big_slack_catalog(recorder) -> Catalog:
    """123 tools under one top-level namespace."""
    actions = {f"action_{i:03d}": recorder.tool(f"action_{i:03d}", f"Slack action {i}") for i in range(120)}
    actions["list_all_channels"] = recorder.tool("list_all_channels", "List all channels")
    actions["list_conversations"] = recorder.tool("list_conversations", "List conversations")
    actions["get_channel_info"] = recorder.tool("get_channel_info", "Get channel info")
    return Catalog.from_dict({"slack": actions})


@pytest.fixture
def scripted_llms():
    """Factory for PipelineLLMs built from ScriptedLLM fakes."""

    def _make(tiny: Any = "1", main: Any = "", strategy: Any = "# plan") -> PipelineLLMs:
        return PipelineLLMs(
            tiny=tiny if isinstance(tiny, ScriptedLLM) else ScriptedLLM(tiny),
            main=main if isinstance(main, ScriptedLLM) else ScriptedLLM(main),
            strategy=strategy if isinstance(strategy, ScriptedLLM) else ScriptedLLM(strategy),
        )

    return _make


@pytest.fixture
def scripted_llm():
    """The ScriptedLLM class, for tests that build their own fakes."""
    return ScriptedLLM


@pytest.fixture
def keyword_selector():
    return select_by_keyword


@pytest.fixture
def mock_llm_response():
    """Helper to create a mock LLM response."""

    def _make(content):
        mock = MagicMock()
        mock.content = content
        return mock

    return _make
