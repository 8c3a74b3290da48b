from __future__ import annotations

import sys
from pathlib import Path

import pytest

from codemode.catalog import Tool, list_tool_paths
from codemode.exceptions import ProviderError
from codemode.providers.base import ToolFilterOptions, ToolProvider
from codemode.providers.mcp_stdio import (
    McpStdioClient,
    McpStdioProvider,
    StdioServerSpec,
    build_stdio_env,
    coerce_content_to_text,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def echo_spec() -> StdioServerSpec:
    return StdioServerSpec(
        server_id="echo",
        command=sys.executable,
        args=["-m", "tests.mcp_echo_server"],
        cwd=str(REPO_ROOT),
    )


def test_client_initialize_list_and_call(echo_spec):
    with McpStdioClient(echo_spec, timeout_s=15.0) as client:
        info = client.initialize()
        assert info["serverInfo"]["name"] == "pytest-mcp-echo"
        tools = client.list_tools()
        assert [t["name"] for t in tools] == ["echo", "fail"]
        out = client.call_tool("echo", {"text": "hi"})
        assert coerce_content_to_text(out) == "echo:hi"
        with pytest.raises(ProviderError):
            client.call_tool("nope", {})


@pytest.mark.asyncio
async def test_provider_builds_catalog_and_invokes(echo_spec):
    provider = McpStdioProvider([echo_spec], timeout_s=15.0)
    assert isinstance(provider, ToolProvider)

    catalog = await provider.get_tools()
    assert list_tool_paths(catalog) == ["echo.echo", "echo.fail"]
    assert await provider.get_tools() is catalog

    tool = await provider.get_tool("echo.echo")
    assert isinstance(tool, Tool)
    assert tool.parameters[0].name == "text"
    assert tool.parameters[0].required
    assert await tool({"text": "hello"}) == "echo:hello"


@pytest.mark.asyncio
async def test_provider_filters_by_server(echo_spec):
    provider = McpStdioProvider([echo_spec])
    assert await provider.get_tools(ToolFilterOptions(toolkits=("other",))) == {}


def test_missing_command_is_a_provider_error():
    spec = StdioServerSpec(server_id="ghost", command="/nonexistent/mcp-server")
    with pytest.raises(ProviderError):
        McpStdioClient(spec).start()


def test_build_stdio_env_is_allowlisted(monkeypatch):
    monkeypatch.setenv("SECRET_TOKEN", "s3cret")
    monkeypatch.setenv("ALLOWED_TOKEN", "ok")
    env = build_stdio_env(["ALLOWED_TOKEN"], {"EXTRA": 1, "DROPPED": None})
    assert "SECRET_TOKEN" not in env
    assert env["ALLOWED_TOKEN"] == "ok"
    assert env["EXTRA"] == "1"
    assert "DROPPED" not in env


def test_coerce_content_without_text_blocks():
    assert coerce_content_to_text({"content": [{"type": "image"}]}) == '{"content": [{"type": "image"}]}'


@pytest.mark.asyncio
async def test_tool_level_error_raises(echo_spec):
    tool = await McpStdioProvider([echo_spec], timeout_s=15.0).get_tool("echo.fail")
    with pytest.raises(ProviderError) as exc_info:
        await tool({})
    assert "deliberate failure" in str(exc_info.value)


@pytest.mark.asyncio
async def test_limit_applies_per_server(echo_spec):
    catalog = await McpStdioProvider([echo_spec]).get_tools(ToolFilterOptions(limit=1))
    assert list_tool_paths(catalog) == ["echo.echo"]
