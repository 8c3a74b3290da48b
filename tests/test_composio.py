"""Tests for the Composio provider against a mocked HTTP transport."""

from __future__ import annotations

import json

import httpx
import pytest

from codemode.catalog import list_tool_paths
from codemode.exceptions import ProviderError
from codemode.providers.base import ToolFilterOptions
from codemode.providers.composio import ComposioProvider, ComposioSettings, catalog_position


def _action(slug: str, toolkit: str = "SLACK", name: str = "Slack") -> dict:
    return {
        "slug": slug,
        "name": slug.title(),
        "description": f"Run {slug}",
        "toolkit": {"slug": toolkit, "name": name},
        "input_parameters": {
            "properties": {"channel": {"type": "string", "description": "Channel id"}},
            "required": ["channel"],
        },
    }


class FakeComposio:
    """Serves GET /tools in pages and records every request."""

    def __init__(self, actions: list[dict], page_size: int = 2) -> None:
        self.actions = actions
        self.page_size = page_size
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and request.url.path.endswith("/tools"):
            toolkit = request.url.params.get("toolkit_slug")
            items = [a for a in self.actions if toolkit is None or a["toolkit"]["slug"] == toolkit]
            start = int(request.url.params.get("cursor") or 0)
            page = items[start : start + self.page_size]
            nxt = start + self.page_size
            return httpx.Response(200, json={"items": page, "next_cursor": str(nxt) if nxt < len(items) else None})
        if request.method == "POST" and "/tools/execute/" in request.url.path:
            body = json.loads(request.content)
            if body["arguments"].get("channel") == "forbidden":
                return httpx.Response(403, json={"error": {"message": "not allowed"}})
            return httpx.Response(200, json={"data": {"ok": True}, "echo": body})
        return httpx.Response(404, json={"message": "unknown route"})


def _provider(fake: FakeComposio, **settings) -> ComposioProvider:
    config = ComposioSettings(api_key="key-1", project_id="proj", user_id="user-9", **settings)
    return ComposioProvider(config, client=httpx.AsyncClient(transport=httpx.MockTransport(fake)))


def test_catalog_position():
    assert catalog_position(_action("SLACK_CHAT_POST_MESSAGE")) == ("slack", "chat", "post_message")
    assert catalog_position(_action("SLACK_SEARCH")) == ("slack", "search")
    assert catalog_position(_action("GMAIL_SEND_EMAIL", "GMAIL", "Gmail")) == ("gmail", "send", "email")


@pytest.mark.asyncio
async def test_paginates_and_organizes_catalog():
    fake = FakeComposio(
        [
            _action("SLACK_CHAT_POST_MESSAGE"),
            _action("SLACK_LIST_ALL_CHANNELS"),
            _action("SLACK_SEARCH"),
            _action("GMAIL_SEND_EMAIL", "GMAIL", "Gmail"),
        ]
    )
    provider = _provider(fake)

    catalog = await provider.get_tools()

    assert list_tool_paths(catalog) == [
        "slack.chat.post_message",
        "slack.list.all_channels",
        "slack.search",
        "gmail.send.email",
    ]
    assert len(fake.requests) == 2
    first = fake.requests[0]
    assert first.headers["X-API-Key"] == "key-1"
    assert first.headers["X-Project-Id"] == "proj"
    assert first.headers["X-User-Id"] == "user-9"
    assert first.url.params["limit"] == "50"
    assert first.url.params["user_id"] == "user-9"
    assert fake.requests[1].url.params["cursor"] == "2"

    # Unfiltered catalog is cached.
    assert await provider.get_tools() is catalog
    assert len(fake.requests) == 2


@pytest.mark.asyncio
async def test_limit_stops_paging():
    fake = FakeComposio([_action(f"SLACK_A_{i}") for i in range(10)], page_size=3)
    catalog = await _provider(fake).get_tools(ToolFilterOptions(limit=4))

    assert len(list_tool_paths(catalog)) == 6
    assert fake.requests[0].url.params["limit"] == "4"


@pytest.mark.asyncio
async def test_toolkit_filters():
    fake = FakeComposio([_action("SLACK_SEARCH"), _action("GMAIL_SEND_EMAIL", "GMAIL", "Gmail")])
    provider = _provider(fake)

    single = await provider.get_tools(ToolFilterOptions(toolkits=("gmail",)))
    assert list_tool_paths(single) == ["gmail.send.email"]
    assert fake.requests[-1].url.params["toolkit_slug"] == "GMAIL"

    both = await provider.get_tools(ToolFilterOptions(toolkits=("SLACK", "GMAIL")))
    assert list_tool_paths(both) == ["slack.search", "gmail.send.email"]


@pytest.mark.asyncio
async def test_execute_action():
    fake = FakeComposio([_action("SLACK_CHAT_POST_MESSAGE")])
    provider = _provider(fake, connected_account_id="ca_1")
    tool = await provider.get_tool("slack.chat.post_message")

    out = await tool({"channel": "C1"})

    assert out["echo"] == {"connected_account_id": "ca_1", "arguments": {"channel": "C1"}, "user_id": "user-9"}
    assert fake.requests[-1].url.path.endswith("/tools/execute/SLACK_CHAT_POST_MESSAGE")

    with pytest.raises(ProviderError) as exc_info:
        await tool({"channel": "forbidden"})
    assert exc_info.value.status == 403
    assert "not allowed" in str(exc_info.value)


@pytest.mark.asyncio
async def test_execute_requires_connected_account():
    provider = _provider(FakeComposio([]))
    with pytest.raises(ProviderError):
        await provider.execute_action("SLACK_SEARCH", {})


def test_api_key_is_required(monkeypatch):
    monkeypatch.delenv("COMPOSIO_API_KEY", raising=False)
    with pytest.raises(ValueError):
        ComposioProvider(ComposioSettings(api_key=""))


@pytest.mark.asyncio
async def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("COMPOSIO_CONNECTED_ACCOUNT_ID", "ca_env")
    settings = ComposioSettings()
    assert settings.api_key == "composio-test-fake"
    assert settings.connected_account_id == "ca_env"
