"""Composio tool provider (v3 REST API over httpx).

Actions are organized as ``app -> category -> action`` from their slugs:
``SLACK_CHAT_POST_MESSAGE`` in toolkit ``SLACK`` becomes
``slack.chat.post_message``; a slug with a single remaining part sits directly
under the app.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings

from codemode.catalog import Catalog, Tool, resolve
from codemode.exceptions import ProviderError
from codemode.providers.base import ToolFilterOptions
from codemode.providers.schema import parameters_from_json_schema

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://backend.composio.dev/api/v3"
DEFAULT_LIMIT = 100
MAX_PAGE_SIZE = 50
MAX_PAGES = 20

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class ComposioSettings(BaseSettings):
    api_key: str = ""
    project_id: str = ""
    user_id: str = ""
    connected_account_id: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = Field(30.0, gt=0)

    model_config = {"env_prefix": "COMPOSIO_", "env_file": ".env", "extra": "ignore"}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or response.text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or response.text


def catalog_position(action: dict[str, Any]) -> tuple[str, ...]:
    """Catalog keys for an action: ``(app, category, action)`` or ``(app, action)``."""
    toolkit = action.get("toolkit") or {}
    app = _NON_ALNUM.sub("_", str(toolkit.get("name") or toolkit.get("slug") or "").lower())
    slug = str(action.get("slug") or "").upper().replace(".", "_")
    prefix = str(toolkit.get("slug") or "").upper()

    remaining = slug
    if prefix and slug.startswith(prefix):
        remaining = slug[len(prefix) :].lstrip("_")

    parts = [p for p in remaining.split("_") if p]
    if len(parts) >= 2:
        return app, parts[0].lower(), "_".join(parts[1:]).lower()
    return app, remaining.lower()


class ComposioProvider:
    """Fetch Composio actions as a catalog and execute them by slug."""

    def __init__(
        self,
        settings: ComposioSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or ComposioSettings()
        if not self._settings.api_key:
            raise ValueError("COMPOSIO_API_KEY is required (settings or environment)")
        self._client = client or httpx.AsyncClient(timeout=self._settings.timeout_s)
        self._cached: Catalog | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"X-API-Key": self._settings.api_key, "Content-Type": "application/json"}
        if self._settings.project_id:
            headers["X-Project-Id"] = self._settings.project_id
        if self._settings.user_id:
            headers["X-User-Id"] = self._settings.user_id
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._settings.base_url.rstrip('/')}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError("Composio", str(exc)) from exc
        if response.is_error:
            raise ProviderError("Composio", _error_message(response), status=response.status_code)
        return response.json()

    async def fetch_actions(self, options: ToolFilterOptions | None = None) -> list[dict[str, Any]]:
        """Page through ``GET /tools`` until the limit, the last page, or ``MAX_PAGES``."""
        limit = (options.limit if options else None) or DEFAULT_LIMIT
        params: dict[str, Any] = {"limit": min(MAX_PAGE_SIZE, limit)}
        if self._settings.user_id:
            params["user_id"] = self._settings.user_id
        if options and len(options.toolkits) == 1:
            params["toolkit_slug"] = options.toolkits[0].upper()

        actions: list[dict[str, Any]] = []
        cursor: str | None = None
        for page in range(1, MAX_PAGES + 1):
            if cursor:
                params["cursor"] = cursor
            data = await self._request("GET", "/tools", params=params)
            items = data.get("tools") or data.get("items") or []
            actions.extend(item for item in items if isinstance(item, dict))
            logger.debug("Composio page %d: %d tools (%d total)", page, len(items), len(actions))
            cursor = data.get("next_cursor")
            if len(actions) >= limit or not cursor:
                break
        return actions

    async def execute_action(self, slug: str, arguments: dict[str, Any]) -> Any:
        if not self._settings.connected_account_id:
            raise ProviderError("Composio", "a connected account id is required to execute actions")
        body: dict[str, Any] = {
            "connected_account_id": self._settings.connected_account_id,
            "arguments": arguments,
        }
        if self._settings.user_id:
            body["user_id"] = self._settings.user_id
        return await self._request("POST", f"/tools/execute/{slug}", json=body)

    def _to_tool(self, action: dict[str, Any]) -> Tool:
        slug = str(action.get("slug") or "")

        async def invoke(arguments: dict[str, Any]) -> Any:
            return await self.execute_action(slug, arguments)

        return Tool(
            name=slug,
            description=str(action.get("description") or action.get("name") or slug),
            parameters=parameters_from_json_schema(action.get("input_parameters")),
            invoke=invoke,
        )

    def organize_catalog(self, actions: list[dict[str, Any]]) -> Catalog:
        catalog = Catalog()
        for action in actions:
            *parents, leaf = catalog_position(action)
            node = catalog
            for key in parents:
                child = node.get(key)
                if not isinstance(child, Catalog):
                    if child is not None:
                        logger.warning("Catalog key %s is both a tool and a category; keeping the category", key)
                    child = Catalog()
                    node[key] = child
                node = child
            if isinstance(node.get(leaf), Catalog):
                logger.warning("Skipping action %s: %s is already a category", action.get("slug"), leaf)
                continue
            node[leaf] = self._to_tool(action)
        return catalog

    async def get_tools(self, options: ToolFilterOptions | None = None) -> Catalog:
        if options and len(options.toolkits) > 1:
            actions: list[dict[str, Any]] = []
            for toolkit in options.toolkits:
                actions += await self.fetch_actions(ToolFilterOptions(toolkits=(toolkit,), limit=options.limit))
            return self.organize_catalog(actions)
        if options and options.toolkits:
            return self.organize_catalog(await self.fetch_actions(options))

        if self._cached is None:
            self._cached = self.organize_catalog(await self.fetch_actions(options))
            logger.info("Composio catalog cached (%d apps)", len(self._cached))
        return self._cached

    async def get_tool(self, path: str) -> Tool | None:
        return resolve(await self.get_tools(), path)
