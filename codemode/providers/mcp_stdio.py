"""MCP stdio tool provider (newline-delimited JSON-RPC over a subprocess).

Each configured server becomes one top-level catalog key; its tools sit
directly beneath it: ``{server_id: {tool_name: Tool}}``.

The client is synchronous (reader threads plus a message queue); the provider
runs it in a worker thread so listing and calling tools never block the event
loop. Every tool call starts a fresh server process, initializes it, makes
the call and shuts it down.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import queue
import subprocess
import threading
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from codemode.catalog import Catalog, Tool, resolve
from codemode.exceptions import ProviderError
from codemode.providers.base import ToolFilterOptions
from codemode.providers.schema import parameters_from_json_schema

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-11-25"

# OS essentials a subprocess needs even without the parent's environment.
_ESSENTIAL_ENV_KEYS = (
    "PATH",
    "HOME",
    "LANG",
    "SystemRoot",
    "ComSpec",
    "PATHEXT",
    "Path",
    "TEMP",
    "TMP",
    "USERPROFILE",
)


@dataclass(slots=True)
class StdioServerSpec:
    server_id: str
    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env_allow: list[str] = field(default_factory=list)
    env_overrides: dict[str, Any] = field(default_factory=dict)


def build_stdio_env(env_allow: Iterable[str] = (), env_overrides: dict[str, Any] | None = None) -> dict[str, str]:
    """Essentials plus allowlisted variables; the full parent environment is never inherited."""
    env: dict[str, str] = {}
    for key in (*_ESSENTIAL_ENV_KEYS, *env_allow):
        value = os.environ.get(key)
        if value is not None:
            env[str(key)] = value
    for key, value in (env_overrides or {}).items():
        if value is not None:
            env[str(key)] = str(value)
    return env


def coerce_content_to_text(result: dict[str, Any]) -> str:
    """Join the ``text`` content blocks of a ``tools/call`` result."""
    content = result.get("content") or []
    if isinstance(content, list):
        texts = [
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if texts:
            return "\n".join(t for t in texts if t)
    return json.dumps(result, default=str)


class McpStdioClient:
    """Blocking JSON-RPC client for one MCP server subprocess."""

    def __init__(self, spec: StdioServerSpec, *, timeout_s: float = 20.0) -> None:
        self._spec = spec
        self._timeout_s = float(timeout_s)
        self._proc: subprocess.Popen[str] | None = None
        self._stop = threading.Event()
        self._messages: queue.Queue[dict[str, Any]] = queue.Queue()
        self._stderr_tail: deque[str] = deque(maxlen=50)
        self._id = 0

    def __enter__(self) -> McpStdioClient:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    def start(self) -> None:
        if self._proc is not None:
            return
        cmd = [self._spec.command, *self._spec.args]
        logger.debug("Starting MCP server %s: %s", self._spec.server_id, cmd)
        try:
            self._proc = subprocess.Popen(
                cmd,
                cwd=self._spec.cwd,
                env=build_stdio_env(self._spec.env_allow, self._spec.env_overrides),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise ProviderError(self._spec.server_id, f"cannot start server: {exc}") from exc

        threading.Thread(target=self._pump_stdout, daemon=True).start()
        threading.Thread(target=self._pump_stderr, daemon=True).start()

    def close(self) -> None:
        self._stop.set()
        proc, self._proc = self._proc, None
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=3.0)
        except subprocess.TimeoutExpired:
            proc.kill()

    def _pump_stdout(self) -> None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return
        for line in proc.stdout:
            if self._stop.is_set():
                break
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON MCP stdout line: %r", line)
                continue
            if isinstance(msg, dict):
                self._messages.put(msg)

    def _pump_stderr(self) -> None:
        proc = self._proc
        if proc is None or proc.stderr is None:
            return
        for line in proc.stderr:
            if self._stop.is_set():
                break
            text = line.rstrip("\r\n")
            if text:
                self._stderr_tail.append(text)
                logger.debug("mcp[%s] stderr: %s", self._spec.server_id, text)

    def _send(self, message: dict[str, Any]) -> None:
        if self._proc is None or self._proc.stdin is None:
            raise ProviderError(self._spec.server_id, "server not started")
        self._proc.stdin.write(json.dumps(message, default=str) + "\n")
        self._proc.stdin.flush()

    def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self._id += 1
        req_id = self._id
        msg: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id, "method": method}
        if params is not None:
            msg["params"] = params
        self._send(msg)

        deadline = time.monotonic() + self._timeout_s
        while time.monotonic() < deadline:
            try:
                reply = self._messages.get(timeout=0.1)
            except queue.Empty:
                continue
            if reply.get("id") != req_id:
                continue
            if reply.get("error"):
                raise ProviderError(self._spec.server_id, f"{method} failed: {reply['error']}")
            return reply.get("result") or {}

        stderr = "\n".join(self.stderr_tail[-10:])
        raise ProviderError(self._spec.server_id, f"{method} timed out after {self._timeout_s:g}s\n{stderr}")

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        msg: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            msg["params"] = params
        self._send(msg)

    def initialize(self) -> dict[str, Any]:
        result = self.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "codemode", "version": "0.1.0"},
            },
        )
        self.notify("notifications/initialized")
        return result

    def list_tools(self) -> list[dict[str, Any]]:
        tools = self.request("tools/list").get("tools") or []
        return [t for t in tools if isinstance(t, dict)]

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("tools/call", {"name": name, "arguments": arguments or {}})


class McpStdioProvider:
    """Expose the tools of one or more stdio MCP servers as a catalog."""

    def __init__(self, servers: Iterable[StdioServerSpec], *, timeout_s: float = 30.0) -> None:
        self._servers = {spec.server_id: spec for spec in servers}
        self._timeout_s = timeout_s
        self._cached: Catalog | None = None

    def _list_tools(self, spec: StdioServerSpec) -> list[dict[str, Any]]:
        with McpStdioClient(spec, timeout_s=self._timeout_s) as client:
            client.initialize()
            return client.list_tools()

    def _call_tool(self, spec: StdioServerSpec, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        with McpStdioClient(spec, timeout_s=self._timeout_s) as client:
            client.initialize()
            return client.call_tool(name, arguments)

    def _make_tool(self, spec: StdioServerSpec, raw: dict[str, Any]) -> Tool:
        name = str(raw.get("name") or "")

        async def invoke(arguments: dict[str, Any]) -> str:
            result = await asyncio.to_thread(self._call_tool, spec, name, arguments)
            text = coerce_content_to_text(result)
            if result.get("isError"):
                raise ProviderError(spec.server_id, f"{name}: {text}")
            return text

        return Tool(
            name=name,
            description=str(raw.get("description") or name),
            parameters=parameters_from_json_schema(raw.get("inputSchema")),
            invoke=invoke,
        )

    async def get_tools(self, options: ToolFilterOptions | None = None) -> Catalog:
        if options is None and self._cached is not None:
            return self._cached

        wanted = set(options.toolkits) if options and options.toolkits else None
        limit = options.limit if options else None

        catalog = Catalog()
        for server_id, spec in self._servers.items():
            if wanted is not None and server_id not in wanted:
                continue
            raw_tools = await asyncio.to_thread(self._list_tools, spec)
            if limit is not None:
                raw_tools = raw_tools[:limit]
            server_catalog = Catalog()
            for raw in raw_tools:
                tool = self._make_tool(spec, raw)
                # Catalog keys must not contain the path separator.
                server_catalog[tool.name.replace(".", "_")] = tool
            catalog[server_id] = server_catalog
            logger.info("MCP server %s: %d tools", server_id, len(server_catalog))

        if options is None:
            self._cached = catalog
        return catalog

    async def get_tool(self, path: str) -> Tool | None:
        return resolve(await self.get_tools(), path)
