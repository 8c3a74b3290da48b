"""Stdio MCP server for provider tests.

Tools:
- ``echo`` (text: string, required) -> ``echo:<text>``
- ``fail`` -> a result flagged ``isError``

Run with ``python -m tests.mcp_echo_server`` from the repository root.
"""

from __future__ import annotations

import json
import sys
from typing import Any

TOOLS = [
    {
        "name": "echo",
        "description": "Echo back the provided text payload.",
        "inputSchema": {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Text to echo"}},
            "required": ["text"],
        },
    },
    {
        "name": "fail",
        "description": "Always reports a tool-level error.",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


def _reply(req_id: Any, *, result: dict[str, Any] | None = None, error: str | None = None) -> None:
    msg: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id}
    if error is not None:
        msg["error"] = {"code": -32601, "message": error}
    else:
        msg["result"] = result or {}
    sys.stdout.write(json.dumps(msg) + "\n")
    sys.stdout.flush()


def _call(name: str, arguments: dict[str, Any]) -> dict[str, Any] | None:
    match name:
        case "echo":
            return {"content": [{"type": "text", "text": f"echo:{arguments.get('text', '')}"}]}
        case "fail":
            return {"content": [{"type": "text", "text": "deliberate failure"}], "isError": True}
        case _:
            return None


def main() -> int:
    for line in sys.stdin:
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(msg, dict) or msg.get("id") is None:
            continue  # notifications

        req_id = msg["id"]
        params = msg.get("params") or {}
        match msg.get("method"):
            case "initialize":
                _reply(
                    req_id,
                    result={
                        "protocolVersion": params.get("protocolVersion") or "2025-11-25",
                        "capabilities": {"tools": {}},
                        "serverInfo": {"name": "pytest-mcp-echo", "version": "0.0.0"},
                    },
                )
            case "ping":
                _reply(req_id, result={})
            case "tools/list":
                _reply(req_id, result={"tools": TOOLS})
            case "tools/call":
                arguments = params.get("arguments")
                result = _call(str(params.get("name")), arguments if isinstance(arguments, dict) else {})
                if result is None:
                    _reply(req_id, error=f"Unknown tool: {params.get('name')}")
                else:
                    _reply(req_id, result=result)
            case other:
                _reply(req_id, error=f"Unknown method: {other}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
