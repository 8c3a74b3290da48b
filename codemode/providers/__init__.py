"""Tool providers: sources of live tool catalogs.

- ``mcp_stdio``: tools of local MCP servers spoken to over stdio
- ``composio``: Composio actions over its REST API
"""

from __future__ import annotations

from .base import ToolFilterOptions, ToolProvider
from .composio import ComposioProvider, ComposioSettings
from .mcp_stdio import McpStdioClient, McpStdioProvider, StdioServerSpec

__all__ = [
    "ComposioProvider",
    "ComposioSettings",
    "McpStdioClient",
    "McpStdioProvider",
    "StdioServerSpec",
    "ToolFilterOptions",
    "ToolProvider",
]
